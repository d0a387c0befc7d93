# Copyright (C) 2018-'25  Frank Sachsenheim
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
The value types of the XPath data model. Each implements the same coercion contract to
strings, numbers, booleans and node-sets. Values are immutable once constructed.

Beside the four types of XPath 1.0 there are maps, arrays and functions of XPath 3.1.
Sequences of XPath 2.0 are represented as :class:`NodeSetValue` that may hold atomic
values as items, a sequence with exactly one atomic item is always represented by that
item.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar, Final, Optional, TypeAlias

from _transmute.exceptions import XPathEvaluationError
from _transmute.grammar import whitespace_characters
from _transmute.nodes import NodeBase, sort_in_document_order

if TYPE_CHECKING:
    from _transmute.xpath.context import ExprContext


Item: TypeAlias = "NodeBase | Value"


_match_number: Final = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)").fullmatch


# helpers


def format_number(number: float) -> str:
    """
    Formats a number as the XPath ``string()`` function does.

    >>> format_number(1.0)
    '1'
    >>> format_number(-0.5)
    '-0.5'
    >>> format_number(float("inf"))
    'Infinity'
    """
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    if number == int(number):
        return str(int(number))
    result = format(Decimal(repr(number)), "f")
    if "." in result:
        result = result.rstrip("0").rstrip(".")
    return result


def parse_number(string: str) -> float:
    """
    Parses a string as the XPath ``number()`` function does, strings that don't
    represent a number yield ``NaN``.
    """
    string = string.strip(whitespace_characters)
    if _match_number(string) is None:
        return math.nan
    return float(string)


def items_of(value: Value) -> Sequence[Item]:
    """Returns the items of a value regarded as sequence."""
    if isinstance(value, NodeSetValue):
        return value.items
    return (value,)


def make_sequence(items: Iterable[Item]) -> Value:
    """
    Wraps items as a value, a single atomic item is returned as it is.
    """
    items = tuple(items)
    if len(items) == 1 and isinstance(items[0], Value):
        return items[0]
    return NodeSetValue(items)


def to_value(obj: Any) -> Value:
    """
    Converts a Python object to a value. Strings that spell ``true`` or ``false`` become
    booleans, strings that represent numbers become numbers.
    """
    match obj:
        case Value():
            return obj
        case bool():
            return BooleanValue(obj)
        case int() | float():
            return NumberValue(float(obj))
        case "true":
            return BooleanValue(True)
        case "false":
            return BooleanValue(False)
        case str():
            if not math.isnan(number := parse_number(obj)) and obj.strip():
                return NumberValue(number)
            return StringValue(obj)
        case NodeBase():
            return NodeSetValue((obj,))
        case None:
            return NodeSetValue(())
        case Mapping():
            return MapValue({_to_key(k): to_value(v) for k, v in obj.items()})
        case Iterable():
            return make_sequence(
                i if isinstance(i, NodeBase) else to_value(i) for i in obj
            )
        case _:
            raise TypeError(f"Can't convert {obj!r} to an XPath value.")


def to_result_value(obj: Any) -> Value:
    """
    Converts what a function returns to a value. Unlike :func:`to_value` strings stay
    strings.
    """
    match obj:
        case Value():
            return obj
        case str():
            return StringValue(obj)
        case list() | tuple():
            return make_sequence(
                i if isinstance(i, NodeBase) else to_result_value(i) for i in obj
            )
        case _:
            return to_value(obj)


def _to_key(obj: Any) -> Any:
    if isinstance(obj, Value):
        return obj.to_key()
    if isinstance(obj, int) and not isinstance(obj, bool):
        return float(obj)
    return obj


def atomize(item: Item) -> Value:
    """Returns the typed value of an item, nodes are represented by their string."""
    if isinstance(item, NodeBase):
        return StringValue(item.string_value)
    return item


# value types


class Value(ABC):
    __slots__ = ("value",)

    type_name: ClassVar[str]

    def __init__(self, value: Any):
        self.value = value

    def __eq__(self, other: Any) -> bool:
        return type(self) is type(other) and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.type_name, self.to_key()))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.value!r})"

    @abstractmethod
    def to_boolean(self) -> bool:
        pass

    def to_key(self) -> Any:
        """Returns a hashable representation that is used as key in maps."""
        return self.value

    @abstractmethod
    def to_node_set(self) -> list[NodeBase]:
        pass

    @abstractmethod
    def to_number(self) -> float:
        pass

    @abstractmethod
    def to_string(self) -> str:
        pass


class BooleanValue(Value):
    __slots__ = ()

    type_name = "boolean"

    def __init__(self, value: bool):
        super().__init__(bool(value))

    def to_boolean(self) -> bool:
        return self.value

    def to_node_set(self) -> list[NodeBase]:
        raise XPathEvaluationError("Cannot convert a boolean to a node-set.")

    def to_number(self) -> float:
        return 1.0 if self.value else 0.0

    def to_string(self) -> str:
        return "true" if self.value else "false"


class NumberValue(Value):
    __slots__ = ()

    type_name = "number"

    def __init__(self, value: float):
        super().__init__(float(value))

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, NumberValue) and (
            self.value == other.value
            or (math.isnan(self.value) and math.isnan(other.value))
        )

    __hash__ = Value.__hash__

    def to_boolean(self) -> bool:
        return not (self.value == 0 or math.isnan(self.value))

    def to_node_set(self) -> list[NodeBase]:
        raise XPathEvaluationError("Cannot convert a number to a node-set.")

    def to_number(self) -> float:
        return self.value

    def to_string(self) -> str:
        return format_number(self.value)


class StringValue(Value):
    __slots__ = ()

    type_name = "string"

    def to_boolean(self) -> bool:
        return bool(self.value)

    def to_node_set(self) -> list[NodeBase]:
        raise XPathEvaluationError("Cannot convert a string to a node-set.")

    def to_number(self) -> float:
        return parse_number(self.value)

    def to_string(self) -> str:
        return self.value


class NodeSetValue(Value):
    """
    A node-set as of XPath 1.0 or a sequence as of XPath 2.0. The items are kept in the
    order they were given, expressions that produce node-sets provide them in document
    order.
    """

    __slots__ = ("_first",)

    type_name = "node-set"

    def __init__(self, items: Iterable[Item]):
        super().__init__(tuple(items))
        self._first: Optional[Item] = None

    def __bool__(self) -> bool:
        return bool(self.value)

    def __iter__(self) -> Iterator[Item]:
        return iter(self.value)

    def __len__(self) -> int:
        return len(self.value)

    def __eq__(self, other: Any) -> bool:
        return (
            isinstance(other, NodeSetValue)
            and len(self.value) == len(other.value)
            and all(a is b or a == b for a, b in zip(self.value, other.value))
        )

    def __hash__(self) -> int:
        return hash(tuple(id(x) for x in self.value))

    @property
    def first(self) -> Optional[Item]:
        """The first item, for node-sets the first node in document order."""
        if not self.value:
            return None
        if self._first is None:
            if len(self.value) > 1 and all(
                isinstance(x, NodeBase) for x in self.value
            ):
                self._first = sort_in_document_order(self.value)[0]
            else:
                self._first = self.value[0]
        return self._first

    @property
    def items(self) -> tuple[Item, ...]:
        return self.value

    @property
    def nodes(self) -> list[NodeBase]:
        return [x for x in self.value if isinstance(x, NodeBase)]

    def to_boolean(self) -> bool:
        return bool(self.value)

    def to_key(self) -> Any:
        if (first := self.first) is None:
            return None
        return atomize(first).to_key()

    def to_node_set(self) -> list[NodeBase]:
        result = []
        for item in self.value:
            if not isinstance(item, NodeBase):
                raise XPathEvaluationError(
                    "The sequence contains an item that is not a node."
                )
            result.append(item)
        return result

    def to_number(self) -> float:
        if (first := self.first) is None:
            return math.nan
        if isinstance(first, NodeBase):
            return parse_number(first.string_value)
        return first.to_number()

    def to_string(self) -> str:
        if (first := self.first) is None:
            return ""
        if isinstance(first, NodeBase):
            return first.string_value
        return first.to_string()


class _StructuredValue(Value):
    __slots__ = ()

    def to_boolean(self) -> bool:
        return True

    def to_key(self) -> Any:
        return id(self)

    def to_node_set(self) -> list[NodeBase]:
        return []

    def to_number(self) -> float:
        return math.nan

    def to_string(self) -> str:
        from _transmute.xpath.json_conversion import serialize_json

        return serialize_json(self)


class ArrayValue(_StructuredValue):
    """An XPath 3.1 array, its members are values."""

    __slots__ = ()

    type_name = "array"

    def __init__(self, members: Iterable[Value]):
        super().__init__(tuple(members))

    @property
    def members(self) -> tuple[Value, ...]:
        return self.value


class FunctionValue(_StructuredValue):
    """A function item, e.g. from a named function reference or an inline function."""

    __slots__ = ("arity", "name")

    type_name = "function"

    def __init__(
        self,
        function: Callable[..., Value],
        arity: int,
        name: Optional[str] = None,
    ):
        super().__init__(function)
        self.arity = arity
        self.name = name

    def __eq__(self, other: Any) -> bool:
        return self is other

    __hash__ = _StructuredValue.__hash__

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name or 'anonymous'}#{self.arity})"

    def call(self, context: ExprContext, *arguments: Value) -> Value:
        if len(arguments) != self.arity:
            raise XPathEvaluationError(
                f"The function {self.name or 'anonymous'}#{self.arity} was called "
                f"with {len(arguments)} arguments.",
                code="XPTY0004",
            )
        return to_result_value(self.value(context, *arguments))

    def to_string(self) -> str:
        # functions have no JSON representation
        return f"function {self.name or '(anonymous)'}#{self.arity}"


class MapValue(_StructuredValue):
    """
    An XPath 3.1 map. The keys are the hashable representations of atomic values as
    provided by :meth:`Value.to_key`, the entries' values are values.
    """

    __slots__ = ()

    type_name = "map"

    def __init__(self, entries: Mapping[Any, Value]):
        super().__init__(dict(entries))

    @property
    def entries(self) -> dict[Any, Value]:
        return self.value

    def get(self, key: Any) -> Optional[Value]:
        return self.value.get(_to_key(key))


def key_to_value(key: Any) -> Value:
    """Restores a value from a map key."""
    match key:
        case bool():
            return BooleanValue(key)
        case float() | int():
            return NumberValue(key)
        case None:
            return NodeSetValue(())
        case _:
            return StringValue(str(key))


EMPTY: Final = NodeSetValue(())
TRUE: Final = BooleanValue(True)
FALSE: Final = BooleanValue(False)


__all__ = (
    ArrayValue.__name__,
    BooleanValue.__name__,
    FunctionValue.__name__,
    MapValue.__name__,
    NodeSetValue.__name__,
    NumberValue.__name__,
    StringValue.__name__,
    Value.__name__,
    atomize.__name__,
    format_number.__name__,
    items_of.__name__,
    key_to_value.__name__,
    make_sequence.__name__,
    parse_number.__name__,
    to_result_value.__name__,
    to_value.__name__,
)
