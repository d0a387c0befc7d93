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
The expression tree of XPath expressions. Each node of the tree implements
``evaluate(context) -> Value``.

Only path, location, step and union expressions consider the context's
``return_on_first_match`` flag, they stop as soon as one node was found. All other
expressions evaluate their operands with the flag switched off.
"""

from __future__ import annotations

import inspect
import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Sequence
from functools import wraps
from textwrap import indent
from typing import TYPE_CHECKING, Any, Optional

from _transmute.exceptions import XPathEvaluationError, XPathParsingError
from _transmute.nodes import (
    AttributeNode,
    CommentNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    NodeBase,
    ProcessingInstructionNode,
    TextNode,
    _ParentNode,
    is_before,
    sort_in_document_order,
)
from _transmute.plugins import plugin_manager as _plugin_manager
from _transmute.xpath.values import (
    EMPTY,
    FALSE,
    TRUE,
    ArrayValue,
    BooleanValue,
    FunctionValue,
    MapValue,
    NodeSetValue,
    NumberValue,
    StringValue,
    Value,
    atomize,
    items_of,
    make_sequence,
    to_result_value,
)


if TYPE_CHECKING:
    from typing import Final

    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Item


xpath_functions: Final = _plugin_manager.xpath_functions

ARITHMETIC_OPERATORS: Final = frozenset(("+", "-", "*", "div", "idiv", "mod"))
GENERAL_COMPARISON_OPERATORS: Final = frozenset(("=", "!=", "<", "<=", ">", ">="))
VALUE_COMPARISON_OPERATORS: Final = {
    "eq": "=",
    "ne": "!=",
    "lt": "<",
    "le": "<=",
    "gt": ">",
    "ge": ">=",
}
NUMERIC_FUNCTIONS: Final = frozenset(
    (
        "last",
        "position",
        "count",
        "string-length",
        "number",
        "sum",
        "floor",
        "ceiling",
        "round",
    )
)
REVERSE_AXES: Final = frozenset(
    ("ancestor", "ancestor-or-self", "parent", "preceding", "preceding-sibling")
)


# helper


def nested_repr(obj: Any) -> str:  # pragma: no cover
    result = f"{obj.__class__.__name__}(\n"
    for name, value in ((x, getattr(obj, x)) for x in obj.__slots__):
        result += f"  {name}="
        if isinstance(value, (list, tuple)):
            result += (
                "[\n" + "\n".join(indent(repr(x), "    ") for x in value) + "\n]\n"
            )
        else:
            result += f"{value!r}\n"
    result += ")"
    return result


def suppresses_first_match(method: Callable) -> Callable:
    """
    Decorates an ``evaluate`` method so that the operands are evaluated with the
    context's ``return_on_first_match`` flag switched off.
    """

    @wraps(method)
    def wrapper(self, context: ExprContext) -> Value:
        if not context.return_on_first_match:
            return method(self, context)
        context.return_on_first_match = False
        try:
            return method(self, context)
        finally:
            context.return_on_first_match = True

    return wrapper


def _item_as_value(item: Item) -> Value:
    if isinstance(item, NodeBase):
        return NodeSetValue((item,))
    return item


def _merge_items(items: list[Item]) -> Value:
    if items and all(isinstance(x, NodeBase) for x in items):
        return NodeSetValue(sort_in_document_order(items))  # type: ignore
    return make_sequence(items)


def compare_atomic(operator: str, left: Value, right: Value, version: float) -> bool:
    """Compares two atomic values with one of the general comparison operators."""
    if operator in ("=", "!="):
        if isinstance(left, BooleanValue) or isinstance(right, BooleanValue):
            a: Any = left.to_boolean()
            b: Any = right.to_boolean()
        elif isinstance(left, NumberValue) or isinstance(right, NumberValue):
            a, b = left.to_number(), right.to_number()
        else:
            a, b = left.to_string(), right.to_string()
        return (a == b) if operator == "=" else (a != b)

    if (
        version >= 2.0
        and isinstance(left, StringValue)
        and isinstance(right, StringValue)
    ):
        a, b = left.value, right.value
    else:
        a, b = left.to_number(), right.to_number()

    match operator:
        case "<":
            return a < b
        case "<=":
            return a <= b
        case ">":
            return a > b
        case ">=":
            return a >= b

    raise XPathEvaluationError(f"Unknown comparison operator: {operator}")


def compare_values(operator: str, left: Value, right: Value, version: float) -> bool:
    """
    Implements the general comparisons. When one operand is a node-set, the
    comparison is true if it is true for any of its members. Compared to a boolean a
    node-set is regarded as boolean as a whole.
    """
    left_is_set = isinstance(left, NodeSetValue)
    right_is_set = isinstance(right, NodeSetValue)

    if not (left_is_set or right_is_set):
        return compare_atomic(operator, left, right, version)

    if isinstance(left, BooleanValue) or isinstance(right, BooleanValue):
        return compare_atomic(
            operator,
            BooleanValue(left.to_boolean()),
            BooleanValue(right.to_boolean()),
            version,
        )

    right_values = [atomize(x) for x in items_of(right)]
    for left_item in items_of(left):
        left_value = atomize(left_item)
        for right_value in right_values:
            if compare_atomic(operator, left_value, right_value, version):
                return True
    return False


def divide(dividend: float, divisor: float) -> float:
    """Division with the IEEE 754 semantics for zero divisors."""
    if divisor == 0:
        if dividend == 0 or math.isnan(dividend):
            return math.nan
        return math.copysign(math.inf, dividend) * math.copysign(1.0, divisor)
    return dividend / divisor


def modulo(dividend: float, divisor: float) -> float:
    """The remainder of a truncating division, it has the sign of the dividend."""
    if divisor == 0 or math.isnan(divisor) or math.isinf(dividend):
        return math.nan
    if math.isinf(divisor):
        return dividend
    return math.fmod(dividend, divisor)


# base classes for nodes


class Expr(ABC):
    """The base class of all expression tree nodes."""

    __slots__: tuple[str, ...] = ()

    def __eq__(self, other):
        return type(self) is type(other) and all(
            getattr(self, x) == getattr(other, x)
            for x in self.__slots__
        )

    __hash__ = object.__hash__

    def __repr__(self):
        return (
            f"{self.__class__.__qualname__}("
            + ", ".join(
                f"{x}={getattr(self, x)!r}" for x in self.__slots__
            )
            + ")"
        )

    @abstractmethod
    def evaluate(self, context: ExprContext) -> Value:
        pass

    def iterate_subexpressions(self) -> Iterator[Expr]:
        """Yields all expressions that this one contains, recursively."""
        for name in self.__slots__:
            yield from _iterate_expressions(getattr(self, name))


def _iterate_expressions(obj: Any) -> Iterator[Expr]:
    if isinstance(obj, Expr):
        yield obj
        yield from obj.iterate_subexpressions()
    elif isinstance(obj, (list, tuple)):
        for item in obj:
            yield from _iterate_expressions(item)


class NodeTest(ABC):
    __slots__: tuple[str, ...] = ()

    def __eq__(self, other):
        return type(self) is type(other) and all(
            getattr(self, x) == getattr(other, x) for x in self.__slots__
        )

    __hash__ = object.__hash__

    def __repr__(self):
        return (
            f"{self.__class__.__qualname__}("
            f"{', '.join(f'{x}={getattr(self, x)!r}' for x in self.__slots__)})"
        )

    @abstractmethod
    def evaluate(self, node: NodeBase, context: ExprContext) -> bool:
        pass


# axes


class Axis:
    """
    Provides a generator for each axis, its name is the axis' name with underscores
    instead of dashes. Each one yields nodes in the axis' direction.
    """

    __slots__ = ("generator", "name", "reverse")

    def __init__(self, name: str):
        if name == "namespace":
            raise XPathParsingError(message="The namespace axis is not supported.")
        generator = getattr(self, name.replace("-", "_"), None)
        if generator is None or name.startswith("_") or name == "evaluate":
            raise XPathParsingError(message=f"Invalid axis specifier: {name}")
        self.generator: Final = generator
        self.name: Final = name
        self.reverse: Final = name in REVERSE_AXES

    def __eq__(self, other):
        return isinstance(other, Axis) and self.name == other.name

    __hash__ = object.__hash__

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name})"

    def ancestor(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from node._iterate_ancestors()

    def ancestor_or_self(self, node: NodeBase) -> Iterator[NodeBase]:
        yield node
        yield from node._iterate_ancestors()

    def attribute(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from node.attributes

    def child(self, node: NodeBase) -> Iterator[NodeBase]:
        if isinstance(node, _ParentNode):
            yield from node._child_nodes

    def descendant(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from node._iterate_descendants()

    def descendant_or_self(self, node: NodeBase) -> Iterator[NodeBase]:
        yield node
        yield from node._iterate_descendants()

    def evaluate(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from self.generator(node)

    def following(self, node: NodeBase) -> Iterator[NodeBase]:
        if isinstance(node, AttributeNode):
            if (parent := node._parent) is None:
                return
            yield from parent._iterate_descendants()
            node = parent
        yield from node._iterate_following()

    def following_sibling(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from node._iterate_following_siblings()

    def parent(self, node: NodeBase) -> Iterator[NodeBase]:
        if node._parent is not None:
            yield node._parent

    def preceding(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from node._iterate_preceding()

    def preceding_sibling(self, node: NodeBase) -> Iterator[NodeBase]:
        yield from node._iterate_preceding_siblings()

    def self(self, node: NodeBase) -> Iterator[NodeBase]:
        yield node


# node tests


class NameTest(NodeTest):
    """
    Tests for elements or attributes with a name. An element name without prefix
    refers to the default element namespace if the context declares one as empty
    prefix, otherwise to no namespace.
    """

    __slots__ = ("attribute", "local_name", "namespace", "prefix")

    def __init__(
        self,
        prefix: Optional[str],
        local_name: str,
        attribute: bool = False,
        namespace: Optional[str] = None,
    ):
        self.prefix: Final = prefix
        self.local_name: Final = local_name
        self.attribute: Final = attribute
        self.namespace: Final = namespace

    def resolve_namespace(self, context: ExprContext) -> str:
        if self.namespace is not None:
            return self.namespace
        if self.prefix is None:
            if self.attribute:
                return ""
            return context.namespaces.get("", "")
        try:
            return context.namespaces[self.prefix]
        except KeyError:
            raise XPathEvaluationError(
                f"The namespace prefix `{self.prefix}` is unknown in the evaluation "
                "context.",
                code="XPST0081",
            ) from None

    def evaluate(self, node: NodeBase, context: ExprContext) -> bool:
        if self.attribute:
            if not isinstance(node, AttributeNode):
                return False
        elif not isinstance(node, ElementNode):
            return False

        if context.case_insensitive:
            if node.local_name.lower() != self.local_name.lower():
                return False
        elif node.local_name != self.local_name:
            return False

        return node.namespace == self.resolve_namespace(context)


class WildcardTest(NodeTest):
    """Tests ``*``, ``prefix:*`` and ``*:local-name``."""

    __slots__ = ("attribute", "local_name", "prefix")

    def __init__(
        self,
        prefix: Optional[str] = None,
        local_name: Optional[str] = None,
        attribute: bool = False,
    ):
        self.prefix: Final = prefix
        self.local_name: Final = local_name
        self.attribute: Final = attribute

    def evaluate(self, node: NodeBase, context: ExprContext) -> bool:
        if self.attribute:
            if not isinstance(node, AttributeNode):
                return False
        elif not isinstance(node, ElementNode):
            return False

        if self.prefix is not None:
            try:
                namespace = context.namespaces[self.prefix]
            except KeyError:
                raise XPathEvaluationError(
                    f"The namespace prefix `{self.prefix}` is unknown in the "
                    "evaluation context.",
                    code="XPST0081",
                ) from None
            if node.namespace != namespace:
                return False

        if self.local_name is not None and node.local_name != self.local_name:
            return False

        return True


class NodeTypeTest(NodeTest):
    """
    Tests for a node kind: ``node()``, ``text()``, ``comment()``,
    ``processing-instruction()``, ``document-node()``, ``element()`` and
    ``attribute()``. The latter two can be constrained by a name test.
    """

    __slots__ = ("kind", "name_test")

    def __init__(self, kind: str, name_test: Optional[NodeTest] = None):
        self.kind: Final = kind
        self.name_test: Final = name_test

    def evaluate(self, node: NodeBase, context: ExprContext) -> bool:
        match self.kind:
            case "node":
                return True
            case "text":
                return isinstance(node, TextNode)
            case "comment":
                return isinstance(node, CommentNode)
            case "processing-instruction":
                return isinstance(node, ProcessingInstructionNode)
            case "document-node":
                return isinstance(node, (DocumentNode, DocumentFragmentNode))
            case "element":
                return isinstance(node, ElementNode) and (
                    self.name_test is None or self.name_test.evaluate(node, context)
                )
            case "attribute":
                return isinstance(node, AttributeNode) and (
                    self.name_test is None or self.name_test.evaluate(node, context)
                )
        return False


class ProcessingInstructionTest(NodeTest):
    __slots__ = ("target",)

    def __init__(self, target: str):
        self.target: Final = target

    def evaluate(self, node: NodeBase, context: ExprContext) -> bool:
        return isinstance(node, ProcessingInstructionNode) and (
            node.target == self.target
        )


# primary expressions


class LiteralExpr(Expr):
    __slots__ = ("value",)

    def __init__(self, value: str):
        self.value: Final = value

    def evaluate(self, context: ExprContext) -> Value:
        return StringValue(self.value)


class NumberExpr(Expr):
    __slots__ = ("value",)

    def __init__(self, value: float):
        self.value: Final = value

    def evaluate(self, context: ExprContext) -> Value:
        return NumberValue(self.value)


class VariableExpr(Expr):
    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name: Final = name

    def evaluate(self, context: ExprContext) -> Value:
        return context.resolve_variable(self.name)


class ContextItemExpr(Expr):
    __slots__ = ()

    def evaluate(self, context: ExprContext) -> Value:
        item = context.item
        if item is None:
            raise XPathEvaluationError(
                "The context item is absent.", code="XPDY0002"
            )
        return _item_as_value(item)


class FunctionCallExpr(Expr):
    """
    A call of a function that is registered with the plugin manager. Calls of
    functions with an unknown prefixed name are resolved when evaluated, these may be
    stylesheet functions.
    """

    __slots__ = ("arguments", "function", "name")

    def __init__(self, name: str, arguments: Sequence[Expr]):
        if name.startswith("fn:"):
            name = name[3:]
        function = xpath_functions.get(name)
        if function is None and ":" not in name:
            raise XPathParsingError(message=f"Unknown function: `{name}`")
        if function is not None:
            check_signature(name, function, len(arguments))
        self.name: Final = name
        self.function: Final = function
        self.arguments: Final = tuple(arguments)

    def __eq__(self, other):
        return (
            isinstance(other, FunctionCallExpr)
            and self.name == other.name
            and self.arguments == other.arguments
        )

    __hash__ = Expr.__hash__

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        arguments = [x.evaluate(context) for x in self.arguments]

        if (function := self.function) is None:
            if (function := xpath_functions.get(self.name)) is None:
                transformation = context.transformation
                if transformation is None:
                    raise XPathEvaluationError(
                        f"Unknown function: `{self.name}`", code="XPST0017"
                    )
                return transformation.call_function(self.name, arguments, context)

        return to_result_value(function(context, *arguments))


def check_signature(name: str, function: Callable, arguments_count: int):
    minimum, maximum = function_arity(function)
    if not minimum <= arguments_count <= maximum:
        raise XPathParsingError(
            message=f"Arguments to function `{name}` don't match its signature."
        )


def function_arity(function: Callable) -> tuple[int, float]:
    """Returns the minimal and maximal count of arguments that a function accepts."""
    parameters = tuple(inspect.signature(function).parameters.values())[1:]
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in parameters):
        maximum: float = math.inf
        parameters = tuple(
            p for p in parameters if p.kind is not inspect.Parameter.VAR_POSITIONAL
        )
    else:
        maximum = len(parameters)
    minimum = sum(1 for p in parameters if p.default is inspect.Parameter.empty)
    return minimum, maximum


# operators


class BinaryExpr(Expr):
    __slots__ = ("left", "operator", "right")

    def __init__(self, operator: str, left: Expr, right: Expr):
        self.operator: Final = operator
        self.left: Final = left
        self.right: Final = right

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:  # noqa: C901
        operator = self.operator

        match operator:
            case "or":
                if self.left.evaluate(context).to_boolean():
                    return TRUE
                return BooleanValue(self.right.evaluate(context).to_boolean())
            case "and":
                if not self.left.evaluate(context).to_boolean():
                    return FALSE
                return BooleanValue(self.right.evaluate(context).to_boolean())

        left = self.left.evaluate(context)
        right = self.right.evaluate(context)

        if operator in GENERAL_COMPARISON_OPERATORS:
            return BooleanValue(
                compare_values(operator, left, right, context.xpath_version)
            )

        if operator in VALUE_COMPARISON_OPERATORS:
            return self._compare_values(left, right, context)

        match operator:
            case "+" | "-" | "*" | "div" | "idiv" | "mod":
                if context.xpath_version >= 2.0 and (
                    _is_empty(left) or _is_empty(right)
                ):
                    return EMPTY
                return self._calculate(left.to_number(), right.to_number())
            case "||":
                return StringValue(left.to_string() + right.to_string())
            case "to":
                if _is_empty(left) or _is_empty(right):
                    return EMPTY
                start, end = left.to_number(), right.to_number()
                if math.isnan(start) or math.isnan(end):
                    raise XPathEvaluationError(
                        "The operands of a range must be integers.", code="FORG0001"
                    )
                return make_sequence(
                    NumberValue(i) for i in range(int(start), int(end) + 1)
                )
            case "is" | "<<" | ">>":
                if _is_empty(left) or _is_empty(right):
                    return EMPTY
                a, b = _single_node(left), _single_node(right)
                if operator == "is":
                    return BooleanValue(a is b)
                if operator == "<<":
                    return BooleanValue(a is not b and is_before(a, b))
                return BooleanValue(a is not b and is_before(b, a))
            case "intersect":
                right_ids = {id(x) for x in right.to_node_set()}
                return NodeSetValue(
                    sort_in_document_order(
                        x for x in left.to_node_set() if id(x) in right_ids
                    )
                )
            case "except":
                right_ids = {id(x) for x in right.to_node_set()}
                return NodeSetValue(
                    sort_in_document_order(
                        x for x in left.to_node_set() if id(x) not in right_ids
                    )
                )

        raise XPathEvaluationError(f"Unknown operator: {operator}")

    def _calculate(self, a: float, b: float) -> Value:
        match self.operator:
            case "+":
                return NumberValue(a + b)
            case "-":
                return NumberValue(a - b)
            case "*":
                return NumberValue(a * b)
            case "div":
                return NumberValue(divide(a, b))
            case "mod":
                return NumberValue(modulo(a, b))
            case "idiv":
                if b == 0:
                    raise XPathEvaluationError(
                        "Integer division by zero.", code="FOAR0001"
                    )
                quotient = divide(a, b)
                if math.isnan(quotient) or math.isinf(quotient):
                    raise XPathEvaluationError(
                        "Invalid operands for an integer division.", code="FOAR0002"
                    )
                return NumberValue(float(math.trunc(quotient)))
        raise XPathEvaluationError(f"Unknown operator: {self.operator}")

    def _compare_values(
        self, left: Value, right: Value, context: ExprContext
    ) -> Value:
        if _is_empty(left) or _is_empty(right):
            return EMPTY
        left_items, right_items = items_of(left), items_of(right)
        if len(left_items) > 1 or len(right_items) > 1:
            raise XPathEvaluationError(
                "A value comparison requires single items.", code="XPTY0004"
            )
        return BooleanValue(
            compare_atomic(
                VALUE_COMPARISON_OPERATORS[self.operator],
                atomize(left_items[0]),
                atomize(right_items[0]),
                2.0,
            )
        )

    @property
    def is_numeric(self) -> bool:
        return self.operator in ARITHMETIC_OPERATORS


def _is_empty(value: Value) -> bool:
    return isinstance(value, NodeSetValue) and not value.items


def _single_node(value: Value) -> NodeBase:
    nodes = value.to_node_set()
    if len(nodes) != 1:
        raise XPathEvaluationError(
            "A node comparison requires single nodes.", code="XPTY0004"
        )
    return nodes[0]


class UnaryMinusExpr(Expr):
    __slots__ = ("expression",)

    def __init__(self, expression: Expr):
        self.expression: Final = expression

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        value = self.expression.evaluate(context)
        if context.xpath_version >= 2.0 and _is_empty(value):
            return EMPTY
        return NumberValue(-value.to_number())


class UnionExpr(Expr):
    __slots__ = ("left", "right")

    def __init__(self, left: Expr, right: Expr):
        self.left: Final = left
        self.right: Final = right

    def evaluate(self, context: ExprContext) -> Value:
        if context.return_on_first_match:
            if (result := self.left.evaluate(context)).to_boolean():
                return result
            return self.right.evaluate(context)

        left = self.left.evaluate(context).to_node_set()
        right = self.right.evaluate(context).to_node_set()
        if not left:
            return NodeSetValue(right)
        if not right:
            return NodeSetValue(left)
        return NodeSetValue(sort_in_document_order((*left, *right)))


# paths


class PredicateExpr(Expr):
    """
    A predicate filters a list of items. A numeric result ``n`` selects the item at
    position ``n``, any other result is regarded as boolean.
    """

    __slots__ = ("expression", "is_positional")

    def __init__(self, expression: Expr):
        self.expression: Final = expression
        self.is_positional: Final = is_positional_predicate(expression)

    def evaluate(self, context: ExprContext) -> Value:
        value = self.expression.evaluate(context)
        if isinstance(value, NumberValue):
            return BooleanValue(value.value == context.position + 1)
        return BooleanValue(value.to_boolean())

    def filter(self, context: ExprContext, items: Sequence[Item]) -> list[Item]:
        if not items:
            return []

        expression = self.expression
        if isinstance(expression, NumberExpr):
            index = expression.value
            if index == int(index) and 1 <= index <= len(items):
                return [items[int(index) - 1]]
            return []

        result = []
        for position, item in enumerate(items):
            predicate_context = context.clone(items, position)
            predicate_context.return_on_first_match = False
            value = expression.evaluate(predicate_context)
            if isinstance(value, NumberValue):
                if value.value == position + 1:
                    result.append(item)
            elif value.to_boolean():
                result.append(item)
        return result


def is_positional_predicate(expression: Expr) -> bool:
    """
    Determines whether a predicate's result may depend on the position of the
    evaluated item.
    """
    match expression:
        case NumberExpr() | UnaryMinusExpr():
            return True
        case BinaryExpr() if expression.is_numeric:
            return True
        case FunctionCallExpr() if expression.name in NUMERIC_FUNCTIONS:
            return True

    return any(
        isinstance(x, FunctionCallExpr) and x.name in ("last", "position")
        for x in expression.iterate_subexpressions()
    )


class StepExpr(Expr):
    """
    A location step with an axis, a node test and predicates.
    """

    __slots__ = ("axis", "has_positional_predicate", "node_test", "predicates")

    def __init__(
        self, axis: Axis, node_test: NodeTest, predicates: Iterable[PredicateExpr] = ()
    ):
        self.axis: Final = axis
        self.node_test: Final = node_test
        self.predicates: list[PredicateExpr] = []
        self.has_positional_predicate = False
        for predicate in predicates:
            self.append_predicate(predicate)

    def append_predicate(self, predicate: PredicateExpr):
        self.predicates.append(predicate)
        self.has_positional_predicate = (
            self.has_positional_predicate or predicate.is_positional
        )

    def _candidates(self, context: ExprContext, node: NodeBase) -> Iterator[NodeBase]:
        axis_name = self.axis.name
        node_test = self.node_test

        if axis_name == "attribute":
            if not isinstance(node, ElementNode):
                return
            if isinstance(node_test, NameTest) and not context.case_insensitive:
                attribute = node.attribute_map.get(
                    (node_test.resolve_namespace(context), node_test.local_name)
                )
                if attribute is not None:
                    yield attribute
                return
            for attribute in node.attributes:
                if context.ignore_attributes_without_value and not attribute.value:
                    continue
                if node_test.evaluate(attribute, context):
                    yield attribute
            return

        if axis_name in ("descendant", "descendant-or-self") and isinstance(
            node_test, NameTest
        ):
            # the name is compared first, it's the most selective test
            local_name = node_test.local_name
            namespace = node_test.resolve_namespace(context)
            case_insensitive = context.case_insensitive
            if case_insensitive:
                local_name = local_name.lower()
            for candidate in self.axis.generator(node):
                if (
                    isinstance(candidate, ElementNode)
                    and (
                        candidate.local_name.lower()
                        if case_insensitive
                        else candidate.local_name
                    )
                    == local_name
                    and candidate.namespace == namespace
                ):
                    yield candidate
            return

        for candidate in self.axis.generator(node):
            if node_test.evaluate(candidate, context):
                yield candidate

    def evaluate(self, context: ExprContext) -> Value:
        item = context.item
        if context.return_on_first_match:
            result = self.first(context, item)
            return EMPTY if result is None else NodeSetValue((result,))
        return NodeSetValue(self.select(context, item))

    def first(self, context: ExprContext, item: Optional[Item]) -> Optional[NodeBase]:
        """
        Returns the first node that the step selects in the order of its axis and
        stops to evaluate further candidates.
        """
        node = _ensure_node(item)
        if self.has_positional_predicate:
            selected = self.select(context, node)
            return selected[0] if selected else None

        for candidate in self._candidates(context, node):
            candidates = [candidate]
            if all(p.filter(context, candidates) for p in self.predicates):
                return candidate
        return None

    def select(self, context: ExprContext, item: Optional[Item]) -> list[NodeBase]:
        """Returns the selected nodes in document order."""
        node = _ensure_node(item)
        result: list[Any] = list(self._candidates(context, node))
        for predicate in self.predicates:
            result = predicate.filter(context, result)
        if self.axis.reverse and len(result) > 1:
            result.reverse()
        return result


def _ensure_node(item: Optional[Item]) -> NodeBase:
    if not isinstance(item, NodeBase):
        raise XPathEvaluationError(
            "A path step requires a node as context item.",
            code="XPDY0002" if item is None else "XPTY0020",
        )
    return item


class ExpressionStep(Expr):
    """
    A step of a path that is a an expression other than an axis step, e.g. the last
    step in ``a/string()`` or ``a/(b|c)``.
    """

    __slots__ = ("expression",)

    def __init__(self, expression: Expr):
        self.expression: Final = expression

    def evaluate(self, context: ExprContext) -> Value:
        with context.suppressed_first_match():
            return self.expression.evaluate(context)

    def first(self, context: ExprContext, item: Optional[Item]) -> Optional[Item]:
        for result in self.select(context, item):
            return result
        return None

    def select(self, context: ExprContext, item: Optional[Item]) -> list[Item]:
        step_context = context.clone([item] if item is not None else [], 0)
        step_context.return_on_first_match = False
        return list(items_of(self.expression.evaluate(step_context)))


class LocationExpr(Expr):
    """A relative or absolute location path."""

    __slots__ = ("absolute", "steps")

    def __init__(self, steps: Iterable[StepExpr | ExpressionStep], absolute: bool):
        self.absolute: Final = absolute
        self.steps: Final = list(steps)

    def __repr__(self):
        return nested_repr(self)

    def evaluate(self, context: ExprContext) -> Value:
        if self.absolute:
            start: Item = _ensure_node(context.item).root
            if not self.steps:
                return NodeSetValue((start,))
        else:
            if (item := context.item) is None:
                raise XPathEvaluationError(
                    "The context item is absent.", code="XPDY0002"
                )
            start = item

        if context.return_on_first_match:
            result = self._first_match(context, start, 0)
            return EMPTY if result is None else _item_as_value(result)

        items: list[Item] = [start]
        for step in self.steps:
            if len(items) == 1:
                items = step.select(context, items[0])
                continue

            next_items: list[Item] = []
            for item in items:
                next_items.extend(step.select(context, item))
            if all(isinstance(x, NodeBase) for x in next_items):
                items = sort_in_document_order(next_items)  # type: ignore
            else:
                items = next_items

        if items and not all(isinstance(x, NodeBase) for x in items):
            return make_sequence(items)
        return NodeSetValue(items)

    def _first_match(
        self, context: ExprContext, item: Item, index: int
    ) -> Optional[Item]:
        step = self.steps[index]
        if index == len(self.steps) - 1:
            return step.first(context, item)
        if isinstance(step, StepExpr) and not step.has_positional_predicate:
            candidates: Iterable[Item] = (
                c
                for c in step._candidates(context, _ensure_node(item))
                if all(p.filter(context, [c]) for p in step.predicates)
            )
        else:
            candidates = step.select(context, item)
        for candidate in candidates:
            if (result := self._first_match(context, candidate, index + 1)) is not None:
                return result
        return None


class FilterExpr(Expr):
    """
    A primary expression with predicates. The base expression is evaluated with the
    ``return_on_first_match`` flag switched off, it is restored afterwards.
    """

    __slots__ = ("expression", "predicates")

    def __init__(self, expression: Expr, predicates: Iterable[PredicateExpr]):
        self.expression: Final = expression
        self.predicates: Final = list(predicates)

    def evaluate(self, context: ExprContext) -> Value:
        with context.suppressed_first_match():
            value = self.expression.evaluate(context)
            items: list[Item] = list(items_of(value))
            for predicate in self.predicates:
                items = predicate.filter(context, items)

        if isinstance(value, NodeSetValue):
            return NodeSetValue(items)
        return make_sequence(items)


class PathExpr(Expr):
    """
    A filter expression that is followed by a relative location path, e.g.
    ``$nodes/child`` or ``(a|b)/c``.
    """

    __slots__ = ("filter", "relative")

    def __init__(self, filter: Expr, relative: LocationExpr):
        self.filter: Final = filter
        self.relative: Final = relative

    def __repr__(self):
        return nested_repr(self)

    def evaluate(self, context: ExprContext) -> Value:
        with context.suppressed_first_match():
            base = list(items_of(self.filter.evaluate(context)))

        if not base:
            return EMPTY

        if context.return_on_first_match:
            for position in range(len(base)):
                result = self.relative.evaluate(context.clone(base, position))
                if result.to_boolean():
                    return result
            return EMPTY

        items: list[Item] = []
        for position in range(len(base)):
            items.extend(
                items_of(self.relative.evaluate(context.clone(base, position)))
            )
        if len(base) > 1:
            return _merge_items(items)
        if all(isinstance(x, NodeBase) for x in items):
            return NodeSetValue(items)
        return make_sequence(items)


# XPath 2.0+ expressions


class SequenceExpr(Expr):
    __slots__ = ("items",)

    def __init__(self, items: Iterable[Expr]):
        self.items: Final = tuple(items)

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        result: list[Item] = []
        for expression in self.items:
            result.extend(items_of(expression.evaluate(context)))
        return make_sequence(result)


class IfExpr(Expr):
    __slots__ = ("condition", "else_branch", "then_branch")

    def __init__(self, condition: Expr, then_branch: Expr, else_branch: Expr):
        self.condition: Final = condition
        self.then_branch: Final = then_branch
        self.else_branch: Final = else_branch

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        if self.condition.evaluate(context).to_boolean():
            return self.then_branch.evaluate(context)
        return self.else_branch.evaluate(context)


def _iterate_bindings(
    context: ExprContext, bindings: Sequence[tuple[str, Expr]]
) -> Iterator[ExprContext]:
    if not bindings:
        yield context
        return

    (name, expression), *rest = bindings
    for item in items_of(expression.evaluate(context)):
        binding_context = context.clone()
        binding_context.variables[name] = _item_as_value(item)
        yield from _iterate_bindings(binding_context, rest)


class ForExpr(Expr):
    __slots__ = ("bindings", "return_expression")

    def __init__(self, bindings: Sequence[tuple[str, Expr]], return_expression: Expr):
        self.bindings: Final = tuple(bindings)
        self.return_expression: Final = return_expression

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        result: list[Item] = []
        for binding_context in _iterate_bindings(context, self.bindings):
            result.extend(items_of(self.return_expression.evaluate(binding_context)))
        return make_sequence(result)


class LetExpr(Expr):
    __slots__ = ("bindings", "return_expression")

    def __init__(self, bindings: Sequence[tuple[str, Expr]], return_expression: Expr):
        self.bindings: Final = tuple(bindings)
        self.return_expression: Final = return_expression

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        for name, expression in self.bindings:
            value = expression.evaluate(context)
            context = context.clone()
            context.variables[name] = value
        return self.return_expression.evaluate(context)


class QuantifiedExpr(Expr):
    __slots__ = ("bindings", "quantifier", "satisfies")

    def __init__(
        self, quantifier: str, bindings: Sequence[tuple[str, Expr]], satisfies: Expr
    ):
        self.quantifier: Final = quantifier
        self.bindings: Final = tuple(bindings)
        self.satisfies: Final = satisfies

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        some = self.quantifier == "some"
        for binding_context in _iterate_bindings(context, self.bindings):
            if self.satisfies.evaluate(binding_context).to_boolean() is some:
                return BooleanValue(some)
        return BooleanValue(not some)


class SimpleMapExpr(Expr):
    __slots__ = ("left", "right")

    def __init__(self, left: Expr, right: Expr):
        self.left: Final = left
        self.right: Final = right

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        items = list(items_of(self.left.evaluate(context)))
        result: list[Item] = []
        for position in range(len(items)):
            result.extend(
                items_of(self.right.evaluate(context.clone(items, position)))
            )
        if result and all(isinstance(x, NodeBase) for x in result):
            return NodeSetValue(result)
        return make_sequence(result)


class NamedFunctionRefExpr(Expr):
    __slots__ = ("arity", "name")

    def __init__(self, name: str, arity: int):
        if name.startswith("fn:"):
            name = name[3:]
        self.name: Final = name
        self.arity: Final = arity

    def evaluate(self, context: ExprContext) -> Value:
        name = self.name
        if (function := xpath_functions.get(name)) is not None:
            minimum, maximum = function_arity(function)
            if not minimum <= self.arity <= maximum:
                raise XPathEvaluationError(
                    f"There's no function {name}#{self.arity}.", code="XPST0017"
                )
            return FunctionValue(function, self.arity, name)

        transformation = context.transformation
        if transformation is None or not transformation.has_function(
            name, self.arity
        ):
            raise XPathEvaluationError(
                f"There's no function {name}#{self.arity}.", code="XPST0017"
            )

        def call_stylesheet_function(call_context: ExprContext, *arguments: Value):
            assert transformation is not None
            return transformation.call_function(name, list(arguments), call_context)

        return FunctionValue(call_stylesheet_function, self.arity, name)


class InlineFunctionExpr(Expr):
    __slots__ = ("body", "parameters")

    def __init__(self, parameters: Sequence[str], body: Expr):
        self.parameters: Final = tuple(parameters)
        self.body: Final = body

    def evaluate(self, context: ExprContext) -> Value:
        closure = context
        parameters = self.parameters
        body = self.body

        def call_inline_function(call_context: ExprContext, *arguments: Value):
            function_context = closure.clone()
            function_context.return_on_first_match = False
            for name, value in zip(parameters, arguments):
                function_context.variables[name] = value
            return body.evaluate(function_context)

        return FunctionValue(call_inline_function, len(parameters))


def call_dynamically(
    context: ExprContext, function: Value, arguments: Sequence[Value]
) -> Value:
    """Calls a function item, a map or an array with the given arguments."""
    match function:
        case FunctionValue():
            return function.call(context, *arguments)
        case MapValue():
            if len(arguments) != 1:
                raise XPathEvaluationError(
                    "A map is called with exactly one argument.", code="XPTY0004"
                )
            keys = items_of(arguments[0])
            key = atomize(keys[0]) if keys else EMPTY
            return function.get(key.to_key()) or EMPTY
        case ArrayValue():
            if len(arguments) != 1:
                raise XPathEvaluationError(
                    "An array is called with exactly one argument.", code="XPTY0004"
                )
            return _array_member(function, arguments[0].to_number())
    raise XPathEvaluationError(
        "The called expression is not a function.", code="XPTY0004"
    )


def _array_member(array: ArrayValue, index: float) -> Value:
    if index != int(index) or not 1 <= index <= len(array.members):
        raise XPathEvaluationError(
            f"Array index {index!r} is out of bounds.", code="FOAY0001"
        )
    return array.members[int(index) - 1]


class DynamicCallExpr(Expr):
    __slots__ = ("arguments", "function")

    def __init__(self, function: Expr, arguments: Sequence[Expr]):
        self.function: Final = function
        self.arguments: Final = tuple(arguments)

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        function = self.function.evaluate(context)
        return call_dynamically(
            context, function, [x.evaluate(context) for x in self.arguments]
        )


class MapConstructorExpr(Expr):
    __slots__ = ("entries",)

    def __init__(self, entries: Sequence[tuple[Expr, Expr]]):
        self.entries: Final = tuple(entries)

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        result: dict[Any, Value] = {}
        for key_expression, value_expression in self.entries:
            key = key_expression.evaluate(context)
            key_items = items_of(key)
            if len(key_items) != 1:
                raise XPathEvaluationError(
                    "A map key must be a single atomic value.", code="XPTY0004"
                )
            atomic_key = atomize(key_items[0]).to_key()
            if atomic_key in result:
                raise XPathEvaluationError(
                    f"Duplicate map key: {atomic_key!r}", code="XQDY0137"
                )
            result[atomic_key] = value_expression.evaluate(context)
        return MapValue(result)


class ArrayConstructorExpr(Expr):
    """
    ``[a, b]`` makes each expression a member, ``array { a, b }`` makes each item of
    the enclosed expression's result a member.
    """

    __slots__ = ("curly", "members")

    def __init__(self, members: Sequence[Expr], curly: bool = False):
        self.members: Final = tuple(members)
        self.curly: Final = curly

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        if self.curly:
            items: list[Value] = []
            for expression in self.members:
                items.extend(
                    _item_as_value(x) for x in items_of(expression.evaluate(context))
                )
            return ArrayValue(items)
        return ArrayValue(x.evaluate(context) for x in self.members)


class LookupExpr(Expr):
    """
    The lookup operator ``?`` on maps and arrays. Without a base expression it's a
    unary lookup on the context item. The key is either an expression or ``*``.
    """

    __slots__ = ("base", "key")

    def __init__(self, base: Optional[Expr], key: Expr | str):
        self.base: Final = base
        self.key: Final = key

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        if self.base is None:
            if (item := context.item) is None:
                raise XPathEvaluationError(
                    "The context item is absent.", code="XPDY0002"
                )
            targets: Sequence[Item] = (item,)
        else:
            targets = items_of(self.base.evaluate(context))

        result: list[Item] = []
        for target in targets:
            match target:
                case MapValue():
                    if self.key == "*":
                        values: Iterable[Value] = target.entries.values()
                    else:
                        values = (
                            v
                            for k in self._keys(context)
                            if (v := target.get(atomize(k).to_key())) is not None
                        )
                case ArrayValue():
                    if self.key == "*":
                        values = target.members
                    else:
                        values = [
                            _array_member(target, atomize(k).to_number())
                            for k in self._keys(context)
                        ]
                case _:
                    raise XPathEvaluationError(
                        "The lookup operator requires a map or an array.",
                        code="XPTY0004",
                    )
            for value in values:
                result.extend(items_of(value))
        return make_sequence(result)

    def _keys(self, context: ExprContext) -> Sequence[Item]:
        assert isinstance(self.key, Expr)
        return items_of(self.key.evaluate(context))


class InstanceOfExpr(Expr):
    __slots__ = ("expression", "sequence_type")

    def __init__(self, expression: Expr, sequence_type: SequenceType):
        self.expression: Final = expression
        self.sequence_type: Final = sequence_type

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        return BooleanValue(
            self.sequence_type.matches(self.expression.evaluate(context), context)
        )


class CastExpr(Expr):
    """``cast as`` and ``castable as`` for the atomic types that are supported."""

    __slots__ = ("castable", "expression", "type_name", "optional")

    def __init__(
        self, expression: Expr, type_name: str, optional: bool, castable: bool
    ):
        self.expression: Final = expression
        self.type_name: Final = type_name
        self.optional: Final = optional
        self.castable: Final = castable

    @suppresses_first_match
    def evaluate(self, context: ExprContext) -> Value:
        from _transmute.xpath.extended_functions import cast_atomic

        value = self.expression.evaluate(context)
        items = items_of(value)
        if not items:
            if self.castable:
                return BooleanValue(self.optional)
            if self.optional:
                return EMPTY
            raise XPathEvaluationError(
                "An empty sequence can't be cast.", code="XPTY0004"
            )
        if len(items) > 1:
            if self.castable:
                return FALSE
            raise XPathEvaluationError(
                "A sequence of more than one item can't be cast.", code="XPTY0004"
            )
        try:
            result = cast_atomic(atomize(items[0]), self.type_name)
        except XPathEvaluationError:
            if self.castable:
                return FALSE
            raise
        return TRUE if self.castable else result


class SequenceType:
    """A sequence type as used with ``instance of``."""

    __slots__ = ("item_type", "occurrence")

    def __init__(self, item_type: str | NodeTest, occurrence: str = ""):
        self.item_type: Final = item_type
        self.occurrence: Final = occurrence

    def __eq__(self, other):
        return (
            isinstance(other, SequenceType)
            and self.item_type == other.item_type
            and self.occurrence == other.occurrence
        )

    __hash__ = object.__hash__

    def __repr__(self):
        return f"SequenceType({self.item_type!r}, {self.occurrence!r})"

    def matches(self, value: Value, context: ExprContext) -> bool:
        items = items_of(value)
        if self.item_type == "empty-sequence":
            return not items
        match self.occurrence:
            case "":
                if len(items) != 1:
                    return False
            case "?":
                if len(items) > 1:
                    return False
            case "+":
                if not items:
                    return False
        return all(self._matches_item(x, context) for x in items)

    def _matches_item(self, item: Item, context: ExprContext) -> bool:  # noqa: C901
        item_type = self.item_type
        if isinstance(item_type, NodeTest):
            return isinstance(item, NodeBase) and item_type.evaluate(item, context)

        match item_type:
            case "item":
                return True
            case "xs:string":
                return isinstance(item, StringValue)
            case "xs:boolean":
                return isinstance(item, BooleanValue)
            case "xs:integer":
                return isinstance(item, NumberValue) and item.value == int(item.value)
            case "xs:decimal" | "xs:double" | "xs:float" | "xs:numeric":
                return isinstance(item, NumberValue)
            case "xs:anyAtomicType":
                return isinstance(item, (StringValue, NumberValue, BooleanValue))
            case "xs:untypedAtomic":
                return False
            case "map":
                return isinstance(item, MapValue)
            case "array":
                return isinstance(item, ArrayValue)
            case "function":
                return isinstance(item, (FunctionValue, MapValue, ArrayValue))
        raise XPathEvaluationError(
            f"Unsupported type in sequence type: {item_type}", code="XPST0051"
        )


__all__ = (
    Axis.__name__,
    BinaryExpr.__name__,
    Expr.__name__,
    FilterExpr.__name__,
    FunctionCallExpr.__name__,
    LocationExpr.__name__,
    PathExpr.__name__,
    PredicateExpr.__name__,
    StepExpr.__name__,
    UnionExpr.__name__,
    compare_values.__name__,
    is_positional_predicate.__name__,
)
