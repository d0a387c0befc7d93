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

"""The function library of XPath 1.0."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional

from _transmute.exceptions import XPathEvaluationError
from _transmute.grammar import _normalize_space
from _transmute.names import XML_NAMESPACE
from _transmute.nodes import (
    AttributeNode,
    ElementNode,
    NodeBase,
    ProcessingInstructionNode,
)
from _transmute.plugins import plugin_manager
from _transmute.xpath.values import (
    NodeSetValue,
    NumberValue,
    Value,
    atomize,
    items_of,
    parse_number,
)

if TYPE_CHECKING:
    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Item


# helpers


def context_string(context: ExprContext, value: Optional[Value] = None) -> str:
    """
    Returns the string of a function's optional argument or, if it's omitted, the
    string value of the context item.
    """
    if value is not None:
        return value.to_string()
    item = context.item
    if item is None:
        raise XPathEvaluationError("The context item is absent.", code="XPDY0002")
    return atomize(item).to_string()


def first_node(context: ExprContext, value: Optional[Value]) -> Optional[NodeBase]:
    if value is None:
        return context.node
    nodes = value.to_node_set()
    if not nodes:
        return None
    if isinstance(value, NodeSetValue):
        first = value.first
        assert isinstance(first, NodeBase)
        return first
    return nodes[0]


def round_half_up(number: float) -> float:
    """Rounds to the nearest integer, halves are rounded towards positive infinity."""
    if math.isnan(number) or math.isinf(number):
        return number
    result = math.floor(number + 0.5)
    if result == 0 and number < 0:
        return -0.0
    return float(result)


# node-set functions


@plugin_manager.register_xpath_function
def last(context: ExprContext) -> float:
    return float(context.context_size())


@plugin_manager.register_xpath_function
def position(context: ExprContext) -> float:
    return float(context.position + 1)


@plugin_manager.register_xpath_function
def count(_: ExprContext, value: Value) -> float:
    return float(len(items_of(value)))


@plugin_manager.register_xpath_function("id")
def _id(context: ExprContext, value: Value, node: Optional[Value] = None) -> Value:
    identifiers: set[str] = set()
    for item in items_of(value):
        identifiers.update(atomize(item).to_string().split())

    root = first_node(context, node)
    if root is None or not identifiers:
        return NodeSetValue(())
    root = root.root

    result = []
    for candidate in root._iterate_descendants():
        if not isinstance(candidate, ElementNode):
            continue
        identifier = candidate.get_attribute((XML_NAMESPACE, "id"))
        if identifier is None:
            identifier = candidate.get_attribute("id")
        if identifier is not None and identifier in identifiers:
            result.append(candidate)
            identifiers.discard(identifier)
    return NodeSetValue(result)


@plugin_manager.register_xpath_function("local-name")
def local_name(context: ExprContext, value: Optional[Value] = None) -> str:
    node = first_node(context, value)
    if isinstance(node, (ElementNode, AttributeNode)):
        return node.local_name
    if isinstance(node, ProcessingInstructionNode):
        return node.target
    return ""


@plugin_manager.register_xpath_function("namespace-uri")
def namespace_uri(context: ExprContext, value: Optional[Value] = None) -> str:
    node = first_node(context, value)
    if isinstance(node, (ElementNode, AttributeNode)):
        return node.namespace
    return ""


@plugin_manager.register_xpath_function("name")
def _name(context: ExprContext, value: Optional[Value] = None) -> str:
    node = first_node(context, value)
    if isinstance(node, (ElementNode, AttributeNode)):
        return node.node_name
    if isinstance(node, ProcessingInstructionNode):
        return node.target
    return ""


# string functions


@plugin_manager.register_xpath_function("string")
def _string(context: ExprContext, value: Optional[Value] = None) -> str:
    return context_string(context, value)


@plugin_manager.register_xpath_function
def concat(_: ExprContext, *values: Value) -> str:
    return "".join(v.to_string() for v in values)


@plugin_manager.register_xpath_function("starts-with")
def starts_with(_: ExprContext, string: Value, prefix: Value) -> bool:
    return string.to_string().startswith(prefix.to_string())


@plugin_manager.register_xpath_function
def contains(_: ExprContext, string: Value, substring: Value) -> bool:
    return substring.to_string() in string.to_string()


@plugin_manager.register_xpath_function("substring-before")
def substring_before(_: ExprContext, string: Value, separator: Value) -> str:
    before, found, _ = string.to_string().partition(separator.to_string())
    return before if found else ""


@plugin_manager.register_xpath_function("substring-after")
def substring_after(_: ExprContext, string: Value, separator: Value) -> str:
    _, found, after = string.to_string().partition(separator.to_string())
    return after if found else ""


@plugin_manager.register_xpath_function
def substring(
    _: ExprContext, string: Value, start: Value, length: Optional[Value] = None
) -> str:
    """
    Characters are included whose position ``p`` satisfies
    ``round(start) <= p < round(start) + round(length)``.
    """
    characters = string.to_string()
    first = round_half_up(start.to_number())
    if math.isnan(first):
        return ""

    if length is None:
        end = math.inf
    else:
        end = first + round_half_up(length.to_number())
        if math.isnan(end):
            return ""

    begin = max(first, 1)
    if end <= begin:
        return ""
    if math.isinf(begin):
        return ""
    if math.isinf(end):
        return characters[int(begin) - 1 :]
    return characters[int(begin) - 1 : int(end) - 1]


@plugin_manager.register_xpath_function("string-length")
def string_length(context: ExprContext, value: Optional[Value] = None) -> float:
    return float(len(context_string(context, value)))


@plugin_manager.register_xpath_function("normalize-space")
def normalize_space(context: ExprContext, value: Optional[Value] = None) -> str:
    return _normalize_space(context_string(context, value))


@plugin_manager.register_xpath_function
def translate(_: ExprContext, string: Value, source: Value, target: Value) -> str:
    replacements: dict[int, Optional[str]] = {}
    target_characters = target.to_string()
    for index, character in enumerate(source.to_string()):
        if ord(character) in replacements:
            continue
        replacements[ord(character)] = (
            target_characters[index] if index < len(target_characters) else None
        )
    return string.to_string().translate(replacements)


# boolean functions


@plugin_manager.register_xpath_function
def boolean(_: ExprContext, value: Value) -> bool:
    return value.to_boolean()


@plugin_manager.register_xpath_function("not")
def _not(_: ExprContext, value: Value) -> bool:
    return not value.to_boolean()


@plugin_manager.register_xpath_function("true")
def _true(_: ExprContext) -> bool:
    return True


@plugin_manager.register_xpath_function("false")
def _false(_: ExprContext) -> bool:
    return False


@plugin_manager.register_xpath_function
def lang(context: ExprContext, language: Value, node: Optional[Value] = None) -> bool:
    """
    Tests whether the language that is declared with ``xml:lang`` on the context node
    or its nearest ancestor is the given one or a sublanguage of it.
    """
    candidate: Optional[NodeBase] = first_node(context, node)
    if isinstance(candidate, AttributeNode):
        candidate = candidate._parent
    while isinstance(candidate, ElementNode):
        if (declared := candidate.get_attribute((XML_NAMESPACE, "lang"))) is not None:
            break
        candidate = candidate._parent
    else:
        return False

    expected = language.to_string().lower()
    declared = declared.lower()
    return declared == expected or declared.startswith(expected + "-")


# number functions


@plugin_manager.register_xpath_function
def number(context: ExprContext, value: Optional[Value] = None) -> float:
    if value is None:
        item = context.item
        if item is None:
            raise XPathEvaluationError(
                "The context item is absent.", code="XPDY0002"
            )
        return atomize(item).to_number()
    return value.to_number()


@plugin_manager.register_xpath_function("sum")
def _sum(_: ExprContext, value: Value, zero: Optional[Value] = None) -> Value:
    items = items_of(value)
    if not items and zero is not None:
        return zero
    return NumberValue(sum(_item_number(x) for x in items))


def _item_number(item: Item) -> float:
    if isinstance(item, NodeBase):
        return parse_number(item.string_value)
    return item.to_number()


@plugin_manager.register_xpath_function
def floor(_: ExprContext, value: Value) -> Value:
    if _is_empty(value):
        return value
    return NumberValue(math.floor(n) if math.isfinite(n := value.to_number()) else n)


@plugin_manager.register_xpath_function
def ceiling(_: ExprContext, value: Value) -> Value:
    if _is_empty(value):
        return value
    return NumberValue(math.ceil(n) if math.isfinite(n := value.to_number()) else n)


@plugin_manager.register_xpath_function("round")
def _round(_: ExprContext, value: Value, precision: Optional[Value] = None) -> Value:
    if _is_empty(value):
        return value
    number = value.to_number()
    if precision is None or not math.isfinite(number):
        return NumberValue(round_half_up(number))
    factor = 10 ** int(precision.to_number())
    return NumberValue(round_half_up(number * factor) / factor)


def _is_empty(value: Value) -> bool:
    return isinstance(value, NodeSetValue) and not value.items


# non-standard extensions


@plugin_manager.register_xpath_function("ext-join")
def ext_join(_: ExprContext, value: Value, separator: Value) -> str:
    """Joins the string values of a node-set's nodes with a separator."""
    return separator.to_string().join(
        atomize(x).to_string() for x in items_of(value)
    )


@plugin_manager.register_xpath_function("ext-if")
def ext_if(_: ExprContext, condition: Value, then: Value, otherwise: Value) -> Value:
    """Returns the second argument if the first is true, the third otherwise."""
    return then if condition.to_boolean() else otherwise


@plugin_manager.register_xpath_function("ext-cardinal")
def ext_cardinal(context: ExprContext, times: Value) -> Value:
    """Returns a node-set that contains the context node as often as given."""
    node = context.node
    return NodeSetValue([node] * max(0, int(times.to_number())))

