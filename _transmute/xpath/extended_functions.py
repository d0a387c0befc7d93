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
The functions of XPath 2.0 to 3.1 that don't depend on an XSLT transformation, that
includes the ``math``, ``map`` and ``array`` namespaces and the constructor functions
of some atomic types.
"""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from datetime import datetime
from functools import cmp_to_key, lru_cache
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import quote

from _transmute.exceptions import XPathEvaluationError, XSLTDynamicError
from _transmute.grammar import _normalize_space
from _transmute.nodes import (
    AttributeNode,
    ElementNode,
    NodeBase,
    ProcessingInstructionNode,
    _ParentNode,
)
from _transmute.plugins import plugin_manager
from _transmute.serializer import SerializationOptions, serialize_nodes
from _transmute.xpath.formatting import format_number_sequence
from _transmute.xpath.functions import first_node
from _transmute.xpath.json_conversion import parse_json, serialize_json
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
    key_to_value,
    make_sequence,
    parse_number,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Item


logger = logging.getLogger(__name__)

_match_integer = re.compile(r"\s*[+-]?\d+\s*").fullmatch
_match_double = re.compile(
    r"\s*(?:[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?|-?INF|NaN)\s*"
).fullmatch


# helpers


def as_value(item: Item) -> Value:
    if isinstance(item, NodeBase):
        return NodeSetValue((item,))
    return item


def _optional_string(value: Value) -> str:
    if isinstance(value, NodeSetValue) and not value.items:
        return ""
    return value.to_string()


def _single_item(value: Value, function: str) -> Optional[Item]:
    items = items_of(value)
    if len(items) > 1:
        raise XPathEvaluationError(
            f"{function}() expects at most one item.", code="XPTY0004"
        )
    return items[0] if items else None


def _is_numeric(items: Sequence[Value]) -> bool:
    return all(
        isinstance(x, NumberValue)
        or (not isinstance(x, BooleanValue) and not math.isnan(x.to_number()))
        for x in items
    )


def compare_items(a: Value, b: Value) -> int:
    """Orders atomic values, numbers numerically and everything else as strings."""
    if isinstance(a, NumberValue) and isinstance(b, NumberValue):
        x: Any = a.value
        y: Any = b.value
        if math.isnan(x) or math.isnan(y):
            return (not math.isnan(x)) - (not math.isnan(y))
    else:
        x, y = a.to_string(), b.to_string()
    return (x > y) - (x < y)


def _call(context: ExprContext, function: Value, *arguments: Value) -> Value:
    from _transmute.xpath.ast import call_dynamically

    return call_dynamically(context, function, arguments)


def _integer(value: Value) -> int:
    number = value.to_number()
    if math.isnan(number) or math.isinf(number):
        raise XPathEvaluationError(f"{number} is not an integer.", code="FOCA0003")
    return int(number)


# regular expressions


@lru_cache(64)
def compile_regex(pattern: str, flags: str = "") -> re.Pattern:
    """
    Compiles a regular expression with the flags that XPath defines: ``s``, ``m``,
    ``i``, ``x`` and ``q``.
    """
    python_flags = 0
    for flag in flags:
        match flag:
            case "s":
                python_flags |= re.DOTALL
            case "m":
                python_flags |= re.MULTILINE
            case "i":
                python_flags |= re.IGNORECASE
            case "x":
                python_flags |= re.VERBOSE
            case "q":
                pattern = re.escape(pattern)
            case _:
                raise XPathEvaluationError(
                    f"Invalid regular expression flags: {flags}", code="FORX0001"
                )
    try:
        return re.compile(pattern, python_flags)
    except re.error as e:
        raise XPathEvaluationError(
            f"Invalid regular expression `{pattern}`: {e}", code="FORX0002"
        ) from e


def expand_replacement(replacement: str, match: re.Match) -> str:
    """Resolves ``$n`` group references and ``\\$`` / ``\\\\`` escapes."""
    result = []
    index = 0
    while index < len(replacement):
        character = replacement[index]
        if character == "\\":
            if index + 1 < len(replacement) and replacement[index + 1] in "\\$":
                result.append(replacement[index + 1])
                index += 2
                continue
            raise XPathEvaluationError(
                f"Invalid replacement string: {replacement}", code="FORX0004"
            )
        if character == "$":
            end = index + 1
            while end < len(replacement) and replacement[end].isdigit():
                end += 1
            if end == index + 1:
                raise XPathEvaluationError(
                    f"Invalid replacement string: {replacement}", code="FORX0004"
                )
            group = int(replacement[index + 1 : end])
            if group <= match.re.groups:
                result.append(match.group(group) or "")
            index = end
            continue
        result.append(character)
        index += 1
    return "".join(result)


@plugin_manager.register_xpath_function
def matches(
    _: ExprContext, string: Value, pattern: Value, flags: Value = EMPTY
) -> bool:
    regex = compile_regex(pattern.to_string(), _optional_string(flags))
    return regex.search(_optional_string(string)) is not None


@plugin_manager.register_xpath_function
def replace(
    _: ExprContext,
    string: Value,
    pattern: Value,
    replacement: Value,
    flags: Value = EMPTY,
) -> str:
    regex = compile_regex(pattern.to_string(), _optional_string(flags))
    if regex.fullmatch(""):
        raise XPathEvaluationError(
            "The pattern matches an empty string.", code="FORX0003"
        )
    template = replacement.to_string()
    return regex.sub(
        lambda m: expand_replacement(template, m), _optional_string(string)
    )


@plugin_manager.register_xpath_function
def tokenize(
    _: ExprContext,
    string: Value,
    pattern: Optional[Value] = None,
    flags: Value = EMPTY,
) -> Value:
    text = _optional_string(string)
    if pattern is None:
        return make_sequence(StringValue(x) for x in _normalize_space(text).split())
    if not text:
        return EMPTY

    regex = compile_regex(pattern.to_string(), _optional_string(flags))
    if regex.fullmatch(""):
        raise XPathEvaluationError(
            "The pattern matches an empty string.", code="FORX0003"
        )
    result = []
    start = 0
    for match in regex.finditer(text):
        result.append(StringValue(text[start : match.start()]))
        start = match.end()
    result.append(StringValue(text[start:]))
    return make_sequence(result)


# strings


@plugin_manager.register_xpath_function("upper-case")
def upper_case(_: ExprContext, string: Value) -> str:
    return _optional_string(string).upper()


@plugin_manager.register_xpath_function("lower-case")
def lower_case(_: ExprContext, string: Value) -> str:
    return _optional_string(string).lower()


@plugin_manager.register_xpath_function("ends-with")
def ends_with(_: ExprContext, string: Value, suffix: Value) -> bool:
    return _optional_string(string).endswith(_optional_string(suffix))


@plugin_manager.register_xpath_function("string-join")
def string_join(_: ExprContext, values: Value, separator: Value = EMPTY) -> str:
    return _optional_string(separator).join(
        atomize(x).to_string() for x in items_of(values)
    )


@plugin_manager.register_xpath_function("string-to-codepoints")
def string_to_codepoints(_: ExprContext, string: Value) -> Value:
    return make_sequence(NumberValue(ord(c)) for c in _optional_string(string))


@plugin_manager.register_xpath_function("codepoints-to-string")
def codepoints_to_string(_: ExprContext, codepoints: Value) -> str:
    try:
        return "".join(chr(_integer(atomize(x))) for x in items_of(codepoints))
    except ValueError as e:
        raise XPathEvaluationError(str(e), code="FOCH0001") from e


@plugin_manager.register_xpath_function
def compare(_: ExprContext, a: Value, b: Value, collation: Value = EMPTY) -> Value:
    if not items_of(a) or not items_of(b):
        return EMPTY
    x, y = a.to_string(), b.to_string()
    return NumberValue((x > y) - (x < y))


@plugin_manager.register_xpath_function("codepoint-equal")
def codepoint_equal(_: ExprContext, a: Value, b: Value) -> Value:
    if not items_of(a) or not items_of(b):
        return EMPTY
    return BooleanValue(a.to_string() == b.to_string())


@plugin_manager.register_xpath_function("contains-token")
def contains_token(
    _: ExprContext, values: Value, token: Value, collation: Value = EMPTY
) -> bool:
    expected = token.to_string().strip()
    return any(
        expected in atomize(x).to_string().split() for x in items_of(values)
    )


@plugin_manager.register_xpath_function("normalize-unicode")
def normalize_unicode(_: ExprContext, string: Value, form: Value = EMPTY) -> str:
    normalization_form = _optional_string(form).strip().upper() or "NFC"
    if normalization_form not in ("NFC", "NFD", "NFKC", "NFKD"):
        raise XPathEvaluationError(
            f"Unsupported normalization form: {normalization_form}", code="FOCH0003"
        )
    return unicodedata.normalize(normalization_form, _optional_string(string))


@plugin_manager.register_xpath_function("encode-for-uri")
def encode_for_uri(_: ExprContext, string: Value) -> str:
    return quote(_optional_string(string), safe="-_.~")


@plugin_manager.register_xpath_function("iri-to-uri")
def iri_to_uri(_: ExprContext, string: Value) -> str:
    return quote(_optional_string(string), safe="-_.!~*'();/?:@&=+$,#[]%")


@plugin_manager.register_xpath_function("escape-html-uri")
def escape_html_uri(_: ExprContext, string: Value) -> str:
    return "".join(
        c if 32 <= ord(c) <= 126 else quote(c, safe="")
        for c in _optional_string(string)
    )


# numbers


@plugin_manager.register_xpath_function("abs")
def _abs(_: ExprContext, value: Value) -> Value:
    if not items_of(value):
        return EMPTY
    return NumberValue(abs(value.to_number()))


def _extreme(values: Value, pick: int) -> Value:
    items = [atomize(x) for x in items_of(values)]
    if not items:
        return EMPTY
    if _is_numeric(items):
        numbers = [x.to_number() for x in items]
        if any(math.isnan(x) for x in numbers):
            return NumberValue(math.nan)
        return NumberValue(max(numbers) if pick > 0 else min(numbers))
    result = items[0]
    for item in items[1:]:
        if compare_items(item, result) * pick > 0:
            result = item
    return StringValue(result.to_string())


@plugin_manager.register_xpath_function("max")
def _max(_: ExprContext, values: Value, collation: Value = EMPTY) -> Value:
    return _extreme(values, 1)


@plugin_manager.register_xpath_function("min")
def _min(_: ExprContext, values: Value, collation: Value = EMPTY) -> Value:
    return _extreme(values, -1)


@plugin_manager.register_xpath_function
def avg(_: ExprContext, values: Value) -> Value:
    items = items_of(values)
    if not items:
        return EMPTY
    return NumberValue(sum(atomize(x).to_number() for x in items) / len(items))


@plugin_manager.register_xpath_function("format-integer")
def format_integer(_: ExprContext, value: Value, picture: Value) -> str:
    if not items_of(value):
        return ""
    number = _integer(value)
    result = format_number_sequence([abs(number)], picture.to_string())
    return f"-{result}" if number < 0 else result


# sequences


@plugin_manager.register_xpath_function
def empty(_: ExprContext, value: Value) -> bool:
    return not items_of(value) if isinstance(value, NodeSetValue) else False


@plugin_manager.register_xpath_function
def exists(_: ExprContext, value: Value) -> bool:
    return bool(items_of(value)) if isinstance(value, NodeSetValue) else True


@plugin_manager.register_xpath_function
def head(_: ExprContext, value: Value) -> Value:
    items = items_of(value)
    return as_value(items[0]) if items else EMPTY


@plugin_manager.register_xpath_function
def tail(_: ExprContext, value: Value) -> Value:
    return make_sequence(items_of(value)[1:])


@plugin_manager.register_xpath_function("reverse")
def _reverse(_: ExprContext, value: Value) -> Value:
    items = items_of(value)
    if all(isinstance(x, NodeBase) for x in items):
        return NodeSetValue(reversed(items))
    return make_sequence(reversed(items))


@plugin_manager.register_xpath_function
def subsequence(
    _: ExprContext, value: Value, start: Value, length: Optional[Value] = None
) -> Value:
    from _transmute.xpath.functions import round_half_up

    items = items_of(value)
    first = round_half_up(start.to_number())
    end = math.inf if length is None else first + round_half_up(length.to_number())
    if math.isnan(first) or math.isnan(end):
        return EMPTY
    return make_sequence(
        x for position, x in enumerate(items, start=1) if first <= position < end
    )


@plugin_manager.register_xpath_function("index-of")
def index_of(
    _: ExprContext, values: Value, search: Value, collation: Value = EMPTY
) -> Value:
    target = atomize(search) if not isinstance(search, NodeSetValue) else None
    if target is None:
        if (item := _single_item(search, "index-of")) is None:
            return EMPTY
        target = atomize(item)
    result = []
    for position, item in enumerate(items_of(values), start=1):
        candidate = atomize(item)
        if isinstance(target, NumberValue) or isinstance(candidate, NumberValue):
            equal = candidate.to_number() == target.to_number()
        else:
            equal = candidate.to_string() == target.to_string()
        if equal:
            result.append(NumberValue(position))
    return make_sequence(result)


@plugin_manager.register_xpath_function("distinct-values")
def distinct_values(_: ExprContext, values: Value, collation: Value = EMPTY) -> Value:
    seen: set[Any] = set()
    result = []
    for item in items_of(values):
        value = atomize(item)
        key = value.to_key()
        if isinstance(key, float) and math.isnan(key):
            key = "NaN"
        if key not in seen:
            seen.add(key)
            result.append(value)
    return make_sequence(result)


@plugin_manager.register_xpath_function("insert-before")
def insert_before(
    _: ExprContext, values: Value, position: Value, inserts: Value
) -> Value:
    items = list(items_of(values))
    index = min(max(_integer(position), 1), len(items) + 1) - 1
    items[index:index] = items_of(inserts)
    return make_sequence(items)


@plugin_manager.register_xpath_function
def remove(_: ExprContext, values: Value, position: Value) -> Value:
    items = list(items_of(values))
    index = _integer(position)
    if 1 <= index <= len(items):
        del items[index - 1]
    if all(isinstance(x, NodeBase) for x in items):
        return NodeSetValue(items)
    return make_sequence(items)


@plugin_manager.register_xpath_function
def unordered(_: ExprContext, values: Value) -> Value:
    return values


@plugin_manager.register_xpath_function
def data(context: ExprContext, values: Optional[Value] = None) -> Value:
    if values is None:
        if (item := context.item) is None:
            raise XPathEvaluationError(
                "The context item is absent.", code="XPDY0002"
            )
        return atomize(item)
    return make_sequence(atomize(x) for x in items_of(values))


@plugin_manager.register_xpath_function("zero-or-one")
def zero_or_one(_: ExprContext, values: Value) -> Value:
    if len(items_of(values)) > 1:
        raise XPathEvaluationError(
            "zero-or-one() was called with more than one item.", code="FORG0003"
        )
    return values


@plugin_manager.register_xpath_function("one-or-more")
def one_or_more(_: ExprContext, values: Value) -> Value:
    if not items_of(values):
        raise XPathEvaluationError(
            "one-or-more() was called with an empty sequence.", code="FORG0004"
        )
    return values


@plugin_manager.register_xpath_function("exactly-one")
def exactly_one(_: ExprContext, values: Value) -> Value:
    if len(items_of(values)) != 1:
        raise XPathEvaluationError(
            "exactly-one() wasn't called with exactly one item.", code="FORG0005"
        )
    return values


def _deep_equal_items(a: Item, b: Item) -> bool:
    if isinstance(a, NodeBase) or isinstance(b, NodeBase):
        return isinstance(a, NodeBase) and isinstance(b, NodeBase) and a == b
    match a:
        case MapValue():
            return (
                isinstance(b, MapValue)
                and a.entries.keys() == b.entries.keys()
                and all(
                    _deep_equal(v, b.entries[k]) for k, v in a.entries.items()
                )
            )
        case ArrayValue():
            return (
                isinstance(b, ArrayValue)
                and len(a.members) == len(b.members)
                and all(_deep_equal(x, y) for x, y in zip(a.members, b.members))
            )
    if isinstance(a, NumberValue) or isinstance(b, NumberValue):
        return a.to_number() == b.to_number() or (
            math.isnan(a.to_number()) and math.isnan(b.to_number())
        )
    return a.to_string() == b.to_string()


def _deep_equal(a: Value, b: Value) -> bool:
    a_items, b_items = items_of(a), items_of(b)
    return len(a_items) == len(b_items) and all(
        _deep_equal_items(x, y) for x, y in zip(a_items, b_items)
    )


@plugin_manager.register_xpath_function("deep-equal")
def deep_equal(_: ExprContext, a: Value, b: Value, collation: Value = EMPTY) -> bool:
    return _deep_equal(a, b)


# nodes


@plugin_manager.register_xpath_function
def root(context: ExprContext, value: Optional[Value] = None) -> Value:
    node = first_node(context, value)
    if node is None:
        return EMPTY
    return NodeSetValue((node.root,))


@plugin_manager.register_xpath_function("has-children")
def has_children(context: ExprContext, value: Optional[Value] = None) -> bool:
    node = first_node(context, value)
    return isinstance(node, _ParentNode) and len(node) > 0


@plugin_manager.register_xpath_function("node-name")
def node_name(context: ExprContext, value: Optional[Value] = None) -> Value:
    node = first_node(context, value)
    if isinstance(node, (ElementNode, AttributeNode)):
        return StringValue(node.node_name)
    if isinstance(node, ProcessingInstructionNode):
        return StringValue(node.target)
    return EMPTY


@plugin_manager.register_xpath_function("base-uri")
def base_uri(context: ExprContext, value: Optional[Value] = None) -> Value:
    node = first_node(context, value)
    if node is None or (document := node.owner_document) is None:
        return EMPTY
    return StringValue(document.base_url) if document.base_url else EMPTY


@plugin_manager.register_xpath_function("document-uri")
def document_uri(context: ExprContext, value: Optional[Value] = None) -> Value:
    node = first_node(context, value)
    base_url = getattr(node, "base_url", None)
    return StringValue(base_url) if base_url else EMPTY


# errors and diagnostics


@plugin_manager.register_xpath_function
def error(
    _: ExprContext,
    code: Value = EMPTY,
    description: Value = EMPTY,
    value: Value = EMPTY,
) -> Value:
    error_code = _optional_string(code) or "FOER0000"
    error_code = error_code.rpartition(":")[2].rpartition("}")[2]
    raise XSLTDynamicError(
        _optional_string(description) or f"An error was raised: {error_code}",
        code=error_code,
        value=value,
    )


@plugin_manager.register_xpath_function
def trace(_: ExprContext, value: Value, label: Value = EMPTY) -> Value:
    logger.debug("%s %s", _optional_string(label), value)
    return value


# date and time


def _now() -> datetime:
    return datetime.now().astimezone()


@plugin_manager.register_xpath_function("current-dateTime")
def current_date_time(_: ExprContext) -> str:
    return _now().isoformat(timespec="milliseconds")


@plugin_manager.register_xpath_function("current-date")
def current_date(_: ExprContext) -> str:
    now = _now()
    offset = now.strftime("%z")
    return f"{now.date().isoformat()}{offset[:3]}:{offset[3:]}"


@plugin_manager.register_xpath_function("current-time")
def current_time(_: ExprContext) -> str:
    return _now().timetz().isoformat(timespec="milliseconds")


# higher-order functions


@plugin_manager.register_xpath_function("for-each")
def for_each(context: ExprContext, values: Value, function: Value) -> Value:
    result: list[Item] = []
    for item in items_of(values):
        result.extend(items_of(_call(context, function, as_value(item))))
    return make_sequence(result)


@plugin_manager.register_xpath_function("filter")
def _filter(context: ExprContext, values: Value, function: Value) -> Value:
    result = [
        item
        for item in items_of(values)
        if _call(context, function, as_value(item)).to_boolean()
    ]
    if all(isinstance(x, NodeBase) for x in result):
        return NodeSetValue(result)
    return make_sequence(result)


@plugin_manager.register_xpath_function("fold-left")
def fold_left(
    context: ExprContext, values: Value, zero: Value, function: Value
) -> Value:
    result = zero
    for item in items_of(values):
        result = _call(context, function, result, as_value(item))
    return result


@plugin_manager.register_xpath_function("fold-right")
def fold_right(
    context: ExprContext, values: Value, zero: Value, function: Value
) -> Value:
    result = zero
    for item in reversed(items_of(values)):
        result = _call(context, function, as_value(item), result)
    return result


@plugin_manager.register_xpath_function("for-each-pair")
def for_each_pair(context: ExprContext, a: Value, b: Value, function: Value) -> Value:
    result: list[Item] = []
    for x, y in zip(items_of(a), items_of(b)):
        result.extend(items_of(_call(context, function, as_value(x), as_value(y))))
    return make_sequence(result)


@plugin_manager.register_xpath_function("sort")
def _sort(
    context: ExprContext,
    values: Value,
    collation: Value = EMPTY,
    key: Optional[Value] = None,
) -> Value:
    def sort_key(item: Item) -> list[Value]:
        if key is None:
            return [atomize(item)]
        return [atomize(x) for x in items_of(_call(context, key, as_value(item)))]

    def compare_keys(a: list[Value], b: list[Value]) -> int:
        for x, y in zip(a, b):
            if result := compare_items(x, y):
                return result
        return (len(a) > len(b)) - (len(a) < len(b))

    keyed = [(sort_key(x), x) for x in items_of(values)]
    keyed.sort(key=cmp_to_key(lambda a, b: compare_keys(a[0], b[0])))
    items = [x for _, x in keyed]
    if items and all(isinstance(x, NodeBase) for x in items):
        return NodeSetValue(items)
    return make_sequence(items)


@plugin_manager.register_xpath_function
def apply(context: ExprContext, function: Value, arguments: Value) -> Value:
    if not isinstance(arguments, ArrayValue):
        raise XPathEvaluationError(
            "apply() expects an array of arguments.", code="XPTY0004"
        )
    return _call(context, function, *arguments.members)


@plugin_manager.register_xpath_function("function-lookup")
def function_lookup(context: ExprContext, name: Value, arity: Value) -> Value:
    from _transmute.xpath.ast import NamedFunctionRefExpr

    try:
        return NamedFunctionRefExpr(name.to_string(), _integer(arity)).evaluate(
            context
        )
    except XPathEvaluationError:
        return EMPTY


@plugin_manager.register_xpath_function("function-name")
def function_name(_: ExprContext, function: Value) -> Value:
    if isinstance(function, FunctionValue) and function.name:
        return StringValue(function.name)
    return EMPTY


@plugin_manager.register_xpath_function("function-arity")
def function_arity(_: ExprContext, function: Value) -> float:
    if isinstance(function, FunctionValue):
        return float(function.arity)
    if isinstance(function, (MapValue, ArrayValue)):
        return 1.0
    raise XPathEvaluationError("function-arity() expects a function.")


# serialization and JSON


@plugin_manager.register_xpath_function("serialize")
def _serialize(_: ExprContext, value: Value, parameters: Value = EMPTY) -> str:
    options: dict[str, Any] = {}
    if isinstance(parameters, MapValue):
        for key, parameter in parameters.entries.items():
            options[str(key)] = parameter.to_string()

    method = options.get("method", "xml")
    indent = options.get("indent") in ("yes", "true", "1")
    if method in ("json", "adaptive") and not isinstance(value, NodeSetValue):
        return serialize_json(value, indent=indent)

    items = items_of(value)
    if all(isinstance(x, NodeBase) for x in items):
        return serialize_nodes(
            items,  # type: ignore
            SerializationOptions(method=method, indent=indent),
        )
    return " ".join(atomize(x).to_string() for x in items)


@plugin_manager.register_xpath_function("parse-json")
def _parse_json(_: ExprContext, text: Value, options: Value = EMPTY) -> Value:
    duplicates = "use-first"
    if isinstance(options, MapValue) and (
        setting := options.get("duplicates")
    ) is not None:
        duplicates = setting.to_string()
    return parse_json(_optional_string(text), duplicates)


# math


def _math_function(function: Callable[[float], float]) -> Callable:
    def math_function(_: ExprContext, value: Value) -> Value:
        if not items_of(value):
            return EMPTY
        number = value.to_number()
        try:
            return NumberValue(function(number))
        except ValueError:
            if number == 0 and function in (math.log, math.log10):
                return NumberValue(-math.inf)
            return NumberValue(math.nan)
        except OverflowError:
            return NumberValue(math.inf)

    return math_function


for _name in (
    "acos",
    "asin",
    "atan",
    "cos",
    "exp",
    "log",
    "log10",
    "sin",
    "sqrt",
    "tan",
):
    plugin_manager.register_xpath_function(f"math:{_name}")(
        _math_function(getattr(math, _name))
    )


@plugin_manager.register_xpath_function("math:pi")
def math_pi(_: ExprContext) -> float:
    return math.pi


@plugin_manager.register_xpath_function("math:exp10")
def math_exp10(_: ExprContext, value: Value) -> Value:
    if not items_of(value):
        return EMPTY
    return NumberValue(10 ** value.to_number())


@plugin_manager.register_xpath_function("math:pow")
def math_pow(_: ExprContext, base: Value, exponent: Value) -> Value:
    if not items_of(base):
        return EMPTY
    try:
        return NumberValue(math.pow(base.to_number(), exponent.to_number()))
    except (ValueError, ZeroDivisionError):
        return NumberValue(math.nan)
    except OverflowError:
        return NumberValue(math.inf)


@plugin_manager.register_xpath_function("math:atan2")
def math_atan2(_: ExprContext, y: Value, x: Value) -> float:
    return math.atan2(y.to_number(), x.to_number())


# maps


def _expect_map(value: Value, function: str) -> MapValue:
    if not isinstance(value, MapValue):
        raise XPathEvaluationError(f"{function}() expects a map.", code="XPTY0004")
    return value


def _key(value: Value) -> Any:
    return atomize(items_of(value)[0]).to_key() if items_of(value) else None


@plugin_manager.register_xpath_function("map:merge")
def map_merge(_: ExprContext, maps: Value, options: Value = EMPTY) -> Value:
    duplicates = "use-first"
    if isinstance(options, MapValue) and (
        setting := options.get("duplicates")
    ) is not None:
        duplicates = setting.to_string()

    result: dict[Any, Value] = {}
    for item in items_of(maps):
        for key, value in _expect_map(as_value(item), "map:merge").entries.items():
            if key in result:
                match duplicates:
                    case "reject":
                        raise XPathEvaluationError(
                            f"Duplicate key: {key!r}", code="FOJS0003"
                        )
                    case "use-first":
                        continue
                    case "combine":
                        value = make_sequence(
                            (*items_of(result[key]), *items_of(value))
                        )
            result[key] = value
    return MapValue(result)


@plugin_manager.register_xpath_function("map:get")
def map_get(_: ExprContext, map: Value, key: Value) -> Value:
    return _expect_map(map, "map:get").get(_key(key)) or EMPTY


@plugin_manager.register_xpath_function("map:contains")
def map_contains(_: ExprContext, map: Value, key: Value) -> bool:
    return _key(key) in _expect_map(map, "map:contains").entries


@plugin_manager.register_xpath_function("map:keys")
def map_keys(_: ExprContext, map: Value) -> Value:
    return make_sequence(
        key_to_value(k) for k in _expect_map(map, "map:keys").entries
    )


@plugin_manager.register_xpath_function("map:size")
def map_size(_: ExprContext, map: Value) -> float:
    return float(len(_expect_map(map, "map:size").entries))


@plugin_manager.register_xpath_function("map:put")
def map_put(_: ExprContext, map: Value, key: Value, value: Value) -> Value:
    entries = dict(_expect_map(map, "map:put").entries)
    entries[_key(key)] = value
    return MapValue(entries)


@plugin_manager.register_xpath_function("map:remove")
def map_remove(_: ExprContext, map: Value, keys: Value) -> Value:
    entries = dict(_expect_map(map, "map:remove").entries)
    for item in items_of(keys):
        entries.pop(atomize(item).to_key(), None)
    return MapValue(entries)


@plugin_manager.register_xpath_function("map:entry")
def map_entry(_: ExprContext, key: Value, value: Value) -> Value:
    return MapValue({_key(key): value})


@plugin_manager.register_xpath_function("map:for-each")
def map_for_each(context: ExprContext, map: Value, function: Value) -> Value:
    result: list[Item] = []
    for key, value in _expect_map(map, "map:for-each").entries.items():
        result.extend(items_of(_call(context, function, key_to_value(key), value)))
    return make_sequence(result)


# arrays


def _expect_array(value: Value, function: str) -> ArrayValue:
    if not isinstance(value, ArrayValue):
        raise XPathEvaluationError(f"{function}() expects an array.", code="XPTY0004")
    return value


def _array_index(array: ArrayValue, position: Value, extra: int = 0) -> int:
    index = _integer(position)
    if not 1 <= index <= len(array.members) + extra:
        raise XPathEvaluationError(
            f"Array index {index} is out of bounds.", code="FOAY0001"
        )
    return index - 1


@plugin_manager.register_xpath_function("array:size")
def array_size(_: ExprContext, array: Value) -> float:
    return float(len(_expect_array(array, "array:size").members))


@plugin_manager.register_xpath_function("array:get")
def array_get(_: ExprContext, array: Value, position: Value) -> Value:
    members = _expect_array(array, "array:get")
    return members.members[_array_index(members, position)]


@plugin_manager.register_xpath_function("array:put")
def array_put(_: ExprContext, array: Value, position: Value, member: Value) -> Value:
    target = _expect_array(array, "array:put")
    members = list(target.members)
    members[_array_index(target, position)] = member
    return ArrayValue(members)


@plugin_manager.register_xpath_function("array:append")
def array_append(_: ExprContext, array: Value, member: Value) -> Value:
    return ArrayValue((*_expect_array(array, "array:append").members, member))


@plugin_manager.register_xpath_function("array:subarray")
def array_subarray(
    _: ExprContext, array: Value, start: Value, length: Optional[Value] = None
) -> Value:
    members = _expect_array(array, "array:subarray").members
    first = _integer(start) - 1
    end = len(members) if length is None else first + _integer(length)
    if first < 0 or end < first or end > len(members):
        raise XPathEvaluationError("Invalid subarray bounds.", code="FOAY0001")
    return ArrayValue(members[first:end])


@plugin_manager.register_xpath_function("array:remove")
def array_remove(_: ExprContext, array: Value, positions: Value) -> Value:
    target = _expect_array(array, "array:remove")
    indexes = {_array_index(target, as_value(x)) for x in items_of(positions)}
    return ArrayValue(x for i, x in enumerate(target.members) if i not in indexes)


@plugin_manager.register_xpath_function("array:insert-before")
def array_insert_before(
    _: ExprContext, array: Value, position: Value, member: Value
) -> Value:
    target = _expect_array(array, "array:insert-before")
    members = list(target.members)
    members.insert(_array_index(target, position, extra=1), member)
    return ArrayValue(members)


@plugin_manager.register_xpath_function("array:head")
def array_head(_: ExprContext, array: Value) -> Value:
    members = _expect_array(array, "array:head").members
    if not members:
        raise XPathEvaluationError("The array is empty.", code="FOAY0001")
    return members[0]


@plugin_manager.register_xpath_function("array:tail")
def array_tail(_: ExprContext, array: Value) -> Value:
    members = _expect_array(array, "array:tail").members
    if not members:
        raise XPathEvaluationError("The array is empty.", code="FOAY0001")
    return ArrayValue(members[1:])


@plugin_manager.register_xpath_function("array:reverse")
def array_reverse(_: ExprContext, array: Value) -> Value:
    return ArrayValue(reversed(_expect_array(array, "array:reverse").members))


@plugin_manager.register_xpath_function("array:join")
def array_join(_: ExprContext, arrays: Value) -> Value:
    members: list[Value] = []
    for item in items_of(arrays):
        members.extend(_expect_array(as_value(item), "array:join").members)
    return ArrayValue(members)


def _flatten(value: Value) -> list[Item]:
    result: list[Item] = []
    for item in items_of(value):
        if isinstance(item, ArrayValue):
            for member in item.members:
                result.extend(_flatten(member))
        else:
            result.append(item)
    return result


@plugin_manager.register_xpath_function("array:flatten")
def array_flatten(_: ExprContext, values: Value) -> Value:
    return make_sequence(_flatten(values))


@plugin_manager.register_xpath_function("array:for-each")
def array_for_each(context: ExprContext, array: Value, function: Value) -> Value:
    return ArrayValue(
        _call(context, function, x)
        for x in _expect_array(array, "array:for-each").members
    )


@plugin_manager.register_xpath_function("array:filter")
def array_filter(context: ExprContext, array: Value, function: Value) -> Value:
    return ArrayValue(
        x
        for x in _expect_array(array, "array:filter").members
        if _call(context, function, x).to_boolean()
    )


@plugin_manager.register_xpath_function("array:fold-left")
def array_fold_left(
    context: ExprContext, array: Value, zero: Value, function: Value
) -> Value:
    result = zero
    for member in _expect_array(array, "array:fold-left").members:
        result = _call(context, function, result, member)
    return result


@plugin_manager.register_xpath_function("array:fold-right")
def array_fold_right(
    context: ExprContext, array: Value, zero: Value, function: Value
) -> Value:
    result = zero
    for member in reversed(_expect_array(array, "array:fold-right").members):
        result = _call(context, function, member, result)
    return result


# constructor functions and casts


def cast_atomic(value: Value, type_name: str) -> Value:  # noqa: C901
    """
    Casts an atomic value to one of the supported types of the XML Schema namespace.

    :raises XPathEvaluationError: If the value can't be cast.
    """
    match type_name:
        case "xs:string" | "xs:untypedAtomic" | "xs:anyURI" | "xs:NCName":
            return StringValue(value.to_string())
        case "xs:boolean":
            if isinstance(value, StringValue):
                match value.value.strip():
                    case "true" | "1":
                        return TRUE
                    case "false" | "0":
                        return FALSE
                raise XPathEvaluationError(
                    f"Can't cast `{value.value}` to xs:boolean.", code="FORG0001"
                )
            return BooleanValue(value.to_boolean())
        case "xs:double" | "xs:float" | "xs:decimal" | "xs:numeric":
            if isinstance(value, StringValue):
                string = value.value.strip()
                if _match_double(string) is None or (
                    type_name == "xs:decimal" and not _match_number_literal(string)
                ):
                    raise XPathEvaluationError(
                        f"Can't cast `{string}` to {type_name}.", code="FORG0001"
                    )
                return NumberValue(float(string.replace("INF", "inf")))
            return NumberValue(value.to_number())
        case (
            "xs:integer"
            | "xs:int"
            | "xs:long"
            | "xs:short"
            | "xs:byte"
            | "xs:nonNegativeInteger"
            | "xs:positiveInteger"
        ):
            if isinstance(value, StringValue):
                if _match_integer(value.value) is None:
                    raise XPathEvaluationError(
                        f"Can't cast `{value.value}` to {type_name}.",
                        code="FORG0001",
                    )
                return NumberValue(int(value.value))
            number = value.to_number()
            if math.isnan(number) or math.isinf(number):
                raise XPathEvaluationError(
                    f"Can't cast {number} to {type_name}.", code="FOCA0002"
                )
            return NumberValue(math.trunc(number))

    raise XPathEvaluationError(f"Unsupported type: {type_name}", code="XPST0051")


def _match_number_literal(string: str) -> bool:
    return not math.isnan(parse_number(string.lstrip("+")))


def _constructor_function(type_name: str) -> Callable:
    def constructor(_: ExprContext, value: Value) -> Value:
        if (item := _single_item(value, type_name)) is None:
            return EMPTY
        return cast_atomic(atomize(item), type_name)

    return constructor


for _type_name in (
    "xs:boolean",
    "xs:decimal",
    "xs:double",
    "xs:float",
    "xs:int",
    "xs:integer",
    "xs:long",
    "xs:string",
    "xs:untypedAtomic",
):
    plugin_manager.register_xpath_function(_type_name)(
        _constructor_function(_type_name)
    )


__all__ = (
    as_value.__name__,
    cast_atomic.__name__,
    compare_items.__name__,
    compile_regex.__name__,
    expand_replacement.__name__,
)
