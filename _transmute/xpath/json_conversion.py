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
Conversions between JSON, XPath values and the XML representation of JSON in the
``http://www.w3.org/2005/xpath-functions`` namespace.
"""

from __future__ import annotations

import json
import math
from typing import TYPE_CHECKING, Any

from _transmute.exceptions import XPathEvaluationError
from _transmute.names import XPATH_FUNCTIONS_NAMESPACE
from _transmute.nodes import (
    AttributeNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    NodeBase,
    TextNode,
)
from _transmute.xpath.values import (
    EMPTY,
    ArrayValue,
    BooleanValue,
    FunctionValue,
    MapValue,
    NodeSetValue,
    NumberValue,
    StringValue,
    Value,
    format_number,
    key_to_value,
)

if TYPE_CHECKING:
    from typing import Final


JSON_ELEMENT_NAMES: Final = frozenset(
    ("array", "boolean", "map", "null", "number", "string")
)


# values to JSON


def _to_python(value: Value | NodeBase) -> Any:  # noqa: C901
    match value:
        case NodeBase():
            if isinstance(value, (ElementNode, DocumentNode, DocumentFragmentNode)):
                return value.serialize()
            return value.string_value
        case MapValue():
            return {
                key_to_value(k).to_string(): _to_python(v)
                for k, v in value.entries.items()
            }
        case ArrayValue():
            return [_to_python(x) for x in value.members]
        case NodeSetValue():
            items = value.items
            if not items:
                return None
            if len(items) == 1:
                return _to_python(items[0])
            return [_to_python(x) for x in items]
        case NumberValue():
            number = value.value
            if not math.isfinite(number):
                raise XPathEvaluationError(
                    f"{format_number(number)} can't be represented as JSON.",
                    code="SERE0020",
                )
            if number == int(number):
                return int(number)
            return number
        case BooleanValue():
            return value.value
        case StringValue():
            return value.value
        case FunctionValue():
            raise XPathEvaluationError(
                "A function can't be serialized as JSON.", code="SERE0021"
            )
    raise XPathEvaluationError(f"Can't serialize {value!r} as JSON.", code="SERE0021")


def serialize_json(value: Value | NodeBase, indent: bool = False) -> str:
    """Serializes a value as JSON as the ``json`` output method does."""
    return json.dumps(
        _to_python(value),
        ensure_ascii=False,
        indent=2 if indent else None,
        separators=None if indent else (",", ":"),
    )


# JSON to values


def _from_python(obj: Any) -> Value:
    match obj:
        case None:
            return EMPTY
        case bool():
            return BooleanValue(obj)
        case int() | float():
            return NumberValue(float(obj))
        case str():
            return StringValue(obj)
        case list():
            return ArrayValue(_from_python(x) for x in obj)
        case dict():
            return MapValue({k: _from_python(v) for k, v in obj.items()})
    raise XPathEvaluationError(f"Unexpected JSON value: {obj!r}", code="FOJS0001")


def _load_json(text: str, duplicates: str = "use-last") -> Any:
    def make_object(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in pairs:
            if key in result:
                if duplicates == "reject":
                    raise XPathEvaluationError(
                        f"Duplicate key in JSON object: {key}", code="FOJS0003"
                    )
                if duplicates == "use-first":
                    continue
            result[key] = value
        return result

    try:
        return json.loads(text, object_pairs_hook=make_object)
    except json.JSONDecodeError as e:
        raise XPathEvaluationError(f"Invalid JSON: {e}", code="FOJS0001") from e


def parse_json(text: str, duplicates: str = "use-last") -> Value:
    """
    Parses a JSON text into a value, objects become maps and arrays become arrays.
    ``null`` is represented as empty sequence.
    """
    return _from_python(_load_json(text, duplicates))


# JSON to XML


def _make_json_element(obj: Any, key: str | None = None) -> ElementNode:
    match obj:
        case None:
            element = ElementNode("null", namespace=XPATH_FUNCTIONS_NAMESPACE)
        case bool():
            element = ElementNode(
                "boolean",
                namespace=XPATH_FUNCTIONS_NAMESPACE,
                children=["true" if obj else "false"],
            )
        case int() | float():
            element = ElementNode(
                "number",
                namespace=XPATH_FUNCTIONS_NAMESPACE,
                children=[format_number(float(obj))],
            )
        case str():
            element = ElementNode(
                "string",
                namespace=XPATH_FUNCTIONS_NAMESPACE,
                children=[obj] if obj else None,
            )
        case list():
            element = ElementNode(
                "array",
                namespace=XPATH_FUNCTIONS_NAMESPACE,
                children=[_make_json_element(x) for x in obj],
            )
        case dict():
            element = ElementNode(
                "map",
                namespace=XPATH_FUNCTIONS_NAMESPACE,
                children=[_make_json_element(v, k) for k, v in obj.items()],
            )
        case _:
            raise XPathEvaluationError(
                f"Unexpected JSON value: {obj!r}", code="FOJS0001"
            )

    if key is not None:
        element.attribute_map.add(AttributeNode("key", key))
    return element


def json_to_xml(text: str, duplicates: str = "use-first") -> DocumentNode:
    """
    Converts a JSON text to a document whose elements represent the JSON data in the
    XPath functions namespace.
    """
    root = _make_json_element(_load_json(text, duplicates))
    root.namespace_declarations[""] = XPATH_FUNCTIONS_NAMESPACE
    return DocumentNode(children=[root])


# XML to JSON


def _element_to_python(element: ElementNode) -> Any:  # noqa: C901
    if (
        element.namespace != XPATH_FUNCTIONS_NAMESPACE
        or element.local_name not in JSON_ELEMENT_NAMES
    ):
        raise XPathEvaluationError(
            f"The element {element.universal_name} is not part of the JSON "
            "vocabulary.",
            code="FOJS0006",
        )

    match element.local_name:
        case "null":
            return None
        case "boolean":
            content = element.string_value.strip()
            if content not in ("true", "false", "1", "0"):
                raise XPathEvaluationError(
                    f"Invalid boolean: {content}", code="FOJS0006"
                )
            return content in ("true", "1")
        case "number":
            try:
                number = float(element.string_value.strip())
            except ValueError:
                raise XPathEvaluationError(
                    f"Invalid number: {element.string_value}", code="FOJS0006"
                ) from None
            return int(number) if number == int(number) else number
        case "string":
            return element.string_value
        case "array":
            return [_element_to_python(x) for x in _json_children(element)]
        case "map":
            result = {}
            for child in _json_children(element):
                key = child.get_attribute("key")
                if key is None:
                    raise XPathEvaluationError(
                        "A map entry lacks a key attribute.", code="FOJS0006"
                    )
                if key in result:
                    raise XPathEvaluationError(
                        f"Duplicate key in map: {key}", code="FOJS0006"
                    )
                result[key] = _element_to_python(child)
            return result

    raise XPathEvaluationError("Unexpected element.", code="FOJS0006")


def _json_children(element: ElementNode) -> list[ElementNode]:
    result = []
    for child in element.child_nodes:
        if isinstance(child, ElementNode):
            result.append(child)
        elif isinstance(child, TextNode) and child.content.strip():
            raise XPathEvaluationError(
                f"Unexpected text in {element.local_name}.", code="FOJS0006"
            )
    return result


def xml_to_json(node: NodeBase, indent: bool = False) -> str:
    """
    Converts a node of the JSON vocabulary to a JSON text. Other nodes are represented
    by their string value as JSON string.
    """
    if isinstance(node, (DocumentNode, DocumentFragmentNode)):
        elements = [x for x in node.child_nodes if isinstance(x, ElementNode)]
        if len(elements) == 1:
            node = elements[0]

    if isinstance(node, ElementNode) and node.namespace == XPATH_FUNCTIONS_NAMESPACE:
        obj = _element_to_python(node)
    else:
        obj = node.string_value

    return json.dumps(
        obj,
        ensure_ascii=False,
        indent=2 if indent else None,
        separators=None if indent else (",", ":"),
    )


__all__ = (
    json_to_xml.__name__,
    parse_json.__name__,
    serialize_json.__name__,
    xml_to_json.__name__,
)
