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
The functions that XSLT adds to XPath. Some of them work without a transformation,
e.g. ``generate-id()`` or ``doc()`` with a document loader in the context.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional

from _transmute.exceptions import (
    FailedResourceFetching,
    XPathEvaluationError,
    XSLTUnsupportedFeature,
)
from _transmute.names import XSLT_NAMESPACE, split_qualified_name
from _transmute.nodes import DocumentNode, NodeBase
from _transmute.plugins import plugin_manager
from _transmute.xpath.ast import function_arity
from _transmute.xpath.context import ScopeKey
from _transmute.xpath.formatting import DEFAULT_DECIMAL_FORMAT, format_number
from _transmute.xpath.functions import first_node
from _transmute.xpath.json_conversion import json_to_xml, parse_json, xml_to_json
from _transmute.xpath.values import (
    EMPTY,
    MapValue,
    NodeSetValue,
    StringValue,
    Value,
    items_of,
    make_sequence,
)
from _transmute.xslt.stylesheet import DECLARATIONS

if TYPE_CHECKING:
    from _transmute.xpath.context import ExprContext


VENDOR = "transmute"

SYSTEM_PROPERTIES = {
    "vendor": VENDOR,
    "vendor-url": "",
    "product-name": VENDOR,
    "is-schema-aware": "no",
    "supports-serialization": "yes",
    "supports-backwards-compatibility": "yes",
    "supports-namespace-axis": "no",
    "supports-streaming": "no",
    "supports-dynamic-evaluation": "yes",
    "supports-higher-order-functions": "yes",
    "xpath-version": "3.1",
    "xsd-version": "",
}


def _require_transformation(context: ExprContext, function: str):
    if context.transformation is None:
        raise XPathEvaluationError(
            f"The function {function}() is only available in XSLT transformations.",
            code="XPST0017",
        )
    return context.transformation


def _require_xslt_3(context: ExprContext, function: str):
    transformation = context.transformation
    if transformation is not None and transformation.stylesheet.version < 3.0:
        raise XSLTUnsupportedFeature(
            f"The function {function}() requires XSLT 3.0.",
        )


def _resolve_name(context: ExprContext, name: str) -> tuple[str, str]:
    prefix, local_name = split_qualified_name(name.strip())
    if prefix is None:
        return "", local_name
    namespace = context.namespaces.get(prefix)
    if namespace is None:
        raise XPathEvaluationError(
            f"The prefix `{prefix}` isn't declared.", code="XTDE1390"
        )
    return namespace, local_name


def _strings(value: Value) -> list[str]:
    return [
        x.string_value if isinstance(x, NodeBase) else x.to_string()
        for x in items_of(value)
    ]


# current state


@plugin_manager.register_xpath_function
def current(context: ExprContext) -> Value:
    item = context.current_item
    if item is None:
        return EMPTY
    return make_sequence((item,))


@plugin_manager.register_xpath_function("current-group")
def current_group(context: ExprContext) -> Value:
    members = context.get_scope_data(ScopeKey.CURRENT_GROUP)
    if members is None:
        return EMPTY
    return NodeSetValue(members)


@plugin_manager.register_xpath_function("current-grouping-key")
def current_grouping_key(context: ExprContext) -> Value:
    key = context.get_scope_data(ScopeKey.CURRENT_GROUPING_KEY)
    return EMPTY if key is None else key


@plugin_manager.register_xpath_function("regex-group")
def regex_group(context: ExprContext, number: Value) -> str:
    groups = context.get_scope_data(ScopeKey.REGEX_GROUPS) or ()
    index = number.to_number()
    if math.isnan(index) or not 0 <= index < len(groups):
        return ""
    return groups[int(index)]


# nodes and keys


@plugin_manager.register_xpath_function("generate-id")
def generate_id(context: ExprContext, node: Optional[Value] = None) -> str:
    target = first_node(context, node)
    if target is None:
        return ""
    return f"id{target._serial}"


@plugin_manager.register_xpath_function
def key(
    context: ExprContext, name: Value, value: Value, top: Optional[Value] = None
) -> Value:
    transformation = _require_transformation(context, "key")
    root = context.node.root if top is None else first_node(context, top)
    if root is None:
        return EMPTY
    return NodeSetValue(transformation.lookup_key(name.to_string(), value, root))


@plugin_manager.register_xpath_function("unparsed-entity-uri")
def unparsed_entity_uri(context: ExprContext, name: Value) -> str:
    root = context.node.root
    if not isinstance(root, DocumentNode):
        return ""
    return root.unparsed_entities.get(name.to_string(), "")


# formatting


@plugin_manager.register_xpath_function("format-number")
def _format_number(
    context: ExprContext,
    number: Value,
    picture: Value,
    name: Optional[Value] = None,
) -> str:
    settings = DEFAULT_DECIMAL_FORMAT
    if context.transformation is not None:
        decimal_formats = context.transformation.stylesheet.decimal_formats
        format_name = "" if name is None else name.to_string()
        if format_name not in decimal_formats:
            raise XPathEvaluationError(
                f"There's no decimal format named {format_name}.", code="XTDE1280"
            )
        settings = decimal_formats[format_name]
    return format_number(number.to_number(), picture.to_string(), settings)


# introspection


@plugin_manager.register_xpath_function("system-property")
def system_property(context: ExprContext, name: Value) -> str:
    namespace, local_name = _resolve_name(context, name.to_string())
    if namespace != XSLT_NAMESPACE:
        return ""
    if local_name == "version":
        transformation = context.transformation
        if transformation is None:
            return "3.0"
        return f"{transformation.stylesheet.version:.1f}"
    return SYSTEM_PROPERTIES.get(local_name, "")


@plugin_manager.register_xpath_function("element-available")
def element_available(context: ExprContext, name: Value) -> bool:
    namespace, local_name = _resolve_name(context, name.to_string())
    if namespace != XSLT_NAMESPACE:
        return False
    return local_name in plugin_manager.xslt_instructions or local_name in DECLARATIONS


@plugin_manager.register_xpath_function("function-available")
def function_available(
    context: ExprContext, name: Value, arity: Optional[Value] = None
) -> bool:
    qualified_name = name.to_string().strip()
    if qualified_name.startswith("fn:"):
        qualified_name = qualified_name[3:]

    if (function := plugin_manager.xpath_functions.get(qualified_name)) is not None:
        if arity is None:
            return True
        minimum, maximum = function_arity(function)
        return minimum <= arity.to_number() <= maximum

    transformation = context.transformation
    if transformation is None or ":" not in qualified_name:
        return False
    if arity is not None:
        return transformation.has_function(qualified_name, int(arity.to_number()))
    expanded_name = transformation.stylesheet.expanded_name(
        transformation.stylesheet.root, qualified_name
    )
    return any(x == expanded_name for x, _ in transformation.stylesheet.functions)


# external resources


def _fetch_text(context: ExprContext, href: str) -> str:
    if context.transformation is not None:
        return context.transformation.fetch_text(href)
    try:
        with open(href.removeprefix("file://"), encoding="utf-8") as file:
            return file.read()
    except OSError as e:
        raise FailedResourceFetching(href, e) from e


def _load_document(context: ExprContext, href: str) -> Optional[NodeBase]:
    if context.transformation is not None:
        return context.transformation.load_external_document(href)
    if context.document_loader is None:
        return None
    return context.document_loader(href)


@plugin_manager.register_xpath_function
def document(
    context: ExprContext, uri: Value, base: Optional[Value] = None
) -> Value:
    documents: dict[int, NodeBase] = {}
    for href in _strings(uri):
        if (loaded := _load_document(context, href)) is not None:
            documents[id(loaded)] = loaded
    return NodeSetValue(documents.values())


@plugin_manager.register_xpath_function
def doc(context: ExprContext, uri: Value) -> Value:
    if not items_of(uri):
        return EMPTY
    href = uri.to_string()
    if (loaded := _load_document(context, href)) is None:
        raise XPathEvaluationError(
            f"The document {href} isn't available.", code="FODC0002"
        )
    return NodeSetValue((loaded,))


@plugin_manager.register_xpath_function("doc-available")
def doc_available(context: ExprContext, uri: Value) -> bool:
    if not items_of(uri):
        return False
    return _load_document(context, uri.to_string()) is not None


@plugin_manager.register_xpath_function("unparsed-text")
def unparsed_text(
    context: ExprContext, href: Value, encoding: Optional[Value] = None
) -> Value:
    if not items_of(href):
        return EMPTY
    try:
        return StringValue(_fetch_text(context, href.to_string()))
    except FailedResourceFetching as e:
        raise XPathEvaluationError(str(e), code="FOUT1170") from e


@plugin_manager.register_xpath_function("unparsed-text-lines")
def unparsed_text_lines(
    context: ExprContext, href: Value, encoding: Optional[Value] = None
) -> Value:
    text = unparsed_text(context, href, encoding)
    if not isinstance(text, StringValue):
        return EMPTY
    return make_sequence(StringValue(x) for x in text.to_string().splitlines())


@plugin_manager.register_xpath_function("unparsed-text-available")
def unparsed_text_available(
    context: ExprContext, href: Value, encoding: Optional[Value] = None
) -> bool:
    if not items_of(href):
        return False
    try:
        _fetch_text(context, href.to_string())
    except FailedResourceFetching:
        return False
    return True


# json


def _duplicates_option(options: Optional[Value], default: str) -> str:
    if isinstance(options, MapValue) and (
        setting := options.get("duplicates")
    ) is not None:
        return setting.to_string()
    return default


@plugin_manager.register_xpath_function("json-doc")
def json_doc(
    context: ExprContext, href: Value, options: Optional[Value] = None
) -> Value:
    if not items_of(href):
        return EMPTY
    try:
        text = _fetch_text(context, href.to_string())
    except FailedResourceFetching as e:
        raise XPathEvaluationError(str(e), code="FOUT1170") from e
    return parse_json(text, _duplicates_option(options, "use-first"))


@plugin_manager.register_xpath_function("json-to-xml")
def _json_to_xml(
    context: ExprContext, text: Value, options: Optional[Value] = None
) -> Value:
    _require_xslt_3(context, "json-to-xml")
    if not items_of(text):
        return EMPTY
    return NodeSetValue(
        (json_to_xml(text.to_string(), _duplicates_option(options, "use-first")),)
    )


@plugin_manager.register_xpath_function("xml-to-json")
def _xml_to_json(
    context: ExprContext, node: Value, options: Optional[Value] = None
) -> Value:
    _require_xslt_3(context, "xml-to-json")
    if (target := first_node(context, node)) is None:
        return EMPTY
    indent = False
    if isinstance(options, MapValue) and (setting := options.get("indent")):
        indent = setting.to_boolean()
    return StringValue(xml_to_json(target, indent))
