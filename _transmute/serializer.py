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

from __future__ import annotations

from abc import ABC
from io import StringIO
from typing import TYPE_CHECKING, Final, NamedTuple, Optional, TextIO

from _transmute.grammar import _is_whitespace
from _transmute.names import XHTML_NAMESPACE, XML_NAMESPACE
from _transmute.nodes import (
    AttributeNode,
    CommentNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    ProcessingInstructionNode,
    TextNode,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from _transmute.nodes import NodeBase
    from _transmute.typing import QualifiedName


# constants


CTRL_CHAR_ENTITY_NAME_MAPPING: Final = (
    ("&", "amp"),
    (">", "gt"),
    ("<", "lt"),
    ('"', "quot"),
)
CCE_TABLE_FOR_ATTRIBUTES: Final = str.maketrans(
    {
        **{ord(k): f"&{v};" for k, v in CTRL_CHAR_ENTITY_NAME_MAPPING},
        ord("\n"): "&#xA;",
        ord("\r"): "&#xD;",
        ord("\t"): "&#x9;",
    }
)
CCE_TABLE_FOR_TEXT: Final = str.maketrans(
    {ord(k): f"&{v};" for k, v in CTRL_CHAR_ENTITY_NAME_MAPPING if k != '"'}
)
CCE_TABLE_FOR_HTML_ATTRIBUTES: Final = str.maketrans({"&": "&amp;", '"': "&quot;"})

HTML_VOID_ELEMENTS: Final = frozenset(
    (
        "area",
        "base",
        "basefont",
        "br",
        "col",
        "embed",
        "frame",
        "hr",
        "img",
        "input",
        "isindex",
        "keygen",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    )
)
HTML_RAW_TEXT_ELEMENTS: Final = frozenset(("script", "style"))


# configuration


class SerializationOptions(NamedTuple):
    """
    The parameters that control the serialization of a tree. They correspond to the
    attributes of the ``xsl:output`` declaration.
    """

    method: str = "xml"
    """One of ``xml``, ``html``, ``xhtml`` or ``text``."""
    indent: bool = False
    """Element-only contents are indented with two spaces per level."""
    omit_xml_declaration: bool = True
    encoding: str = "UTF-8"
    """The encoding that is noted in the XML declaration."""
    standalone: Optional[str] = None
    doctype_public: Optional[str] = None
    doctype_system: Optional[str] = None
    html_version: Optional[str] = None
    """An HTML version of ``5`` or greater yields an ``<!DOCTYPE html>``."""
    self_closing_tags: bool = True
    """Whether empty elements are serialized as ``<empty/>``."""
    cdata_section_elements: frozenset[QualifiedName] = frozenset()
    """The text contents of these elements are serialized as CDATA sections."""


# serializer


def _get_serializer(
    writer: _SerializationWriter, options: SerializationOptions
) -> Serializer:
    match options.method:
        case "html":
            return HTMLSerializer(writer, options)
        case "xhtml":
            return XHTMLSerializer(writer, options)
        case "text":
            return TextSerializer(writer, options)
        case "xml" | "json" | "adaptive":
            return Serializer(writer, options)
        case _:
            raise ValueError(f"Unknown output method: {options.method}")


class Serializer:
    """
    Serializes nodes as XML. Namespace declarations that elements bear are written as
    they are, missing declarations for the namespaces that elements and attributes use
    are added where required.
    """

    __slots__ = (
        "_generated_prefixes",
        "_level",
        "_scopes",
        "options",
        "writer",
    )

    def __init__(self, writer: _SerializationWriter, options: SerializationOptions):
        self._generated_prefixes = 0
        self._level = 0
        self._scopes: list[dict[str, str]] = [{"": "", "xml": XML_NAMESPACE}]
        self.options: Final = options
        self.writer = writer

    def _declare_namespaces(self, node: ElementNode) -> tuple[str, dict[str, str]]:
        scope = dict(self._scopes[-1])
        declarations: dict[str, str] = {}

        for prefix, namespace in node.namespace_declarations.items():
            if prefix == "xml":
                continue
            if scope.get(prefix) != namespace:
                if prefix and not namespace:
                    # undeclaring prefixes isn't possible with XML 1.0
                    continue
                declarations[prefix] = namespace
                scope[prefix] = namespace

        prefix = node.prefix or ""
        if not node.namespace:
            prefix = ""
        if scope.get(prefix, "") != node.namespace:
            declarations[prefix] = node.namespace
            scope[prefix] = node.namespace

        for attribute in node.attributes:
            if not attribute.namespace:
                continue
            attribute_prefix = attribute.prefix
            if not attribute_prefix or scope.get(attribute_prefix) != (
                attribute.namespace
            ):
                attribute_prefix = self._find_prefix(scope, attribute.namespace)
                if attribute_prefix is None:
                    attribute_prefix = attribute.prefix
                    if not attribute_prefix or attribute_prefix in scope:
                        attribute_prefix = self._new_prefix(scope)
                    declarations[attribute_prefix] = attribute.namespace
                    scope[attribute_prefix] = attribute.namespace

        self._scopes.append(scope)
        return prefix, declarations

    @staticmethod
    def _find_prefix(scope: dict[str, str], namespace: str) -> Optional[str]:
        for prefix, declared_namespace in scope.items():
            if prefix and declared_namespace == namespace:
                return prefix
        return None

    def _new_prefix(self, scope: dict[str, str]) -> str:
        while True:
            prefix = f"ns{self._generated_prefixes}"
            self._generated_prefixes += 1
            if prefix not in scope:
                return prefix

    def _attribute_name(self, attribute: AttributeNode) -> str:
        if not attribute.namespace:
            return attribute.local_name
        prefix = attribute.prefix
        scope = self._scopes[-1]
        if not prefix or scope.get(prefix) != attribute.namespace:
            prefix = self._find_prefix(scope, attribute.namespace)
        assert prefix
        return f"{prefix}:{attribute.local_name}"

    def _escape_attribute_value(self, node: ElementNode, value: str) -> str:
        return value.translate(CCE_TABLE_FOR_ATTRIBUTES)

    def _escape_text(self, node: TextNode) -> str:
        if node.disable_output_escaping:
            return node.content
        return node.content.translate(CCE_TABLE_FOR_TEXT)

    def _is_empty_element_closed(self, node: ElementNode) -> bool:
        return self.options.self_closing_tags

    def _is_indentable(self, node: ElementNode) -> bool:
        if not self.options.indent or not node._child_nodes:
            return False
        if node.xml_space == "preserve":
            return False
        return all(
            not isinstance(n, TextNode) or _is_whitespace(n.content)
            for n in node._child_nodes
        )

    def _write_cdata(self, content: str):
        self.writer(
            "<![CDATA[" + content.replace("]]>", "]]]]><![CDATA[>") + "]]>"
        )

    def _write_prolog(self, node: NodeBase):
        options = self.options
        if options.method in ("xml", "xhtml", "json", "adaptive") and (
            not options.omit_xml_declaration
        ):
            declaration = f'<?xml version="1.0" encoding="{options.encoding}"'
            if options.standalone is not None:
                declaration += f' standalone="{options.standalone}"'
            self.writer(declaration + "?>")
            if options.indent:
                self.writer("\n")

    def _write_doctype(self, node: ElementNode):
        options = self.options
        if options.doctype_system is None:
            return
        name = node.node_name
        if options.doctype_public is not None:
            self.writer(
                f'<!DOCTYPE {name} PUBLIC "{options.doctype_public}" '
                f'"{options.doctype_system}">'
            )
        else:
            self.writer(f'<!DOCTYPE {name} SYSTEM "{options.doctype_system}">')
        if options.indent:
            self.writer("\n")

    def serialize(self, node: NodeBase):
        self._write_prolog(node)
        if isinstance(node, (DocumentNode, DocumentFragmentNode)):
            for child in node._child_nodes:
                if isinstance(child, ElementNode) and isinstance(node, DocumentNode):
                    self._write_doctype(child)
                self.serialize_node(child)
                if self.options.indent and not isinstance(child, TextNode):
                    self.writer("\n")
        else:
            if isinstance(node, ElementNode):
                self._write_doctype(node)
            self.serialize_node(node)

    def serialize_node(self, node: NodeBase, in_cdata_element: bool = False):
        match node:
            case CommentNode():
                self.writer(f"<!--{node.content}-->")
            case ProcessingInstructionNode():
                if node.content:
                    self.writer(f"<?{node.target} {node.content}?>")
                else:
                    self.writer(f"<?{node.target}?>")
            case ElementNode():
                self._serialize_element(node)
            case TextNode():
                if not node.content:
                    return
                if node.cdata or in_cdata_element:
                    self._write_cdata(node.content)
                else:
                    self.writer(self._escape_text(node))
            case AttributeNode():
                self.writer(node.value.translate(CCE_TABLE_FOR_TEXT))
            case DocumentNode() | DocumentFragmentNode():
                for child in node._child_nodes:
                    self.serialize_node(child)

    def _serialize_children(self, node: ElementNode):
        in_cdata_element = (
            node.namespace,
            node.local_name,
        ) in self.options.cdata_section_elements

        if self._is_indentable(node):
            self._level += 1
            for child in node._child_nodes:
                if isinstance(child, TextNode):
                    continue
                self.writer("\n" + "  " * self._level)
                self.serialize_node(child, in_cdata_element)
            self._level -= 1
            self.writer("\n" + "  " * self._level)
        else:
            for child in node._child_nodes:
                self.serialize_node(child, in_cdata_element)

    def _serialize_element(self, node: ElementNode):
        prefix, declarations = self._declare_namespaces(node)
        name = f"{prefix}:{node.local_name}" if prefix else node.local_name

        self.writer(f"<{name}")
        for declared_prefix, namespace in declarations.items():
            attribute_name = f"xmlns:{declared_prefix}" if declared_prefix else "xmlns"
            self.writer(
                f' {attribute_name}="{namespace.translate(CCE_TABLE_FOR_ATTRIBUTES)}"'
            )
        for attribute in node.attributes:
            value = self._escape_attribute_value(node, attribute.value)
            self.writer(f' {self._attribute_name(attribute)}="{value}"')

        self._write_element_end(node, name)
        self._scopes.pop()

    def _write_element_end(self, node: ElementNode, name: str):
        if node._child_nodes:
            self.writer(">")
            self._serialize_children(node)
            self.writer(f"</{name}>")
        elif self._is_empty_element_closed(node):
            self.writer("/>")
        else:
            self.writer(f"></{name}>")


class HTMLSerializer(Serializer):
    """
    Serializes elements in no namespace as HTML: void elements have no end tag, the
    contents of ``script`` and ``style`` elements aren't escaped and processing
    instructions are closed with ``>``.
    """

    __slots__ = ()

    @staticmethod
    def _is_html_element(node: ElementNode) -> bool:
        return not node.namespace or node.namespace == XHTML_NAMESPACE

    def _escape_attribute_value(self, node: ElementNode, value: str) -> str:
        if self._is_html_element(node):
            return value.translate(CCE_TABLE_FOR_HTML_ATTRIBUTES)
        return super()._escape_attribute_value(node, value)

    def _write_prolog(self, node: NodeBase):
        options = self.options
        if options.doctype_system is None and (
            (options.html_version or "").split(".")[0].isdigit()
            and int((options.html_version or "0").split(".")[0]) >= 5
        ):
            self.writer("<!DOCTYPE html>")
            if options.indent:
                self.writer("\n")

    def _write_doctype(self, node: ElementNode):
        options = self.options
        if options.doctype_system is None and options.doctype_public is None:
            return
        declaration = f"<!DOCTYPE {node.local_name}"
        if options.doctype_public is not None:
            declaration += f' PUBLIC "{options.doctype_public}"'
            if options.doctype_system is not None:
                declaration += f' "{options.doctype_system}"'
        else:
            declaration += f' SYSTEM "{options.doctype_system}"'
        self.writer(declaration + ">")
        if options.indent:
            self.writer("\n")

    def serialize_node(self, node: NodeBase, in_cdata_element: bool = False):
        if isinstance(node, ProcessingInstructionNode):
            if node.content:
                self.writer(f"<?{node.target} {node.content}>")
            else:
                self.writer(f"<?{node.target}>")
        else:
            super().serialize_node(node, in_cdata_element)

    def _serialize_children(self, node: ElementNode):
        if (
            self._is_html_element(node)
            and node.local_name.lower() in HTML_RAW_TEXT_ELEMENTS
        ):
            for child in node._child_nodes:
                if isinstance(child, TextNode):
                    self.writer(child.content)
                else:
                    self.serialize_node(child)
        else:
            super()._serialize_children(node)

    def _write_element_end(self, node: ElementNode, name: str):
        if self._is_html_element(node):
            if node.local_name.lower() in HTML_VOID_ELEMENTS:
                self.writer(">")
                return
            if not node._child_nodes:
                self.writer(f"></{name}>")
                return
        super()._write_element_end(node, name)


class XHTMLSerializer(Serializer):
    """
    Serializes XML that is compatible with HTML parsers: void elements are closed with
    `` />`` and other empty elements get an end tag.
    """

    __slots__ = ()

    def _write_element_end(self, node: ElementNode, name: str):
        if not node._child_nodes and node.namespace in ("", XHTML_NAMESPACE):
            if node.local_name in HTML_VOID_ELEMENTS:
                self.writer(" />")
            else:
                self.writer(f"></{name}>")
        else:
            super()._write_element_end(node, name)

    def _write_prolog(self, node: NodeBase):
        super()._write_prolog(node)
        html_version = self.options.html_version or ""
        if (
            self.options.doctype_system is None
            and html_version.split(".")[0].isdigit()
            and int(html_version.split(".")[0]) >= 5
        ):
            self.writer("<!DOCTYPE html>")
            if self.options.indent:
                self.writer("\n")


class TextSerializer(Serializer):
    """Writes the contents of all text nodes, nothing else."""

    __slots__ = ()

    def serialize(self, node: NodeBase):
        self.serialize_node(node)

    def serialize_node(self, node: NodeBase, in_cdata_element: bool = False):
        match node:
            case TextNode():
                self.writer(node.content)
            case AttributeNode():
                self.writer(node.value)
            case DocumentNode() | DocumentFragmentNode() | ElementNode():
                for child in node._child_nodes:
                    self.serialize_node(child)


# writer


class _SerializationWriter(ABC):
    __slots__ = ("buffer",)

    def __init__(self, buffer: TextIO):
        self.buffer: Final = buffer

    def __call__(self, data: str):
        self.buffer.write(data)

    @property
    def result(self):
        if isinstance(self.buffer, StringIO):
            return self.buffer.getvalue()
        raise TypeError(  # pragma: no cover
            "Underlying buffer must be an instance of `io.StingIO`"
        )


class _StringWriter(_SerializationWriter):
    def __init__(self, newline: Optional[str] = None):
        super().__init__(StringIO(newline=newline))


# api


def serialize(node: NodeBase, **options) -> str:
    """
    Serializes a node to a string. The keyword arguments are the fields of
    :class:`SerializationOptions`.

    >>> from _transmute.nodes import ElementNode
    >>> serialize(ElementNode("br"), method="html")
    '<br>'
    """
    return serialize_with_options(node, SerializationOptions(**options))


def serialize_nodes(nodes: Iterable[NodeBase], options: SerializationOptions) -> str:
    """Serializes a sequence of nodes with one serializer."""
    writer = _StringWriter()
    serializer = _get_serializer(writer, options)
    serializer._write_prolog(DocumentFragmentNode())
    for node in nodes:
        serializer.serialize_node(node)
    return writer.result


def serialize_with_options(node: NodeBase, options: SerializationOptions) -> str:
    writer = _StringWriter()
    _get_serializer(writer, options).serialize(node)
    return writer.result


__all__ = (
    HTMLSerializer.__name__,
    SerializationOptions.__name__,
    Serializer.__name__,
    TextSerializer.__name__,
    XHTMLSerializer.__name__,
    serialize.__name__,
    serialize_nodes.__name__,
    serialize_with_options.__name__,
)
