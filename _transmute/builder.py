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

from typing import TYPE_CHECKING, Final, Optional

from _transmute.exceptions import ParsingEmptyStream, ParsingValidityError
from _transmute.grammar import _is_whitespace
from _transmute.names import XML_NAMESPACE
from _transmute.nodes import (
    CommentNode,
    DocumentNode,
    ElementNode,
    ProcessingInstructionNode,
    TextNode,
)
from _transmute.parser import (
    Event,
    EventType,
    ParserOptions,
    TagEventData,
    parse_events,
)


if TYPE_CHECKING:
    from collections.abc import Iterator

    from _transmute.nodes import NodeBase
    from _transmute.typing import InputStream


# deserializing streams


class TreeBuilder:
    __slots__ = (
        "children",
        "event_feed",
        "namespace_scopes",
        "options",
        "started_tags",
        "unparsed_entities",
        "xml_ids",
    )

    def __init__(
        self, data: InputStream, parse_options: ParserOptions, base_url: str | None
    ):
        self.children: Final[list[list[NodeBase]]] = []
        self.event_feed: Final = parse_events(data, parse_options, base_url)
        self.namespace_scopes: Final[list[dict[str, str]]] = []
        self.options: Final = parse_options
        self.started_tags: Final[list[ElementNode]] = []
        self.unparsed_entities: Final[dict[str, str]] = {}
        self.xml_ids: Final[set[str]] = set()

    def __iter__(self):
        return self

    def __next__(self) -> NodeBase:
        while True:
            event = next(self.event_feed)
            result = self.handle_event(event)
            if result is not None:
                return result

    def handle_event(self, event: Event) -> NodeBase | None:
        result: NodeBase | None
        type_, data = event

        match type_:
            case EventType.Comment:
                assert isinstance(data, str)
                result = CommentNode(data)
            case EventType.ProcessingInstruction:
                assert isinstance(data, tuple)
                result = ProcessingInstructionNode(data[0], data[1])
            case EventType.TagStart:
                assert isinstance(data, TagEventData)
                self.handle_tag_start(data)
                result = None
            case EventType.TagEnd:
                assert isinstance(data, TagEventData)
                result = self.handle_tag_end(data)
            case EventType.Text:
                assert isinstance(data, str)
                result = TextNode(data)
            case EventType.UnparsedEntityDeclaration:
                assert isinstance(data, tuple)
                name, system_id = data
                self.unparsed_entities[name] = system_id
                result = None

        if result is not None:
            if self.started_tags:
                self.children[-1].append(result)
            else:
                assert not self.children
                assert not self.namespace_scopes
                self.xml_ids.clear()
                return result

        return None

    def handle_tag_end(self, data: TagEventData | None) -> ElementNode:
        result = self.started_tags.pop()
        if __debug__ and data:
            assert result.namespace == data.namespace
            assert result.local_name == data.local_name

        self.namespace_scopes.pop()

        for node in self.children.pop():
            result._child_nodes.append(node)

        return result

    def handle_tag_start(self, data: TagEventData):
        assert isinstance(data.namespace, str)
        attributes = data.attributes or {}

        if (id_ := attributes.get((XML_NAMESPACE, "id"))) is not None:
            if id_ in self.xml_ids:
                raise ParsingValidityError(f"Redundantly used xml:id: {id_}")
            else:
                self.xml_ids.add(id_)

        declarations = data.namespace_declarations or {}
        if self.namespace_scopes:
            scope = self.namespace_scopes[-1]
            if declarations:
                scope = {**scope, **declarations}
        else:
            scope = dict(declarations)
        self.namespace_scopes.append(scope)

        prefix = data.prefix
        if prefix is None and data.namespace:
            prefix = self.lookup_prefix(scope, data.namespace, allow_default=True)

        element = ElementNode(
            local_name=data.local_name,
            namespace=data.namespace,
            prefix=prefix or None,
            namespace_declarations=declarations,
        )
        for (namespace, local_name), value in attributes.items():
            attribute_prefix = None
            if namespace == XML_NAMESPACE:
                attribute_prefix = "xml"
            elif namespace:
                attribute_prefix = self.lookup_prefix(
                    scope, namespace, allow_default=False
                )
            element.set_attribute(
                local_name, value, namespace=namespace, prefix=attribute_prefix
            )

        self.children.append([])
        self.started_tags.append(element)

    @staticmethod
    def lookup_prefix(
        scope: dict[str, str], namespace: str, allow_default: bool
    ) -> Optional[str]:
        if allow_default and scope.get("") == namespace:
            return ""
        for prefix, declared_namespace in reversed(scope.items()):
            if prefix and declared_namespace == namespace:
                return prefix
        return None


def parse_nodes(
    data: InputStream,
    options: Optional[ParserOptions] = None,
    *,
    base_url: str | None = None,
) -> Iterator[NodeBase]:
    """Parses the provided input data to a sequence of nodes."""
    if options is None:
        options = ParserOptions()
    yield from TreeBuilder(data, options, base_url)


def parse_document(
    data: InputStream,
    options: Optional[ParserOptions] = None,
    *,
    base_url: str | None = None,
) -> DocumentNode:
    """
    Parses the provided input to a document node. Whitespace between the top-level
    nodes is dropped.
    """
    if options is None:
        options = ParserOptions()
    builder = TreeBuilder(data, options, base_url)
    document = DocumentNode(base_url=base_url)
    has_element = False
    for node in builder:
        if isinstance(node, TextNode):
            if _is_whitespace(node.content):
                continue
            raise ParsingValidityError("A document must not contain top-level text.")
        if isinstance(node, ElementNode):
            if has_element:
                raise ParsingValidityError("A document must have one root element.")
            has_element = True
        document.append_child(node)

    if not has_element:
        raise ParsingEmptyStream
    document.unparsed_entities.update(builder.unparsed_entities)
    return document


def parse_tree(
    data: InputStream,
    options: Optional[ParserOptions] = None,
    *,
    base_url: str | None = None,
) -> ElementNode:
    """
    Parses the provided input to a document and returns its root element. The element
    stays attached to its document node.
    """
    root = parse_document(data, options, base_url=base_url).document_element
    assert root is not None
    return root


__all__ = (parse_document.__name__, parse_nodes.__name__, parse_tree.__name__)
