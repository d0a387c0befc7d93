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

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Optional

from _transmute.exceptions import XSLTDynamicError
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
)
from _transmute.xpath.values import NodeSetValue, make_sequence

if TYPE_CHECKING:
    from _transmute.xpath.values import Item, Value


class Capture:
    """
    The result of instructions that are evaluated into a temporary tree or into a
    sequence, e.g. the content of a variable or of a function body.
    """

    __slots__ = ("fragment", "items")

    def __init__(self, collect_items: bool):
        self.fragment = DocumentFragmentNode()
        self.items: Optional[list[Item]] = [] if collect_items else None

    def as_sequence(self) -> Value:
        """The captured items as sequence."""
        assert self.items is not None
        if all(isinstance(x, NodeBase) for x in self.items):
            return NodeSetValue(self.items)
        return make_sequence(self.items)

    def as_temporary_tree(self) -> Value:
        """The captured nodes wrapped in a document fragment."""
        return NodeSetValue((self.fragment,))

    @property
    def text(self) -> str:
        return self.fragment.string_value


class OutputBuilder:
    """
    Accumulates the nodes that a transformation produces in a tree that is independent
    of the input tree. New nodes are appended to the element or container at the top of
    a cursor stack, hence text that is produced deep in a recursive template dispatch
    lands in document order with its siblings.
    """

    __slots__ = ("_captures", "_separate", "_stack", "document")

    def __init__(self, document: Optional[DocumentNode] = None):
        self.document = DocumentNode() if document is None else document
        self._stack: list[_ParentNode] = [self.document]
        self._captures: list[tuple[int, Capture]] = []
        self._separate = False

    @property
    def current(self) -> _ParentNode:
        """The node where new nodes are appended to."""
        return self._stack[-1]

    @property
    def collects_items(self) -> bool:
        """Whether produced items are currently recorded as sequence."""
        return self._capture_at_top() is not None

    def _capture_at_top(self) -> Optional[Capture]:
        if not self._captures:
            return None
        depth, capture = self._captures[-1]
        if depth == len(self._stack) - 1 and capture.items is not None:
            return capture
        return None

    def _append(self, node: NodeBase) -> NodeBase:
        self._separate = False
        if (capture := self._capture_at_top()) is not None:
            assert capture.items is not None
            capture.items.append(node)
        if isinstance(node, TextNode) and node.content == "":
            return node
        self.current.append_child(node)
        return node

    def add_attribute(
        self,
        local_name: str,
        value: str,
        namespace: str = "",
        prefix: Optional[str] = None,
    ) -> AttributeNode:
        """
        Adds an attribute to the current element. An existing attribute with the same
        name is replaced.

        :raises XSLTDynamicError: If the cursor isn't placed on an element or that
                                  already has children.
        """
        attribute = AttributeNode(local_name, value, namespace=namespace, prefix=prefix)

        if (capture := self._capture_at_top()) is not None:
            assert capture.items is not None
            capture.items.append(attribute)
            return attribute

        element = self.current
        if not isinstance(element, ElementNode):
            raise XSLTDynamicError(
                "An attribute can only be added to an element.", code="XTDE0420"
            )
        if len(element):
            raise XSLTDynamicError(
                "Attributes must be added before the children of an element.",
                code="XTDE0410",
            )
        if namespace and prefix:
            declared = element.lookup_namespace(prefix)
            if declared is None:
                element.namespace_declarations[prefix] = namespace
            elif declared != namespace:
                attribute.prefix = None
        return element.attribute_map.add(attribute)

    def add_comment(self, content: str):
        self._append(CommentNode(content))

    def add_namespace(self, prefix: str, namespace: str):
        """
        Declares a namespace on the current element.

        :raises XSLTDynamicError: If the cursor isn't placed on an element or if the
                                  prefix is already bound to another namespace.
        """
        element = self.current
        if not isinstance(element, ElementNode):
            raise XSLTDynamicError(
                "A namespace node can only be added to an element.", code="XTDE0420"
            )
        declared = element.namespace_declarations.get(prefix)
        if declared is not None and declared != namespace:
            raise XSLTDynamicError(
                f"The prefix `{prefix}` is already bound to {declared}.",
                code="XTDE0430",
            )
        element.namespace_declarations[prefix] = namespace

    def adopt(self, capture: Capture, nodes: Optional[Iterable[NodeBase]] = None):
        """
        Adds what has been captured before. The captured nodes are moved rather than
        copied, ``nodes`` can limit them to a selection of the fragment's children.
        """
        if capture.items is not None and self.collects_items:
            selected = None if nodes is None else {id(x) for x in nodes}
            for item in capture.items:
                if isinstance(item, NodeBase) and item.parent is capture.fragment:
                    if selected is None or id(item) in selected:
                        self._append(item.detach())
                else:
                    self.add_item(item)
            return

        for node in list(capture.fragment.child_nodes if nodes is None else nodes):
            node.detach()
            if isinstance(node, TextNode):
                self.add_text(node.content, node.disable_output_escaping)
            else:
                self._append(node)

    def add_atomic(self, value: Value):
        """
        Adds an atomic value. Adjacent values are separated by a space when they are
        written to a tree.
        """
        if (capture := self._capture_at_top()) is not None:
            assert capture.items is not None
            capture.items.append(value)
            return

        text = value.to_string()
        if self._separate:
            text = " " + text
        self.add_text(text)
        self._separate = True

    def add_processing_instruction(self, target: str, content: str):
        self._append(ProcessingInstructionNode(target, content))

    def add_text(self, content: str, disable_output_escaping: bool = False):
        """Adds text that is merged with a preceding text node of the same kind."""
        if not content:
            return
        self._separate = False
        last_child = self.current.last_child
        if (
            self._capture_at_top() is None
            and isinstance(last_child, TextNode)
            and not last_child.cdata
            and last_child.disable_output_escaping == disable_output_escaping
        ):
            last_child.content += content
            return
        self._append(
            TextNode(content, disable_output_escaping=disable_output_escaping)
        )

    def copy_node(self, node: NodeBase, deep: bool):
        """
        Adds a copy of a node. Documents and fragments are transparent, their children
        are copied when ``deep`` is set.
        """
        match node:
            case DocumentNode() | DocumentFragmentNode():
                if deep:
                    for child in node.child_nodes:
                        self.copy_node(child, True)
            case AttributeNode():
                self.add_attribute(
                    node.local_name, node.value, node.namespace, node.prefix
                )
            case TextNode():
                self.add_text(node.content, node.disable_output_escaping)
            case _:
                self._append(node.clone(deep=deep))

    def start_element(
        self,
        local_name: str,
        namespace: str = "",
        prefix: Optional[str] = None,
        namespace_declarations: Optional[dict[str, str]] = None,
    ) -> ElementNode:
        """Adds an element and places the cursor in it."""
        element = ElementNode(
            local_name,
            namespace=namespace,
            prefix=prefix,
            namespace_declarations=namespace_declarations,
        )
        self._append(element)
        self._stack.append(element)
        return element

    def end_element(self):
        assert isinstance(self._stack[-1], ElementNode)
        self._stack.pop()

    @contextmanager
    def element(
        self,
        local_name: str,
        namespace: str = "",
        prefix: Optional[str] = None,
        namespace_declarations: Optional[dict[str, str]] = None,
    ) -> Iterator[ElementNode]:
        element = self.start_element(
            local_name, namespace, prefix, namespace_declarations
        )
        try:
            yield element
        finally:
            self.end_element()

    @contextmanager
    def capture(self, collect_items: bool = False) -> Iterator[Capture]:
        """
        Redirects all output into a new document fragment while in the context. With
        ``collect_items`` the produced top-level items are also recorded as sequence
        where nodes from the input aren't copied and attributes stay detached.
        """
        result = Capture(collect_items)
        self._stack.append(result.fragment)
        self._captures.append((len(self._stack) - 1, result))
        try:
            yield result
        finally:
            self._captures.pop()
            self._stack.pop()

    def add_item(self, item: Item):
        """
        Adds an item of a sequence. Nodes are copied into the tree unless the items
        are collected as a sequence.
        """
        if (capture := self._capture_at_top()) is not None:
            assert capture.items is not None
            capture.items.append(item)
        elif isinstance(item, NodeBase):
            self.copy_node(item, True)
        else:
            self.add_atomic(item)


__all__ = (Capture.__name__, OutputBuilder.__name__)
