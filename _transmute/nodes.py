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
The node tree that input documents, stylesheets and transformation results are
represented with. Its shape follows the DOM's: every node has a type, a name, a value,
ordered child nodes, a parent and siblings. Attribute nodes aren't children of their
element, but they refer to it as their parent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from enum import IntEnum
from itertools import count
from typing import TYPE_CHECKING, Any, ClassVar, Final, Optional, overload

from _transmute.exceptions import InvalidOperation
from _transmute.names import GLOBAL_NAMESPACES, XML_NAMESPACE, split_qualified_name


if TYPE_CHECKING:
    from _transmute.typing import NamespaceDeclarations, QualifiedName
    from _transmute.xpath import QueryResults


_serial_numbers: Final = count()


class NodeType(IntEnum):
    Element = 1
    Attribute = 2
    Text = 3
    CDATASection = 4
    ProcessingInstruction = 7
    Comment = 8
    Document = 9
    DocumentFragment = 11


# containers


class Siblings:
    """
    Container for the sisterhood of nodes.
    Everyone's taken care of.
    """

    __slots__ = (
        "__belongs_to",
        "__data",
    )

    def __init__(
        self,
        belongs_to: _ParentNode,
        nodes: Optional[Iterable[NodeBase | str]],
    ):
        self.__data: Final[list[NodeBase]] = []
        self.__belongs_to: Final = belongs_to
        if nodes is not None:
            for node in nodes:
                self.__data.append(self._handle_new_sibling(node))

    @overload
    def __getitem__(self, index: int) -> NodeBase:
        pass

    @overload
    def __getitem__(self, index: slice) -> list[NodeBase]:
        pass

    def __getitem__(self, index: int | slice) -> NodeBase | list[NodeBase]:
        if not isinstance(index, (int, slice)):
            raise TypeError

        return self.__data[index]

    def __bool__(self) -> bool:
        return bool(self.__data)

    def __iter__(self) -> Iterator[NodeBase]:
        return iter(self.__data)

    def __len__(self) -> int:
        return len(self.__data)

    def __reversed__(self) -> Iterator[NodeBase]:
        return reversed(self.__data)

    def append(self, node: NodeBase | str) -> NodeBase:
        result = self._handle_new_sibling(node)
        self.__data.append(result)
        return result

    def clear(self):
        for node in self.__data:
            node._parent = None
        self.__data.clear()

    def index(self, node: NodeBase) -> int:
        for result, n in enumerate(self.__data):
            if n is node:
                return result
        else:
            raise IndexError

    def insert(self, index: int, node: NodeBase | str) -> NodeBase:
        result = self._handle_new_sibling(node)
        self.__data.insert(index, result)
        return result

    def remove(self, node: NodeBase):
        del self.__data[self.index(node)]
        node._parent = None

    def _replace_slots(self, indexes: Iterable[int], nodes: Iterable[NodeBase]):
        # used to reorder nodes of the same parent among their current slots
        for index, node in zip(indexes, nodes):
            assert node._parent is self.__belongs_to
            self.__data[index] = node

    def _handle_new_sibling(self, node: NodeBase | str) -> NodeBase:
        match node:
            case str():
                node = TextNode(node)
            case AttributeNode():
                raise InvalidOperation("Attributes can't be added as child nodes.")
            case DocumentNode():
                raise InvalidOperation("A document node can't be added as child node.")
            case NodeBase():
                if node._parent is not None:
                    raise InvalidOperation(
                        "Only a detached node can be added to the tree. Use "
                        ":meth:`NodeBase.clone` or :meth:`NodeBase.detach` to get one."
                    )
            case _:
                raise TypeError(
                    "Either node instances or strings must be provided as child node."
                )

        node._parent = self.__belongs_to
        return node


class ElementAttributes(MutableMapping):
    """
    A :term:`mapping` of an element's attribute nodes that can be accessed by their
    local name (when they are not namespaced) or by a tuple of namespace and local
    name. The mapping preserves the order in which attributes were added.
    """

    __slots__ = ("__data", "__node")

    def __init__(self, node: ElementNode):
        self.__node: Final = node
        self.__data: Final[dict[QualifiedName, AttributeNode]] = {}

    def __contains__(self, item: Any) -> bool:
        return self.__resolve_accessor(item) in self.__data

    def __delitem__(self, item: str | QualifiedName):
        attribute = self.__data.pop(self.__resolve_accessor(item))
        attribute._parent = None

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Mapping):
            return False
        return self.as_dict_with_strings() == {
            (k if isinstance(k, str) else self.__key_to_string(k)): (
                v.value if isinstance(v, AttributeNode) else v
            )
            for k, v in other.items()
        }

    def __getitem__(self, item: str | QualifiedName) -> AttributeNode:
        return self.__data[self.__resolve_accessor(item)]

    def __iter__(self) -> Iterator[QualifiedName]:
        return iter(self.__data)

    def __len__(self) -> int:
        return len(self.__data)

    def __repr__(self) -> str:
        return repr(self.as_dict_with_strings())

    def __setitem__(self, item: str | QualifiedName, value: str | AttributeNode):
        key = self.__resolve_accessor(item)
        if isinstance(value, AttributeNode):
            if value._parent is not None and value._parent is not self.__node:
                value = value.clone()
            attribute = value
        else:
            namespace, local_name = key
            attribute = AttributeNode(local_name, value, namespace=namespace)
        if (previous := self.__data.get(key)) is not None:
            previous._parent = None
            if attribute.prefix is None:
                attribute.prefix = previous.prefix
        attribute._parent = self.__node
        self.__data[key] = attribute

    @staticmethod
    def __key_to_string(key: QualifiedName) -> str:
        namespace, local_name = key
        return f"{{{namespace}}}{local_name}" if namespace else local_name

    @staticmethod
    def __resolve_accessor(item: str | QualifiedName) -> QualifiedName:
        if isinstance(item, tuple):
            return item
        if item.startswith("{"):
            namespace, local_name = item[1:].split("}", maxsplit=1)
            return namespace, local_name
        return "", item

    def add(self, attribute: AttributeNode) -> AttributeNode:
        self[(attribute.namespace, attribute.local_name)] = attribute
        return self.__data[(attribute.namespace, attribute.local_name)]

    def as_dict_with_strings(self) -> dict[str, str]:
        """Returns the attributes as :class:`str` instances in a :class:`dict`."""
        return {self.__key_to_string(k): v.value for k, v in self.__data.items()}

    def nodes(self) -> tuple[AttributeNode, ...]:
        """The attribute nodes in their order."""
        return tuple(self.__data.values())


# nodes


class NodeBase(ABC):
    """The interface that all node types share."""

    __slots__ = ("_parent", "_serial")

    node_type: ClassVar[NodeType]

    def __init__(self):
        self._parent: Optional[_ParentNode] = None
        self._serial: Final = next(_serial_numbers)

    def __copy__(self):
        return self.clone(deep=False)

    def __deepcopy__(self, memo):
        return self.clone(deep=True)

    def __str__(self) -> str:
        return self.serialize()

    @property
    def attributes(self) -> tuple[AttributeNode, ...]:
        """The node's attribute nodes, only elements have any."""
        return ()

    @property
    def child_nodes(self) -> tuple[NodeBase, ...]:
        return ()

    @abstractmethod
    def clone(self, deep: bool = False) -> NodeBase:
        """
        Creates a new node of the same type with duplicated contents.

        :param deep: Clones the whole subtree if :obj:`True`.
        :return: A copy of the node.
        """

    @property
    def depth(self) -> int:
        result = 0
        node: Optional[NodeBase] = self
        assert node is not None
        while (node := node._parent) is not None:
            result += 1
        return result

    def detach(self) -> NodeBase:
        """Removes the node from its parent."""
        if (parent := self._parent) is not None:
            parent._child_nodes.remove(self)
        return self

    @property
    def first_child(self) -> Optional[NodeBase]:
        return None

    @property
    def index(self) -> Optional[int]:
        if (parent := self._parent) is None:
            return None
        return parent._child_nodes.index(self)

    def _iterate_ancestors(self) -> Iterator[_ParentNode]:
        node: Optional[NodeBase] = self
        assert node is not None
        while (node := node._parent) is not None:
            assert isinstance(node, _ParentNode)
            yield node

    def _iterate_descendants(self) -> Iterator[NodeBase]:
        yield from ()

    def _iterate_following(self) -> Iterator[NodeBase]:
        # the XPath following axis, it excludes descendants
        node: NodeBase = self
        while True:
            for following_sibling in node._iterate_following_siblings():
                yield following_sibling
                yield from following_sibling._iterate_descendants()
            if (parent := node._parent) is None:
                return
            node = parent

    def _iterate_following_siblings(self) -> Iterator[NodeBase]:
        if (parent := self._parent) is None or isinstance(self, AttributeNode):
            return

        siblings = parent._child_nodes
        for index in range(siblings.index(self) + 1, len(siblings)):
            yield siblings[index]

    def _iterate_preceding(self) -> Iterator[NodeBase]:
        # the XPath preceding axis in reverse document order, it excludes ancestors
        node: NodeBase = self
        if isinstance(node, AttributeNode):
            if (parent := node._parent) is None:
                return
            node = parent
        while True:
            for preceding_sibling in node._iterate_preceding_siblings():
                yield from preceding_sibling._iterate_reversed_descendants()
            if (parent := node._parent) is None:
                return
            node = parent

    def _iterate_preceding_siblings(self) -> Iterator[NodeBase]:
        if (parent := self._parent) is None or isinstance(self, AttributeNode):
            return

        siblings = parent._child_nodes
        for index in range(siblings.index(self) - 1, -1, -1):
            yield siblings[index]

    def _iterate_reversed_descendants(self) -> Iterator[NodeBase]:
        # yields the node and its descendants in reverse document order
        yield self

    @property
    def last_child(self) -> Optional[NodeBase]:
        return None

    @property
    def next_sibling(self) -> Optional[NodeBase]:
        for node in self._iterate_following_siblings():
            return node
        return None

    @property
    @abstractmethod
    def node_name(self) -> str:
        pass

    @property
    def node_value(self) -> Optional[str]:
        return None

    @property
    def owner_document(self) -> Optional[DocumentNode]:
        node: NodeBase = self
        while (parent := node._parent) is not None:
            node = parent
        if isinstance(node, DocumentNode) and node is not self:
            return node
        return None

    @property
    def parent(self) -> Optional[_ParentNode]:
        return self._parent

    @property
    def previous_sibling(self) -> Optional[NodeBase]:
        for node in self._iterate_preceding_siblings():
            return node
        return None

    @property
    def root(self) -> NodeBase:
        """The topmost node of the tree that this node belongs to."""
        node: NodeBase = self
        while (parent := node._parent) is not None:
            node = parent
        return node

    def serialize(self, *, indent: bool = False) -> str:
        """Serializes the node to an XML string."""
        from _transmute.serializer import serialize

        return serialize(self, method="xml", indent=indent)

    @property
    @abstractmethod
    def string_value(self) -> str:
        """The node's string-value as defined by the XPath data model."""

    def xpath(
        self,
        expression: str,
        namespaces: Optional[NamespaceDeclarations] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> QueryResults:
        """
        Evaluates an XPath expression with this node as context node and returns the
        resulting nodes.
        """
        from _transmute.xpath import evaluate

        return evaluate(self, expression, namespaces=namespaces, variables=variables)


class _LeafNode(NodeBase):
    __slots__ = ()

    def __len__(self):
        return 0


class _ParentNode(NodeBase):
    __slots__ = ("_child_nodes",)

    def __init__(self, children: Optional[Iterable[NodeBase | str]] = None):
        super().__init__()
        self._child_nodes: Final = Siblings(self, children)

    def __len__(self) -> int:
        return len(self._child_nodes)

    def append_child(self, node: NodeBase | str) -> NodeBase:
        return self._child_nodes.append(node)

    def append_children(self, *nodes: NodeBase | str) -> tuple[NodeBase, ...]:
        return tuple(self._child_nodes.append(n) for n in nodes)

    @property
    def child_nodes(self) -> tuple[NodeBase, ...]:
        return tuple(self._child_nodes)

    def _clone_children_into(self, target: _ParentNode):
        for child in self._child_nodes:
            target._child_nodes.append(child.clone(deep=True))

    @property
    def first_child(self) -> Optional[NodeBase]:
        return self._child_nodes[0] if self._child_nodes else None

    def insert_child(self, index: int, node: NodeBase | str) -> NodeBase:
        return self._child_nodes.insert(index, node)

    def _iterate_descendants(self) -> Iterator[NodeBase]:
        stack = [iter(self._child_nodes)]
        while stack:
            try:
                node = next(stack[-1])
            except StopIteration:
                stack.pop()
                continue
            yield node
            if isinstance(node, _ParentNode) and node._child_nodes:
                stack.append(iter(node._child_nodes))

    def _iterate_reversed_descendants(self) -> Iterator[NodeBase]:
        if not self._child_nodes:
            yield self
            return

        stack: list[tuple[_ParentNode, list[NodeBase]]] = [
            (self, list(self._child_nodes))
        ]

        while stack:
            parent, children = stack[-1]

            if children:
                node = children.pop()
                if isinstance(node, _ParentNode) and node._child_nodes:
                    stack.append((node, list(node._child_nodes)))
                else:
                    yield node
            else:
                stack.pop()
                yield parent

    def iterate_descendants(self) -> Iterator[NodeBase]:
        yield from self._iterate_descendants()

    @property
    def last_child(self) -> Optional[NodeBase]:
        return self._child_nodes[-1] if self._child_nodes else None

    def remove_child(self, node: NodeBase) -> NodeBase:
        self._child_nodes.remove(node)
        return node

    @property
    def string_value(self) -> str:
        return "".join(
            n.content
            for n in self._iterate_descendants()
            if isinstance(n, TextNode)
        )


class AttributeNode(_LeafNode):
    """
    An attribute of an element. Its parent is the element that bears it, though it's
    not contained in the element's children.
    """

    __slots__ = ("local_name", "namespace", "prefix", "value")

    node_type = NodeType.Attribute

    def __init__(
        self,
        local_name: str,
        value: str,
        namespace: str = "",
        prefix: Optional[str] = None,
    ):
        super().__init__()
        self.local_name = local_name
        self.namespace = namespace or ""
        self.prefix = prefix
        self.value = value

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, AttributeNode)
            and self.namespace == other.namespace
            and self.local_name == other.local_name
            and self.value == other.value
        )

    __hash__ = NodeBase.__hash__

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.universal_name}="{self.value}")>'

    def clone(self, deep: bool = False) -> AttributeNode:
        return AttributeNode(
            self.local_name, self.value, namespace=self.namespace, prefix=self.prefix
        )

    @property
    def index(self) -> Optional[int]:
        if (parent := self._parent) is None:
            return None
        assert isinstance(parent, ElementNode)
        return parent._attributes.nodes().index(self)

    @property
    def node_name(self) -> str:
        if self.prefix:
            return f"{self.prefix}:{self.local_name}"
        return self.local_name

    @property
    def node_value(self) -> str:
        return self.value

    @property
    def string_value(self) -> str:
        return self.value

    @property
    def universal_name(self) -> str:
        if self.namespace:
            return f"{{{self.namespace}}}{self.local_name}"
        return self.local_name


class CommentNode(_LeafNode):
    __slots__ = ("content",)

    node_type = NodeType.Comment

    def __init__(self, content: str):
        super().__init__()
        self.content = content

    def __eq__(self, other) -> bool:
        return isinstance(other, CommentNode) and self.content == other.content

    __hash__ = NodeBase.__hash__

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.content!r})>"

    def clone(self, deep: bool = False) -> CommentNode:
        return self.__class__(self.content)

    @property
    def node_name(self) -> str:
        return "#comment"

    @property
    def node_value(self) -> str:
        return self.content

    @property
    def string_value(self) -> str:
        return self.content


class DocumentNode(_ParentNode):
    """
    The root node of a document. It may contain one element, comments and processing
    instructions.
    """

    __slots__ = ("base_url", "unparsed_entities")

    node_type = NodeType.Document

    def __init__(
        self,
        children: Optional[Iterable[NodeBase | str]] = None,
        base_url: Optional[str] = None,
        unparsed_entities: Optional[dict[str, str]] = None,
    ):
        super().__init__(children)
        self.base_url = base_url
        self.unparsed_entities: dict[str, str] = unparsed_entities or {}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(root={self.document_element!r})>"

    def clone(self, deep: bool = False) -> DocumentNode:
        result = self.__class__(
            base_url=self.base_url, unparsed_entities=dict(self.unparsed_entities)
        )
        if deep:
            self._clone_children_into(result)
        return result

    @property
    def document_element(self) -> Optional[ElementNode]:
        for node in self._child_nodes:
            if isinstance(node, ElementNode):
                return node
        return None

    @property
    def node_name(self) -> str:
        return "#document"


class DocumentFragmentNode(_ParentNode):
    """
    A container for a sequence of nodes without the constraints of a document. It's
    used for temporary trees, e.g. the values of variables that are defined by their
    content.
    """

    __slots__ = ()

    node_type = NodeType.DocumentFragment

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({list(self._child_nodes)!r})>"

    def clone(self, deep: bool = False) -> DocumentFragmentNode:
        result = self.__class__()
        if deep:
            self._clone_children_into(result)
        return result

    @property
    def node_name(self) -> str:
        return "#document-fragment"


class ElementNode(_ParentNode):
    """
    An element with a local name in a namespace, the prefix it was or shall be
    serialized with, its attributes and the namespace declarations it bears.
    """

    __slots__ = (
        "_attributes",
        "local_name",
        "namespace",
        "namespace_declarations",
        "prefix",
    )

    node_type = NodeType.Element

    def __init__(
        self,
        local_name: str,
        attributes: Optional[Mapping[str | QualifiedName, str]] = None,
        namespace: str = "",
        prefix: Optional[str] = None,
        children: Optional[Iterable[NodeBase | str]] = None,
        namespace_declarations: Optional[Mapping[str, str]] = None,
    ):
        super().__init__(children)
        self.local_name = local_name
        self.namespace = namespace or ""
        self.prefix = prefix
        self.namespace_declarations: dict[str, str] = dict(
            namespace_declarations or {}
        )
        self._attributes: Final = ElementAttributes(self)
        if attributes is not None:
            for key, value in attributes.items():
                self._attributes[key] = value

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, ElementNode)
            and self.namespace == other.namespace
            and self.local_name == other.local_name
            and self._attributes == other._attributes
            and len(self._child_nodes) == len(other._child_nodes)
            and all(a == b for a, b in zip(self._child_nodes, other._child_nodes))
        )

    __hash__ = NodeBase.__hash__

    def __getitem__(self, item: str | QualifiedName) -> str:
        return self._attributes[item].value

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}({self.universal_name!r}, "
            f"{self._attributes!r})>"
        )

    @property
    def attributes(self) -> tuple[AttributeNode, ...]:
        return self._attributes.nodes()

    @property
    def attribute_map(self) -> ElementAttributes:
        """The attributes as a mutable :term:`mapping`."""
        return self._attributes

    def clone(self, deep: bool = False) -> ElementNode:
        result = self.__class__(
            self.local_name,
            namespace=self.namespace,
            prefix=self.prefix,
            namespace_declarations=self.namespace_declarations,
        )
        for attribute in self._attributes.nodes():
            result._attributes.add(attribute.clone())
        if deep:
            self._clone_children_into(result)
        return result

    def get_attribute(
        self, name: str | QualifiedName, default: Optional[str] = None
    ) -> Optional[str]:
        if (attribute := self._attributes.get(name)) is None:
            return default
        return attribute.value

    def in_scope_namespaces(self) -> dict[str, str]:
        """
        Returns a mapping of all prefixes to namespaces that are declared on this
        element and its ancestors. The default namespace is mapped to an empty string
        key.
        """
        result: dict[str, str] = {}
        nodes = [self] + [
            n for n in self._iterate_ancestors() if isinstance(n, ElementNode)
        ]
        for node in reversed(nodes):
            result.update(node.namespace_declarations)
        if "" in result and not result[""]:
            del result[""]
        result.update(GLOBAL_NAMESPACES)
        return result

    def lookup_namespace(self, prefix: Optional[str]) -> Optional[str]:
        """Resolves a prefix to the namespace that is in scope for this element."""
        prefix = prefix or ""
        if prefix in GLOBAL_NAMESPACES:
            return GLOBAL_NAMESPACES[prefix]
        node: Optional[NodeBase] = self
        while isinstance(node, ElementNode):
            if prefix in node.namespace_declarations:
                return node.namespace_declarations[prefix] or None
            node = node._parent
        return None

    @property
    def node_name(self) -> str:
        if self.prefix:
            return f"{self.prefix}:{self.local_name}"
        return self.local_name

    def set_attribute(
        self,
        name: str,
        value: str,
        namespace: str = "",
        prefix: Optional[str] = None,
    ) -> AttributeNode:
        if prefix is None and ":" in name:
            prefix, name = split_qualified_name(name)
        return self._attributes.add(
            AttributeNode(name, value, namespace=namespace, prefix=prefix)
        )

    @property
    def universal_name(self) -> str:
        if self.namespace:
            return f"{{{self.namespace}}}{self.local_name}"
        return self.local_name

    @property
    def xml_space(self) -> Optional[str]:
        """The value of the ``xml:space`` attribute in scope."""
        node: Optional[NodeBase] = self
        while isinstance(node, ElementNode):
            if (value := node.get_attribute((XML_NAMESPACE, "space"))) is not None:
                return value
            node = node._parent
        return None


class ProcessingInstructionNode(_LeafNode):
    __slots__ = ("content", "target")

    node_type = NodeType.ProcessingInstruction

    def __init__(self, target: str, content: str):
        super().__init__()
        self.target = target
        self.content = content

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, ProcessingInstructionNode)
            and self.target == other.target
            and self.content == other.content
        )

    __hash__ = NodeBase.__hash__

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.target!r}, {self.content!r})>"

    def clone(self, deep: bool = False) -> ProcessingInstructionNode:
        return self.__class__(self.target, self.content)

    @property
    def node_name(self) -> str:
        return self.target

    @property
    def node_value(self) -> str:
        return self.content

    @property
    def string_value(self) -> str:
        return self.content


class TextNode(_LeafNode):
    """
    A text node. The ``cdata`` flag marks contents that originate from or shall be
    serialized as CDATA section, ``disable_output_escaping`` marks contents that are
    serialized without escaping.
    """

    __slots__ = ("cdata", "content", "disable_output_escaping")

    node_type = NodeType.Text

    def __init__(
        self, content: str, cdata: bool = False, disable_output_escaping: bool = False
    ):
        super().__init__()
        self.content = content
        self.cdata = cdata
        self.disable_output_escaping = disable_output_escaping

    def __eq__(self, other) -> bool:
        return isinstance(other, TextNode) and self.content == other.content

    __hash__ = NodeBase.__hash__

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.content!r})>"

    def clone(self, deep: bool = False) -> TextNode:
        return self.__class__(
            self.content,
            cdata=self.cdata,
            disable_output_escaping=self.disable_output_escaping,
        )

    @property
    def node_name(self) -> str:
        return "#cdata-section" if self.cdata else "#text"

    @property
    def node_value(self) -> str:
        return self.content

    @property
    def string_value(self) -> str:
        return self.content


# document order


def _document_order_key(
    node: NodeBase, index_cache: dict[int, dict[int, int]]
) -> tuple[int, ...]:
    path: list[int] = []
    cursor = node

    if isinstance(cursor, AttributeNode):
        if (parent := cursor._parent) is None:
            return (cursor._serial,)
        assert isinstance(parent, ElementNode)
        path.append(parent._attributes.nodes().index(cursor))
        path.append(-1)
        cursor = parent

    while (parent := cursor._parent) is not None:
        if (indexes := index_cache.get(id(parent))) is None:
            indexes = index_cache[id(parent)] = {
                id(n): i for i, n in enumerate(parent._child_nodes)
            }
        path.append(indexes[id(cursor)])
        cursor = parent

    path.append(cursor._serial)
    path.reverse()
    return tuple(path)


def sort_in_document_order(nodes: Iterable[NodeBase]) -> list[NodeBase]:
    """
    Returns the given nodes in document order without duplicates. Nodes from different
    trees are ordered by the creation of their trees' roots.
    """
    index_cache: dict[int, dict[int, int]] = {}
    unique: dict[int, NodeBase] = {}
    for node in nodes:
        unique.setdefault(id(node), node)
    if len(unique) < 2:
        return list(unique.values())
    return sorted(
        unique.values(), key=lambda n: _document_order_key(n, index_cache)
    )


def is_before(a: NodeBase, b: NodeBase) -> bool:
    """Tests whether the node ``a`` precedes ``b`` in document order."""
    index_cache: dict[int, dict[int, int]] = {}
    return _document_order_key(a, index_cache) < _document_order_key(b, index_cache)


__all__ = (
    AttributeNode.__name__,
    CommentNode.__name__,
    DocumentFragmentNode.__name__,
    DocumentNode.__name__,
    ElementAttributes.__name__,
    ElementNode.__name__,
    NodeBase.__name__,
    NodeType.__name__,
    ProcessingInstructionNode.__name__,
    Siblings.__name__,
    TextNode.__name__,
    is_before.__name__,
    sort_in_document_order.__name__,
)
