from copy import copy, deepcopy

import pytest

from _transmute.exceptions import InvalidOperation
from _transmute.names import XML_NAMESPACE
from _transmute.nodes import is_before, sort_in_document_order
from transmute import (
    AttributeNode,
    CommentNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    ProcessingInstructionNode,
    TextNode,
    parse_tree,
)


def test_build_tree():
    root = ElementNode("root", {"id": "r"})
    child = root.append_child(ElementNode("child", children=["text"]))
    root.append_children("tail", CommentNode(" note "))

    assert len(root) == 3
    assert child.parent is root
    assert child.first_child.content == "text"
    assert root.last_child.content == " note "
    assert root.string_value == "texttail"
    assert root["id"] == "r"
    assert root.serialize() == (
        '<root id="r"><child>text</child>tail<!-- note --></root>'
    )


def test_attached_nodes_cannot_be_added():
    root = parse_tree("<root><a/></root>")
    with pytest.raises(InvalidOperation):
        ElementNode("other").append_child(root.first_child)


@pytest.mark.parametrize(
    "node", (AttributeNode("a", "b"), DocumentNode()), ids=("attribute", "document")
)
def test_invalid_children(node):
    with pytest.raises(InvalidOperation):
        ElementNode("root").append_child(node)


def test_detach_and_insert():
    root = parse_tree("<root><a/><b/></root>")
    a = root.first_child.detach()
    assert a.parent is None
    assert len(root) == 1
    root.insert_child(1, a)
    assert [x.local_name for x in root.child_nodes] == ["b", "a"]
    assert a.index == 1
    assert a.previous_sibling.local_name == "b"
    assert a.next_sibling is None


def test_remove_child():
    root = parse_tree("<root><a/><b/></root>")
    b = root.remove_child(root.last_child)
    assert b.parent is None
    assert root.serialize() == "<root><a/></root>"


def test_attributes():
    root = parse_tree(
        '<root xmlns:x="http://x" a="1" x:b="2" xml:lang="en"/>'
    )
    assert root["a"] == "1"
    assert root.get_attribute(("http://x", "b")) == "2"
    assert root.get_attribute("{http://x}b") == "2"
    assert root.get_attribute((XML_NAMESPACE, "lang")) == "en"
    assert root.get_attribute("missing", "default") == "default"

    attribute = root.attribute_map["a"]
    assert attribute.parent is root
    assert attribute.node_name == "a"
    assert root.attribute_map[("http://x", "b")].node_name == "x:b"

    root.attribute_map["a"] = "3"
    assert root["a"] == "3"
    del root.attribute_map["a"]
    assert "a" not in root.attribute_map
    assert attribute.parent is None

    assert root.attribute_map == {"{http://x}b": "2", f"{{{XML_NAMESPACE}}}lang": "en"}


def test_attribute_set_with_prefixed_name():
    element = ElementNode("e")
    attribute = element.set_attribute("p:a", "v", namespace="http://p")
    assert attribute.prefix == "p"
    assert attribute.local_name == "a"
    assert attribute.universal_name == "{http://p}a"


def test_namespaces_in_scope():
    root = parse_tree('<root xmlns="http://d" xmlns:a="http://a"><a:child/></root>')
    child = root.first_child
    assert child.namespace == "http://a"
    assert child.prefix == "a"
    assert child.node_name == "a:child"
    assert child.universal_name == "{http://a}child"
    assert child.lookup_namespace("a") == "http://a"
    assert child.lookup_namespace(None) == "http://d"
    assert child.lookup_namespace("xml") == XML_NAMESPACE
    assert child.lookup_namespace("nope") is None
    assert child.in_scope_namespaces() == {
        "": "http://d",
        "a": "http://a",
        "xml": XML_NAMESPACE,
        "xmlns": "http://www.w3.org/2000/xmlns/",
    }


def test_xml_space():
    root = parse_tree('<root xml:space="preserve"><a><b/></a></root>')
    assert root.first_child.first_child.xml_space == "preserve"
    assert parse_tree("<root/>").xml_space is None


def test_clone():
    root = parse_tree('<root a="1"><child>text</child></root>')

    shallow = root.clone()
    assert shallow.parent is None
    assert shallow["a"] == "1"
    assert len(shallow) == 0

    deep = root.clone(deep=True)
    assert deep == root
    assert deep is not root
    assert deep.first_child.parent is deep

    assert copy(root).serialize() == '<root a="1"/>'
    assert deepcopy(root).serialize() == '<root a="1"><child>text</child></root>'


def test_equality():
    assert parse_tree("<a x='1'>t</a>") == parse_tree('<a x="1">t</a>')
    assert parse_tree("<a>t</a>") != parse_tree("<a>u</a>")
    assert parse_tree("<a x='1'/>") != parse_tree("<a x='2'/>")
    assert TextNode("a") == TextNode("a")
    assert CommentNode("a") != TextNode("a")
    assert ProcessingInstructionNode("t", "c") == ProcessingInstructionNode("t", "c")


def test_node_names_and_values():
    assert TextNode("x").node_name == "#text"
    assert TextNode("x", cdata=True).node_name == "#cdata-section"
    assert CommentNode("c").node_value == "c"
    assert ProcessingInstructionNode("t", "c").node_name == "t"
    assert DocumentNode().node_name == "#document"
    assert DocumentFragmentNode().node_name == "#document-fragment"
    assert ElementNode("e").node_value is None


def test_document():
    root = parse_tree("<!-- c --><root/>")
    document = root.parent
    assert isinstance(document, DocumentNode)
    assert document.document_element is root
    assert root.owner_document is document
    assert document.owner_document is None
    assert root.root is document
    assert root.depth == 1
    assert isinstance(document.first_child, CommentNode)


def test_document_order():
    root = parse_tree("<root><a><b/></a><c/></root>")
    a = root.first_child
    b = a.first_child
    c = root.last_child

    assert sort_in_document_order([c, b, a, root, b]) == [root, a, b, c]
    assert is_before(a, b)
    assert is_before(b, c)
    assert not is_before(c, a)


def test_attributes_precede_children_in_document_order():
    root = parse_tree('<root x="1"><a/></root>')
    attribute = root.attribute_map["x"]
    assert sort_in_document_order([root.first_child, attribute, root]) == [
        root,
        attribute,
        root.first_child,
    ]


def test_iterate_descendants():
    root = parse_tree("<root><a><b/>t</a><c/></root>")
    assert [x.node_name for x in root.iterate_descendants()] == [
        "a",
        "b",
        "#text",
        "c",
    ]


def test_xpath_method():
    root = parse_tree("<root><a/><a/></root>")
    assert root.xpath("a").size == 2
    assert root.xpath("a[$n]", variables={"n": 2}).first is root.last_child


def test_str_serializes():
    assert str(parse_tree("<root>&amp;</root>")) == "<root>&amp;</root>"
