import pytest

from _transmute.exceptions import XSLTDynamicError
from _transmute.xpath.values import NodeSetValue, NumberValue, StringValue
from _transmute.xslt.output import OutputBuilder
from transmute import AttributeNode, ElementNode, TextNode, parse_tree


def test_building_a_tree():
    builder = OutputBuilder()
    with builder.element("root") as root:
        builder.add_attribute("a", "1")
        builder.add_text("x")
        builder.add_text("y")
        builder.add_comment(" c ")
        with builder.element("child"):
            builder.add_processing_instruction("pi", "data")

    assert builder.current is builder.document
    assert len(root) == 3
    assert builder.document.serialize() == (
        '<root a="1">xy<!-- c --><child><?pi data?></child></root>'
    )


def test_attributes_are_replaced():
    builder = OutputBuilder()
    with builder.element("root") as root:
        builder.add_attribute("a", "1")
        builder.add_attribute("a", "2")
    assert root["a"] == "2"
    assert len(root.attributes) == 1


def test_prefixed_attributes_declare_their_namespace():
    builder = OutputBuilder()
    with builder.element("root") as root:
        builder.add_attribute("b", "1", "http://p", "p")
    assert root.namespace_declarations == {"p": "http://p"}
    assert root.serialize() == '<root xmlns:p="http://p" p:b="1"/>'


def test_attribute_after_children():
    builder = OutputBuilder()
    with builder.element("root"):
        builder.add_text("text")
        with pytest.raises(XSLTDynamicError) as exception_info:
            builder.add_attribute("a", "1")
    assert exception_info.value.code == "XTDE0410"


def test_attribute_without_element():
    builder = OutputBuilder()
    with pytest.raises(XSLTDynamicError) as exception_info:
        builder.add_attribute("a", "1")
    assert exception_info.value.code == "XTDE0420"


def test_conflicting_namespace():
    builder = OutputBuilder()
    with builder.element("root"):
        builder.add_namespace("p", "http://p")
        builder.add_namespace("p", "http://p")
        with pytest.raises(XSLTDynamicError) as exception_info:
            builder.add_namespace("p", "http://other")
    assert exception_info.value.code == "XTDE0430"


def test_atomic_values_are_separated():
    builder = OutputBuilder()
    with builder.element("root") as root:
        builder.add_atomic(NumberValue(1))
        builder.add_atomic(StringValue("a"))
        builder.add_text("b")
        builder.add_atomic(StringValue("c"))
    assert root.string_value == "1 abc"
    assert len(root) == 1


def test_text_merging():
    builder = OutputBuilder()
    with builder.element("root") as root:
        builder.add_text("")
        builder.add_text("<")
        builder.add_text("<b/>", disable_output_escaping=True)
        builder.add_text(">")
    assert [x.disable_output_escaping for x in root.child_nodes] == [
        False,
        True,
        False,
    ]
    assert root.serialize() == "<root>&lt;<b/>&gt;</root>"


def test_capture():
    builder = OutputBuilder()
    with builder.capture() as capture:
        builder.add_text("t")
        with builder.element("e"):
            builder.add_text("u")

    assert capture.text == "tu"
    assert len(builder.document) == 0
    assert capture.as_temporary_tree() == NodeSetValue((capture.fragment,))

    builder.adopt(capture)
    assert len(capture.fragment) == 0
    assert builder.document.string_value == "tu"


def test_capturing_items():
    builder = OutputBuilder()
    with builder.capture(collect_items=True) as capture:
        assert builder.collects_items
        builder.add_atomic(NumberValue(1))
        builder.add_item(StringValue("x"))
    assert not builder.collects_items
    assert capture.as_sequence() == NodeSetValue((NumberValue(1), StringValue("x")))

    with builder.capture(collect_items=True) as capture:
        attribute = builder.add_attribute("a", "v")
        builder.add_text("t")
    assert isinstance(attribute, AttributeNode)
    assert attribute.parent is None
    assert capture.items[0] is attribute
    assert isinstance(capture.items[1], TextNode)


def test_items_from_input_are_not_copied_into_sequences():
    root = parse_tree("<r><a/></r>")
    builder = OutputBuilder()
    with builder.capture(collect_items=True) as capture:
        builder.add_item(root.first_child)
    assert capture.as_sequence().items[0] is root.first_child


def test_copy_node():
    root = parse_tree('<r x="1"><a>t</a></r>')
    builder = OutputBuilder()
    builder.copy_node(root.parent, deep=True)
    assert builder.document.document_element == root
    assert builder.document.document_element is not root

    builder = OutputBuilder()
    with builder.element("e") as element:
        builder.copy_node(root.attribute_map["x"], deep=False)
        builder.copy_node(root, deep=False)
    assert element.serialize() == '<e x="1"><r x="1"/></e>'


def test_start_element_with_namespace():
    builder = OutputBuilder()
    element = builder.start_element(
        "e", "http://e", "p", namespace_declarations={"p": "http://e"}
    )
    builder.end_element()
    assert isinstance(element, ElementNode)
    assert element.serialize() == '<p:e xmlns:p="http://e"/>'
