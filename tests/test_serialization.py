import pytest

from _transmute.serializer import (
    SerializationOptions,
    serialize,
    serialize_nodes,
)
from transmute import (
    CommentNode,
    ElementNode,
    ProcessingInstructionNode,
    TextNode,
    parse_document,
    parse_tree,
)


def test_escaping():
    root = parse_tree('<root a="x&quot;y&#10;z">a&lt;b&gt;c&amp;</root>')
    assert serialize(root) == '<root a="x&quot;y&#xA;z">a&lt;b&gt;c&amp;</root>'


@pytest.mark.parametrize(
    ("options", "expected"),
    (
        ({}, "<root/>"),
        (
            {"omit_xml_declaration": False},
            '<?xml version="1.0" encoding="UTF-8"?><root/>',
        ),
        (
            {
                "omit_xml_declaration": False,
                "encoding": "ISO-8859-1",
                "standalone": "yes",
            },
            '<?xml version="1.0" encoding="ISO-8859-1" standalone="yes"?><root/>',
        ),
        ({"self_closing_tags": False}, "<root></root>"),
        ({"doctype_system": "root.dtd"}, '<!DOCTYPE root SYSTEM "root.dtd"><root/>'),
        (
            {"doctype_system": "root.dtd", "doctype_public": "-//R//EN"},
            '<!DOCTYPE root PUBLIC "-//R//EN" "root.dtd"><root/>',
        ),
    ),
)
def test_xml_prolog_and_empty_elements(options, expected):
    assert serialize(ElementNode("root"), **options) == expected


def test_indentation():
    root = parse_tree("<root><a><b/></a><c>t</c></root>")
    assert serialize(root, indent=True) == (
        "<root>\n  <a>\n    <b/>\n  </a>\n  <c>t</c>\n</root>"
    )


def test_indentation_respects_mixed_content_and_xml_space():
    root = parse_tree("<root>text<a><b/></a></root>")
    assert root.serialize(indent=True) == "<root>text<a>\n  <b/>\n</a></root>"

    root = parse_tree('<root xml:space="preserve"><a/></root>')
    assert root.serialize(indent=True) == '<root xml:space="preserve"><a/></root>'


def test_indented_document():
    document = parse_document("<!--c--><r/>")
    assert serialize(document, indent=True) == "<!--c-->\n<r/>\n"


def test_cdata_sections():
    root = parse_tree("<r><code>a&lt;b]]&gt;</code><p>&lt;</p></r>")
    result = serialize(root, cdata_section_elements=frozenset({("", "code")}))
    assert result == "<r><code><![CDATA[a<b]]]]><![CDATA[>]]></code><p>&lt;</p></r>"

    element = ElementNode("r", children=[TextNode("<x>", cdata=True)])
    assert serialize(element) == "<r><![CDATA[<x>]]></r>"


def test_disabled_output_escaping():
    element = ElementNode(
        "r", children=[TextNode("<b/>", disable_output_escaping=True), "&"]
    )
    assert serialize(element) == "<r><b/>&amp;</r>"


def test_comments_and_processing_instructions():
    element = ElementNode(
        "r",
        children=[
            CommentNode(" c "),
            ProcessingInstructionNode("t", ""),
            ProcessingInstructionNode("t", "x"),
        ],
    )
    assert serialize(element) == "<r><!-- c --><?t?><?t x?></r>"


def test_namespaces():
    assert serialize(ElementNode("a", namespace="http://x")) == '<a xmlns="http://x"/>'
    assert (
        serialize(ElementNode("a", namespace="http://x", prefix="x"))
        == '<x:a xmlns:x="http://x"/>'
    )

    element = ElementNode("a")
    element.set_attribute("b", "1", namespace="http://y")
    assert serialize(element) == '<a xmlns:ns0="http://y" ns0:b="1"/>'

    element = ElementNode("a")
    element.set_attribute("y:b", "1", namespace="http://y")
    assert serialize(element) == '<a xmlns:y="http://y" y:b="1"/>'


def test_namespace_declarations_are_not_repeated():
    root = parse_tree('<x:a xmlns:x="http://x"><x:b/><c xmlns="http://c"/></x:a>')
    assert serialize(root) == (
        '<x:a xmlns:x="http://x"><x:b/><c xmlns="http://c"/></x:a>'
    )


def test_html():
    root = parse_tree(
        '<html><body class="&lt;&amp;&quot;"><br/><p/><?pi x?></body></html>'
    )
    assert serialize(root, method="html") == (
        '<html><body class="<&amp;&quot;"><br><p></p><?pi x></body></html>'
    )
    assert serialize(root, method="html", html_version="5").startswith(
        "<!DOCTYPE html><html>"
    )


def test_html_raw_text_elements():
    element = ElementNode("script", children=["if (a < b && c) {}"])
    assert serialize(element, method="html") == "<script>if (a < b && c) {}</script>"


def test_html_elements_in_other_namespaces_are_xml():
    element = ElementNode("svg", namespace="http://www.w3.org/2000/svg")
    assert serialize(element, method="html") == (
        '<svg xmlns="http://www.w3.org/2000/svg"/>'
    )


def test_xhtml():
    element = ElementNode("div", children=[ElementNode("br"), ElementNode("span")])
    assert serialize(element, method="xhtml") == "<div><br /><span></span></div>"
    assert serialize(element, method="xhtml", html_version="5") == (
        "<!DOCTYPE html><div><br /><span></span></div>"
    )


def test_text():
    root = parse_tree("<r>a<b>b</b><!--c-->&amp;<?p i?></r>")
    assert serialize(root, method="text") == "ab&"


def test_unknown_method():
    with pytest.raises(ValueError):
        serialize(ElementNode("a"), method="yaml")


def test_serialize_nodes():
    result = serialize_nodes(
        (TextNode("a&"), ElementNode("b")),
        SerializationOptions(omit_xml_declaration=False),
    )
    assert result == '<?xml version="1.0" encoding="UTF-8"?>a&amp;<b/>'
