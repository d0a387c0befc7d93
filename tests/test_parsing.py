import pytest

from _transmute.exceptions import (
    ParsingProcessingError,
    ParsingValidityError,
)
from _transmute.plugins import plugin_manager
from transmute import (
    CommentNode,
    ElementNode,
    ParserOptions,
    ProcessingInstructionNode,
    TextNode,
    parse_document,
    parse_nodes,
    parse_tree,
)


assert len(AVAILABLE_PARSERS := tuple(plugin_manager.parsers)) == 2

pytestmark = pytest.mark.parametrize("parser", AVAILABLE_PARSERS)


def test_attributes(parser):
    root = parse_tree(
        """<root xmlns="http://fo.org" xmlns:x="http://x.org" a="b" x:c="d"/>""",
        ParserOptions(preferred_parsers=parser),
    )
    assert ("", "a") in root.attribute_map
    assert ("http://x.org", "c") in root.attribute_map
    assert root.attribute_map[("http://x.org", "c")].prefix == "x"
    assert root.namespace_declarations == {"": "http://fo.org", "x": "http://x.org"}
    assert root.namespace == "http://fo.org"
    assert root.prefix is None


@pytest.mark.parametrize("extra", ("<!-- B -->", "<?B B?>"))
def test_ignoring_comments_and_pis(extra, parser):
    result = parse_tree(
        f"<node> A{extra}C </node>",
        options=ParserOptions(
            remove_comments=True,
            remove_processing_instructions=True,
            preferred_parsers=parser,
        ),
    )
    assert len(result) == 1
    assert result.first_child.content == " AC "


def test_comments_and_pis(parser):
    root = parse_tree(
        "<node>a<!--b--><?c d?>e</node>", ParserOptions(preferred_parsers=parser)
    )
    first, comment, pi, last = root.child_nodes
    assert first.content == "a"
    assert isinstance(comment, CommentNode)
    assert comment.content == "b"
    assert isinstance(pi, ProcessingInstructionNode)
    assert (pi.target, pi.content) == ("c", "d")
    assert last.content == "e"


@pytest.mark.parametrize("as_bytes", (True, False))
@pytest.mark.parametrize(
    "in_",
    (
        "<root><a/>b<c/></root>",
        "<root>a<b/></root>",
        "<root><a/>b</root>",
        "<root>a<b/>c</root>",
        "<root><a>c</a>b<e/></root>",
        "<root><a><c/></a>b<e/></root>",
        "<root><a>c<d/></a>b<e/></root>",
        "<root><a><c/>d</a>b<e/></root>",
        "<node>foo<child><!--bar--></child></node>",
    ),
)
def test_parse_tree(in_, as_bytes, parser):
    data = in_.encode() if as_bytes else in_
    root = parse_tree(data, options=ParserOptions(preferred_parsers=parser))
    assert root.serialize() == in_


def test_entities_and_cdata(parser):
    root = parse_tree(
        "<root>&lt;&#x41;<![CDATA[<b>]]></root>",
        ParserOptions(preferred_parsers=parser),
    )
    assert root.string_value == "<A<b>"


def test_parse_nodes(parser):
    nodes = list(
        parse_nodes("<!-- a --><root/>", ParserOptions(preferred_parsers=parser))
    )
    assert isinstance(nodes[0], CommentNode)
    assert isinstance(nodes[1], ElementNode)


def test_parse_document(parser):
    document = parse_document(
        "<?pi?>\n<root>text</root>\n",
        ParserOptions(preferred_parsers=parser),
        base_url="file:///tmp/doc.xml",
    )
    assert document.base_url == "file:///tmp/doc.xml"
    assert len(document) == 2
    assert isinstance(document.first_child, ProcessingInstructionNode)
    assert document.document_element.string_value == "text"


def test_redundant_xml_ids(parser):
    if parser == "lxml":
        pytest.skip("libxml2 reports redundant ids on its own terms.")
    with pytest.raises(ParsingValidityError):
        parse_tree(
            "<root xml:id='a'><node xml:id='a'/></root>",
            options=ParserOptions(preferred_parsers=parser),
        )


def test_unparsed_entities(parser):
    if parser == "lxml":
        pytest.skip("The lxml parser doesn't report unparsed entities.")
    document = parse_document(
        """\
<!DOCTYPE root [
  <!NOTATION gif SYSTEM "image/gif">
  <!ENTITY logo SYSTEM "logo.gif" NDATA gif>
]>
<root/>""",
        ParserOptions(preferred_parsers=parser),
    )
    assert document.unparsed_entities["logo"].endswith("logo.gif")


def test_text_keeps_whitespace(parser):
    root = parse_tree(
        "<root>\n  <a/>\n</root>", ParserOptions(preferred_parsers=parser)
    )
    assert [type(x) for x in root.child_nodes] == [TextNode, ElementNode, TextNode]


def test_document_without_element(parser):
    with pytest.raises(ParsingProcessingError):
        parse_document("<!-- nothing -->", ParserOptions(preferred_parsers=parser))


@pytest.mark.parametrize(
    "data", ("<root>text</root>tail", "<a/><b/>"), ids=("text", "two-roots")
)
def test_invalid_documents(data, parser):
    with pytest.raises((ParsingProcessingError, ParsingValidityError)):
        parse_document(data, ParserOptions(preferred_parsers=parser))


def test_syntax_errors_are_wrapped(parser):
    with pytest.raises(ParsingProcessingError):
        parse_tree("<root><a></root>", ParserOptions(preferred_parsers=parser))
