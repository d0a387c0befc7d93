import pytest

from _transmute.exceptions import XSLTValidationError
from _transmute.xpath import evaluate
from _transmute.xpath.context import ExprContext
from _transmute.xslt.patterns import compile_pattern
from transmute import parse_tree


SAMPLE = """\
<r xmlns:p="http://p">\
<a><b id="1"/><!-- c --></a>\
<b id="2"/>\
<c>t</c>\
<p:d/>\
</r>"""


def matches(pattern, node, namespaces=None):
    context = ExprContext((node,), namespaces=namespaces, xpath_version=3.1)
    return compile_pattern(pattern).matches(node, context)


@pytest.mark.parametrize(
    ("pattern", "target", "expected"),
    (
        ("b", "a/b", True),
        ("a/b", "a/b", True),
        ("a/b", "b", False),
        ("r//b", "a/b", True),
        ("r//b", "b", True),
        ("/r/b", "b", True),
        ("/r/b", "a/b", False),
        ("//b", "a/b", True),
        ("b[@id = '2']", "b", True),
        ("b[@id = '2']", "a/b", False),
        ("*", "c", True),
        ("a | c", "c", True),
        ("a | c", "b", False),
        ("r/*[2]", "b", True),
        ("r/*[2]", "a", False),
        ("b[last()]", "a/b", True),
        ("@id", "b/@id", True),
        ("b/@id", "a/b/@id", True),
        ("a/@id", "b/@id", False),
        ("@*", "b/@id", True),
        ("b", "b/@id", False),
        ("text()", "c/text()", True),
        ("c/node()", "c/text()", True),
        ("comment()", "a/comment()", True),
        ("node()", "a", True),
        ("id('2')", "b", True),
        ("id('2')", "a/b", False),
        ("p:d", "p:d", True),
        ("p:*", "p:d", True),
        ("d", "p:d", False),
        ("*:d", "p:d", True),
    ),
)
def test_matches(pattern, target, expected):
    root = parse_tree(SAMPLE)
    node = evaluate(root, target, namespaces={"p": "http://p"}).first
    assert node is not None
    assert matches(pattern, node, {"p": "http://p"}) is expected


def test_root_pattern():
    root = parse_tree(SAMPLE)
    assert matches("/", root.parent)
    assert not matches("/", root)
    assert not matches("*", root.parent)
    assert matches("node()", root)


def test_detached_nodes():
    root = parse_tree("<r><a/></r>")
    a = root.first_child.detach()
    assert matches("a", a)
    assert not matches("r/a", a)
    assert not matches("/a", a)


@pytest.mark.parametrize(
    ("pattern", "expected"),
    (
        ("b", 0.0),
        ("@id", 0.0),
        ("processing-instruction('x')", 0.0),
        ("*", -0.5),
        ("@*", -0.5),
        ("node()", -0.5),
        ("text()", -0.5),
        ("p:*", -0.25),
        ("*:b", -0.25),
        ("/", -0.5),
        ("a/b", 0.5),
        ("//b", 0.5),
        ("b[1]", 0.5),
        ("id('x')", 0.5),
    ),
)
def test_default_priority(pattern, expected):
    (alternative,) = compile_pattern(pattern).alternatives
    assert alternative.default_priority == expected


def test_union_alternatives():
    pattern = compile_pattern("a | b/c | text()")
    assert [x.default_priority for x in pattern.alternatives] == [0.0, 0.5, -0.5]
    assert [x.right_to_left for x in pattern.alternatives] == [True, True, True]
    assert not compile_pattern("b[2]").alternatives[0].right_to_left


def test_self_referential_patterns():
    assert compile_pattern("/..").is_self_referential()
    assert not compile_pattern("a").is_self_referential()


def test_invalid_pattern():
    with pytest.raises(XSLTValidationError):
        compile_pattern("a[")
