import pytest

from _transmute.exceptions import XPathParsingError, XPathUnsupportedStandardFeature
from _transmute.xpath.ast import (
    BinaryExpr,
    FunctionCallExpr,
    IfExpr,
    LiteralExpr,
    LocationExpr,
    NameTest,
    NumberExpr,
    StepExpr,
    UnaryMinusExpr,
    UnionExpr,
    VariableExpr,
)
from _transmute.xpath.parser import parse


def test_root():
    result = parse("/")
    assert isinstance(result, LocationExpr)
    assert result.absolute
    assert not result.steps


def test_abbreviated_descendant_step():
    result = parse("//a")
    assert isinstance(result, LocationExpr)
    assert result.absolute
    assert len(result.steps) == 1
    step = result.steps[0]
    assert isinstance(step, StepExpr)
    assert step.axis.name == "descendant"
    assert isinstance(step.node_test, NameTest)


def test_positional_descendant_step_is_kept_apart():
    result = parse("//a[1]")
    assert isinstance(result, LocationExpr)
    assert [x.axis.name for x in result.steps] == ["descendant-or-self", "child"]


@pytest.mark.parametrize(
    ("expression", "axes"),
    (
        ("a/b", ["child", "child"]),
        ("../a", ["parent", "child"]),
        ("@id", ["attribute"]),
        ("./a", ["self", "child"]),
        ("ancestor-or-self::node()", ["ancestor-or-self"]),
        ("following-sibling::*[1]", ["following-sibling"]),
    ),
)
def test_axes(expression, axes):
    result = parse(expression)
    assert isinstance(result, LocationExpr)
    assert not result.absolute
    assert [x.axis.name for x in result.steps] == axes


@pytest.mark.parametrize(
    ("expression", "positional"),
    (
        ("a[1]", True),
        ("a[last()]", True),
        ("a[position() > 1]", True),
        ("a[@b]", False),
        ("a[b = 'c']", False),
        ("a[@b][2]", True),
    ),
)
def test_positional_predicates(expression, positional):
    step = parse(expression).steps[0]
    assert step.has_positional_predicate is positional


@pytest.mark.parametrize(
    ("expression", "type_"),
    (
        ("1 + 2", BinaryExpr),
        ("a or b", BinaryExpr),
        ("-1", UnaryMinusExpr),
        ("'foo'", LiteralExpr),
        ("42", NumberExpr),
        ("$foo", VariableExpr),
        ("concat('a', 'b')", FunctionCallExpr),
        ("a | b", UnionExpr),
        ("if (a) then b else c", IfExpr),
    ),
)
def test_expression_types(expression, type_):
    assert isinstance(parse(expression), type_)


def test_operator_precedence():
    result = parse("1 + 2 * 3")
    assert isinstance(result, BinaryExpr)
    assert result.operator == "+"
    assert isinstance(result.right, BinaryExpr)
    assert result.right.operator == "*"


def test_fn_prefix_is_dropped():
    result = parse("fn:string(.)")
    assert isinstance(result, FunctionCallExpr)
    assert result.name == "string"


def test_parse_is_cached():
    assert parse("a/b/c") is parse("a/b/c")


@pytest.mark.parametrize(
    "expression",
    (
        "",
        "a[",
        "foo(",
        "1 +",
        "a b",
        "child::",
        "unknown-function()",
        "wrong-axis::a",
    ),
)
def test_invalid_expressions(expression):
    with pytest.raises(XPathParsingError):
        parse(expression)


@pytest.mark.parametrize(
    "expression",
    ("namespace::*", "concat('a', ?)", "schema-element(a)"),
)
def test_unsupported_features(expression):
    with pytest.raises(XPathUnsupportedStandardFeature):
        parse(expression)


def test_error_message_carries_the_expression():
    with pytest.raises(XPathParsingError) as exception_info:
        parse("a[[")
    assert exception_info.value.expression == "a[["
