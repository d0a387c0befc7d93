import math

import pytest

from _transmute.exceptions import XPathEvaluationError
from _transmute.xpath.context import ExprContext, ScopeKey
from _transmute.xpath.values import (
    ArrayValue,
    BooleanValue,
    FunctionValue,
    MapValue,
    NodeSetValue,
    NumberValue,
    StringValue,
    atomize,
    format_number,
    key_to_value,
    make_sequence,
    parse_number,
    to_result_value,
    to_value,
)
from transmute import parse_tree


@pytest.mark.parametrize(
    ("number", "expected"),
    (
        (1.0, "1"),
        (-0.5, "-0.5"),
        (0.1 + 0.2, "0.30000000000000004"),
        (1e21, "1000000000000000000000"),
        (1e-7, "0.0000001"),
        (-0.0, "0"),
        (math.inf, "Infinity"),
        (-math.inf, "-Infinity"),
        (math.nan, "NaN"),
    ),
)
def test_format_number(number, expected):
    assert format_number(number) == expected


@pytest.mark.parametrize(
    ("string", "expected"),
    (("1", 1.0), (" -2.5 ", -2.5), (".5", 0.5), ("5.", 5.0)),
)
def test_parse_number(string, expected):
    assert parse_number(string) == expected


@pytest.mark.parametrize("string", ("", "abc", "1e3", "+1", "1 2", "Infinity"))
def test_parse_number_yields_nan(string):
    assert math.isnan(parse_number(string))


@pytest.mark.parametrize(
    ("obj", "expected"),
    (
        (True, BooleanValue(True)),
        (3, NumberValue(3)),
        ("true", BooleanValue(True)),
        ("false", BooleanValue(False)),
        ("42", NumberValue(42)),
        ("text", StringValue("text")),
        (" ", StringValue(" ")),
        (None, NodeSetValue(())),
        ([1, "a"], NodeSetValue((NumberValue(1), StringValue("a")))),
    ),
)
def test_to_value(obj, expected):
    assert to_value(obj) == expected


def test_to_value_with_mapping():
    result = to_value({"a": 1, 2: "b"})
    assert isinstance(result, MapValue)
    assert result.get("a") == NumberValue(1)
    assert result.get(2) == StringValue("b")


def test_to_value_rejects_unknown_types():
    with pytest.raises(TypeError):
        to_value(object())


def test_to_result_value_keeps_strings():
    assert to_result_value("42") == StringValue("42")
    assert to_result_value(["a", "b"]) == NodeSetValue(
        (StringValue("a"), StringValue("b"))
    )
    assert to_result_value(2.0) == NumberValue(2)


def test_make_sequence():
    assert make_sequence([StringValue("a")]) == StringValue("a")
    assert make_sequence([]) == NodeSetValue(())
    root = parse_tree("<r/>")
    assert make_sequence([root]) == NodeSetValue((root,))


def test_conversions():
    root = parse_tree("<r><a>12</a><b/></r>")
    node_set = NodeSetValue(root.child_nodes)
    assert node_set.to_string() == "12"
    assert node_set.to_number() == 12
    assert node_set.to_boolean()
    assert not NodeSetValue(()).to_boolean()
    assert NodeSetValue(()).to_string() == ""

    assert StringValue("0").to_boolean()
    assert not NumberValue(math.nan).to_boolean()
    assert BooleanValue(True).to_number() == 1
    assert ArrayValue(()).to_boolean()

    with pytest.raises(XPathEvaluationError):
        StringValue("a").to_node_set()
    with pytest.raises(XPathEvaluationError):
        NodeSetValue((NumberValue(1),)).to_node_set()


def test_structured_conversions():
    array = ArrayValue((NumberValue(1), StringValue("a")))
    assert array.to_string() == '[1,"a"]'
    assert math.isnan(array.to_number())
    assert array.to_node_set() == []

    function = FunctionValue(lambda context: StringValue(""), 0, "f")
    assert function.to_string() == "function f#0"
    assert FunctionValue(lambda context: NumberValue(1), 0).to_string() == (
        "function (anonymous)#0"
    )
    assert function.to_boolean()
    assert math.isnan(function.to_number())


def test_first_is_in_document_order():
    root = parse_tree("<r><a/><b/></r>")
    a, b = root.child_nodes
    assert NodeSetValue((b, a)).first is a


def test_equality():
    assert NumberValue(math.nan) == NumberValue(math.nan)
    assert NumberValue(1) != StringValue("1")
    assert StringValue("a") == StringValue("a")
    assert hash(NumberValue(1)) == hash(NumberValue(1.0))


def test_atomize_and_keys():
    root = parse_tree("<r>text</r>")
    assert atomize(root) == StringValue("text")
    assert atomize(NumberValue(1)) == NumberValue(1)
    assert key_to_value(1.0) == NumberValue(1)
    assert key_to_value(True) == BooleanValue(True)
    assert key_to_value("k") == StringValue("k")


def test_context_variables_are_layered():
    root = parse_tree("<r><a/><b/></r>")
    context = ExprContext((root,), variables={"x": 1})
    clone = context.clone(root.child_nodes, 1)
    clone.set_variable("y", "two")

    assert clone.item is root.child_nodes[1]
    assert clone.current_item is root
    assert clone.resolve_variable("x") == NumberValue(1)
    assert clone.resolve_variable("y") == StringValue("two")
    assert context.get_variable("y") is None
    assert clone.has_local_variable("y")
    assert not clone.has_local_variable("x")

    with pytest.raises(XPathEvaluationError) as exception_info:
        context.resolve_variable("z")
    assert exception_info.value.code == "XPST0008"


def test_unbound_variables_are_empty():
    context = ExprContext((), unbound_variables_are_empty=True)
    assert context.resolve_variable("missing") == StringValue("")


def test_context_position_is_checked():
    root = parse_tree("<r/>")
    with pytest.raises(IndexError):
        ExprContext((root,), 1)
    with pytest.raises(IndexError):
        ExprContext((root,)).clone([root], 2)


def test_context_node():
    context = ExprContext((StringValue("a"),))
    with pytest.raises(XPathEvaluationError) as exception_info:
        context.node
    assert exception_info.value.code == "XPTY0020"

    context = ExprContext(())
    assert context.item is None
    with pytest.raises(XPathEvaluationError) as exception_info:
        context.node
    assert exception_info.value.code == "XPDY0002"


def test_scope_data():
    context = ExprContext(())
    context.set_scope_data(ScopeKey.CURRENT_MODE, "mode")
    clone = context.clone()
    assert clone.get_scope_data(ScopeKey.CURRENT_MODE) == "mode"
    clone.set_scope_data(ScopeKey.CURRENT_MODE, "other")
    assert context.get_scope_data(ScopeKey.CURRENT_MODE) == "mode"
    assert clone.get_scope_data(ScopeKey.REGEX_GROUPS, ()) == ()


def test_suppressed_first_match():
    context = ExprContext((), return_on_first_match=True)
    with context.suppressed_first_match():
        assert not context.return_on_first_match
    assert context.return_on_first_match
