import math

import pytest

from _transmute.exceptions import (
    XPathEvaluationError,
    XPathParsingError,
    XSLTDynamicError,
)
from _transmute.plugins import plugin_manager
from _transmute.xpath import evaluate, evaluate_xpath
from _transmute.xpath.values import (
    BooleanValue,
    NodeSetValue,
    NumberValue,
    StringValue,
)
from transmute import parse_tree


SAMPLE = """\
<doc xml:lang="en-GB">
  <item id="a" n="3">Three</item>
  <item id="b" n="1">One</item>
  <item id="c" n="2">Two</item>
  <note xml:lang="de">Anmerkung</note>
</doc>"""


def strings(*values):
    return tuple(StringValue(x) for x in values)


def numbers(*values):
    return tuple(NumberValue(x) for x in values)


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("substring('12345', 2, 3)", "234"),
        ("substring('12345', 1.5, 2.6)", "234"),
        ("substring('12345', 0, 3)", "12"),
        ("substring('12345', 0 div 0, 3)", ""),
        ("substring('12345', -42, 1 div 0)", "12345"),
        ("substring-before('1999/04/01', '/')", "1999"),
        ("substring-after('1999/04/01', '/')", "04/01"),
        ("substring-after('1999', '-')", ""),
        ("normalize-space('  a \n b  ')", "a b"),
        ("translate('bar', 'abc', 'ABC')", "BAr"),
        ("translate('--aaa--', 'abc-', 'ABC')", "AAA"),
        ("string(1.0)", "1"),
        ("string(-0.5)", "-0.5"),
        ("string(1 div 0)", "Infinity"),
        ("string(true())", "true"),
        ("concat('a', 1, true())", "a1true"),
        ("upper-case('abc')", "ABC"),
        ("lower-case('ABC')", "abc"),
        ("string-join(('a', 'b', 'c'), ', ')", "a, b, c"),
        ("string-join(('a', 'b'))", "ab"),
        ("replace('abracadabra', 'bra', '*')", "a*cada*"),
        ("replace('abcd', '(b)(c)', '$2$1')", "acbd"),
        ("replace('a.b', '.', '-', 'q')", "a-b"),
        ("codepoints-to-string((72, 105))", "Hi"),
        ("encode-for-uri('a b/c')", "a%20b%2Fc"),
        ("normalize-unicode('é')", "é"),
        ("format-integer(42, '0001')", "0042"),
        ("format-integer(-3, 'i')", "-iii"),
        ("serialize(item[2])", '<item id="b" n="1">One</item>'),
        ("name(item[1])", "item"),
        ("local-name(@xml:lang)", "lang"),
        ("lowercase('PLUGIN')", "plugin"),
    ),
)
def test_string_results(expression, expected):
    root = parse_tree(SAMPLE)
    assert evaluate_xpath(expression, root) == StringValue(expected)


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("string-length('abc')", 3),
        ("string-length(item[1])", 5),
        ("count(item)", 3),
        ("sum(item/@n)", 6),
        ("sum(())", 0),
        ("floor(2.7)", 2),
        ("ceiling(2.1)", 3),
        ("round(2.5)", 3),
        ("round(-2.5)", -2),
        ("round(3.14159, 2)", 3.14),
        ("abs(-3)", 3),
        ("max((1, 3, 2))", 3),
        ("min(item/@n)", 1),
        ("avg((1, 2, 3))", 2),
        ("number('  12 ')", 12),
        ("compare('a', 'b')", -1),
        ("math:pow(2, 10)", 1024),
        ("math:sqrt(16)", 4),
        ("fold-left((1, 2, 3), 0, function($a, $b) { $a + $b })", 6),
        ("array:size(array:append([1], 2))", 2),
        ("map:get(map:put(map{}, 'k', 5), 'k')", 5),
        ("head((4, 5))", 4),
        ("xs:integer('7') + 1", 8),
    ),
)
def test_number_results(expression, expected):
    root = parse_tree(SAMPLE)
    assert evaluate_xpath(expression, root) == NumberValue(expected)


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("starts-with('tattoo', 'tat')", True),
        ("contains('tattoo', 'tt')", True),
        ("ends-with('tattoo', 'oo')", True),
        ("boolean('')", False),
        ("boolean('false')", True),
        ("boolean(0)", False),
        ("not(item)", False),
        ("lang('en')", True),
        ("note/lang('en')", False),
        ("note/lang('de')", True),
        ("matches('abracadabra', '^a.*a$')", True),
        ("matches('Abc', 'abc', 'i')", True),
        ("empty(())", True),
        ("exists(item)", True),
        ("deep-equal((1, 2), (1, 2))", True),
        ("contains-token('a b c', 'b')", True),
        ("map:contains(map{1: 'x'}, 1)", True),
        ("has-children(item[1])", True),
        ("is-last()", True),
    ),
)
def test_boolean_results(expression, expected):
    root = parse_tree(SAMPLE)
    assert evaluate_xpath(expression, root) == BooleanValue(expected)


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("tokenize('a, b,c', ',\\s*')", strings("a", "b", "c")),
        ("tokenize('  a  b ')", strings("a", "b")),
        ("distinct-values((1, 2, 1, 3))", numbers(1, 2, 3)),
        ("index-of((10, 20, 10), 10)", numbers(1, 3)),
        ("subsequence((1, 2, 3, 4), 2, 2)", numbers(2, 3)),
        ("reverse((1, 2, 3))", numbers(3, 2, 1)),
        ("insert-before((1, 3), 2, 2)", numbers(1, 2, 3)),
        ("remove((1, 2, 3), 2)", numbers(1, 3)),
        ("tail((1, 2, 3))", numbers(2, 3)),
        ("sort((3, 1, 2))", numbers(1, 2, 3)),
        ("sort(('b', 'a'))", strings("a", "b")),
        ("for-each((1, 2), function($x) { $x * $x })", numbers(1, 4)),
        ("filter(1 to 5, function($x) { $x mod 2 = 0 })", numbers(2, 4)),
        ("string-to-codepoints('Hi')", numbers(72, 105)),
        ("1 to 3", numbers(1, 2, 3)),
    ),
)
def test_sequence_results(expression, expected):
    root = parse_tree(SAMPLE)
    result = evaluate_xpath(expression, root)
    assert isinstance(result, NodeSetValue)
    assert result.items == expected


def test_sort_with_key():
    root = parse_tree(SAMPLE)
    result = evaluate(root, "sort(item, (), function($i) { number($i/@n) })")
    assert [x.string_value for x in result] == ["One", "Two", "Three"]


def test_id():
    root = parse_tree(SAMPLE)
    result = evaluate(root, "id('c a')")
    assert [x["id"] for x in result] == ["a", "c"]
    assert evaluate(root, "id('x')").size == 0


def test_position_and_last():
    root = parse_tree(SAMPLE)
    result = evaluate(root, "item[position() = last()]")
    assert result.first["id"] == "c"
    result = evaluate(root, "item[is-last()]")
    assert result.first["id"] == "c"


def test_nan_results():
    root = parse_tree(SAMPLE)
    assert math.isnan(evaluate_xpath("number('abc')", root).value)
    assert math.isnan(evaluate_xpath("sum(('a', 1))", root).value)


def test_empty_results():
    root = parse_tree(SAMPLE)
    for expression in ("floor(())", "abs(())", "avg(())", "compare((), 'a')"):
        assert evaluate_xpath(expression, root) == NodeSetValue(())


def test_data_and_root():
    root = parse_tree(SAMPLE)
    assert evaluate_xpath("data(item[2])", root) == StringValue("One")
    assert evaluate(root, "root(item[1])").first is root.parent


@pytest.mark.parametrize(
    ("expression", "code"),
    (
        ("replace('abc', '.*', 'x')", "FORX0003"),
        ("matches('a', '(')", "FORX0002"),
        ("matches('a', 'a', 'z')", "FORX0001"),
        ("replace('a', 'a', '$')", "FORX0004"),
        ("exactly-one((1, 2))", "FORG0005"),
        ("zero-or-one((1, 2))", "FORG0003"),
        ("one-or-more(())", "FORG0004"),
        ("codepoints-to-string(-1)", "FOCH0001"),
    ),
)
def test_function_errors(expression, code):
    root = parse_tree(SAMPLE)
    with pytest.raises(XPathEvaluationError) as exception_info:
        evaluate_xpath(expression, root)
    assert exception_info.value.code == code


def test_error_function():
    root = parse_tree(SAMPLE)
    with pytest.raises(XSLTDynamicError) as exception_info:
        evaluate_xpath("error('err:MY0001', 'Boom')", root)
    assert exception_info.value.code == "MY0001"

    with pytest.raises(XSLTDynamicError) as exception_info:
        evaluate_xpath("error()", root)
    assert exception_info.value.code == "FOER0000"


@pytest.mark.parametrize(
    "expression",
    ("substring('a')", "count(1, 2)", "true(1)", "not()"),
)
def test_arity_is_checked_when_parsing(expression):
    with pytest.raises(XPathParsingError):
        evaluate_xpath(expression, parse_tree("<r/>"))


def test_custom_function_with_optional_argument():
    @plugin_manager.register_xpath_function("greet")
    def greet(context, name=None):
        return f"Hello {'World' if name is None else name.to_string()}"

    try:
        root = parse_tree("<r/>")
        assert evaluate_xpath("greet()", root) == StringValue("Hello World")
        assert evaluate_xpath("greet('you')", root) == StringValue("Hello you")
    finally:
        del plugin_manager.xpath_functions["greet"]


def test_function_items():
    root = parse_tree(SAMPLE)
    assert evaluate_xpath("function-arity(substring#2)", root) == NumberValue(2)
    assert evaluate_xpath("function-name(count#1)", root) == StringValue("count")
    assert evaluate_xpath(
        "apply(concat#3, ['a', 'b', 'c'])", root
    ) == StringValue("abc")
    assert evaluate_xpath("function-lookup('nope', 1)", root) == NodeSetValue(())
