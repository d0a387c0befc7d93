import re

import pytest

from _transmute.exceptions import XPathParsingError
from _transmute.xpath.tokenizer import (
    TokenType,
    named_group,
    string_pattern,
    tokenize,
    unquote_string,
)


@pytest.mark.parametrize(
    ("in_", "out"),
    (
        ("foo", ""),
        ("'foo'", "'foo'"),
        ("'foo", ""),
        ("foo'", ""),
        ("bar'foo'bar", "'foo'"),
        ("'fo''o'", "'fo''o'"),
        ('"fo""o"', '"fo""o"'),
        ("\"it's\"", "\"it's\""),
    ),
)
def test_string_pattern(in_, out):
    result = re.compile(named_group("STRING", string_pattern), re.UNICODE).search(in_)
    if out:
        assert result is not None
        assert result.group("STRING") == out
    else:
        assert result is None


@pytest.mark.parametrize(
    ("in_", "out"),
    (
        (
            "starts-with(@foo,'a(b(c)')",
            ["starts-with", "(", "@", "foo", ",", "'a(b(c)'", ")"],
        ),
        (
            './/a[@href and not(starts-with(@href, "https://"))]',
            [
                ".",
                "//",
                "a",
                "[",
                "@",
                "href",
                "and",
                "not",
                "(",
                "starts-with",
                "(",
                "@",
                "href",
                ",",
                '"https://"',
                ")",
                ")",
                "]",
            ],
        ),
        ('.//pb[@n="I"]', [".", "//", "pb", "[", "@", "n", "=", '"I"', "]"]),
        ("$a || $b", ["$", "a", "||", "$", "b"]),
        ("map { 'a' : 1 }", ["map", "{", "'a'", ":", "1", "}"]),
        ("let $x := 1 return $x", ["let", "$", "x", ":=", "1", "return", "$", "x"]),
        ("1 (: a comment :) + 2", ["1", "+", "2"]),
        ("Q{urn:x}local", ["Q{urn:x}", "local"]),
        ("$f => upper-case()", ["$", "f", "=>", "upper-case", "(", ")"]),
        ("1.5e3 * .5", ["1.5e3", "*", ".5"]),
    ),
)
def test_tokenize(in_, out):
    assert [x.string for x in tokenize(in_)] == out


@pytest.mark.parametrize(
    ("in_", "out"),
    (
        ("'foo'", TokenType.STRING),
        ("foo", TokenType.NAME),
        (" foo", TokenType.NAME),
        ("f-o-o", TokenType.NAME),
        ("f.oo", TokenType.NAME),
        ("/", TokenType.SLASH),
        ("//", TokenType.SLASH_SLASH),
        ("*", TokenType.ASTERISK),
        ("::", TokenType.AXIS_SEPARATOR),
        (":", TokenType.COLON),
        (":=", TokenType.ASSIGN),
        ("..", TokenType.DOT_DOT),
        (".", TokenType.DOT),
        ("[", TokenType.OPEN_BRACKET),
        ("]", TokenType.CLOSE_BRACKET),
        ("{", TokenType.OPEN_BRACE),
        ("}", TokenType.CLOSE_BRACE),
        ("@", TokenType.STRUDEL),
        ("=", TokenType.OTHER_OPS),
        ("(", TokenType.OPEN_PARENS),
        (")", TokenType.CLOSE_PARENS),
        (",", TokenType.COMMA),
        ("|", TokenType.PASEQ),
        ("||", TokenType.CONCAT),
        ("=>", TokenType.ARROW),
        ("!", TokenType.BANG),
        ("$", TokenType.DOLLAR),
        ("?", TokenType.QUESTION),
        ("#", TokenType.HASH),
        ("+", TokenType.OTHER_OPS),
        ("-", TokenType.OTHER_OPS),
        ("!=", TokenType.OTHER_OPS),
        (" != ", TokenType.OTHER_OPS),
        ("<<", TokenType.OTHER_OPS),
        ("<=", TokenType.OTHER_OPS),
        (">=", TokenType.OTHER_OPS),
        ("0", TokenType.NUMBER),
        ("99", TokenType.NUMBER),
        ("Q{}", TokenType.BRACED_URI),
    ),
)
def test_type_detection(in_, out):
    result = tokenize(in_)
    assert len(result) == 1, result
    assert result[0].type is out


@pytest.mark.parametrize("in_", (" ", "\t", "\n", "(: nothing :)"))
def test_ignored_whitespace(in_):
    assert not tokenize(in_)


def test_token_positions():
    tokens = tokenize("a = 'b'")
    assert [(x.position, x.end) for x in tokens] == [(0, 1), (2, 3), (4, 7)]


def test_unrecognized_token():
    with pytest.raises(XPathParsingError):
        tokenize("a ; b")


@pytest.mark.parametrize(
    ("in_", "out"),
    (("'foo'", "foo"), ("'it''s'", "it's"), ('"say ""hi"""', 'say "hi"')),
)
def test_unquote_string(in_, out):
    assert unquote_string(in_) == out
