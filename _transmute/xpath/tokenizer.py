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

from __future__ import annotations

import re
from enum import Enum
from functools import lru_cache
from typing import TYPE_CHECKING, NamedTuple

from _transmute.exceptions import XPathParsingError
from _transmute.grammar import name_pattern


if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Final


# constants & data structures

TokenType: Final = Enum(
    "TokenType",
    "STRING NUMBER BRACED_URI NAME SLASH_SLASH SLASH ASTERISK AXIS_SEPARATOR ASSIGN "
    "COLON DOT_DOT DOT OPEN_BRACKET CLOSE_BRACKET OPEN_BRACE CLOSE_BRACE STRUDEL "
    "OPEN_PARENS CLOSE_PARENS COMMA CONCAT PASEQ ARROW BANG DOLLAR QUESTION HASH "
    "OTHER_OPS COMMENT WHITESPACE",
)


COMPLEMENTING_TOKEN_TYPES: Final = {
    TokenType.OPEN_BRACE: TokenType.CLOSE_BRACE,
    TokenType.OPEN_BRACKET: TokenType.CLOSE_BRACKET,
    TokenType.OPEN_PARENS: TokenType.CLOSE_PARENS,
}


class Token(NamedTuple):
    position: int
    string: str
    type: TokenType

    @property
    def end(self) -> int:
        return self.position + len(self.string)


# token definition


def alternatives(*choices: str) -> str:
    return "|".join(choices)


def named_group(name: str, content: str) -> str:
    return f"(?P<{name}>{content})"


string_pattern: Final = alternatives(
    '"(?:[^"]|"")*"',  # doubled delimiters are escaped delimiters
    "'(?:[^']|'')*'",
)

number_pattern: Final = alternatives(
    r"\d+(?:\.\d*)?(?:[eE][+-]?\d+)?",
    r"\.\d+(?:[eE][+-]?\d+)?",
)


iterate_tokens: Final = re.compile(
    alternatives(
        named_group("STRING", string_pattern),
        named_group("NUMBER", number_pattern),
        named_group("COMMENT", r"\(:.*?:\)"),
        named_group("BRACED_URI", r"Q\{[^{}]*\}"),
        named_group("NAME", name_pattern),
        named_group("SLASH_SLASH", "//"),
        named_group("SLASH", "/"),
        named_group("ASTERISK", r"\*"),
        named_group("AXIS_SEPARATOR", "::"),
        named_group("ASSIGN", ":="),
        named_group("COLON", ":"),
        named_group("DOT_DOT", r"\.\."),
        named_group("DOT", r"\."),
        named_group("OPEN_BRACKET", r"\["),
        named_group("CLOSE_BRACKET", r"\]"),
        named_group("OPEN_BRACE", r"\{"),
        named_group("CLOSE_BRACE", r"\}"),
        named_group("STRUDEL", "@"),
        named_group("OPEN_PARENS", r"\("),
        named_group("CLOSE_PARENS", r"\)"),
        named_group("COMMA", ","),
        named_group("CONCAT", r"\|\|"),
        named_group("PASEQ", r"\|"),
        named_group("ARROW", "=>"),
        named_group(
            "OTHER_OPS",
            alternatives(r"\+", "-", "!=", "<<", ">>", "<=", ">=", "<", ">", "="),
        ),
        named_group("BANG", "!"),
        named_group("DOLLAR", r"\$"),
        named_group("QUESTION", r"\?"),
        named_group("HASH", "#"),
        # https://www.w3.org/TR/REC-xml/#NT-S
        named_group("WHITESPACE", "[ \n\t\r]+"),
        named_group("ERROR", ".+"),
    ),
    re.UNICODE | re.DOTALL,
).finditer


# interface


def unquote_string(string: str) -> str:
    """Removes the delimiters of a string literal and resolves escaped delimiters."""
    delimiter = string[0]
    return string[1:-1].replace(delimiter * 2, delimiter)


@lru_cache(64)
def tokenize(expression: str) -> Sequence[Token]:
    result = []

    for match in iterate_tokens(expression):
        assert match is not None
        match token_type := match.lastgroup:
            case "ERROR":
                raise XPathParsingError(
                    expression=expression,
                    position=match.start(),
                    message="Unrecognized token.",
                )
            case "WHITESPACE" | "COMMENT":
                pass
            case _:
                assert token_type is not None
                result.append(
                    Token(
                        position=match.start(),
                        string=match.group(),
                        type=TokenType[token_type],
                    )
                )

    return tuple(result)


__all__ = (tokenize.__name__, unquote_string.__name__)  # type: ignore
