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

"""
Attribute value templates and text value templates contain XPath expressions in curly
brackets that are replaced with their results. Literal brackets are escaped by doubling
them.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from _transmute.exceptions import XSLTValidationError
from _transmute.xpath.parser import parse
from _transmute.xpath.values import NodeSetValue, atomize

if TYPE_CHECKING:
    from collections.abc import Sequence

    from _transmute.xpath.ast import Expr
    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Value


def _expression_end(template: str, start: int) -> int:
    # returns the index of the bracket that closes an expression
    depth = 0
    quote = None
    index = start
    while index < len(template):
        character = template[index]
        if quote is not None:
            if character == quote:
                quote = None
        elif character in "'\"":
            quote = character
        elif character == "{":
            depth += 1
        elif character == "}":
            if depth == 0:
                return index
            depth -= 1
        index += 1
    raise XSLTValidationError(
        f"Missing closing curly bracket in the value template `{template}`."
    )


@lru_cache(256)
def parse_value_template(template: str) -> tuple[str | Expr, ...]:
    """
    Splits a value template into literal strings and the parsed expressions.

    :raises XSLTValidationError: If brackets are unbalanced.
    """
    parts: list[str | Expr] = []
    literal: list[str] = []
    index = 0

    while index < len(template):
        character = template[index]
        if character == "{":
            if template.startswith("{{", index):
                literal.append("{")
                index += 2
                continue
            end = _expression_end(template, index + 1)
            if literal:
                parts.append("".join(literal))
                literal.clear()
            parts.append(parse(template[index + 1 : end]))
            index = end + 1
        elif character == "}":
            if not template.startswith("}}", index):
                raise XSLTValidationError(
                    f"A single closing curly bracket in the value template "
                    f"`{template}` must be doubled."
                )
            literal.append("}")
            index += 2
        else:
            literal.append(character)
            index += 1

    if literal:
        parts.append("".join(literal))
    return tuple(parts)


def value_to_string(value: Value, xpath_version: float) -> str:
    """
    Converts an expression's result to a string, since XPath 2.0 all items are
    atomized and joined with a space.
    """
    if xpath_version >= 2.0 and isinstance(value, NodeSetValue):
        return " ".join(atomize(x).to_string() for x in value.items)
    return value.to_string()


def evaluate_parts(parts: Sequence[str | Expr], context: ExprContext) -> str:
    result = []
    for part in parts:
        if isinstance(part, str):
            result.append(part)
        else:
            with context.suppressed_first_match():
                value = part.evaluate(context)
            result.append(value_to_string(value, context.xpath_version))
    return "".join(result)


def evaluate_value_template(template: str, context: ExprContext) -> str:
    """Expands all expressions in a value template."""
    if "{" not in template and "}" not in template:
        return template
    return evaluate_parts(parse_value_template(template), context)


__all__ = (
    evaluate_value_template.__name__,
    parse_value_template.__name__,
    value_to_string.__name__,
)
