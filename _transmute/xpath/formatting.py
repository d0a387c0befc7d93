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
Formatting of numbers for the ``format-number()`` function and for ``xsl:number``.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_EVEN, Decimal
from typing import TYPE_CHECKING, NamedTuple, Optional

from _transmute.exceptions import XPathEvaluationError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Final


ROMAN_NUMERALS: Final = (
    (1000, "m"),
    (900, "cm"),
    (500, "d"),
    (400, "cd"),
    (100, "c"),
    (90, "xc"),
    (50, "l"),
    (40, "xl"),
    (10, "x"),
    (9, "ix"),
    (5, "v"),
    (4, "iv"),
    (1, "i"),
)


class DecimalFormat(NamedTuple):
    """The properties of an ``xsl:decimal-format`` declaration."""

    decimal_separator: str = "."
    grouping_separator: str = ","
    infinity: str = "Infinity"
    minus_sign: str = "-"
    nan: str = "NaN"
    percent: str = "%"
    per_mille: str = "‰"
    zero_digit: str = "0"
    digit: str = "#"
    pattern_separator: str = ";"


DEFAULT_DECIMAL_FORMAT: Final = DecimalFormat()


# format-number


class _SubPicture(NamedTuple):
    prefix: str
    suffix: str
    minimum_integer_digits: int
    minimum_fraction_digits: int
    maximum_fraction_digits: int
    grouping_positions: tuple[int, ...]
    multiplier: int


def _parse_sub_picture(picture: str, settings: DecimalFormat) -> _SubPicture:
    active = {
        settings.decimal_separator,
        settings.grouping_separator,
        settings.digit,
        settings.zero_digit,
    }
    digits = {settings.digit, settings.zero_digit}

    start = next((i for i, c in enumerate(picture) if c in digits), None)
    if start is None:
        raise XPathEvaluationError(
            f"The picture string `{picture}` contains no digit sign.", code="FODF1310"
        )
    # a leading decimal or grouping separator belongs to the mantissa
    while start > 0 and picture[start - 1] in active:
        start -= 1
    end = start
    while end < len(picture) and picture[end] in active:
        end += 1

    prefix, mantissa, suffix = picture[:start], picture[start:end], picture[end:]
    multiplier = 1
    if settings.percent in prefix + suffix:
        multiplier = 100
    elif settings.per_mille in prefix + suffix:
        multiplier = 1000

    if mantissa.count(settings.decimal_separator) > 1:
        raise XPathEvaluationError(
            f"The picture string `{picture}` contains more than one decimal "
            "separator.",
            code="FODF1310",
        )
    integer_part, _, fraction_part = mantissa.partition(settings.decimal_separator)

    grouping_positions = []
    digits_seen = 0
    for character in reversed(integer_part):
        if character == settings.grouping_separator:
            grouping_positions.append(digits_seen)
        else:
            digits_seen += 1

    return _SubPicture(
        prefix=prefix,
        suffix=suffix,
        minimum_integer_digits=integer_part.count(settings.zero_digit),
        minimum_fraction_digits=fraction_part.count(settings.zero_digit),
        maximum_fraction_digits=sum(1 for c in fraction_part if c in digits),
        grouping_positions=tuple(p for p in grouping_positions if p > 0),
        multiplier=multiplier,
    )


def _group_digits(digits: str, positions: Sequence[int], separator: str) -> str:
    if not positions:
        return digits

    first = min(positions)
    regular = all(p % first == 0 for p in positions) and sorted(positions) == [
        first * (i + 1) for i in range(len(positions))
    ]
    if regular:
        positions = range(first, len(digits), first)

    result = digits
    for position in sorted(positions):
        if 0 < position < len(digits):
            index = len(digits) - position
            result = result[:index] + separator + result[index:]
    return result


def format_number(
    number: float, picture: str, settings: DecimalFormat = DEFAULT_DECIMAL_FORMAT
) -> str:
    """
    Formats a number according to a picture string as described for the
    ``format-number()`` function.

    >>> format_number(1234.5, "#,##0.00")
    '1,234.50'
    >>> format_number(0.25, "#%")
    '25%'
    """
    if math.isnan(number):
        return settings.nan

    sub_pictures = picture.split(settings.pattern_separator)
    if len(sub_pictures) > 2:
        raise XPathEvaluationError(
            "A picture string must not contain more than two sub-pictures.",
            code="FODF1310",
        )

    negative = number < 0 or (number == 0 and math.copysign(1, number) < 0)
    if negative and len(sub_pictures) == 2:
        sub_picture = _parse_sub_picture(sub_pictures[1], settings)
        sign = ""
    else:
        sub_picture = _parse_sub_picture(sub_pictures[0], settings)
        sign = settings.minus_sign if negative else ""

    number = abs(number) * sub_picture.multiplier

    if math.isinf(number):
        return f"{sign}{sub_picture.prefix}{settings.infinity}{sub_picture.suffix}"

    quantized = Decimal(repr(number)).quantize(
        Decimal(1).scaleb(-sub_picture.maximum_fraction_digits),
        rounding=ROUND_HALF_EVEN,
    )
    integer_digits, _, fraction_digits = format(quantized, "f").partition(".")

    integer_digits = integer_digits.lstrip("0")
    integer_digits = integer_digits.rjust(sub_picture.minimum_integer_digits, "0")
    fraction_digits = fraction_digits.rstrip("0").ljust(
        sub_picture.minimum_fraction_digits, "0"
    )
    if not integer_digits and not fraction_digits:
        integer_digits = "0"

    if sign and not integer_digits.strip("0") and not fraction_digits.strip("0"):
        sign = ""

    integer_digits = _group_digits(
        integer_digits, sub_picture.grouping_positions, settings.grouping_separator
    )

    result = integer_digits
    if fraction_digits:
        result += settings.decimal_separator + fraction_digits

    if settings.zero_digit != "0":
        offset = ord(settings.zero_digit) - ord("0")
        result = "".join(
            chr(ord(c) + offset) if "0" <= c <= "9" else c for c in result
        )

    return f"{sign}{sub_picture.prefix}{result}{sub_picture.suffix}"


# xsl:number


def _alphabetic(number: int, alphabet: str) -> str:
    result = ""
    while number > 0:
        number, remainder = divmod(number - 1, len(alphabet))
        result = alphabet[remainder] + result
    return result


def _roman(number: int) -> str:
    result = ""
    for value, numeral in ROMAN_NUMERALS:
        while number >= value:
            result += numeral
            number -= value
    return result


def _format_token(
    number: int,
    token: str,
    grouping_separator: Optional[str],
    grouping_size: int,
) -> str:
    if number < 1 and token in ("a", "A", "i", "I"):
        return str(number)

    match token:
        case "a":
            return _alphabetic(number, "abcdefghijklmnopqrstuvwxyz")
        case "A":
            return _alphabetic(number, "ABCDEFGHIJKLMNOPQRSTUVWXYZ")
        case "i":
            return _roman(number) if number < 4000 else str(number)
        case "I":
            return _roman(number).upper() if number < 4000 else str(number)

    width = len(token) if token.isdigit() else 1
    digits = str(number).rjust(width, "0")
    if grouping_separator and grouping_size > 0:
        digits = _group_digits(digits, (grouping_size,), grouping_separator)
    return digits


def _tokenize_format(format: str) -> tuple[str, list[str], list[str], str]:
    """
    Splits a format string into a prefix, the format tokens, the separators between
    them and a suffix.
    """
    tokens: list[str] = []
    separators: list[str] = []
    current = ""
    current_is_token = False

    for character in format:
        is_token_character = character.isalnum()
        if current and is_token_character != current_is_token:
            (tokens if current_is_token else separators).append(current)
            current = ""
        current += character
        current_is_token = is_token_character
    if current:
        (tokens if current_is_token else separators).append(current)

    if not tokens:
        return "", ["1"], [], format

    prefix = ""
    if format and not format[0].isalnum():
        prefix = separators.pop(0)
    suffix = ""
    if len(separators) >= len(tokens):
        suffix = separators.pop()
    return prefix, tokens, separators, suffix


def format_number_sequence(
    numbers: Sequence[int],
    format: str = "1",
    grouping_separator: Optional[str] = None,
    grouping_size: int = 0,
) -> str:
    """
    Formats a sequence of numbers as ``xsl:number`` does, e.g. ``[1, 2]`` with the
    format ``1.a`` results in ``1.b``.
    """
    prefix, tokens, separators, suffix = _tokenize_format(format or "1")
    parts = []
    for index, number in enumerate(numbers):
        if index:
            if index - 1 < len(separators):
                parts.append(separators[index - 1])
            else:
                parts.append(separators[-1] if separators else ".")
        token = tokens[index] if index < len(tokens) else tokens[-1]
        parts.append(_format_token(number, token, grouping_separator, grouping_size))
    return prefix + "".join(parts) + suffix


__all__ = (
    DecimalFormat.__name__,
    format_number.__name__,
    format_number_sequence.__name__,
)
