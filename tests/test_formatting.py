import math

import pytest

from _transmute.exceptions import XPathEvaluationError
from _transmute.xpath.formatting import (
    DecimalFormat,
    format_number,
    format_number_sequence,
)


@pytest.mark.parametrize(
    ("number", "picture", "expected"),
    (
        (1234.5, "#,##0.00", "1,234.50"),
        (1234567, "#,###", "1,234,567"),
        (1234567890, "#,##0", "1,234,567,890"),
        (1234567, "#,##,###", "12,34,567"),
        (0.25, "#%", "25%"),
        (0.5, "#‰", "500‰"),
        (3.14159, "0.00", "3.14"),
        (3, "000", "003"),
        (0.5, "#", "0"),
        (2.5, "#", "2"),
        (3.5, "#", "4"),
        (-3, "0", "-3"),
        (-3, "0;(0)", "(3)"),
        (-0.0001, "0.00", "0.00"),
        (12.3, "$#0.0#", "$12.3"),
        (math.nan, "0", "NaN"),
        (math.inf, "0", "Infinity"),
        (-math.inf, "0", "-Infinity"),
    ),
)
def test_format_number(number, picture, expected):
    assert format_number(number, picture) == expected


def test_format_number_with_decimal_format():
    settings = DecimalFormat(decimal_separator=",", grouping_separator=".")
    assert format_number(1234.5, "#.##0,00", settings) == "1.234,50"

    settings = DecimalFormat(nan="n/a", infinity="∞")
    assert format_number(math.nan, "0", settings) == "n/a"
    assert format_number(math.inf, "0", settings) == "∞"


@pytest.mark.parametrize(
    "picture", ("abc", "0.0.0", "0;0;0"), ids=("no digit", "two separators", "three")
)
def test_invalid_pictures(picture):
    with pytest.raises(XPathEvaluationError) as exception_info:
        format_number(1, picture)
    assert exception_info.value.code == "FODF1310"


@pytest.mark.parametrize(
    ("numbers", "format", "expected"),
    (
        ([1, 2], "1.a", "1.b"),
        ([4], "i", "iv"),
        ([1999], "I", "MCMXCIX"),
        ([28], "a", "ab"),
        ([3], "A", "C"),
        ([3], "001", "003"),
        ([1, 2, 3], "1.", "1.2.3."),
        ([5], "(1)", "(5)"),
        ([1, 2, 3], "", "1.2.3"),
        ([0], "a", "0"),
    ),
)
def test_format_number_sequence(numbers, format, expected):
    assert format_number_sequence(numbers, format) == expected


def test_format_number_sequence_with_grouping():
    assert format_number_sequence([1234567], "1", ",", 3) == "1,234,567"
    assert format_number_sequence([1234567], "1", " ", 0) == "1234567"
