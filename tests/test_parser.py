import pytest

from _transmute.parser import detect_encoding
from _transmute.plugins import plugin_manager


@pytest.mark.parametrize(
    ("stream", "encoding"),
    (
        (b"\xff\xfe\00\x00<root/>", "utf-32-le"),
        (b"\x00\x00\xfe\xff<root/>", "utf-32-be"),
        (b"\xef\xbb\xbf<root/>", "utf-8"),
        (b"\xff\xfe<root/>", "utf-16-le"),
        (b"\xfe\xff<root/>", "utf-16-be"),
        (b'<?xml version="1.0" encoding="latin-1"?><root/>', "latin-1"),
        (b"<root/>", None),
    ),
)
def test_encoding_detection(stream, encoding):
    assert detect_encoding(stream) == encoding


def test_get_parser():
    assert plugin_manager.get_parser("expat").name == "expat"
    assert plugin_manager.get_parser(("unavailable", "lxml")).name == "lxml"
    assert plugin_manager.get_parser("unavailable") is not None
