import pytest

from _transmute.names import (
    FUNCTION_NAMESPACES,
    XML_NAMESPACE,
    XMLNS_NAMESPACE,
    XPATH_FUNCTIONS_NAMESPACE,
    Namespaces,
    deconstruct_clark_notation,
    split_qualified_name,
)


@pytest.mark.parametrize(
    ("in_", "out"),
    (
        ("a", (None, "a")),
        ("{http://clark}a", ("http://clark", "a")),
        ("{}a", ("", "a")),
    ),
)
def test_deconstruct_clark_notation(in_, out):
    assert deconstruct_clark_notation(in_) == out


def test_deconstruct_clark_notation_with_null():
    assert deconstruct_clark_notation("a", "") == ("", "a")


@pytest.mark.parametrize(
    ("in_", "out"),
    (
        ("xsl:template", ("xsl", "template")),
        ("template", (None, "template")),
        (":template", (None, "template")),
    ),
)
def test_split_qualified_name(in_, out):
    assert split_qualified_name(in_) == out


@pytest.mark.parametrize(
    "data",
    (
        {"xml": "foo"},
        {"xmlns": "foo"},
        {"foo": XML_NAMESPACE},
        {"foo": XMLNS_NAMESPACE},
        {"": "http://a.org", None: "http://b.net"},
    ),
)
def test_invalid_namespace_declarations(data):
    with pytest.raises(ValueError):  # noqa: PT011
        Namespaces(data)


def test_invalid_namespace_type():
    with pytest.raises(TypeError):
        Namespaces(("foo", "http://foo"))


def test_namespaces():
    namespaces = Namespaces({"a": "http://a.org/", None: "http://default"})

    assert len(namespaces) == len(FUNCTION_NAMESPACES) + 4
    assert namespaces["a"] == "http://a.org/"
    assert namespaces[""] == "http://default"
    assert namespaces["xml"] == XML_NAMESPACE
    assert namespaces["fn"] == XPATH_FUNCTIONS_NAMESPACE
    assert "b" not in namespaces
    assert str(namespaces)

    assert Namespaces(namespaces) == namespaces
    assert hash(Namespaces({"a": "http://a.org/", "": "http://default"})) == hash(
        namespaces
    )

    # to hit the cache eviction in Namespaces.__init_data
    for i in range(80):
        Namespaces({"x": f"http://example.org/{i}"})


def test_function_prefixes_can_be_overridden():
    namespaces = Namespaces({"fn": "http://example.org/fn"})
    assert namespaces["fn"] == "http://example.org/fn"
    assert namespaces["map"] == FUNCTION_NAMESPACES["map"]


def test_prefix_lookup():
    namespaces = Namespaces({"foo": "ftp://super.org/", "sko": "https://extra.org/"})
    # global
    assert namespaces.lookup_prefix(XML_NAMESPACE) == "xml"
    # this namespace's scope
    assert namespaces.lookup_prefix("ftp://super.org/") == "foo"

    assert namespaces.lookup_prefix("http://void.org/") is None


@pytest.mark.parametrize("prefix_for_default", ("", None))
def test_prefix_lookup_default_namespace(prefix_for_default):
    namespace = "https://something.org/"
    namespaces = Namespaces({prefix_for_default: namespace})
    assert namespaces.lookup_prefix("https://something.org/") == ""


def test_with_declarations():
    namespaces = Namespaces({"a": "http://a.org/"})
    assert namespaces.with_declarations({}) is namespaces

    extended = namespaces.with_declarations({"a": "http://other/", "b": "http://b/"})
    assert extended["a"] == "http://other/"
    assert extended["b"] == "http://b/"
    assert namespaces["a"] == "http://a.org/"
