import pytest

from _transmute.exceptions import (
    XPathEvaluationError,
    XSLTDynamicError,
    XSLTUnsupportedFeature,
)
from tests.utils import TEXT_OUTPUT, stylesheet
from transmute import XSLTProcessor, parse_document


KEYED = '<r><i g="x">1</i><i g="y">2</i><i g="x">3</i></r>'


def value_of(expression: str, declarations: str = "") -> str:
    return (
        TEXT_OUTPUT
        + declarations
        + f'<xsl:template match="/"><xsl:value-of select="{expression}"/>'
        "</xsl:template>"
    )


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("key('k', 'x')", "13"),
        ("key('k', 'y')", "2"),
        ("key('k', r/i/@g)", "123"),
        ("key('k', 'z')", ""),
    ),
)
def test_key(expression, expected, transform):
    body = (
        TEXT_OUTPUT
        + '<xsl:key name="k" match="i" use="@g"/>'
        + f"""<xsl:template match="/">
                <xsl:for-each select="{expression}">
                  <xsl:value-of select="."/>
                </xsl:for-each>
              </xsl:template>"""
    )
    assert transform(KEYED, body) == expected


def test_key_with_sequence_argument(transform):
    body = (
        TEXT_OUTPUT
        + '<xsl:key name="k" match="i" use="@g"/>'
        + '<xsl:template match="/">'
        + "<xsl:value-of select=\"key('k', ('y', 'x'))\"/></xsl:template>"
    )
    assert transform(KEYED, body, version="2.0") == "1 2 3"


def test_unknown_key(transform):
    with pytest.raises(XSLTDynamicError) as exception_info:
        transform(KEYED, value_of("count(key('nope', 'x'))"))
    assert exception_info.value.code == "XTDE1260"


def test_current(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:for-each select="r/i">
            <xsl:value-of select="../j[@n = current()/@n]"/>
          </xsl:for-each>
        </xsl:template>
        """
    )
    assert transform('<r><i n="a"/><i n="b"/><j n="b">B</j></r>', body) == "B"


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("generate-id(/r) = generate-id(//i/..)", "true"),
        ("generate-id(/r) = generate-id(//i)", "false"),
        ("starts-with(generate-id(/r), 'id')", "true"),
        ("generate-id(/nothing)", ""),
    ),
)
def test_generate_id(expression, expected, transform):
    assert transform("<r><i/></r>", value_of(expression)) == expected


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("format-number(1234.5, '#,##0.00')", "1,234.50"),
        ("format-number(1234.5, '#.##0,00', 'eu')", "1.234,50"),
        ("format-number(0.25, '#%')", "25%"),
        ("format-number(1234567, '#,###')", "1,234,567"),
    ),
)
def test_format_number(expression, expected, transform):
    declarations = (
        '<xsl:decimal-format name="eu" decimal-separator="," grouping-separator="."/>'
    )
    assert transform("<r/>", value_of(expression, declarations)) == expected


def test_format_number_with_unknown_decimal_format(transform):
    with pytest.raises(XPathEvaluationError) as exception_info:
        transform("<r/>", value_of("format-number(1, '0', 'nope')"))
    assert exception_info.value.code == "XTDE1280"


@pytest.mark.parametrize(
    ("expression", "version", "expected"),
    (
        ("system-property('xsl:version')", "1.0", "1.0"),
        ("system-property('xsl:version')", "2.0", "2.0"),
        ("system-property('xsl:vendor')", "1.0", "transmute"),
        ("system-property('xsl:supports-namespace-axis')", "3.0", "no"),
        ("system-property('xsl:unknown')", "1.0", ""),
        ("element-available('xsl:for-each')", "1.0", "true"),
        ("element-available('xsl:key')", "1.0", "true"),
        ("element-available('xsl:shout')", "1.0", "true"),
        ("element-available('xsl:nothing')", "1.0", "false"),
        ("function-available('concat')", "1.0", "true"),
        ("function-available('fn:concat')", "1.0", "true"),
        ("function-available('nothing')", "1.0", "false"),
        ("function-available('f:double')", "2.0", "true"),
        ("function-available('f:double', 1)", "2.0", "true"),
        ("function-available('f:double', 2)", "2.0", "false"),
        ("f:double(21)", "2.0", "42"),
    ),
)
def test_introspection(expression, version, expected, transform):
    declarations = """
        <xsl:function name="f:double">
          <xsl:param name="n"/>
          <xsl:sequence select="$n * 2"/>
        </xsl:function>
    """
    result = transform(
        "<r/>",
        value_of(expression, declarations if version != "1.0" else ""),
        version=version,
        attributes=' xmlns:f="http://example.org/functions"',
    )
    assert result == expected


def test_undeclared_prefix_in_system_property(transform):
    with pytest.raises(XPathEvaluationError) as exception_info:
        transform("<r/>", value_of("system-property('nope:version')"))
    assert exception_info.value.code == "XTDE1390"


def test_document_with_loader():
    requested = []

    def loader(url):
        requested.append(url)
        return parse_document("<ext><v>external</v></ext>")

    processor = XSLTProcessor(document_loader=loader)
    result = processor.process(
        "<r/>", stylesheet(value_of("document('other.xml')/ext/v"))
    )
    assert result == "external"
    assert requested == ["other.xml"]


def test_document_without_loader(transform):
    assert transform("<r/>", value_of("count(document('other.xml'))")) == "0"


def test_document_with_failing_loader():
    def loader(url):
        raise OSError(url)

    processor = XSLTProcessor(document_loader=loader)
    result = processor.process(
        "<r/>", stylesheet(value_of("count(document('other.xml'))"))
    )
    assert result == "0"


def test_document_of_the_stylesheet(transform):
    assert transform("<r/>", value_of("count(document('')//xsl:template)")) == "1"


def test_unavailable_doc(transform):
    with pytest.raises(XPathEvaluationError) as exception_info:
        transform("<r/>", value_of("doc('missing.xml')"), version="2.0")
    assert exception_info.value.code == "FODC0002"


def test_doc_available(transform):
    result = transform(
        "<r/>", value_of("doc-available('missing.xml')"), version="2.0"
    )
    assert result == "false"


@pytest.mark.parametrize(
    ("expression", "expected"),
    (
        ("unparsed-text('notes.txt')", "first\nsecond"),
        ("count(unparsed-text-lines('notes.txt'))", "2"),
        ("unparsed-text-lines('notes.txt')[2]", "second"),
        ("unparsed-text-available('notes.txt')", "true"),
        ("unparsed-text-available('missing.txt')", "false"),
    ),
)
def test_unparsed_text_with_fetch_function(expression, expected):
    files = {"notes.txt": "first\nsecond"}
    processor = XSLTProcessor(fetch_function=files.__getitem__)
    result = processor.process("<r/>", stylesheet(value_of(expression), "2.0"))
    assert result == expected


def test_unparsed_text_from_file(tmp_path, transform):
    path = tmp_path / "notes.txt"
    path.write_text("from a file", encoding="utf-8")
    result = transform("<r/>", value_of(f"unparsed-text('{path}')"), version="2.0")
    assert result == "from a file"


def test_unavailable_unparsed_text(tmp_path, transform):
    with pytest.raises(XPathEvaluationError) as exception_info:
        transform(
            "<r/>",
            value_of(f"unparsed-text('{tmp_path / 'missing.txt'}')"),
            version="2.0",
        )
    assert exception_info.value.code == "FOUT1170"


def test_json_to_xml(transform):
    result = transform(
        "<r/>", value_of("count(json-to-xml('[1, 2]')/*/*)"), version="3.0"
    )
    assert result == "2"


def test_json_functions_require_version_3(transform):
    with pytest.raises(XSLTUnsupportedFeature):
        transform("<r/>", value_of("json-to-xml('[1, 2]')"), version="2.0")


def test_xml_to_json(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:variable name="x">
            <array xmlns="http://www.w3.org/2005/xpath-functions">
              <number>1</number><string>a</string>
            </array>
          </xsl:variable>
          <xsl:value-of select="xml-to-json($x/*)"/>
        </xsl:template>
        """
    )
    assert transform("<r/>", body, version="3.0") == '[1,"a"]'
