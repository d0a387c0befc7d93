import asyncio

import pytest

from _transmute.exceptions import (
    FailedResourceFetching,
    InvalidOperation,
    XPathEvaluationError,
    XSLTDynamicError,
    XSLTUnsupportedFeature,
    XSLTValidationError,
)
from tests.utils import TEXT_OUTPUT, XSLT_NAMESPACE, stylesheet
from transmute import DocumentNode, Stylesheet, XSLTProcessor


PARAMETERIZED = stylesheet(
    TEXT_OUTPUT
    + """
    <xsl:param name="p" select="'default'"/>
    <xsl:param name="n" select="1"/>
    <xsl:template match="/"><xsl:value-of select="concat($p, ':', $n + 1)"/>
    </xsl:template>
    """
)


def test_global_parameters(processor):
    assert processor.process("<r/>", PARAMETERIZED) == "default:2"
    assert processor.process("<r/>", PARAMETERIZED, {"p": "given", "n": 5}) == (
        "given:6"
    )


@pytest.mark.parametrize(
    ("value", "expected"),
    (("007", "007|T"), ("false", "false|T"), ("1.50", "1.50|T"), ("", "|")),
)
def test_string_parameters_are_passed_unchanged(value, expected, processor):
    xslt = stylesheet(
        TEXT_OUTPUT
        + '<xsl:param name="p"/>'
        + '<xsl:template match="/"><xsl:value-of select="$p"/>|'
        + '<xsl:if test="$p">T</xsl:if></xsl:template>'
    )
    assert processor.process("<r/>", xslt, {"p": value}) == expected


def test_required_global_parameter(processor):
    xslt = stylesheet(
        TEXT_OUTPUT
        + '<xsl:param name="p" required="yes"/>'
        + '<xsl:template match="/"><xsl:value-of select="$p"/></xsl:template>',
        "2.0",
    )
    with pytest.raises(XSLTDynamicError) as exception_info:
        processor.process("<r/>", xslt)
    assert exception_info.value.code == "XTDE0050"

    assert processor.process("<r/>", xslt, {"p": "here"}) == "here"


def test_global_variables_are_evaluated_on_demand(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:variable name="a" select="concat($b, '!')"/>
        <xsl:variable name="b" select="'x'"/>
        <xsl:variable name="unused" select="$unbound"/>
        <xsl:template match="/"><xsl:value-of select="$a"/></xsl:template>
        """
    )
    assert transform("<r/>", body) == "x!"


def test_circular_global_variables(transform):
    body = """
        <xsl:variable name="a" select="$b"/>
        <xsl:variable name="b" select="$a"/>
        <xsl:template match="/"><xsl:value-of select="$a"/></xsl:template>
    """
    with pytest.raises(XSLTDynamicError) as exception_info:
        transform("<r/>", body)
    assert exception_info.value.code == "XTDE0640"


def test_global_variables_see_the_source_document(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:variable name="count" select="count(//i)"/>
        <xsl:template match="/"><xsl:value-of select="$count"/></xsl:template>
        """
    )
    assert transform("<r><i/><i/></r>", body) == "2"


def test_unbound_variables():
    xslt = stylesheet(
        TEXT_OUTPUT
        + '<xsl:template match="/">[<xsl:value-of select="$nope"/>]</xsl:template>'
    )
    with pytest.raises(XPathEvaluationError) as exception_info:
        XSLTProcessor().process("<r/>", xslt)
    assert exception_info.value.code == "XPST0008"

    processor = XSLTProcessor(unbound_variables_are_empty=True)
    assert processor.process("<r/>", xslt) == "[]"


# serialization


def test_output_method_override():
    xslt = stylesheet('<xsl:template match="/"><out>text</out></xsl:template>')
    assert XSLTProcessor(output_method="text").process("<r/>", xslt) == "text"


def test_self_closing_tags():
    xslt = stylesheet('<xsl:template match="/"><out><e/></out></xsl:template>')
    assert XSLTProcessor().process("<r/>", xslt) == "<out><e/></out>"
    assert XSLTProcessor(self_closing_tags=False).process("<r/>", xslt) == (
        "<out><e></e></out>"
    )


def test_html_root_implies_html_method(transform):
    body = '<xsl:template match="/"><html><body><br/></body></html></xsl:template>'
    assert transform("<r/>", body) == "<html><body><br></body></html>"


def test_xml_declaration(transform):
    body = (
        '<xsl:output omit-xml-declaration="no"/>'
        '<xsl:template match="/"><out/></xsl:template>'
    )
    assert transform("<r/>", body) == '<?xml version="1.0" encoding="UTF-8"?><out/>'


def test_indentation(transform):
    body = (
        '<xsl:output indent="yes"/>'
        '<xsl:template match="/"><a><b/></a></xsl:template>'
    )
    assert transform("<r/>", body) == "<a>\n  <b/>\n</a>\n"


def test_json_output_method(transform):
    body = (
        '<xsl:output method="json"/>'
        '<xsl:template match="/">'
        "<xsl:sequence select=\"map{'a': 1}\"/></xsl:template>"
    )
    assert transform("<r/>", body, version="3.0") == '{"a":1}'


def test_unknown_output_method(transform):
    body = '<xsl:output method="pdf"/><xsl:template match="/"><out/></xsl:template>'
    with pytest.raises(XSLTUnsupportedFeature):
        transform("<r/>", body)


def test_transform_returns_a_document(processor):
    document = processor.transform(
        "<r><i>1</i></r>",
        stylesheet(
            '<xsl:template match="/"><out><xsl:copy-of select="r/i"/></out>'
            "</xsl:template>"
        ),
    )
    assert isinstance(document, DocumentNode)
    assert document.document_element.local_name == "out"
    assert document.document_element.first_child.local_name == "i"


def test_compile(processor):
    compiled = processor.compile(PARAMETERIZED)
    assert isinstance(compiled, Stylesheet)
    assert compiled.version == 1.0
    assert not compiled.forwards_compatible
    assert compiled.global_parameters == {"n", "p"}


# modules


def write_module(path, body, version="1.0"):
    path.write_text(stylesheet(body, version), encoding="utf-8")
    return path


def test_include_and_import(tmp_path, processor):
    write_module(
        tmp_path / "imported.xsl",
        '<xsl:template match="a">imported</xsl:template>'
        '<xsl:template match="b">from import</xsl:template>',
    )
    write_module(
        tmp_path / "included.xsl",
        '<xsl:template name="greet">included</xsl:template>',
    )
    main = write_module(
        tmp_path / "main.xsl",
        '<xsl:import href="imported.xsl"/>'
        '<xsl:include href="included.xsl"/>'
        + TEXT_OUTPUT
        + '<xsl:template match="r"><xsl:apply-templates/>'
        '<xsl:call-template name="greet"/></xsl:template>'
        '<xsl:template match="a">[<xsl:apply-imports/>]</xsl:template>',
    )
    assert processor.process("<r><a/><b/></r>", main) == (
        "[imported]from importincluded"
    )


def test_module_that_includes_itself(tmp_path, processor):
    main = write_module(tmp_path / "main.xsl", '<xsl:include href="main.xsl"/>')
    with pytest.raises(XSLTValidationError, match="includes or imports itself"):
        processor.process("<r/>", main)


def test_import_must_come_first(processor):
    with pytest.raises(XSLTValidationError):
        processor.compile(
            stylesheet('<xsl:template match="/"/><xsl:import href="other.xsl"/>')
        )


INCLUDING = stylesheet(
    TEXT_OUTPUT
    + '<xsl:include href="inc.xsl"/>'
    + '<xsl:template match="/"><xsl:call-template name="n"/></xsl:template>'
)
MODULES = {"inc.xsl": stylesheet('<xsl:template name="n">fetched</xsl:template>')}


def test_fetch_function():
    processor = XSLTProcessor(fetch_function=MODULES.__getitem__)
    assert processor.process("<r/>", INCLUDING) == "fetched"


def test_asynchronous_fetch_function():
    requested = []

    async def fetch(url):
        requested.append(url)
        return MODULES[url]

    processor = XSLTProcessor(fetch_function=fetch)
    assert asyncio.run(processor.process_async("<r/>", INCLUDING)) == "fetched"
    assert requested == ["inc.xsl"]

    with pytest.raises(InvalidOperation):
        processor.process("<r/>", INCLUDING)


def test_failing_fetch_function():
    processor = XSLTProcessor(fetch_function={}.__getitem__)
    with pytest.raises(FailedResourceFetching):
        processor.process("<r/>", INCLUDING)


# stylesheet validation


@pytest.mark.parametrize(
    ("xslt", "exception"),
    (
        (f'<xsl:stylesheet xmlns:xsl="{XSLT_NAMESPACE}"/>', XSLTValidationError),
        (stylesheet("", version="one"), XSLTValidationError),
        (
            f'<xsl:template version="1.0" xmlns:xsl="{XSLT_NAMESPACE}"/>',
            XSLTValidationError,
        ),
        (f'<out xmlns:xsl="{XSLT_NAMESPACE}"/>', XSLTValidationError),
        (stylesheet("text"), XSLTValidationError),
        (stylesheet("<xsl:nonsense/>"), XSLTValidationError),
        (stylesheet("<top-level/>"), XSLTValidationError),
        (stylesheet('<xsl:key name="k"/>'), XSLTValidationError),
        (
            stylesheet('<xsl:template match="/"><xsl:value-of/></xsl:template>'),
            XSLTValidationError,
        ),
        (stylesheet("<xsl:include/>"), XSLTValidationError),
        (stylesheet("", attributes=' id="no spaces"'), XSLTValidationError),
        (
            stylesheet('<xsl:mode on-no-match="explode"/>', "3.0"),
            XSLTValidationError,
        ),
        (
            stylesheet('<xsl:character-map name="m"/>', "3.0"),
            XSLTUnsupportedFeature,
        ),
    ),
)
def test_invalid_stylesheets(xslt, exception, processor):
    with pytest.raises(exception):
        processor.compile(xslt)


def test_value_of_without_select_in_version_2(transform):
    body = '<xsl:template match="/r"><xsl:value-of>x</xsl:value-of></xsl:template>'
    assert transform("<r/>", body, version="2.0") == "x"


def test_forwards_compatible_mode(processor):
    xslt = stylesheet(
        TEXT_OUTPUT
        + "<xsl:nonsense/>"
        + '<xsl:template match="/"><xsl:value-of select="1 + 1"/></xsl:template>',
        "4.0",
    )
    with pytest.warns(UserWarning):
        result = processor.process("<r/>", xslt)
    assert result == "2"
    assert processor.version == "4.0"
    assert processor.forwards_compatible


def test_processor_reports_the_declared_version(transform, processor):
    transform("<r/>", "", version="2.0")
    assert processor.version == "2.0"
    assert not processor.forwards_compatible
