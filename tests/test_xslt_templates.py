import pytest

from _transmute.exceptions import XSLTDynamicError, XSLTValidationError
from tests.utils import TEXT_OUTPUT, XSLT_NAMESPACE, stylesheet


def test_apply_templates_into_wrapper(transform):
    result = transform(
        '<root><test name="test1"/><test name="test2"/></root>',
        """
        <xsl:template match="/">
          <div><xsl:apply-templates select="//test"/></div>
        </xsl:template>
        <xsl:template match="test">
          <span><xsl:value-of select="@name"/></span>
        </xsl:template>
        """,
    )
    assert result == "<div><span>test1</span><span>test2</span></div>"


def test_hello_world(transform):
    result = transform(
        "<root><first>Hello</first><second>World</second></root>",
        TEXT_OUTPUT
        + """<xsl:template match="/root">
               <xsl:value-of select="concat(first, ' ', second)"/>
             </xsl:template>""",
    )
    assert result == "Hello World"


def test_literal_text_precedes_following_elements(transform):
    result = transform(
        "<users><user>a</user><user>b</user></users>",
        """
        <xsl:template match="/">Users:<ul>
          <xsl:for-each select="users/user"><li><xsl:value-of select="."/></li>
          </xsl:for-each>
        </ul></xsl:template>
        """,
    )
    assert result == "Users:<ul><li>a</li><li>b</li></ul>"


@pytest.mark.parametrize(
    ("templates", "expected"),
    (
        (
            '<xsl:template match="a">first</xsl:template>'
            '<xsl:template match="a">second</xsl:template>',
            "second",
        ),
        (
            '<xsl:template match="a" priority="2">high</xsl:template>'
            '<xsl:template match="a">low</xsl:template>',
            "high",
        ),
        (
            '<xsl:template match="r/a">specific</xsl:template>'
            '<xsl:template match="a">generic</xsl:template>',
            "specific",
        ),
        (
            '<xsl:template match="a">named</xsl:template>'
            '<xsl:template match="*"><xsl:apply-templates/></xsl:template>',
            "named",
        ),
        (
            '<xsl:template match="node()">node</xsl:template>'
            '<xsl:template match="r">r</xsl:template>',
            "r",
        ),
    ),
    ids=("last declared", "priority", "default priority", "wildcard", "node test"),
)
def test_template_conflict_resolution(templates, expected, transform):
    assert transform("<r><a/></r>", TEXT_OUTPUT + templates) == expected


def test_built_in_templates_copy_text(transform):
    assert transform('<r a="x">a<b>b</b><!--c--><?p x?></r>', "") == "ab"


def test_modes(transform):
    result = transform(
        "<r><a/></r>",
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:apply-templates select="r/a" mode="m"/>
          <xsl:apply-templates select="r/a"/>
        </xsl:template>
        <xsl:template match="a" mode="m">M<xsl:apply-templates mode="#current"/>
        </xsl:template>
        <xsl:template match="a">D</xsl:template>
        <xsl:template match="node()" mode="#all">!</xsl:template>
        """,
        version="2.0",
    )
    assert result == "MD"


def test_shallow_copy_on_no_match(transform):
    result = transform(
        '<r x="1"><a/><b/>t</r>',
        '<xsl:mode on-no-match="shallow-copy"/><xsl:template match="b"/>',
        version="3.0",
    )
    assert result == '<r x="1"><a/>t</r>'


def test_deep_skip_on_no_match(transform):
    result = transform(
        "<r><a>skipped</a><b>kept</b></r>",
        """
        <xsl:mode on-no-match="deep-skip"/>
        <xsl:template match="/"><xsl:apply-templates select="r/*"/></xsl:template>
        <xsl:template match="b"><xsl:value-of select="."/></xsl:template>
        """,
        version="3.0",
    )
    assert result == "kept"


def test_failing_on_no_match(transform):
    with pytest.raises(XSLTDynamicError) as exception_info:
        transform("<r/>", '<xsl:mode on-no-match="fail"/>', version="3.0")
    assert exception_info.value.code == "XTDE0555"


def test_next_match(transform):
    body = """
        <xsl:template match="a" priority="1"><x><xsl:next-match/></x></xsl:template>
        <xsl:template match="a">inner</xsl:template>
    """
    assert transform("<r><a/></r>", body, version="2.0") == "<x>inner</x>"


def test_next_match_falls_back_to_built_in_template(transform):
    body = '<xsl:template match="a"><x><xsl:next-match/></x></xsl:template>'
    assert transform("<r><a>t</a></r>", body, version="2.0") == "<x>t</x>"


def test_call_template_with_parameters(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:call-template name="greet">
            <xsl:with-param name="who" select="'you'"/>
          </xsl:call-template>
          <xsl:text> / </xsl:text>
          <xsl:call-template name="greet"/>
        </xsl:template>
        <xsl:template name="greet">
          <xsl:param name="who" select="'World'"/>
          <xsl:param name="greeting">Hello</xsl:param>
          <xsl:value-of select="concat($greeting, ' ', $who)"/>
        </xsl:template>
        """
    )
    assert transform("<r/>", body) == "Hello you / Hello World"


def test_named_template_keeps_context_item(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="a"><xsl:call-template name="n"/></xsl:template>
        <xsl:template name="n"><xsl:value-of select="@id"/></xsl:template>
        """
    )
    assert transform('<r><a id="1"/><a id="2"/></r>', body) == "12"


def test_unknown_named_template(transform):
    body = '<xsl:template match="/"><xsl:call-template name="x"/></xsl:template>'
    with pytest.raises(XSLTValidationError):
        transform("<r/>", body)


def test_required_template_parameter(transform):
    body = """
        <xsl:template match="/"><xsl:call-template name="n"/></xsl:template>
        <xsl:template name="n"><xsl:param name="p" required="yes"/></xsl:template>
    """
    with pytest.raises(XSLTDynamicError) as exception_info:
        transform("<r/>", body, version="2.0")
    assert exception_info.value.code == "XTDE0700"


def test_tunnel_parameters(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:apply-templates select="r">
            <xsl:with-param name="t" select="'tunneled'" tunnel="yes"/>
          </xsl:apply-templates>
        </xsl:template>
        <xsl:template match="r"><xsl:apply-templates select="a"/></xsl:template>
        <xsl:template match="a">
          <xsl:param name="t" tunnel="yes"/>
          <xsl:value-of select="$t"/>
        </xsl:template>
        """
    )
    assert transform("<r><a/></r>", body, version="2.0") == "tunneled"


def test_attribute_sets_that_use_each_other(processor):
    document = processor.transform(
        "<r/>",
        stylesheet(
            """
            <xsl:attribute-set name="a" use-attribute-sets="b">
              <xsl:attribute name="x">a</xsl:attribute>
            </xsl:attribute-set>
            <xsl:attribute-set name="b" use-attribute-sets="a">
              <xsl:attribute name="x">b</xsl:attribute>
              <xsl:attribute name="y">b</xsl:attribute>
            </xsl:attribute-set>
            <xsl:template match="/">
              <result>
                <out xsl:use-attribute-sets="a"/>
                <out z="lre" xsl:use-attribute-sets="b"/>
              </result>
            </xsl:template>
            """
        ),
    )
    first, second = document.document_element.child_nodes
    assert first["x"] == "a"
    assert first["y"] == "b"
    assert second["x"] == "b"
    assert second["z"] == "lre"


def test_attribute_sets_with_the_same_name_and_literal_attributes(processor):
    document = processor.transform(
        "<r/>",
        stylesheet(
            """
            <xsl:attribute-set name="s">
              <xsl:attribute name="x">1</xsl:attribute>
              <xsl:attribute name="y">1</xsl:attribute>
            </xsl:attribute-set>
            <xsl:attribute-set name="s">
              <xsl:attribute name="x">2</xsl:attribute>
            </xsl:attribute-set>
            <xsl:template match="/">
              <out y="literal" xsl:use-attribute-sets="s"/>
            </xsl:template>
            """
        ),
    )
    root = document.document_element
    assert root["x"] == "2"
    assert root["y"] == "literal"


def test_missing_attribute_set_is_ignored(transform):
    body = '<xsl:template match="/"><out xsl:use-attribute-sets="nope"/></xsl:template>'
    assert transform("<r/>", body) == "<out/>"


def test_simplified_stylesheet(processor):
    result = processor.process(
        "<r>text</r>",
        f'<out xsl:version="1.0" xmlns:xsl="{XSLT_NAMESPACE}">'
        '<xsl:value-of select="/r"/></out>',
    )
    assert result == "<out>text</out>"


@pytest.mark.parametrize(
    ("declaration", "expected"),
    (
        ('<xsl:strip-space elements="*"/>', "1"),
        ('<xsl:strip-space elements="*"/><xsl:preserve-space elements="r"/>', "3"),
        ("", "3"),
    ),
)
def test_whitespace_stripping_of_sources(declaration, expected, transform):
    body = (
        TEXT_OUTPUT
        + declaration
        + '<xsl:template match="/"><xsl:value-of select="count(r/node())"/>'
        "</xsl:template>"
    )
    assert transform("<r>\n  <a>x</a>\n</r>", body) == expected


def test_namespace_alias(processor):
    document = processor.transform(
        "<r/>",
        stylesheet(
            """
            <xsl:namespace-alias stylesheet-prefix="axsl" result-prefix="xsl"/>
            <xsl:template match="/"><axsl:stylesheet version="1.0"/></xsl:template>
            """,
            attributes=' xmlns:axsl="http://example.org/alias"',
        ),
    )
    root = document.document_element
    assert root.namespace == XSLT_NAMESPACE
    assert root.prefix == "xsl"
    assert root["version"] == "1.0"


@pytest.mark.parametrize(
    ("attribute", "expected"),
    (("", {"x": "http://x"}), (' xsl:exclude-result-prefixes="x"', {})),
)
def test_excluded_result_prefixes(attribute, expected, processor):
    document = processor.transform(
        "<r/>",
        stylesheet(
            f'<xsl:template match="/"><out xmlns:x="http://x"{attribute}/>'
            "</xsl:template>"
        ),
    )
    assert document.document_element.namespace_declarations == expected


def test_stylesheet_namespace_isnt_copied(transform):
    assert transform("<r/>", '<xsl:template match="/"><out/></xsl:template>') == (
        "<out/>"
    )


def test_xpath_default_namespace(transform):
    result = transform(
        '<r xmlns="http://d"><a>x</a></r>',
        TEXT_OUTPUT
        + '<xsl:template match="/"><xsl:value-of select="r/a"/></xsl:template>',
        version="2.0",
        attributes=' xpath-default-namespace="http://d"',
    )
    assert result == "x"


def test_text_value_templates(transform):
    body = (
        '<xsl:template match="/" expand-text="yes">'
        "<out>{1 + 1} {{literal}}</out></xsl:template>"
    )
    assert transform("<r/>", body, version="3.0") == "<out>2 {literal}</out>"


def test_attribute_value_templates(transform):
    body = (
        '<xsl:template match="/r"><out id="{@n}-{{x}}" v="{1 + 1}"/></xsl:template>'
    )
    assert transform('<r n="7"/>', body) == '<out id="7-{x}" v="2"/>'
