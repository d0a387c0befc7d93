import pytest

from _transmute.exceptions import XSLTError, XSLTValidationError
from _transmute.xpath.values import StringValue
from _transmute.xslt.sorting import reparented_for_iteration, share_one_parent
from tests.utils import TEXT_OUTPUT, stylesheet
from transmute import parse_document, parse_tree


def for_each(sort: str, content: str = '<xsl:value-of select="."/>') -> str:
    return (
        TEXT_OUTPUT
        + f"""<xsl:template match="/r">
                <xsl:for-each select="*">
                  {sort}
                  <xsl:if test="position() &gt; 1"><xsl:text> </xsl:text></xsl:if>
                  {content}
                </xsl:for-each>
              </xsl:template>"""
    )


def test_sort_by_attribute(transform):
    result = transform(
        '<r><i pos="2">A</i><i pos="3">B</i><i pos="1">C</i></r>',
        for_each('<xsl:sort select="@pos"/>'),
    )
    assert result == "C A B"


@pytest.mark.parametrize(
    ("sort", "expected"),
    (
        ("<xsl:sort/>", "10 100 9"),
        ('<xsl:sort data-type="number"/>', "9 10 100"),
        ('<xsl:sort data-type="number" order="descending"/>', "100 10 9"),
        ('<xsl:sort select="string-length(.)" data-type="number"/>', "9 10 100"),
    ),
)
def test_sort_data_types_and_order(sort, expected, transform):
    assert transform("<r><i>10</i><i>9</i><i>100</i></r>", for_each(sort)) == (
        expected
    )


@pytest.mark.parametrize(
    ("case_order", "expected"), (("upper-first", "A a B b"), ("lower-first", "a A b B"))
)
def test_case_order(case_order, expected, transform):
    result = transform(
        "<r><i>b</i><i>B</i><i>a</i><i>A</i></r>",
        for_each(f'<xsl:sort case-order="{case_order}"/>'),
    )
    assert result == expected


def test_sort_is_stable_with_multiple_keys(transform):
    result = transform(
        '<r><i g="2">a</i><i g="1">c</i><i g="2">b</i><i g="1">a</i></r>',
        for_each(
            '<xsl:sort select="@g" data-type="number"/><xsl:sort select="."/>',
            '<xsl:value-of select="concat(@g, .)"/>',
        ),
    )
    assert result == "1a 1c 2a 2b"


def test_not_a_number_sorts_first(transform):
    result = transform(
        "<r><i>2</i><i>x</i><i>1</i></r>", for_each('<xsl:sort data-type="number"/>')
    )
    assert result == "x 1 2"


def test_sort_with_content_key(transform):
    result = transform(
        '<r><i k="b">1</i><i k="a">2</i></r>',
        for_each('<xsl:sort><xsl:value-of select="@k"/></xsl:sort>'),
    )
    assert result == "2 1"


def test_apply_templates_with_sort(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/r">
          <xsl:apply-templates select="i">
            <xsl:sort select="." order="descending"/>
          </xsl:apply-templates>
        </xsl:template>
        <xsl:template match="i"><xsl:value-of select="."/></xsl:template>
        """
    )
    assert transform("<r><i>a</i><i>c</i><i>b</i></r>", body) == "cba"


@pytest.mark.parametrize(
    "sort",
    ('<xsl:sort order="sideways"/>', '<xsl:sort data-type="colour"/>'),
)
def test_invalid_sort_properties(sort, transform):
    with pytest.raises(XSLTValidationError):
        transform("<r><i/><i/></r>", for_each(sort))


def test_siblings_reflect_the_sorted_order_while_iterating(processor):
    source = parse_document('<r><i pos="2">A</i><i pos="3">B</i><i pos="1">C</i></r>')
    result = processor.process(
        source,
        stylesheet(
            for_each(
                '<xsl:sort select="@pos"/>',
                "<xsl:value-of select=\"concat(., '>', following-sibling::i[1])\"/>",
            )
        ),
    )
    assert result == "C>A A>B B>"
    assert [x.string_value for x in source.document_element.child_nodes] == [
        "A",
        "B",
        "C",
    ]


def test_sorting_nodes_of_different_parents_fails(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:for-each select="//i">
            <xsl:sort select="."/>
            <xsl:value-of select="."/>
          </xsl:for-each>
        </xsl:template>
        """
    )
    with pytest.raises(XSLTError):
        transform("<r><a><i>2</i></a><b><i>1</i></b></r>", body)


def test_nodes_of_different_parents_without_sort(transform):
    body = (
        TEXT_OUTPUT
        + '<xsl:template match="/">'
        + '<xsl:for-each select="//i"><xsl:value-of select="."/></xsl:for-each>'
        + "</xsl:template>"
    )
    assert transform("<r><a><i>2</i></a><b><i>1</i></b></r>", body) == "21"


def test_sorting_atomic_values(transform):
    body = (
        TEXT_OUTPUT
        + """
        <xsl:template match="/">
          <xsl:for-each select="(3, 1, 2)">
            <xsl:sort select="." data-type="number"/>
            <xsl:value-of select="."/>
          </xsl:for-each>
        </xsl:template>
        """
    )
    assert transform("<r/>", body, version="2.0") == "123"


def test_reparented_for_iteration():
    root = parse_tree("<r><a/><b/><c/></r>")
    a, b, c = root.child_nodes

    with reparented_for_iteration([c, a]):
        assert root.child_nodes == (c, b, a)
        assert c.next_sibling is b
    assert root.child_nodes == (a, b, c)


def test_reparented_for_iteration_requires_one_parent():
    root = parse_tree("<r><a><b/></a><c/></r>")
    a, c = root.child_nodes
    with pytest.raises(XSLTError):
        with reparented_for_iteration([c, a.first_child]):
            pass


def test_share_one_parent():
    root = parse_tree('<r x="1"><a><b/></a><c/></r>')
    a, c = root.child_nodes
    assert share_one_parent([a, c])
    assert not share_one_parent([a, a.first_child])
    assert not share_one_parent([root.attribute_map["x"], a])
    assert not share_one_parent([StringValue("a")])
    assert not share_one_parent([])
