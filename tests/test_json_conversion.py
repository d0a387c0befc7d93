import math

import pytest

from _transmute.exceptions import XPathEvaluationError
from _transmute.names import XPATH_FUNCTIONS_NAMESPACE
from _transmute.xpath.json_conversion import (
    json_to_xml,
    parse_json,
    serialize_json,
    xml_to_json,
)
from _transmute.xpath.values import (
    ArrayValue,
    BooleanValue,
    FunctionValue,
    MapValue,
    NodeSetValue,
    NumberValue,
    StringValue,
)
from transmute import ElementNode, parse_tree


def test_parse_json():
    result = parse_json('{"a": [1, "two", true, null], "b": {"c": 2.5}}')
    assert isinstance(result, MapValue)

    array = result.get("a")
    assert isinstance(array, ArrayValue)
    assert array.members == (
        NumberValue(1),
        StringValue("two"),
        BooleanValue(True),
        NodeSetValue(()),
    )
    assert result.get("b").get("c") == NumberValue(2.5)


@pytest.mark.parametrize(
    ("duplicates", "expected"), (("use-first", 1), ("use-last", 2))
)
def test_parse_json_with_duplicate_keys(duplicates, expected):
    result = parse_json('{"k": 1, "k": 2}', duplicates)
    assert result.get("k") == NumberValue(expected)


def test_parse_json_rejecting_duplicate_keys():
    with pytest.raises(XPathEvaluationError) as exception_info:
        parse_json('{"k": 1, "k": 2}', "reject")
    assert exception_info.value.code == "FOJS0003"


def test_invalid_json():
    with pytest.raises(XPathEvaluationError) as exception_info:
        parse_json("{'single': 'quotes'}")
    assert exception_info.value.code == "FOJS0001"


@pytest.mark.parametrize(
    ("value", "expected"),
    (
        (NumberValue(1), "1"),
        (NumberValue(0.5), "0.5"),
        (StringValue('say "hi"'), '"say \\"hi\\""'),
        (BooleanValue(False), "false"),
        (NodeSetValue(()), "null"),
        (NodeSetValue((NumberValue(1), NumberValue(2))), "[1,2]"),
        (ArrayValue((StringValue("ä"),)), '["ä"]'),
        (MapValue({"a": ArrayValue(())}), '{"a":[]}'),
    ),
)
def test_serialize_json(value, expected):
    assert serialize_json(value) == expected


def test_serialize_json_with_indentation():
    assert serialize_json(MapValue({"a": NumberValue(1)}), indent=True) == (
        '{\n  "a": 1\n}'
    )


def test_serialize_nodes_as_json():
    root = parse_tree("<r>text</r>")
    assert serialize_json(root) == '"<r>text</r>"'
    assert serialize_json(root.first_child) == '"text"'


@pytest.mark.parametrize(
    ("value", "code"),
    (
        (NumberValue(math.inf), "SERE0020"),
        (FunctionValue(lambda context: NodeSetValue(()), 0), "SERE0021"),
    ),
)
def test_unserializable_values(value, code):
    with pytest.raises(XPathEvaluationError) as exception_info:
        serialize_json(value)
    assert exception_info.value.code == code


def test_json_to_xml():
    document = json_to_xml('{"name": "x", "list": [1, false, null], "empty": ""}')
    root = document.document_element
    assert root.local_name == "map"
    assert root.namespace == XPATH_FUNCTIONS_NAMESPACE
    assert root.serialize() == (
        f'<map xmlns="{XPATH_FUNCTIONS_NAMESPACE}">'
        '<string key="name">x</string>'
        '<array key="list"><number>1</number><boolean>false</boolean><null/></array>'
        '<string key="empty"/>'
        "</map>"
    )


def test_json_xml_round_trip():
    text = '{"a":[1,2.5,"s",true,null],"b":{}}'
    assert xml_to_json(json_to_xml(text)) == text


def test_xml_to_json_from_markup():
    root = parse_tree(
        f"""<array xmlns="{XPATH_FUNCTIONS_NAMESPACE}">
              <boolean>1</boolean>
              <number> 3 </number>
            </array>"""
    )
    assert xml_to_json(root) == "[true,3]"
    assert xml_to_json(root, indent=True) == "[\n  true,\n  3\n]"


def test_xml_to_json_of_foreign_nodes():
    assert xml_to_json(ElementNode("p", children=["text"])) == '"text"'


@pytest.mark.parametrize(
    "markup",
    (
        "<boolean>yes</boolean>",
        "<number>one</number>",
        "<map><string>no key</string></map>",
        '<map><null key="a"/><null key="a"/></map>',
        "<array>text</array>",
        "<array><object/></array>",
    ),
)
def test_invalid_json_vocabulary(markup):
    root = parse_tree(markup.replace(">", f' xmlns="{XPATH_FUNCTIONS_NAMESPACE}">', 1))
    with pytest.raises(XPathEvaluationError) as exception_info:
        xml_to_json(root)
    assert exception_info.value.code == "FOJS0006"
