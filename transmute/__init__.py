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
*transmute* is an XSLT processor for the stylesheet versions 1.0, 2.0 and 3.0 with an
XPath engine that operates on its own node tree.

.. testcode::

    from transmute import XSLTProcessor

    processor = XSLTProcessor()
    result = processor.process(
        "<names><name>World</name></names>",
        '<xsl:stylesheet version="1.0" '
        'xmlns:xsl="http://www.w3.org/1999/XSL/Transform">'
        '<xsl:output method="text"/>'
        '<xsl:template match="/">Hello <xsl:value-of select="//name"/></xsl:template>'
        "</xsl:stylesheet>",
    )
    assert result == "Hello World"
"""

from __future__ import annotations

from _transmute.builder import parse_document, parse_nodes, parse_tree
from _transmute.loading import load_document
from _transmute.nodes import (
    AttributeNode,
    CommentNode,
    DocumentFragmentNode,
    DocumentNode,
    ElementNode,
    ProcessingInstructionNode,
    TextNode,
)
from _transmute.parser import ParserOptions
from _transmute.plugins import plugin_manager as _plugin_manager
from _transmute.serializer import SerializationOptions, serialize
from _transmute.xpath import QueryResults, evaluate, evaluate_xpath
from _transmute.xslt import Stylesheet, XSLTProcessor


# plugin loading


_plugin_manager.load_plugins()


__all__ = (
    AttributeNode.__name__,
    CommentNode.__name__,
    DocumentFragmentNode.__name__,
    DocumentNode.__name__,
    ElementNode.__name__,
    ParserOptions.__name__,
    ProcessingInstructionNode.__name__,
    QueryResults.__name__,
    SerializationOptions.__name__,
    Stylesheet.__name__,
    TextNode.__name__,
    XSLTProcessor.__name__,
    evaluate.__name__,
    evaluate_xpath.__name__,
    load_document.__name__,
    parse_document.__name__,
    parse_nodes.__name__,
    parse_tree.__name__,
    serialize.__name__,
)
