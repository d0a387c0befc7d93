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
*transmute* evaluates XPath expressions of the versions 1.0 to 3.1 against its node
tree. The implementation covers the expressions and functions that stylesheets
commonly employ, with these deviations from the W3C's specifications:

- There's no static typing, values are coerced at runtime as XPath 1.0 prescribes.
  Sequences of atomic values are represented by :class:`NodeSetValue` instances.
- The namespace axis, partial function application and schema related type tests
  are not supported.
- Unprefixed names in node tests match elements in the namespace that is mapped to
  the empty prefix in the provided namespaces, if any.

See :meth:`_transmute.plugins.PluginManager.register_xpath_function` regarding the use
of custom functions.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional

from _transmute.names import Namespaces
from _transmute.nodes import ElementNode, NodeBase, sort_in_document_order
from _transmute.xpath import extended_functions, functions  # noqa: F401
from _transmute.xpath.context import ExprContext
from _transmute.xpath.parser import parse
from _transmute.xpath.values import NodeSetValue


if TYPE_CHECKING:
    from _transmute.typing import DocumentLoader, NamespaceDeclarations
    from _transmute.xpath.values import Item, Value


class QueryResults(Sequence["Item"]):
    """
    A container with the results of an XPath query with some helpers
    for better readable Python expressions. Besides nodes it may contain atomic values
    when an expression yields such.
    """

    def __init__(self, results: Iterable[Item]):
        self.__items = tuple(results)

    def __eq__(self, other):
        if not isinstance(other, Collection):
            raise TypeError

        return len(self.__items) == len(other) and all(x in other for x in self.__items)

    def __getitem__(self, item):
        return self.__items[item]

    def __len__(self) -> int:
        return len(self.__items)

    def __repr__(self):
        return str([repr(x) for x in self.__items])

    def as_list(self) -> list[Item]:
        """The contained items as a new :class:`list`."""
        return list(self.__items)

    @property
    def as_tuple(self) -> tuple[Item, ...]:
        """The contained items in a :class:`tuple`."""
        return self.__items

    @property
    def first(self) -> Optional[Item]:
        """The first item from the results or :obj:`None` if there are none."""
        if len(self.__items):
            return self.__items[0]
        else:
            return None

    def in_document_order(self) -> QueryResults:
        """
        Returns another :class:`QueryResults` instance where the contained nodes are
        sorted in document order.
        """
        return QueryResults(
            sort_in_document_order(x for x in self if isinstance(x, NodeBase))
        )

    @property
    def last(self) -> Optional[Item]:
        """The last item from the results or :obj:`None` if there are none."""
        if len(self.__items):
            return self.__items[-1]
        else:
            return None

    @property
    def size(self) -> int:
        """The amount of contained items."""
        return len(self.__items)


def _namespaces(
    node: NodeBase, namespaces: Optional[NamespaceDeclarations]
) -> Namespaces:
    # global namespaces are guaranteed by the Namespaces implementation
    if namespaces is None:
        if isinstance(node, ElementNode):
            return Namespaces({"": node.namespace})
        return Namespaces({})
    elif isinstance(namespaces, Namespaces):
        return namespaces
    elif isinstance(namespaces, Mapping):
        return Namespaces({k or "": v for k, v in namespaces.items()})
    else:
        raise TypeError


def evaluate_xpath(
    expression: str,
    node: NodeBase,
    namespaces: Optional[NamespaceDeclarations] = None,
    variables: Optional[Mapping[str, Any]] = None,
    *,
    document_loader: Optional[DocumentLoader] = None,
    xpath_version: float = 3.1,
) -> Value:
    """
    Evaluates an expression with the given node as context item and returns the
    resulting value.

    :param expression: The XPath expression.
    :param node: The context node.
    :param namespaces: A mapping of prefixes to namespaces. By default, the empty
                       prefix is mapped to the namespace of an element context node.
    :param variables: Variables that are available in the expression. Python values
                      are converted as :meth:`ExprContext.set_variable` describes.
    :param document_loader: A callable that returns a document for an URL that the
                            ``doc()`` function is called with.
    :param xpath_version: Toggles comparison semantics of XPath 1.0.
    """
    context = ExprContext(
        (node,),
        variables=variables,
        namespaces=_namespaces(node, namespaces),
        document_loader=document_loader,
        xpath_version=xpath_version,
    )
    return parse(expression).evaluate(context)


def evaluate(
    node: NodeBase,
    expression: str,
    namespaces: Optional[NamespaceDeclarations] = None,
    variables: Optional[Mapping[str, Any]] = None,
) -> QueryResults:
    """
    Evaluates an expression with the given node as context item and returns the
    resulting items. Results that are no sequences are wrapped in one.
    """
    result = evaluate_xpath(
        expression, node, namespaces=namespaces, variables=variables
    )
    if isinstance(result, NodeSetValue):
        return QueryResults(result.items)
    return QueryResults((result,))


__all__ = (
    evaluate.__name__,
    evaluate_xpath.__name__,
    parse.__name__,  # type: ignore
    ExprContext.__name__,
    QueryResults.__name__,
)
