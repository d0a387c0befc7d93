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

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Optional

from _transmute.exceptions import XPathEvaluationError
from _transmute.names import Namespaces
from _transmute.nodes import NodeBase
from _transmute.xpath.values import StringValue, Value, to_value

if TYPE_CHECKING:
    from _transmute.typing import DocumentLoader
    from _transmute.xpath.values import Item
    from _transmute.xslt.processor import Transformation


class ScopeKey(Enum):
    """The keys of the XSLT specific data that is kept in scope frames."""

    REGEX_GROUPS = auto()
    CURRENT_GROUP = auto()
    CURRENT_GROUPING_KEY = auto()
    CURRENT_TEMPLATE_RULE = auto()
    CURRENT_MODE = auto()
    TUNNEL_PARAMETERS = auto()


_unset: Any = object()


class ExprContext:
    """
    The environment that expressions are evaluated in. It points to the current item in
    a list of items, holds variable bindings and the namespace mapping that prefixes
    in expressions are resolved with.

    Contexts form a chain through their ``parent`` attribute. Variables and scope data
    are looked up along that chain, but set locally. A context is cloned when a
    narrower scope or another current item is needed, the clone propagates all flags.

    The ``position`` is zero-based, the XPath function ``position()`` reports it plus
    one.
    """

    __slots__ = (
        "case_insensitive",
        "current_item",
        "document_loader",
        "ignore_attributes_without_value",
        "namespaces",
        "node_list",
        "parent",
        "position",
        "return_on_first_match",
        "scope",
        "transformation",
        "unbound_variables_are_empty",
        "variables",
        "xpath_version",
    )

    def __init__(
        self,
        node_list: Sequence[Item],
        position: int = 0,
        *,
        variables: Optional[Mapping[str, Any]] = None,
        namespaces: Optional[Mapping[str, str]] = None,
        parent: Optional[ExprContext] = None,
        return_on_first_match: bool = False,
        ignore_attributes_without_value: bool = False,
        case_insensitive: bool = False,
        unbound_variables_are_empty: bool = False,
        document_loader: Optional[DocumentLoader] = None,
        transformation: Optional[Transformation] = None,
        xpath_version: float = 1.0,
    ):
        if node_list and not 0 <= position < len(node_list):
            raise IndexError("The position is out of the node list's range.")
        self.node_list: Sequence[Item] = node_list
        self.position = position
        self.variables: dict[str, Value] = {}
        self.namespaces: Namespaces = (
            namespaces
            if isinstance(namespaces, Namespaces)
            else Namespaces(namespaces or {})
        )
        self.parent = parent
        self.return_on_first_match = return_on_first_match
        self.ignore_attributes_without_value = ignore_attributes_without_value
        self.case_insensitive = case_insensitive
        self.unbound_variables_are_empty = unbound_variables_are_empty
        self.document_loader = document_loader
        self.transformation = transformation
        self.xpath_version = xpath_version
        self.scope: dict[ScopeKey, Any] = {}
        self.current_item: Optional[Item] = (
            self.node_list[position] if node_list else None
        )

        if variables:
            for name, value in variables.items():
                self.set_variable(name, value)

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__}(position={self.position}, "
            f"size={len(self.node_list)}, variables={list(self.variables)})>"
        )

    def clone(
        self,
        node_list: Optional[Sequence[Item]] = None,
        position: Optional[int] = None,
    ) -> ExprContext:
        """
        Creates a context with a fresh variable scope that is layered over this one.
        Without arguments the clone points to the same item.
        """
        result = object.__new__(ExprContext)
        result.node_list = self.node_list if node_list is None else node_list
        result.position = (
            (self.position if node_list is None else 0)
            if position is None
            else position
        )
        if result.node_list and not 0 <= result.position < len(result.node_list):
            raise IndexError("The position is out of the node list's range.")
        result.variables = {}
        result.namespaces = self.namespaces
        result.parent = self
        result.return_on_first_match = self.return_on_first_match
        result.ignore_attributes_without_value = self.ignore_attributes_without_value
        result.case_insensitive = self.case_insensitive
        result.unbound_variables_are_empty = self.unbound_variables_are_empty
        result.document_loader = self.document_loader
        result.transformation = self.transformation
        result.xpath_version = self.xpath_version
        result.scope = {}
        result.current_item = self.current_item
        return result

    def context_size(self) -> int:
        return len(self.node_list)

    def get_scope_data(self, key: ScopeKey, default: Any = None) -> Any:
        context: Optional[ExprContext] = self
        while context is not None:
            if key in context.scope:
                return context.scope[key]
            context = context.parent
        return default

    def get_variable(self, name: str) -> Optional[Value]:
        context: Optional[ExprContext] = self
        while context is not None:
            if (value := context.variables.get(name)) is not None:
                return value
            context = context.parent
        return None

    def has_local_variable(self, name: str) -> bool:
        return name in self.variables

    @property
    def item(self) -> Optional[Item]:
        """The context item, it's :obj:`None` when the context list is empty."""
        if not self.node_list:
            return None
        return self.node_list[self.position]

    @property
    def node(self) -> NodeBase:
        """
        The context node.

        :raises XPathEvaluationError: If the context item isn't a node.
        """
        item = self.item
        if not isinstance(item, NodeBase):
            raise XPathEvaluationError(
                "The context item is not a node.",
                code="XPDY0002" if item is None else "XPTY0020",
            )
        return item

    def resolve_variable(self, name: str) -> Value:
        """
        Returns a variable's value.

        :raises XPathEvaluationError: If the variable isn't bound and the context isn't
                                      configured to treat those as empty strings.
        """
        if (value := self.get_variable(name)) is not None:
            return value
        if self.unbound_variables_are_empty:
            return StringValue("")
        raise XPathEvaluationError(f"Undefined variable: ${name}", code="XPST0008")

    def set_return_on_first_match(self, flag: bool):
        self.return_on_first_match = flag

    def set_scope_data(self, key: ScopeKey, value: Any):
        self.scope[key] = value

    def set_variable(self, name: str, value: Any):
        """
        Binds a variable in this context's scope. Python objects are converted, see
        :func:`_transmute.xpath.values.to_value`.
        """
        self.variables[name] = to_value(value)

    @contextmanager
    def suppressed_first_match(self) -> Iterator[ExprContext]:
        """Evaluates with ``return_on_first_match`` switched off and restores it."""
        flag = self.return_on_first_match
        self.return_on_first_match = False
        try:
            yield self
        finally:
            self.return_on_first_match = flag


__all__ = (ExprContext.__name__, ScopeKey.__name__)
