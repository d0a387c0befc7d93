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

from collections.abc import Awaitable, Callable
from typing import (
    TYPE_CHECKING,
    Any,
    AnyStr,
    BinaryIO,
    Protocol,
    TypeAlias,
    TypeVar,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence
    from types import SimpleNamespace

    from _transmute.nodes import DocumentNode, ElementNode, NodeBase
    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Value
    from _transmute.xslt.processor import Transformation


# protocols


class BinaryReader(Protocol):
    def close(self): ...

    def read(self, n: int = -1) -> bytes: ...


# aliases


QualifiedName: TypeAlias = tuple[str, str]
_AttributesData: TypeAlias = dict[QualifiedName, str]

GenericDecorated = TypeVar("GenericDecorated", bound=Callable[..., Any])
SecondOrderDecorator: TypeAlias = "Callable[[GenericDecorated], GenericDecorated]"

NamespaceDeclarations: TypeAlias = "Mapping[str | None, str]"
_NamespaceDeclarations: TypeAlias = "Mapping[str, str]"

InputStream: TypeAlias = AnyStr | BinaryIO
LoaderResult: TypeAlias = "DocumentNode | str"
Loader: TypeAlias = "Callable[[Any, SimpleNamespace], LoaderResult]"
LoaderConstraint: TypeAlias = "Loader | Iterable[Loader] | None"

FetchFunction: TypeAlias = "Callable[[str], Awaitable[str]]"
SyncFetchFunction: TypeAlias = "Callable[[str], str]"
DocumentLoader: TypeAlias = "Callable[[str], NodeBase | None]"

XPathFunction: TypeAlias = "Callable[[ExprContext, *Any], Value]"
XSLTInstruction: TypeAlias = (
    "Callable[[Transformation, ElementNode, ExprContext], None]"
)


__all__ = (
    "_AttributesData",
    "BinaryReader",
    "DocumentLoader",
    "FetchFunction",
    "GenericDecorated",
    "InputStream",
    "Loader",
    "LoaderConstraint",
    "LoaderResult",
    "NamespaceDeclarations",
    "QualifiedName",
    "SecondOrderDecorator",
    "SyncFetchFunction",
    "XPathFunction",
    "XSLTInstruction",
)
