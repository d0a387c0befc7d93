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

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from typing import Final

    from _transmute.typing import (  # noqa: F401
        NamespaceDeclarations,
        _NamespaceDeclarations,
    )

XML_NAMESPACE: Final = "http://www.w3.org/XML/1998/namespace"
XMLNS_NAMESPACE: Final = "http://www.w3.org/2000/xmlns/"
XSLT_NAMESPACE: Final = "http://www.w3.org/1999/XSL/Transform"
XPATH_FUNCTIONS_NAMESPACE: Final = "http://www.w3.org/2005/xpath-functions"
XHTML_NAMESPACE: Final = "http://www.w3.org/1999/xhtml"

FUNCTION_NAMESPACES: Final = MappingProxyType(
    {
        "array": "http://www.w3.org/2005/xpath-functions/array",
        "fn": XPATH_FUNCTIONS_NAMESPACE,
        "map": "http://www.w3.org/2005/xpath-functions/map",
        "math": "http://www.w3.org/2005/xpath-functions/math",
        "xs": "http://www.w3.org/2001/XMLSchema",
    }
)
GLOBAL_NAMESPACES: Final = MappingProxyType(
    {"xml": XML_NAMESPACE, "xmlns": XMLNS_NAMESPACE}
)
GLOBAL_PREFIXES: Final = tuple(GLOBAL_NAMESPACES)


def deconstruct_clark_notation(
    name: str, null: Optional[str] = None
) -> tuple[Optional[str], str]:
    """
    Deconstructs a name in Clark notation, that may or may not include a namespace.

    :param name: An attribute's or element's name.
    :return: A tuple with the extracted namespace and local name.

    >>> deconstruct_clark_notation('{http://www.tei-c.org/ns/1.0}text')
    ('http://www.tei-c.org/ns/1.0', 'text')

    >>> deconstruct_clark_notation('div')
    (None, 'div')
    """
    if name.startswith("{"):
        a, b = name.split("}", maxsplit=1)
        return a[1:], b
    else:
        return null, name


def split_qualified_name(name: str) -> tuple[Optional[str], str]:
    """
    Splits a qualified name into its prefix and its local name.

    >>> split_qualified_name('xsl:template')
    ('xsl', 'template')

    >>> split_qualified_name('template')
    (None, 'template')
    """
    prefix, _, local_name = name.rpartition(":")
    return (prefix or None), local_name


class Namespaces(Mapping):
    """
    A :term:`mapping` of prefixes to namespaces that ensures globally defined prefixes
    are available and unchanged. The prefixes of the XPath function namespaces are
    available unless they're overridden. The default namespace is mapped with an
    empty string.
    """

    __init_cache: Final[
        dict[int, tuple[_NamespaceDeclarations, _NamespaceDeclarations]]
    ] = {}

    __slots__ = (
        "__data",
        "__inverse_data",
    )

    def __init__(self, namespaces: NamespaceDeclarations):
        self.__data: _NamespaceDeclarations
        self.__inverse_data: _NamespaceDeclarations

        if isinstance(namespaces, Namespaces):
            self.__data = namespaces.__data
            self.__inverse_data = namespaces.__inverse_data
        elif isinstance(namespaces, Mapping):
            self.__data, self.__inverse_data = self.__init_data(namespaces)
        else:
            raise TypeError

    def __contains__(self, item: object):
        return item in self.__data

    def __getitem__(self, item: str) -> str:
        return self.__data.__getitem__(item)

    def __hash__(self) -> int:
        return hash(frozenset(self.__data.items()))

    def __iter__(self) -> Iterator[str]:
        yield from self.__data

    def __len__(self) -> int:
        return len(self.__data)

    def __repr__(self) -> str:
        return f"<{self.__class__.__qualname__}({self.__data}) [{hex(id(self))}]>"

    def __str__(self) -> str:
        return str(self.__data)

    def lookup_prefix(self, namespace: str | None) -> Optional[str]:
        """
        Resolves a namespace to a prefix.
        """
        return self.__inverse_data.get(namespace or "")

    def with_declarations(self, declarations: NamespaceDeclarations) -> Namespaces:
        """Returns a new instance where the given declarations override."""
        if not declarations:
            return self
        return Namespaces({**self.__data, **declarations})

    @classmethod
    def __init_data(
        cls, declarations: NamespaceDeclarations
    ) -> tuple[_NamespaceDeclarations, _NamespaceDeclarations]:
        _hash = hash(frozenset(declarations.items()))
        if (cached_result := cls.__init_cache.pop(_hash, None)) is not None:
            cls.__init_cache[_hash] = cached_result  # put lru to the end
            return cached_result

        data = cls.__normalize_declarations(declarations)
        inverse_data = {v: k for k, v in data.items()}
        cls.__init_cache[_hash] = (data, inverse_data)
        if len(cls.__init_cache) > 64:
            cls.__init_cache.pop(next(iter(cls.__init_cache)))

        return data, inverse_data

    @classmethod
    def __normalize_declarations(
        cls,
        declarations: NamespaceDeclarations,
    ) -> _NamespaceDeclarations:
        if None in declarations and "" in declarations:
            raise ValueError(
                "A default namespace has been defined redundantly with '' and `None.`"
            )

        result: dict[str, str] = dict(FUNCTION_NAMESPACES)

        for prefix, namespace in declarations.items():
            if prefix in GLOBAL_PREFIXES:
                if namespace == GLOBAL_NAMESPACES[prefix]:
                    continue
                # https://www.w3.org/TR/xml-names/#xmlReserved
                raise ValueError(f"One must not override the global prefix `{prefix}`.")
            if namespace in (XML_NAMESPACE, XMLNS_NAMESPACE):
                raise ValueError(f"The namespace `{namespace}` must not be overridden.")
            result["" if prefix is None else prefix] = namespace

        result.update(GLOBAL_NAMESPACES)
        return result


__all__ = (
    "FUNCTION_NAMESPACES",
    "GLOBAL_NAMESPACES",
    "GLOBAL_PREFIXES",
    "XHTML_NAMESPACE",
    "XML_NAMESPACE",
    "XMLNS_NAMESPACE",
    "XPATH_FUNCTIONS_NAMESPACE",
    "XSLT_NAMESPACE",
    deconstruct_clark_notation.__name__,
    Namespaces.__name__,
    split_qualified_name.__name__,
)
