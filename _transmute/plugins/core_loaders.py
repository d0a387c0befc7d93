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
The ``core_loaders`` module provides a set loaders to retrieve documents from various
data sources.
"""

from __future__ import annotations

from contextlib import suppress
from io import IOBase, UnsupportedOperation
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote, urlparse

from _transmute.builder import parse_document
from _transmute.nodes import DocumentNode, ElementNode
from _transmute.plugins import plugin_manager

if TYPE_CHECKING:
    from types import SimpleNamespace

    from _transmute.typing import LoaderResult


def node_loader(data: Any, config: SimpleNamespace) -> LoaderResult:
    """
    This loader uses a document node as it is, the document of an element that is
    attached to one or a copy of a detached element that is wrapped in a new document.
    """
    if isinstance(data, DocumentNode):
        return data
    if isinstance(data, ElementNode):
        if isinstance(data._parent, DocumentNode):
            return data._parent
        elif data._parent is not None:
            return "Node has a parent node that isn't a document node."
        return DocumentNode((data.clone(deep=True),))
    return "The input value is not a document or element node."


@plugin_manager.register_loader()
def path_loader(data: Any, config: SimpleNamespace) -> LoaderResult:
    """
    This loader loads from a file that is pointed at with a :class:`pathlib.Path`
    instance. The file's URL will be bound to ``source_url`` on the ``config``
    namespace.
    """
    if isinstance(data, Path):
        if not getattr(config, "source_url", None):
            config.source_url = (Path.cwd() / data).as_uri()
        with data.open("rb") as file:
            return buffer_loader(file, config)
    return "The input value is not a pathlib.Path instance."


@plugin_manager.register_loader(after=path_loader)
def buffer_loader(data: Any, config: SimpleNamespace) -> LoaderResult:
    """
    This loader loads a document from a :term:`file-like object` that reads binary data.
    """
    if isinstance(data, IOBase):
        if (
            not getattr(config, "source_url", None)
            and isinstance(name := getattr(data, "name", None), (bytes, str))
            and (
                path := Path.cwd()
                / Path(name if isinstance(name, str) else name.decode())
            ).is_file()
        ):
            config.source_url = path.as_uri()
        with suppress(UnsupportedOperation):
            data.seek(0)
        return parse_document(
            data,
            config.parser_options,
            base_url=getattr(config, "source_url", None),
        )
    return "The input value is no buffer object."


@plugin_manager.register_loader()
def text_loader(data: Any, config: SimpleNamespace) -> LoaderResult:
    """
    Parses a string or a byte sequence containing a full document.
    """
    if isinstance(data, str) and data.lstrip().startswith("<"):
        return parse_document(
            data, config.parser_options, base_url=getattr(config, "source_url", None)
        )
    if isinstance(data, bytes):
        return parse_document(
            data, config.parser_options, base_url=getattr(config, "source_url", None)
        )
    return "The input value is not a byte sequence or a string with markup."


@plugin_manager.register_loader()
def file_loader(data: Any, config: SimpleNamespace) -> LoaderResult:
    """
    This loader loads a document from a URL with the ``file`` scheme or from a local
    path that is given as string.
    """
    if not isinstance(data, str):
        return "The input value is not a string."

    if data.startswith("file:"):
        path = Path(unquote(urlparse(data).path))
        config.source_url = data
    else:
        path = Path(data)
        if not path.is_file():
            return "The input value is neither a file URL nor a path to a file."
        config.source_url = path.resolve().as_uri()

    return path_loader(path, config)


__all__ = (
    buffer_loader.__name__,
    file_loader.__name__,
    node_loader.__name__,
    path_loader.__name__,
    text_loader.__name__,
)
