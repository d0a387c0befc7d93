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

import logging
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Optional

from _transmute.exceptions import FailedDocumentLoading
from _transmute.nodes import DocumentNode
from _transmute.parser import ParserOptions
from _transmute.plugins import plugin_manager
from _transmute.plugins.core_loaders import node_loader

if TYPE_CHECKING:
    from _transmute.typing import Loader


logger = logging.getLogger(__name__)


def load_document(
    source: Any,
    parser_options: Optional[ParserOptions] = None,
    *,
    source_url: Optional[str] = None,
) -> DocumentNode:
    """
    Makes a document node from anything that one of the registered loaders can make
    sense of, e.g. a string with markup, bytes, a path, a file URL, a binary buffer or
    an existing node.

    :raises FailedDocumentLoading: When no loader could handle the source.
    """
    config = SimpleNamespace(
        parser_options=parser_options or ParserOptions(), source_url=source_url
    )
    loader_excuses: dict[Loader, str | Exception] = {}

    for loader in (node_loader, *plugin_manager.loaders):
        try:
            loader_result = loader(source, config)
        except Exception as e:
            loader_excuses[loader] = e
        else:
            if isinstance(loader_result, str):
                loader_excuses[loader] = loader_result
            else:
                break
    else:
        raise FailedDocumentLoading(source, loader_excuses)

    assert isinstance(loader_result, DocumentNode)
    if loader_result.base_url is None and config.source_url:
        loader_result.base_url = config.source_url
    logger.debug("Loaded a document with %s.", loader.__name__)
    return loader_result


__all__ = (load_document.__name__,)
