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
*transmute* executes XSLT stylesheets of the versions 1.0, 2.0 and 3.0 on its node
tree. Stylesheets are compiled to :class:`Stylesheet` objects that can be applied
to any number of source documents with a :class:`XSLTProcessor`.

The implementation covers the instructions and declarations that are commonly used,
with these deviations from the W3C's specifications:

- There's no schema awareness and no static type checking, the ``as`` attributes
  are only regarded to cast atomic values.
- Accumulators, character maps, packages and streaming aren't supported.
- Patterns of plain steps without positional predicates are matched right-to-left,
  others are evaluated as expressions.

Instructions are implemented as plugins, see
:meth:`_transmute.plugins.PluginManager.register_xslt_instruction`.
"""

from __future__ import annotations

from _transmute.xslt import functions, instructions  # noqa: F401
from _transmute.xslt.processor import Transformation, XSLTProcessor
from _transmute.xslt.stylesheet import Stylesheet


__all__ = (
    Stylesheet.__name__,
    Transformation.__name__,
    XSLTProcessor.__name__,
)
