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

import math
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from _transmute.exceptions import XSLTError, XSLTValidationError
from _transmute.nodes import AttributeNode, NodeBase

if TYPE_CHECKING:
    from _transmute.nodes import ElementNode
    from _transmute.xpath.context import ExprContext
    from _transmute.xpath.values import Item
    from _transmute.xslt.processor import Transformation


def _text_key(string: str, case_order: str) -> tuple[str, tuple[bool, ...]]:
    if case_order == "lower-first":
        return string.casefold(), tuple(c.isupper() for c in string)
    return string.casefold(), tuple(c.islower() for c in string)


def _number_key(string: str) -> tuple[int, float]:
    try:
        number = float(string)
    except ValueError:
        number = math.nan
    # NaN precedes all numbers
    return (0, 0.0) if math.isnan(number) else (1, number)


def sort_order(
    transformation: Transformation,
    sort_elements: Sequence[ElementNode],
    contexts: Sequence[ExprContext],
    context: ExprContext,
) -> list[int]:
    """
    Computes the sort keys that the ``xsl:sort`` elements define in each of the given
    contexts and returns the indexes of the contexts in sorted order. The sort is
    stable, items with equal keys keep their order.

    :raises XSLTValidationError: If an ``order`` or ``data-type`` value is invalid.
    """
    order = list(range(len(contexts)))
    for sort_element in reversed(sort_elements):
        direction = transformation.attribute_value(
            sort_element, "order", context, "ascending"
        )
        data_type = transformation.attribute_value(
            sort_element, "data-type", context, "text"
        )
        case_order = transformation.attribute_value(
            sort_element, "case-order", context, "upper-first"
        )
        if direction not in ("ascending", "descending"):
            raise XSLTValidationError(
                f"Invalid sort order: {direction}", instruction="sort"
            )
        if data_type not in ("text", "number") and ":" not in data_type:
            raise XSLTValidationError(
                f"Invalid data type: {data_type}", instruction="sort"
            )

        keys: list[Any] = []
        for item_context in contexts:
            string = transformation.sort_key_string(sort_element, item_context)
            keys.append(
                _number_key(string)
                if data_type == "number"
                else _text_key(string, case_order)
            )

        order.sort(key=keys.__getitem__, reverse=direction == "descending")

    return order


def sort_items(
    transformation: Transformation,
    sort_elements: Sequence[ElementNode],
    items: Sequence[Item],
    context: ExprContext,
) -> list[Item]:
    """
    Sorts items by the keys that the ``xsl:sort`` elements define, the keys are
    evaluated with each item as context item.
    """
    contexts = []
    for position, item in enumerate(items):
        item_context = context.clone(items, position)
        item_context.current_item = item
        item_context.return_on_first_match = False
        contexts.append(item_context)
    return [
        items[i] for i in sort_order(transformation, sort_elements, contexts, context)
    ]


@contextmanager
def reparented_for_iteration(nodes: Sequence[NodeBase]) -> Iterator[None]:
    """
    Splices sorted nodes into the slots that they occupy in their parent's child list,
    so that sibling axes reflect the sorted order during an iteration. The original
    order is restored afterwards.

    :raises XSLTError: If the nodes don't share one parent.
    """
    if len(nodes) < 2:
        yield
        return

    parent = nodes[0].parent
    if parent is None or any(
        isinstance(x, AttributeNode) or x.parent is not parent for x in nodes
    ):
        raise XSLTError("Sorted nodes must share one parent to be reordered.")

    siblings = parent._child_nodes
    indexes = sorted(siblings.index(x) for x in nodes)
    original = [siblings[i] for i in indexes]
    siblings._replace_slots(indexes, nodes)
    try:
        yield
    finally:
        siblings._replace_slots(indexes, original)


def share_one_parent(items: Sequence[Item]) -> bool:
    if not items or not isinstance(items[0], NodeBase):
        return False
    parent = items[0].parent
    return parent is not None and all(
        isinstance(x, NodeBase)
        and not isinstance(x, AttributeNode)
        and x.parent is parent
        for x in items
    )


__all__ = (
    reparented_for_iteration.__name__,
    share_one_parent.__name__,
    sort_items.__name__,
    sort_order.__name__,
)
