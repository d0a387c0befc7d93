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
Template rules and keys select nodes with patterns. These are parsed as XPath
expressions and matched against a node from right to left where possible, that is by
testing the node against the last step and walking up to its ancestors for the
preceding ones. Patterns that can't be matched that way, e.g. those with positional
predicates or function calls, are matched by evaluating them from the node's ancestors
and looking for the node in the result.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from _transmute.exceptions import XPathParsingError, XSLTValidationError
from _transmute.nodes import (
    AttributeNode,
    DocumentFragmentNode,
    DocumentNode,
    NodeBase,
)
from _transmute.xpath.ast import (
    LocationExpr,
    NameTest,
    NodeTypeTest,
    ProcessingInstructionTest,
    StepExpr,
    UnionExpr,
    WildcardTest,
)
from _transmute.xpath.parser import parse

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Final

    from _transmute.xpath.ast import Expr
    from _transmute.xpath.context import ExprContext

_RIGHT_TO_LEFT_AXES: Final = frozenset(
    ("attribute", "child", "descendant", "descendant-or-self", "self")
)


def _alternatives(expression: Expr) -> Iterator[Expr]:
    if isinstance(expression, UnionExpr):
        yield from _alternatives(expression.left)
        yield from _alternatives(expression.right)
    else:
        yield expression


def _is_root(node: Optional[NodeBase]) -> bool:
    return isinstance(node, (DocumentNode, DocumentFragmentNode))


def default_priority(expression: Expr) -> float:
    """Determines the priority of a pattern alternative that declares none."""
    if not isinstance(expression, LocationExpr):
        return 0.5

    if expression.absolute and not expression.steps:
        return -0.5

    if expression.absolute or len(expression.steps) != 1:
        return 0.5

    step = expression.steps[0]
    if not isinstance(step, StepExpr) or step.predicates:
        return 0.5
    if step.axis.name not in ("attribute", "child"):
        return 0.5

    match step.node_test:
        case NameTest() | ProcessingInstructionTest():
            return 0.0
        case WildcardTest(prefix=None, local_name=None):
            return -0.5
        case WildcardTest():
            return -0.25
        case NodeTypeTest(name_test=NameTest()):
            return 0.0
        case NodeTypeTest():
            return -0.5
    return 0.5


class PatternAlternative:
    """One alternative of a pattern, the parts of a union are alternatives."""

    __slots__ = ("expression", "right_to_left", "text")

    def __init__(self, expression: Expr, text: str):
        self.expression: Final = expression
        self.text: Final = text
        self.right_to_left: Final = self._is_matchable_from_right(expression)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.text!r})>"

    @staticmethod
    def _is_matchable_from_right(expression: Expr) -> bool:
        if not isinstance(expression, LocationExpr):
            return False
        for step in expression.steps:
            if not isinstance(step, StepExpr):
                return False
            if step.axis.name not in _RIGHT_TO_LEFT_AXES:
                return False
            if step.has_positional_predicate:
                return False
            if step.axis.name == "descendant-or-self" and (
                step.predicates
                or not (
                    isinstance(step.node_test, NodeTypeTest)
                    and step.node_test.kind == "node"
                )
            ):
                return False
        return True

    @property
    def default_priority(self) -> float:
        return default_priority(self.expression)

    def matches(self, node: NodeBase, context: ExprContext) -> bool:
        if self.right_to_left:
            assert isinstance(self.expression, LocationExpr)
            steps = self.expression.steps
            if not steps:
                return self.expression.absolute and _is_root(node)
            return self._match_step(node, len(steps) - 1, context)
        return self._match_by_evaluation(node, context)

    def _finish(self, node: NodeBase, index: int, context: ExprContext) -> bool:
        # tests the steps before index against node, which is the context of the
        # step at index
        if index == 0:
            return not self.expression.absolute or _is_root(node)  # type: ignore
        return self._match_step(node, index - 1, context)

    def _match_step(self, node: NodeBase, index: int, context: ExprContext) -> bool:
        step = self.expression.steps[index]  # type: ignore
        assert isinstance(step, StepExpr)
        axis = step.axis.name

        if axis == "descendant-or-self":
            # the abbreviation // between two steps
            candidate: Optional[NodeBase] = node
            while candidate is not None:
                if self._finish(candidate, index, context):
                    return True
                candidate = candidate.parent
            return False

        if axis == "attribute":
            if not isinstance(node, AttributeNode):
                return False
        elif isinstance(node, AttributeNode) or (axis != "self" and _is_root(node)):
            return False

        if not step.node_test.evaluate(node, context):
            return False
        if step.predicates and not self._match_predicates(step, node, context):
            return False

        if axis == "self":
            return self._finish(node, index, context)

        parent = node.parent
        if parent is None:
            return index == 0 and not self.expression.absolute  # type: ignore

        if axis == "descendant":
            ancestor: Optional[NodeBase] = parent
            while ancestor is not None:
                if self._finish(ancestor, index, context):
                    return True
                ancestor = ancestor.parent
            return False

        return self._finish(parent, index, context)

    @staticmethod
    def _match_predicates(
        step: StepExpr, node: NodeBase, context: ExprContext
    ) -> bool:
        items = [node]
        for predicate in step.predicates:
            items = predicate.filter(context, items)  # type: ignore
            if not items:
                return False
        return True

    def _match_by_evaluation(self, node: NodeBase, context: ExprContext) -> bool:
        expression = self.expression
        absolute = isinstance(expression, LocationExpr) and expression.absolute
        candidate: Optional[NodeBase] = node.root if absolute else node
        while candidate is not None:
            evaluation_context = context.clone((candidate,), 0)
            evaluation_context.return_on_first_match = False
            result = expression.evaluate(evaluation_context)
            if any(x is node for x in result.to_node_set()):
                return True
            if absolute:
                break
            candidate = candidate.parent
        return False


class Pattern:
    """A parsed pattern with its alternatives."""

    __slots__ = ("alternatives", "text")

    def __init__(self, text: str):
        self.text: Final = text
        try:
            expression = parse(text)
        except XPathParsingError as e:
            raise XSLTValidationError(f"Invalid pattern `{text}`: {e}") from e
        self.alternatives: Final = tuple(
            PatternAlternative(x, text) for x in _alternatives(expression)
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self.text!r})>"

    def matches(self, node: NodeBase, context: ExprContext) -> bool:
        return any(x.matches(node, context) for x in self.alternatives)

    def is_self_referential(self) -> bool:
        """
        Tests whether the pattern selects the parent of the root, like ``/..``. Such
        templates are never applied.
        """
        return all(
            isinstance(x.expression, LocationExpr)
            and x.expression.absolute
            and x.expression.steps
            and isinstance(step := x.expression.steps[0], StepExpr)
            and step.axis.name in ("parent", "ancestor")
            for x in self.alternatives
        )


@lru_cache(256)
def compile_pattern(text: str) -> Pattern:
    return Pattern(text)


__all__ = (
    Pattern.__name__,
    PatternAlternative.__name__,
    compile_pattern.__name__,
    default_priority.__name__,
)
