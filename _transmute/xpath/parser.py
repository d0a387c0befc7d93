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
A recursive descent parser that builds an expression tree from the tokens of an XPath
expression. It covers XPath 1.0 and the bulk of the expression syntax of XPath 2.0 to
3.1. The namespace axis, schema tests and partial function application are rejected.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Optional

from _transmute.exceptions import XPathParsingError, XPathUnsupportedStandardFeature
from _transmute.names import deconstruct_clark_notation, split_qualified_name
from _transmute.xpath.ast import (
    ArrayConstructorExpr,
    Axis,
    BinaryExpr,
    CastExpr,
    ContextItemExpr,
    DynamicCallExpr,
    ExpressionStep,
    Expr,
    FilterExpr,
    ForExpr,
    FunctionCallExpr,
    IfExpr,
    InlineFunctionExpr,
    InstanceOfExpr,
    LetExpr,
    LiteralExpr,
    LocationExpr,
    LookupExpr,
    MapConstructorExpr,
    NamedFunctionRefExpr,
    NameTest,
    NodeTest,
    NodeTypeTest,
    NumberExpr,
    PathExpr,
    PredicateExpr,
    ProcessingInstructionTest,
    QuantifiedExpr,
    SequenceExpr,
    SequenceType,
    SimpleMapExpr,
    StepExpr,
    UnaryMinusExpr,
    UnionExpr,
    VariableExpr,
    WildcardTest,
)
from _transmute.xpath.tokenizer import Token, TokenType, tokenize, unquote_string


if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Final


KIND_TESTS: Final = frozenset(
    (
        "attribute",
        "comment",
        "document-node",
        "element",
        "namespace-node",
        "node",
        "processing-instruction",
        "schema-attribute",
        "schema-element",
        "text",
    )
)
COMPARISON_OPERATORS: Final = frozenset(
    ("=", "!=", "<", "<=", ">", ">=", "<<", ">>")
)
COMPARISON_KEYWORDS: Final = frozenset(("eq", "ne", "lt", "le", "gt", "ge", "is"))
MULTIPLICATIVE_KEYWORDS: Final = frozenset(("div", "idiv", "mod"))


def _descendant_or_self_step() -> StepExpr:
    return StepExpr(Axis("descendant-or-self"), NodeTypeTest("node"))


def _self_step() -> StepExpr:
    return StepExpr(Axis("self"), NodeTypeTest("node"))


class _Parser:
    __slots__ = ("expression", "index", "tokens")

    def __init__(self, expression: str):
        self.expression: Final = expression
        self.tokens: Final[Sequence[Token]] = tokenize(expression)
        self.index = 0

    # token handling

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of expression.")
        self.index += 1
        return token

    def at(
        self, token_type: TokenType, string: Optional[str] = None, offset: int = 0
    ) -> bool:
        token = self.peek(offset)
        return (
            token is not None
            and token.type is token_type
            and (string is None or token.string == string)
        )

    def at_keyword(self, *keywords: str, offset: int = 0) -> bool:
        """
        Tests whether a name that isn't the prefix of a qualified name is one of the
        keywords.
        """
        return (
            self.at(TokenType.NAME, offset=offset)
            and self.tokens[self.index + offset].string in keywords
            and not self._continues_name(self.index + offset)
        )

    def error(
        self, message: str, token: Optional[Token] = None
    ) -> XPathParsingError:
        if token is None:
            token = self.peek()
        return XPathParsingError(
            expression=self.expression,
            position=len(self.expression) if token is None else token.position,
            message=message,
        )

    def expect(self, token_type: TokenType, string: Optional[str] = None) -> Token:
        if not self.at(token_type, string):
            raise self.error(f"Expected `{string or token_type.name}`.")
        return self.advance()

    def peek(self, offset: int = 0) -> Optional[Token]:
        index = self.index + offset
        if index < len(self.tokens):
            return self.tokens[index]
        return None

    def _adjacent(self, index: int) -> bool:
        """Whether the token at the index directly follows its predecessor."""
        if not 0 < index < len(self.tokens):
            return False
        return self.tokens[index - 1].end == self.tokens[index].position

    def _continues_name(self, index: int) -> bool:
        return (
            index + 2 < len(self.tokens)
            and self.tokens[index + 1].type is TokenType.COLON
            and self.tokens[index + 2].type in (TokenType.NAME, TokenType.ASTERISK)
            and self._adjacent(index + 1)
            and self._adjacent(index + 2)
        )

    def _name_length(self) -> int:
        """The count of tokens that the qualified name at the current position spans."""
        if self.at(TokenType.BRACED_URI):
            return 2
        if self._continues_name(self.index):
            return 3
        return 1

    # names

    def parse_qualified_name(self) -> str:
        token = self.peek()
        if token is not None and token.type is TokenType.BRACED_URI:
            self.advance()
            local_name = self.expect(TokenType.NAME).string
            return f"{{{token.string[2:-1]}}}{local_name}"

        name = self.expect(TokenType.NAME).string
        if self._continues_name(self.index - 1) and self.at(TokenType.NAME, offset=1):
            self.advance()
            name = f"{name}:{self.advance().string}"
        return name

    def parse_variable_name(self) -> str:
        self.expect(TokenType.DOLLAR)
        return self.parse_qualified_name()

    # entry

    def parse(self) -> Expr:
        if not self.tokens:
            raise self.error("Empty expression.")
        result = self.parse_expr()
        if self.index < len(self.tokens):
            raise self.error("Unexpected token.")
        return result

    # expressions by precedence

    def parse_expr(self) -> Expr:
        items = [self.parse_expr_single()]
        while self.at(TokenType.COMMA):
            self.advance()
            items.append(self.parse_expr_single())
        if len(items) == 1:
            return items[0]
        return SequenceExpr(items)

    def parse_expr_single(self) -> Expr:
        if self.at(TokenType.DOLLAR, offset=1):
            if self.at_keyword("for"):
                return self.parse_for()
            if self.at_keyword("let"):
                return self.parse_let()
            if self.at_keyword("some", "every"):
                return self.parse_quantified()
        if self.at_keyword("if") and self.at(TokenType.OPEN_PARENS, offset=1):
            return self.parse_if()
        return self.parse_or()

    def _parse_bindings(self, separator: TokenType | str) -> list[tuple[str, Expr]]:
        bindings = []
        while True:
            name = self.parse_variable_name()
            if separator == "in":
                if not self.at_keyword("in"):
                    raise self.error("Expected `in`.")
                self.advance()
            else:
                assert isinstance(separator, TokenType)
                self.expect(separator)
            bindings.append((name, self.parse_expr_single()))
            if not self.at(TokenType.COMMA):
                return bindings
            self.advance()

    def _expect_keyword(self, keyword: str):
        if not self.at_keyword(keyword):
            raise self.error(f"Expected `{keyword}`.")
        self.advance()

    def parse_for(self) -> Expr:
        self.advance()
        bindings = self._parse_bindings("in")
        self._expect_keyword("return")
        return ForExpr(bindings, self.parse_expr_single())

    def parse_let(self) -> Expr:
        self.advance()
        bindings = self._parse_bindings(TokenType.ASSIGN)
        self._expect_keyword("return")
        return LetExpr(bindings, self.parse_expr_single())

    def parse_quantified(self) -> Expr:
        quantifier = self.advance().string
        bindings = self._parse_bindings("in")
        self._expect_keyword("satisfies")
        return QuantifiedExpr(quantifier, bindings, self.parse_expr_single())

    def parse_if(self) -> Expr:
        self.advance()
        self.expect(TokenType.OPEN_PARENS)
        condition = self.parse_expr()
        self.expect(TokenType.CLOSE_PARENS)
        self._expect_keyword("then")
        then_branch = self.parse_expr_single()
        self._expect_keyword("else")
        return IfExpr(condition, then_branch, self.parse_expr_single())

    def parse_or(self) -> Expr:
        result = self.parse_and()
        while self.at_keyword("or"):
            self.advance()
            result = BinaryExpr("or", result, self.parse_and())
        return result

    def parse_and(self) -> Expr:
        result = self.parse_comparison()
        while self.at_keyword("and"):
            self.advance()
            result = BinaryExpr("and", result, self.parse_comparison())
        return result

    def parse_comparison(self) -> Expr:
        result = self.parse_string_concat()
        while True:
            token = self.peek()
            if token is None:
                return result
            if (
                token.type is TokenType.OTHER_OPS
                and token.string in COMPARISON_OPERATORS
            ) or self.at_keyword(*COMPARISON_KEYWORDS):
                self.advance()
                result = BinaryExpr(token.string, result, self.parse_string_concat())
            else:
                return result

    def parse_string_concat(self) -> Expr:
        result = self.parse_range()
        while self.at(TokenType.CONCAT):
            self.advance()
            result = BinaryExpr("||", result, self.parse_range())
        return result

    def parse_range(self) -> Expr:
        result = self.parse_additive()
        if self.at_keyword("to"):
            self.advance()
            result = BinaryExpr("to", result, self.parse_additive())
        return result

    def parse_additive(self) -> Expr:
        result = self.parse_multiplicative()
        while self.at(TokenType.OTHER_OPS, "+") or self.at(TokenType.OTHER_OPS, "-"):
            operator = self.advance().string
            result = BinaryExpr(operator, result, self.parse_multiplicative())
        return result

    def parse_multiplicative(self) -> Expr:
        result = self.parse_union()
        while True:
            if self.at(TokenType.ASTERISK):
                self.advance()
                result = BinaryExpr("*", result, self.parse_union())
            elif self.at_keyword(*MULTIPLICATIVE_KEYWORDS):
                operator = self.advance().string
                result = BinaryExpr(operator, result, self.parse_union())
            else:
                return result

    def parse_union(self) -> Expr:
        result = self.parse_intersect_except()
        while self.at(TokenType.PASEQ) or self.at_keyword("union"):
            self.advance()
            result = UnionExpr(result, self.parse_intersect_except())
        return result

    def parse_intersect_except(self) -> Expr:
        result = self.parse_instance_of()
        while self.at_keyword("intersect", "except"):
            operator = self.advance().string
            result = BinaryExpr(operator, result, self.parse_instance_of())
        return result

    def parse_instance_of(self) -> Expr:
        result = self.parse_castable()
        if self.at_keyword("instance") and self.at_keyword("of", offset=1):
            self.index += 2
            result = InstanceOfExpr(result, self.parse_sequence_type())
        return result

    def parse_castable(self) -> Expr:
        result = self.parse_cast()
        if self.at_keyword("castable") and self.at_keyword("as", offset=1):
            self.index += 2
            type_name, optional = self.parse_single_type()
            result = CastExpr(result, type_name, optional, castable=True)
        return result

    def parse_cast(self) -> Expr:
        result = self.parse_arrow()
        if self.at_keyword("cast") and self.at_keyword("as", offset=1):
            self.index += 2
            type_name, optional = self.parse_single_type()
            result = CastExpr(result, type_name, optional, castable=False)
        return result

    def parse_arrow(self) -> Expr:
        result = self.parse_unary()
        while self.at(TokenType.ARROW):
            self.advance()
            if self.at(TokenType.DOLLAR):
                function: Optional[Expr] = VariableExpr(self.parse_variable_name())
            elif self.at(TokenType.OPEN_PARENS):
                function = self.parse_parenthesized()
            else:
                function = None
                name_token = self.peek()
                name = self.parse_qualified_name()
            arguments = [result, *self.parse_argument_list()]
            if function is None:
                result = self._function_call(name, arguments, name_token)
            else:
                result = DynamicCallExpr(function, arguments)
        return result

    def parse_unary(self) -> Expr:
        negative = False
        while self.at(TokenType.OTHER_OPS, "-") or self.at(TokenType.OTHER_OPS, "+"):
            if self.advance().string == "-":
                negative = not negative
        result = self.parse_simple_map()
        if negative:
            return UnaryMinusExpr(result)
        return result

    def parse_simple_map(self) -> Expr:
        result = self.parse_path()
        while self.at(TokenType.BANG):
            self.advance()
            result = SimpleMapExpr(result, self.parse_path())
        return result

    # paths

    def parse_path(self) -> Expr:
        if self.at(TokenType.SLASH):
            self.advance()
            if self._can_start_step():
                return LocationExpr(self._parse_steps([]), absolute=True)
            return LocationExpr((), absolute=True)

        if self.at(TokenType.SLASH_SLASH):
            self.advance()
            return LocationExpr(
                self._parse_steps([_descendant_or_self_step()]), absolute=True
            )

        first = self.parse_step()
        if not (self.at(TokenType.SLASH) or self.at(TokenType.SLASH_SLASH)):
            if isinstance(first, StepExpr):
                return LocationExpr((first,), absolute=False)
            return first

        if isinstance(first, ContextItemExpr):
            return LocationExpr(self._parse_steps([_self_step()], True), False)
        if isinstance(first, StepExpr):
            return LocationExpr(self._parse_steps([first], True), absolute=False)
        return PathExpr(first, LocationExpr(self._parse_steps([], True), False))

    def _can_start_step(self) -> bool:
        token = self.peek()
        if token is None:
            return False
        return token.type in (
            TokenType.ASTERISK,
            TokenType.BRACED_URI,
            TokenType.DOLLAR,
            TokenType.DOT,
            TokenType.DOT_DOT,
            TokenType.NAME,
            TokenType.NUMBER,
            TokenType.OPEN_PARENS,
            TokenType.STRING,
            TokenType.STRUDEL,
        )

    def _parse_steps(
        self, steps: list[StepExpr | ExpressionStep], separated: bool = False
    ) -> list[StepExpr | ExpressionStep]:
        """
        Parses steps and the separators between them. With ``separated`` the parser is
        positioned at a separator, otherwise at a step.
        """
        if separated:
            self._parse_separator(steps)
        while True:
            step = self.parse_step()
            if isinstance(step, ContextItemExpr):
                step = _self_step()
            if isinstance(step, StepExpr):
                if (
                    steps
                    and step.axis.name == "child"
                    and not step.has_positional_predicate
                    and steps[-1] == _descendant_or_self_step()
                ):
                    steps[-1] = StepExpr(
                        Axis("descendant"), step.node_test, step.predicates
                    )
                else:
                    steps.append(step)
            else:
                steps.append(ExpressionStep(step))

            if not (self.at(TokenType.SLASH) or self.at(TokenType.SLASH_SLASH)):
                return steps
            self._parse_separator(steps)

    def _parse_separator(self, steps: list[StepExpr | ExpressionStep]):
        if self.advance().type is TokenType.SLASH_SLASH:
            steps.append(_descendant_or_self_step())

    def parse_step(self) -> Expr:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of expression.")

        if token.type is TokenType.DOT_DOT:
            self.advance()
            step = StepExpr(Axis("parent"), NodeTypeTest("node"))
        elif token.type is TokenType.STRUDEL:
            self.advance()
            step = StepExpr(Axis("attribute"), self.parse_node_test(attribute=True))
        elif token.type is TokenType.NAME and self.at(
            TokenType.AXIS_SEPARATOR, offset=1
        ):
            if token.string == "namespace":
                raise XPathUnsupportedStandardFeature(
                    token.position, "The namespace axis"
                )
            try:
                axis = Axis(token.string)
            except XPathParsingError as e:
                raise self.error(e.message or "Invalid axis.", token) from None
            self.index += 2
            step = StepExpr(axis, self.parse_node_test(axis.name == "attribute"))
        elif self._at_node_test():
            attribute = self.at_keyword("attribute") and self.at(
                TokenType.OPEN_PARENS, offset=1
            )
            step = StepExpr(
                Axis("attribute" if attribute else "child"),
                self.parse_node_test(attribute),
            )
        else:
            return self.parse_postfix()

        while self.at(TokenType.OPEN_BRACKET):
            step.append_predicate(self.parse_predicate())
        return step

    def _at_node_test(self) -> bool:
        token = self.peek()
        if token is None:
            return False
        if token.type is TokenType.ASTERISK:
            return True
        if token.type not in (TokenType.NAME, TokenType.BRACED_URI):
            return False

        length = self._name_length()
        following = self.peek(length)
        if following is None:
            return True
        match following.type:
            case TokenType.OPEN_PARENS:
                return length == 1 and token.string in KIND_TESTS
            case TokenType.HASH:
                return False
            case TokenType.OPEN_BRACE:
                return not (length == 1 and token.string in ("map", "array"))
        return True

    def parse_node_test(self, attribute: bool = False) -> NodeTest:
        token = self.advance()

        if token.type is TokenType.ASTERISK:
            if self._adjacent(self.index) and self.at(TokenType.COLON):
                self.advance()
                return WildcardTest(
                    local_name=self.expect(TokenType.NAME).string, attribute=attribute
                )
            return WildcardTest(attribute=attribute)

        if token.type is TokenType.BRACED_URI:
            return NameTest(
                None,
                self.expect(TokenType.NAME).string,
                attribute=attribute,
                namespace=token.string[2:-1],
            )

        if token.type is not TokenType.NAME:
            raise self.error("Expected a node test.", token)

        name = token.string
        if name in KIND_TESTS and self.at(TokenType.OPEN_PARENS):
            return self.parse_kind_test(name, token)

        if self._continues_name(self.index - 1):
            self.advance()
            if self.at(TokenType.ASTERISK):
                self.advance()
                return WildcardTest(prefix=name, attribute=attribute)
            return NameTest(name, self.advance().string, attribute=attribute)

        return NameTest(None, name, attribute=attribute)

    def parse_kind_test(self, kind: str, token: Token) -> NodeTest:
        if kind in ("schema-element", "schema-attribute", "namespace-node"):
            raise XPathUnsupportedStandardFeature(token.position, f"{kind}()")

        self.expect(TokenType.OPEN_PARENS)
        result: NodeTest

        match kind:
            case "processing-instruction":
                if self.at(TokenType.STRING):
                    result = ProcessingInstructionTest(
                        unquote_string(self.advance().string).strip()
                    )
                elif self.at(TokenType.NAME):
                    result = ProcessingInstructionTest(self.advance().string)
                else:
                    result = NodeTypeTest(kind)
            case "element" | "attribute":
                name_test: Optional[NodeTest] = None
                if self.at(TokenType.ASTERISK):
                    self.advance()
                elif not self.at(TokenType.CLOSE_PARENS):
                    namespace, name = deconstruct_clark_notation(
                        self.parse_qualified_name()
                    )
                    prefix, local_name = split_qualified_name(name)
                    name_test = NameTest(
                        prefix,
                        local_name,
                        attribute=kind == "attribute",
                        namespace=namespace,
                    )
                if self.at(TokenType.COMMA):
                    # the type annotation isn't considered
                    self.advance()
                    self.parse_qualified_name()
                    if self.at(TokenType.QUESTION):
                        self.advance()
                result = NodeTypeTest(kind, name_test)
            case "document-node":
                if not self.at(TokenType.CLOSE_PARENS):
                    if not self.at_keyword("element"):
                        raise self.error("Expected an element test.")
                    self.parse_kind_test("element", self.advance())
                result = NodeTypeTest(kind)
            case _:
                result = NodeTypeTest(kind)

        self.expect(TokenType.CLOSE_PARENS)
        return result

    def parse_predicate(self) -> PredicateExpr:
        self.expect(TokenType.OPEN_BRACKET)
        expression = self.parse_expr()
        self.expect(TokenType.CLOSE_BRACKET)
        return PredicateExpr(expression)

    # primary and postfix expressions

    def parse_postfix(self) -> Expr:
        result = self.parse_primary()
        predicates: list[PredicateExpr] = []
        while True:
            if self.at(TokenType.OPEN_BRACKET):
                predicates.append(self.parse_predicate())
                continue
            if predicates:
                result = FilterExpr(result, predicates)
                predicates = []
            if self.at(TokenType.OPEN_PARENS):
                result = DynamicCallExpr(result, self.parse_argument_list())
            elif self.at(TokenType.QUESTION):
                self.advance()
                result = LookupExpr(result, self.parse_lookup_key())
            else:
                return result

    def parse_primary(self) -> Expr:  # noqa: C901
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of expression.")

        match token.type:
            case TokenType.STRING:
                self.advance()
                return LiteralExpr(unquote_string(token.string))
            case TokenType.NUMBER:
                self.advance()
                return NumberExpr(float(token.string))
            case TokenType.DOLLAR:
                return VariableExpr(self.parse_variable_name())
            case TokenType.OPEN_PARENS:
                return self.parse_parenthesized()
            case TokenType.DOT:
                self.advance()
                return ContextItemExpr()
            case TokenType.OPEN_BRACKET:
                self.advance()
                members = []
                if not self.at(TokenType.CLOSE_BRACKET):
                    members.append(self.parse_expr_single())
                    while self.at(TokenType.COMMA):
                        self.advance()
                        members.append(self.parse_expr_single())
                self.expect(TokenType.CLOSE_BRACKET)
                return ArrayConstructorExpr(members)
            case TokenType.QUESTION:
                self.advance()
                return LookupExpr(None, self.parse_lookup_key())
            case TokenType.NAME | TokenType.BRACED_URI:
                pass
            case _:
                raise self.error("Unexpected token.")

        name = self.parse_qualified_name()

        if name == "function" and self.at(TokenType.OPEN_PARENS):
            return self.parse_inline_function()
        if name in ("map", "array") and self.at(TokenType.OPEN_BRACE):
            return self.parse_curly_constructor(name)
        if self.at(TokenType.HASH):
            self.advance()
            arity = self.expect(TokenType.NUMBER)
            return NamedFunctionRefExpr(name, int(arity.string))
        if self.at(TokenType.OPEN_PARENS):
            return self._function_call(name, self.parse_argument_list(), token)

        raise self.error("Unexpected name.", token)

    def _function_call(
        self, name: str, arguments: list[Expr], token: Optional[Token]
    ) -> Expr:
        try:
            return FunctionCallExpr(name, arguments)
        except XPathParsingError as e:
            raise self.error(e.message or "Invalid function call.", token) from None

    def parse_argument_list(self) -> list[Expr]:
        self.expect(TokenType.OPEN_PARENS)
        arguments: list[Expr] = []
        if self.at(TokenType.CLOSE_PARENS):
            self.advance()
            return arguments
        while True:
            if self.at(TokenType.QUESTION) and (
                self.at(TokenType.COMMA, offset=1)
                or self.at(TokenType.CLOSE_PARENS, offset=1)
            ):
                token = self.peek()
                assert token is not None
                raise XPathUnsupportedStandardFeature(
                    token.position, "Partial function application"
                )
            arguments.append(self.parse_expr_single())
            if self.at(TokenType.CLOSE_PARENS):
                self.advance()
                return arguments
            self.expect(TokenType.COMMA)

    def parse_parenthesized(self) -> Expr:
        self.expect(TokenType.OPEN_PARENS)
        if self.at(TokenType.CLOSE_PARENS):
            self.advance()
            return SequenceExpr(())
        result = self.parse_expr()
        self.expect(TokenType.CLOSE_PARENS)
        return result

    def parse_lookup_key(self) -> Expr | str:
        token = self.peek()
        if token is None:
            raise self.error("Expected a key specifier.")
        match token.type:
            case TokenType.NAME:
                self.advance()
                return LiteralExpr(token.string)
            case TokenType.NUMBER:
                self.advance()
                return NumberExpr(float(token.string))
            case TokenType.ASTERISK:
                self.advance()
                return "*"
            case TokenType.OPEN_PARENS:
                return self.parse_parenthesized()
        raise self.error("Expected a key specifier.")

    def parse_inline_function(self) -> Expr:
        self.expect(TokenType.OPEN_PARENS)
        parameters = []
        while not self.at(TokenType.CLOSE_PARENS):
            parameters.append(self.parse_variable_name())
            if self.at_keyword("as"):
                self.advance()
                self.parse_sequence_type()
            if not self.at(TokenType.CLOSE_PARENS):
                self.expect(TokenType.COMMA)
        self.advance()
        if self.at_keyword("as"):
            self.advance()
            self.parse_sequence_type()
        return InlineFunctionExpr(parameters, self._parse_enclosed())

    def _parse_enclosed(self) -> Expr:
        self.expect(TokenType.OPEN_BRACE)
        if self.at(TokenType.CLOSE_BRACE):
            self.advance()
            return SequenceExpr(())
        result = self.parse_expr()
        self.expect(TokenType.CLOSE_BRACE)
        return result

    def parse_curly_constructor(self, kind: str) -> Expr:
        if kind == "array":
            return ArrayConstructorExpr((self._parse_enclosed(),), curly=True)

        self.expect(TokenType.OPEN_BRACE)
        entries = []
        while not self.at(TokenType.CLOSE_BRACE):
            key = self.parse_expr_single()
            self.expect(TokenType.COLON)
            entries.append((key, self.parse_expr_single()))
            if not self.at(TokenType.CLOSE_BRACE):
                self.expect(TokenType.COMMA)
        self.advance()
        return MapConstructorExpr(entries)

    # types

    def parse_single_type(self) -> tuple[str, bool]:
        name = self.parse_qualified_name()
        if self.at(TokenType.QUESTION):
            self.advance()
            return name, True
        return name, False

    def parse_sequence_type(self) -> SequenceType:
        token = self.peek()
        if token is None:
            raise self.error("Expected a sequence type.")

        if self.at_keyword("empty-sequence") and self.at(
            TokenType.OPEN_PARENS, offset=1
        ):
            self.advance()
            self.expect(TokenType.OPEN_PARENS)
            self.expect(TokenType.CLOSE_PARENS)
            return SequenceType("empty-sequence")

        name = self.parse_qualified_name()
        item_type: str | NodeTest = name
        if self.at(TokenType.OPEN_PARENS):
            if name in KIND_TESTS:
                item_type = self.parse_kind_test(name, token)
            elif name in ("item", "map", "array", "function"):
                self._skip_parenthesized()
            else:
                raise self.error("Unknown item type.", token)

        occurrence = ""
        if (
            self.at(TokenType.QUESTION)
            or self.at(TokenType.ASTERISK)
            or self.at(TokenType.OTHER_OPS, "+")
        ):
            occurrence = self.advance().string
        return SequenceType(item_type, occurrence)

    def _skip_parenthesized(self):
        depth = 0
        while True:
            token = self.advance()
            if token.type is TokenType.OPEN_PARENS:
                depth += 1
            elif token.type is TokenType.CLOSE_PARENS:
                depth -= 1
                if depth == 0:
                    return


@lru_cache(64)
def parse(expression: str) -> Expr:
    """
    Parses an XPath expression into an expression tree.

    :raises XPathParsingError: If the expression isn't valid.
    """
    try:
        return _Parser(expression).parse()
    except XPathParsingError as e:
        if e.expression is None:
            e.expression = expression
        raise


__all__ = (parse.__name__,)  # type: ignore
