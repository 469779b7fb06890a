"""
Parser for the formula language.

Parses a stream of tokens into an Abstract Syntax Tree (AST).
Uses recursive descent parsing with operator precedence; each binary level
loops over its operators so operators of equal precedence associate left.

Precedence (lowest to highest):
1. Ternary: ? :
2. Logical OR: || OR
3. Logical AND: && AND
4. Relational: LIKE == != < <= > >= (not chained)
5. Additive: + -
6. Multiplicative: * / %
7. Unary: ! NOT + - (applied to a primary)
8. Primary: groups, function calls, literals, attribute references

Grammar::

    ternary        := conditionalOr ('?' additive ':' additive)?
    conditionalOr  := conditionalAnd ('||' conditionalAnd)*
    conditionalAnd := relational ('&&' relational)*
    relational     := additive ((LIKE|EQ|NEQ|LT|LTE|GT|GTE) additive)?
    additive       := multiplicative ((PLUS|MINUS) multiplicative)*
    multiplicative := unary ((MUL|DIV|MOD) unary)*
    unary          := (NOT|PLUS|MINUS) primary | primary
    primary        := '(' conditionalOr ')' | FUNCTION args? ')'
                    | IDENT | NUMBER | STRING | attributeRef
    args           := conditionalOr (',' conditionalOr)*
    attributeRef   := '$'? '$(' IDENT ')'
"""

from typing import Callable, Dict, List, Optional

from .ast import (
    ATTRIBUTE_TYPES,
    Node,
    Operation,
    Terminal,
    TerminalType,
    calculate_depth,
    count_nodes,
    function_call,
    ternary,
)
from .errors import SyntaxError as FormulaSyntaxError
from .limits import (
    DEFAULT_FORMULA_LIMITS,
    FormulaLimits,
    check_ast_depth,
    check_ast_node_count,
    check_function_arg_count,
    check_nesting_depth,
)
from .tokenizer import Token, TokenType, tokenize, unquote

RELATIONAL_OPERATIONS: Dict[TokenType, Operation] = {
    TokenType.LIKE: Operation.LIKE,
    TokenType.EQ: Operation.EQ,
    TokenType.NEQ: Operation.NEQ,
    TokenType.LT: Operation.LT,
    TokenType.LTE: Operation.LTE,
    TokenType.GT: Operation.GT,
    TokenType.GTE: Operation.GTE,
}

ADDITIVE_OPERATIONS: Dict[TokenType, Operation] = {
    TokenType.PLUS: Operation.PLUS,
    TokenType.MINUS: Operation.MINUS,
}

MULTIPLICATIVE_OPERATIONS: Dict[TokenType, Operation] = {
    TokenType.MUL: Operation.MUL,
    TokenType.DIV: Operation.DIV,
    TokenType.MOD: Operation.MOD,
}

UNARY_OPERATIONS: Dict[TokenType, Operation] = {
    TokenType.NOT: Operation.NOT,
    TokenType.PLUS: Operation.UNARY_PLUS,
    TokenType.MINUS: Operation.UNARY_MINUS,
}


class Parser:
    """Parser for formula token streams."""

    def __init__(
        self,
        tokens: List[Token],
        source: str,
        limits: Optional[FormulaLimits] = None,
    ):
        self._tokens = tokens
        self._source = source
        self._limits = limits or DEFAULT_FORMULA_LIMITS
        self._current = 0
        self._depth = 0

    def parse(self) -> Node:
        """Parses the token stream as a formula (ternary-rooted)."""
        return self._parse_all(self._parse_ternary)

    def parse_condition(self) -> Node:
        """Parses the token stream as a condition (conditional-or rooted)."""
        return self._parse_all(self._parse_or)

    def _parse_all(self, production: Callable[[], Node]) -> Node:
        self._current = 0
        self._depth = 0

        if self._is_at_end():
            raise FormulaSyntaxError("Empty formula", len(self._source), self._source)

        ast = production()

        if not self._is_at_end():
            raise self._error(f"Unexpected token: {self._describe(self._peek())}")

        check_ast_node_count(count_nodes(ast), self._limits)
        check_ast_depth(calculate_depth(ast), self._limits)
        return ast

    # ============================================================
    # Token Helpers
    # ============================================================

    def _is_at_end(self) -> bool:
        return self._current >= len(self._tokens)

    def _peek(self) -> Optional[Token]:
        if self._is_at_end():
            return None
        return self._tokens[self._current]

    def _previous(self) -> Token:
        return self._tokens[self._current - 1]

    def _advance(self) -> Token:
        if not self._is_at_end():
            self._current += 1
        return self._previous()

    def _check(self, *types: TokenType) -> bool:
        token = self._peek()
        return token is not None and token.type in types

    def _match(self, *types: TokenType) -> bool:
        if self._check(*types):
            self._advance()
            return True
        return False

    def _consume(self, token_type: TokenType, message: str) -> Token:
        if self._check(token_type):
            return self._advance()
        raise self._error(f"{message}, found {self._describe(self._peek())}")

    def _describe(self, token: Optional[Token]) -> str:
        if token is None:
            return "end of formula"
        return f"{token.type.value} '{token.text(self._source)}'"

    def _error(self, message: str) -> FormulaSyntaxError:
        token = self._peek()
        if token is None:
            return FormulaSyntaxError(message, len(self._source), self._source)
        return FormulaSyntaxError(
            message, token.position, self._source, token=token.text(self._source)
        )

    def _enter(self) -> None:
        self._depth += 1
        check_nesting_depth(self._depth, self._limits)

    def _leave(self) -> None:
        self._depth -= 1

    # ============================================================
    # Expression Parsing (by precedence, lowest to highest)
    # ============================================================

    def _parse_ternary(self) -> Node:
        """Parses ternary expressions: condition ? additive : additive"""
        node = self._parse_or()

        if self._match(TokenType.QUESTION_MARK):
            when_true = self._parse_additive()
            self._consume(TokenType.COLON, "Expected ':' in ternary expression")
            when_false = self._parse_additive()
            node = ternary(node, when_true, when_false)

        return node

    def _parse_or(self) -> Node:
        """Parses logical OR: ||"""
        node = self._parse_and()

        while self._match(TokenType.OR):
            node = Node(Operation.OR, node, self._parse_and())

        return node

    def _parse_and(self) -> Node:
        """Parses logical AND: &&"""
        node = self._parse_relational()

        while self._match(TokenType.AND):
            node = Node(Operation.AND, node, self._parse_relational())

        return node

    def _parse_relational(self) -> Node:
        """Parses a single relational comparison: LIKE, ==, !=, <, <=, >, >="""
        node = self._parse_additive()

        if self._match(*RELATIONAL_OPERATIONS):
            operation = RELATIONAL_OPERATIONS[self._previous().type]
            node = Node(operation, node, self._parse_additive())

        return node

    def _parse_additive(self) -> Node:
        """Parses additive: +, -"""
        node = self._parse_multiplicative()

        while self._match(*ADDITIVE_OPERATIONS):
            operation = ADDITIVE_OPERATIONS[self._previous().type]
            node = Node(operation, node, self._parse_multiplicative())

        return node

    def _parse_multiplicative(self) -> Node:
        """Parses multiplicative: *, /, %"""
        node = self._parse_unary()

        while self._match(*MULTIPLICATIVE_OPERATIONS):
            operation = MULTIPLICATIVE_OPERATIONS[self._previous().type]
            node = Node(operation, node, self._parse_unary())

        return node

    def _parse_unary(self) -> Node:
        """Parses unary: !, NOT, +, - applied to a primary"""
        if self._match(*UNARY_OPERATIONS):
            operation = UNARY_OPERATIONS[self._previous().type]
            return Node(operation, self._parse_primary())

        return self._parse_primary()

    def _parse_primary(self) -> Node:
        """Parses primary expressions: groups, calls, literals, attributes."""
        token = self._peek()
        if token is None:
            raise self._error("Unexpected end of formula")

        if self._match(TokenType.LPAREN):
            self._enter()
            expr = self._parse_or()
            self._consume(TokenType.RPAREN, "Expected ')' after expression")
            self._leave()
            return Node(Operation.GROUP, expr)

        if self._match(TokenType.FUNCTION):
            return self._parse_function(token)

        if self._match(TokenType.IDENT):
            return Terminal(
                terminal_type=TerminalType.IDENT, value=token.text(self._source)
            )

        if self._match(TokenType.NUMBER):
            return Terminal(
                terminal_type=TerminalType.NUMBER, value=token.text(self._source)
            )

        if self._match(TokenType.STRING):
            value = unquote(token.text(self._source))
            if value is None:
                raise FormulaSyntaxError(
                    "Unterminated string",
                    token.position,
                    self._source,
                    token=token.text(self._source),
                )
            return Terminal(terminal_type=TerminalType.STRING, value=value)

        if self._check(TokenType.DOLLAR, TokenType.ATTRIBUTE):
            return self._parse_attribute_ref()

        raise self._error(f"Unexpected token: {self._describe(token)}")

    def _parse_function(self, token: Token) -> Node:
        """Parses a call; the FUNCTION token already consumed the '('."""
        # Strip the trailing '(' from the name
        name = token.text(self._source)[:-1]

        self._enter()
        args: List[Node] = []
        if not self._check(TokenType.RPAREN):
            args.append(self._parse_or())
            while self._match(TokenType.COMMA):
                args.append(self._parse_or())

        self._consume(TokenType.RPAREN, "Expected ')' after function arguments")
        self._leave()
        check_function_arg_count(len(args), self._limits)

        return function_call(name, tuple(args))

    def _parse_attribute_ref(self) -> Node:
        """Parses $(name) (in-process value) or $$(name) (current value)."""
        dollar_count = 0
        while self._check(TokenType.DOLLAR):
            dollar_count += 1
            if dollar_count > 1:
                raise self._error("Unexpected '$': at most one '$' prefix allowed")
            self._advance()

        self._consume(TokenType.ATTRIBUTE, "Expected '$('")
        name = self._consume(TokenType.IDENT, "Expected attribute name")
        self._consume(TokenType.RPAREN, "Expected ')' after attribute name")

        return Terminal(
            terminal_type=ATTRIBUTE_TYPES[dollar_count],
            value=name.text(self._source),
        )


def parse_formula(
    tokens: List[Token], source: str, limits: Optional[FormulaLimits] = None
) -> Node:
    """
    Parses a token stream produced from ``source`` into an AST.

    Raises:
        SyntaxError: If the tokens do not form a formula
    """
    return Parser(tokens, source, limits).parse()


def parse(source: str, limits: Optional[FormulaLimits] = None) -> Node:
    """
    Parses a formula string into an AST.

    Args:
        source: The formula string to parse
        limits: Optional formula limits

    Returns:
        The parsed AST

    Raises:
        LexError: If tokenization fails
        SyntaxError: If parsing fails
        LimitExceededError: If the formula exceeds a limit
    """
    tokens = tokenize(source, limits)
    return parse_formula(tokens, source, limits)


def parse_condition(source: str, limits: Optional[FormulaLimits] = None) -> Node:
    """
    Parses a condition string (no top-level ternary) into an AST.

    Policy conditions (filter, alert and action gates) use this entry.
    """
    tokens = tokenize(source, limits)
    return Parser(tokens, source, limits).parse_condition()
