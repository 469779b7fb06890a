"""
Tokenizer (lexer) for the formula language.

Converts formula strings into a stream of tokens for the parser. Tokens
carry a (position, length) span into the source; the literal text is only
recovered when the parser needs it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .errors import LexError
from .limits import FormulaLimits, check_formula_length


class TokenType(Enum):
    """Token types produced by the tokenizer."""

    # Logical
    AND = "AND"  # && or AND
    OR = "OR"  # || or OR
    NOT = "NOT"  # ! or NOT

    # Comparison
    EQ = "EQ"  # = or ==
    NEQ = "NEQ"  # !=
    LT = "LT"
    LTE = "LTE"
    GT = "GT"
    GTE = "GTE"
    LIKE = "LIKE"

    # Arithmetic
    PLUS = "PLUS"
    MINUS = "MINUS"
    MUL = "MUL"
    DIV = "DIV"
    MOD = "MOD"

    # Structural
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    COMMA = "COMMA"
    COLON = "COLON"
    QUESTION_MARK = "QUESTION_MARK"

    # Literals
    NUMBER = "NUMBER"
    STRING = "STRING"
    IDENT = "IDENT"

    # Attribute references
    ATTRIBUTE = "ATTRIBUTE"  # $(
    DOLLAR = "DOLLAR"  # $ prefix of $$(
    FUNCTION = "FUNCTION"  # IDENT immediately followed by (


@dataclass(frozen=True)
class Token:
    """A token produced by the tokenizer."""

    type: TokenType
    position: int
    length: int

    @property
    def end(self) -> int:
        return self.position + self.length

    def text(self, source: str) -> str:
        """Returns the literal substring this token spans in ``source``."""
        return source[self.position : self.end]


# Reserved words, matched case-insensitively against completed identifiers
KEYWORDS: Dict[str, TokenType] = {
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
    "like": TokenType.LIKE,
}

SINGLE_CHAR_TOKENS: Dict[str, TokenType] = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
    "?": TokenType.QUESTION_MARK,
    ":": TokenType.COLON,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.MUL,
    "/": TokenType.DIV,
    "%": TokenType.MOD,
}

# '-' is absent: attribute names such as "engine-temp" contain it
_IDENTIFIER_TERMINATORS = frozenset('(),?:+*/%=!<>"$')


def _is_digit(ch: str) -> bool:
    """Checks if a character is a digit."""
    return "0" <= ch <= "9"


def _is_whitespace(ch: str) -> bool:
    """Checks if a character is whitespace."""
    return ch.isspace()


def unquote(text: str) -> Optional[str]:
    """
    Returns the value of a STRING token's text, without the quotes.

    Only ``\\"`` is unescaped; other backslash sequences are kept verbatim so
    that LIKE patterns see their escapes. Returns None if the literal is
    unterminated.
    """
    value: List[str] = []
    i = 1
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            escaped = text[i + 1]
            value.append('"' if escaped == '"' else ch + escaped)
            i += 2
            continue
        if ch == '"':
            return "".join(value)
        value.append(ch)
        i += 1
    return None


class Tokenizer:
    """Tokenizer for formula strings."""

    def __init__(self, source: str, limits: Optional[FormulaLimits] = None):
        self._source = source
        self._limits = limits
        self._position = 0
        self._tokens: List[Token] = []

    def tokenize(self) -> List[Token]:
        """Tokenizes the source formula and returns all tokens."""
        check_formula_length(self._source, self._limits)

        while not self._is_at_end():
            self._scan_token()

        return self._tokens

    def _is_at_end(self) -> bool:
        return self._position >= len(self._source)

    def _peek(self) -> str:
        if self._is_at_end():
            return "\0"
        return self._source[self._position]

    def _peek_next(self) -> str:
        if self._position + 1 >= len(self._source):
            return "\0"
        return self._source[self._position + 1]

    def _advance(self) -> str:
        ch = self._source[self._position]
        self._position += 1
        return ch

    def _add_token(self, token_type: TokenType, start_position: int) -> None:
        self._tokens.append(
            Token(token_type, start_position, self._position - start_position)
        )

    def _scan_token(self) -> None:
        ch = self._advance()
        start_position = self._position - 1

        # Whitespace separates tokens and is dropped
        if _is_whitespace(ch):
            return

        if ch in SINGLE_CHAR_TOKENS:
            self._add_token(SINGLE_CHAR_TOKENS[ch], start_position)
            return

        # Two-character operators
        if ch == "=":
            # be forgiving of '=='
            if self._peek() == "=":
                self._advance()
            self._add_token(TokenType.EQ, start_position)
            return

        if ch == "!":
            if self._peek() == "=":
                self._advance()
                self._add_token(TokenType.NEQ, start_position)
            else:
                self._add_token(TokenType.NOT, start_position)
            return

        if ch == ">":
            if self._peek() == "=":
                self._advance()
                self._add_token(TokenType.GTE, start_position)
            else:
                self._add_token(TokenType.GT, start_position)
            return

        if ch == "<":
            if self._peek() == "=":
                self._advance()
                self._add_token(TokenType.LTE, start_position)
            else:
                self._add_token(TokenType.LT, start_position)
            return

        if ch == "|" and self._peek() == "|":
            self._advance()
            self._add_token(TokenType.OR, start_position)
            return

        if ch == "&" and self._peek() == "&":
            self._advance()
            self._add_token(TokenType.AND, start_position)
            return

        if ch == "$":
            if self._peek() == "(":
                self._advance()
                self._add_token(TokenType.ATTRIBUTE, start_position)
            else:
                self._add_token(TokenType.DOLLAR, start_position)
            return

        if ch == '"':
            self._scan_string(start_position)
            return

        if _is_digit(ch) or ch == ".":
            self._position = start_position
            self._scan_number(start_position)
            return

        self._scan_identifier(start_position)

    def _scan_string(self, start_position: int) -> None:
        # An unterminated literal runs to the end of input; the parser rejects it
        while not self._is_at_end():
            ch = self._advance()
            if ch == "\\" and not self._is_at_end():
                self._advance()
            elif ch == '"':
                break

        self._add_token(TokenType.STRING, start_position)

    def _scan_number(self, start_position: int) -> None:
        # [0-9]+ | [0-9]* "." [0-9]+
        while True:
            ch = self._peek()
            if _is_digit(ch):
                self._advance()
            elif ch == ".":
                following = self._peek_next()
                if not _is_digit(following):
                    raise LexError(
                        "Invalid number: expected [0-9] after '.'",
                        self._position,
                        self._source,
                        character="" if following == "\0" else following,
                    )
                self._advance()
            else:
                break

        self._add_token(TokenType.NUMBER, start_position)

    def _scan_identifier(self, start_position: int) -> None:
        while not self._is_at_end():
            ch = self._peek()
            if _is_whitespace(ch) or ch in _IDENTIFIER_TERMINATORS:
                break
            # '||' and '&&' end an identifier, a lone '|' or '&' does not
            if ch in ("|", "&") and self._peek_next() == ch:
                break
            self._advance()

        value = self._source[start_position : self._position]

        keyword_type = KEYWORDS.get(value.lower())
        if keyword_type:
            self._add_token(keyword_type, start_position)
            return

        if self._peek() == "(":
            # The '(' belongs to the FUNCTION token
            self._advance()
            self._add_token(TokenType.FUNCTION, start_position)
            return

        self._add_token(TokenType.IDENT, start_position)


def tokenize(source: str, limits: Optional[FormulaLimits] = None) -> List[Token]:
    """
    Tokenizes a formula string into tokens.

    Args:
        source: The formula string to tokenize
        limits: Optional formula limits

    Returns:
        List of tokens in source order, whitespace excluded

    Raises:
        LexError: If a '.' is not followed by a digit
        LimitExceededError: If the formula is too long
    """
    tokenizer = Tokenizer(source, limits)
    return tokenizer.tokenize()
