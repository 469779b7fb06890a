"""
Error types for the formula engine.

Every error a formula can raise extends FormulaError. They come from building
a formula (tokenizing, parsing and limit checks); computing a formula never
raises and yields NaN instead.
"""

from typing import Optional


class FormulaError(Exception):
    """
    Base class for errors raised while building a formula.

    ``position`` is the zero-based character offset into ``formula`` where the
    problem was found. Both are None when the error has no location.
    """

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        formula: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.position = position
        self.formula = formula

    def format_with_context(self) -> str:
        """Returns the message, the formula and a caret under ``position``."""
        if self.formula is None or self.position is None:
            return self.message

        pointer = " " * self.position + "^"
        return f"{self.message}\n  {self.formula}\n  {pointer}"


class LexError(FormulaError):
    """
    Raised when formula text cannot be split into tokens.

    The only malformed lexeme is a number with a '.' not followed by a digit,
    as in ``1.`` or ``2.x``. ``position`` points at the '.' and ``character``
    holds what followed it, or an empty string at the end of the formula.
    """

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        formula: Optional[str] = None,
        character: Optional[str] = None,
    ):
        super().__init__(message, position, formula)
        self.character = character


class SyntaxError(FormulaError):
    """
    Raised when the tokens do not form a formula.

    ``token`` is the source text of the offending token. It is None when the
    formula ended while an operand or closing token was still expected.
    """

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        formula: Optional[str] = None,
        token: Optional[str] = None,
    ):
        super().__init__(message, position, formula)
        self.token = token


class LimitExceededError(FormulaError):
    """
    Raised when a formula exceeds one of its FormulaLimits.

    ``limit_name`` is the FormulaLimits field that was exceeded.
    """

    def __init__(self, limit_name: str, limit: int, actual: int):
        message = f"Limit exceeded: {limit_name} (limit: {limit}, actual: {actual})"
        super().__init__(message)
        self.limit_name = limit_name
        self.limit = limit
        self.actual = actual
