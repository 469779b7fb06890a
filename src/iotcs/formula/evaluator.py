"""
Formula evaluator.

Walks an AST against a value provider and returns a single value.

Value semantics:
- Every value is either a float or a str.
- Booleans are represented as 1.0 (true) and 0.0 (false).
- NaN is the "unknown" value. Missing attributes, unparsable numbers,
  type mismatches and unknown functions all evaluate to NaN.
- Evaluation never raises for a well-formed AST; anomalies are reported on
  the logger and absorbed into NaN.
- Comparisons do not follow IEEE ordering for NaN: an unknown left operand
  never satisfies a comparison, an unknown right operand always does.
"""

import logging
import math
import re
from typing import Any, Optional, Union

from .ast import FunctionCall, Node, Operation, Terminal, TerminalType
from .value_provider import ValueProvider

logger = logging.getLogger("iotcs.formula.evaluator")
_default_logger = logger

# Runtime value type for the formula language
Value = Union[float, str]

NAN = float("nan")
TRUE = 1.0
FALSE = 0.0


def _to_double(flag: bool) -> float:
    return TRUE if flag else FALSE


def _as_number(value: Value) -> float:
    """Strings have no numeric meaning and read as NaN."""
    if isinstance(value, str):
        return NAN
    return value


def like_to_regex(pattern: str) -> str:
    """
    Converts a SQL LIKE pattern into a regular expression.

    ``%`` matches any run of characters and ``_`` any single character;
    ``\\%`` and ``\\_`` match the literal character. Everything else matches
    itself.
    """
    parts = []
    i = 0

    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern) and pattern[i + 1] in ("%", "_"):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
        i += 1

    return "".join(parts)


def like(value: str, pattern: str) -> bool:
    """Returns True if the whole of ``value`` matches the LIKE ``pattern``."""
    return re.fullmatch(like_to_regex(pattern), value, re.DOTALL) is not None


def _divide(lhs: float, rhs: float) -> float:
    # IEEE division: x/0 is a signed infinity, 0/0 is NaN
    if rhs == 0.0:
        if lhs == 0.0 or math.isnan(lhs):
            return NAN
        return math.copysign(math.inf, lhs) * math.copysign(1.0, rhs)
    return lhs / rhs


def _modulo(lhs: float, rhs: float) -> float:
    # Truncated remainder; the result takes the sign of the dividend
    if rhs == 0.0 or math.isnan(rhs) or math.isnan(lhs) or math.isinf(lhs):
        return NAN
    return math.fmod(lhs, rhs)


class Evaluator:
    """Computes the value of an AST node against a value provider."""

    def __init__(
        self,
        provider: ValueProvider,
        logger: Optional[logging.Logger] = None,
    ):
        self._provider = provider
        self._logger = logger or _default_logger

    def compute(self, node: Optional[Node]) -> Value:
        """Computes the value of ``node``."""
        if node is None:
            return NAN

        if isinstance(node, Terminal):
            return self._compute_terminal(node)

        operation = node.operation

        if operation == Operation.TERNARY:
            return self._compute_ternary(node)

        if operation == Operation.GROUP:
            return self.compute(node.left)

        if operation == Operation.FUNCTION:
            return self._compute_function(node)

        lhs = self.compute(node.left)
        rhs = self.compute(node.right)

        if operation in (Operation.LOWER, Operation.UPPER):
            if not isinstance(lhs, str):
                self._logger.warning(
                    "case_operand_not_string",
                    extra={"operation": operation.label, "operand": lhs},
                )
                return NAN
            return lhs.lower() if operation == Operation.LOWER else lhs.upper()

        if operation == Operation.EQ:
            return _to_double(self._values_equal(lhs, rhs))

        if operation == Operation.NEQ:
            return _to_double(not self._values_equal(lhs, rhs))

        if operation == Operation.LIKE:
            if isinstance(lhs, str) and isinstance(rhs, str):
                return _to_double(like(lhs, rhs))
            return FALSE

        if operation == Operation.PLUS:
            if isinstance(lhs, str) and isinstance(rhs, str):
                return lhs + rhs

        return self._compute_numeric(operation, _as_number(lhs), _as_number(rhs))

    def _compute_terminal(self, node: Terminal) -> Value:
        """Resolves a terminal to a value."""
        terminal_type = node.terminal_type

        if terminal_type == TerminalType.CURRENT_ATTRIBUTE:
            value = self._provider.get_current_value(node.value)
            return self._coerce_attribute(node.value, value)

        if terminal_type == TerminalType.IN_PROCESS_ATTRIBUTE:
            value = self._provider.get_in_process_value(node.value)
            if value is None:
                value = self._provider.get_current_value(node.value)
            return self._coerce_attribute(node.value, value)

        if terminal_type == TerminalType.NUMBER:
            try:
                return float(node.value)
            except ValueError:
                self._logger.warning("invalid_number", extra={"literal": node.value})
                return NAN

        if terminal_type in (TerminalType.STRING, TerminalType.IDENT):
            return node.value

        return NAN

    def _coerce_attribute(self, attribute: str, value: Any) -> Value:
        """Maps a provider value into the formula value domain."""
        if value is None:
            return NAN

        if isinstance(value, bool):
            return _to_double(value)

        if isinstance(value, (int, float)):
            try:
                return float(value)
            except OverflowError:
                self._logger.warning(
                    "attribute_value_overflow", extra={"attribute": attribute}
                )
                return NAN

        if isinstance(value, str):
            return value

        self._logger.warning(
            "attribute_type_mismatch",
            extra={"attribute": attribute, "value_type": type(value).__name__},
        )
        return NAN

    def _compute_ternary(self, node: Node) -> Value:
        """Only a condition of exactly 1.0 selects the true branch."""
        condition = self.compute(node.left)
        alternative = node.right
        if alternative is None:
            return NAN

        if isinstance(condition, float) and condition == TRUE:
            return self.compute(alternative.left)
        return self.compute(alternative.right)

    def _compute_function(self, node: Node) -> Value:
        """Evaluates the UPPER and LOWER built-ins."""
        name_node = node.left
        name = name_node.value if isinstance(name_node, Terminal) else ""
        folded = name.upper()

        if folded not in ("UPPER", "LOWER"):
            self._logger.warning("unknown_function", extra={"function": name})
            return NAN

        if isinstance(node, FunctionCall) and node.arguments:
            argument: Optional[Node] = node.arguments[0]
        else:
            argument = node.right
        if argument is None:
            return ""

        value = self.compute(argument)
        if not isinstance(value, str):
            self._logger.warning(
                "function_argument_not_string",
                extra={"function": name, "argument": value},
            )
            return NAN

        return value.upper() if folded == "UPPER" else value.lower()

    def _compute_numeric(self, operation: Operation, lhs: float, rhs: float) -> float:
        """Evaluates arithmetic, logical and ordering operations."""
        if operation == Operation.UNARY_MINUS:
            return -lhs

        if operation == Operation.UNARY_PLUS:
            return +lhs

        if operation == Operation.PLUS:
            return lhs + rhs

        if operation == Operation.MINUS:
            return lhs - rhs

        if operation == Operation.MUL:
            return lhs * rhs

        if operation == Operation.DIV:
            return _divide(lhs, rhs)

        if operation == Operation.MOD:
            return _modulo(lhs, rhs)

        if operation == Operation.OR:
            # NaN || NaN is false
            if math.isnan(lhs):
                return FALSE if math.isnan(rhs) else TRUE
            return _to_double(lhs != 0.0 or rhs != 0.0)

        if operation == Operation.AND:
            if math.isnan(lhs) or math.isnan(rhs):
                return FALSE
            return _to_double(lhs != 0.0 and rhs != 0.0)

        if operation == Operation.NOT:
            return FALSE if lhs == TRUE else TRUE

        if operation in (Operation.GT, Operation.GTE, Operation.LT, Operation.LTE):
            return self._compare(operation, lhs, rhs)

        # TERMINAL, ALTERNATIVE and friends have no value of their own
        return NAN

    def _compare(self, operation: Operation, lhs: float, rhs: float) -> float:
        """NaN-aware ordering: unknown lhs loses, unknown rhs wins."""
        inclusive = operation in (Operation.GTE, Operation.LTE)

        if math.isnan(lhs):
            # NaN >= NaN and NaN <= NaN hold
            return _to_double(inclusive and math.isnan(rhs))
        if math.isnan(rhs):
            return TRUE

        if operation == Operation.GT:
            return _to_double(lhs > rhs)
        if operation == Operation.GTE:
            return _to_double(lhs >= rhs)
        if operation == Operation.LT:
            return _to_double(lhs < rhs)
        return _to_double(lhs <= rhs)

    def _values_equal(self, a: Value, b: Value) -> bool:
        """
        Values of different runtime types are never equal.

        Numbers compare as a total order: NaN equals NaN, and 0.0 and -0.0
        differ by sign.
        """
        if type(a) is not type(b):
            return False

        if isinstance(a, float) and isinstance(b, float):
            if math.isnan(a) or math.isnan(b):
                return math.isnan(a) and math.isnan(b)
            return a == b and math.copysign(1.0, a) == math.copysign(1.0, b)

        return a == b


def compute(
    node: Optional[Node],
    provider: ValueProvider,
    logger: Optional[logging.Logger] = None,
) -> Value:
    """
    Computes the value of an AST against a value provider.

    Args:
        node: The AST root
        provider: Resolves attribute references
        logger: Optional sink for evaluation warnings

    Returns:
        A float (1.0/0.0 for logical results, NaN when unknown) or a string
    """
    return Evaluator(provider, logger).compute(node)
