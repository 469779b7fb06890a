"""
Resource limits for formula parsing.

Formulas are written by operators and may arrive from untrusted policy
documents, so the parser recurses only as deep as these limits allow.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import LimitExceededError


@dataclass(frozen=True)
class FormulaLimits:
    """Formula limits configuration."""

    # Maximum formula string length in characters
    max_formula_length: int = 4096

    # Maximum nesting of parentheses and function calls
    max_nesting_depth: int = 32

    # Maximum AST depth; evaluation recurses once per level
    max_ast_depth: int = 128

    # Maximum number of AST nodes
    max_ast_nodes: int = 512

    # Maximum function call arguments
    max_function_args: int = 16


DEFAULT_FORMULA_LIMITS = FormulaLimits()


def check_formula_length(formula: str, limits: Optional[FormulaLimits] = None) -> None:
    """Validates that formula length is within limits."""
    limits = limits or DEFAULT_FORMULA_LIMITS
    if len(formula) > limits.max_formula_length:
        raise LimitExceededError(
            "max_formula_length", limits.max_formula_length, len(formula)
        )


def check_nesting_depth(depth: int, limits: Optional[FormulaLimits] = None) -> None:
    """Validates group/function nesting depth during parsing."""
    limits = limits or DEFAULT_FORMULA_LIMITS
    if depth > limits.max_nesting_depth:
        raise LimitExceededError("max_nesting_depth", limits.max_nesting_depth, depth)


def check_ast_node_count(count: int, limits: Optional[FormulaLimits] = None) -> None:
    """Validates AST node count after parsing."""
    limits = limits or DEFAULT_FORMULA_LIMITS
    if count > limits.max_ast_nodes:
        raise LimitExceededError("max_ast_nodes", limits.max_ast_nodes, count)


def check_function_arg_count(
    count: int, limits: Optional[FormulaLimits] = None
) -> None:
    """Validates function argument count."""
    limits = limits or DEFAULT_FORMULA_LIMITS
    if count > limits.max_function_args:
        raise LimitExceededError("max_function_args", limits.max_function_args, count)


def check_ast_depth(depth: int, limits: Optional[FormulaLimits] = None) -> None:
    """Validates AST depth after parsing."""
    limits = limits or DEFAULT_FORMULA_LIMITS
    if depth > limits.max_ast_depth:
        raise LimitExceededError("max_ast_depth", limits.max_ast_depth, depth)
