"""
Formula engine.

This module provides a small expression language for device attribute
formulas and policy conditions: a tokenizer, a precedence-climbing parser
and a NaN-aware evaluator over float and string values.
"""

# Core types and utilities
from .ast import (
    ATTRIBUTE_TYPES,
    FunctionCall,
    Node,
    Operation,
    Terminal,
    TerminalType,
    calculate_depth,
    count_nodes,
    dump,
    function_call,
    ternary,
    to_source,
)
from .errors import (
    FormulaError,
    LexError,
    LimitExceededError,
    SyntaxError,
)

# Evaluator
from .evaluator import (
    Evaluator,
    Value,
    compute,
    like,
    like_to_regex,
)
from .formula import Formula
from .limits import (
    DEFAULT_FORMULA_LIMITS,
    FormulaLimits,
    check_ast_depth,
    check_ast_node_count,
    check_formula_length,
    check_function_arg_count,
    check_nesting_depth,
)

# Parser
from .parser import (
    Parser,
    parse,
    parse_condition,
    parse_formula,
)

# Tokenizer
from .tokenizer import (
    Token,
    Tokenizer,
    TokenType,
    tokenize,
)
from .value_provider import MappingValueProvider, ValueProvider

__all__ = [
    # AST types
    "Node",
    "Terminal",
    "FunctionCall",
    "Operation",
    "TerminalType",
    "ATTRIBUTE_TYPES",
    "function_call",
    "ternary",
    "count_nodes",
    "calculate_depth",
    "dump",
    "to_source",
    # Errors
    "FormulaError",
    "LexError",
    "SyntaxError",
    "LimitExceededError",
    # Limits
    "FormulaLimits",
    "DEFAULT_FORMULA_LIMITS",
    "check_formula_length",
    "check_nesting_depth",
    "check_ast_node_count",
    "check_ast_depth",
    "check_function_arg_count",
    # Tokenizer
    "Token",
    "TokenType",
    "Tokenizer",
    "tokenize",
    # Parser
    "Parser",
    "parse",
    "parse_condition",
    "parse_formula",
    # Evaluator
    "Value",
    "Evaluator",
    "compute",
    "like",
    "like_to_regex",
    # Value providers
    "ValueProvider",
    "MappingValueProvider",
    # Formula
    "Formula",
]
