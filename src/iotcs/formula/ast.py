"""
Abstract Syntax Tree (AST) node types for the formula language.

The AST is produced by the parser and consumed by the evaluator. Every node
is a binary node tagged with an Operation; leaves are Terminals.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

# ============================================================
# Operation Types
# ============================================================


class Operation(Enum):
    """Operations an AST node can carry, each with a fixed precedence."""

    UNARY_PLUS = ("UNARY_PLUS", 6)
    UNARY_MINUS = ("UNARY_MINUS", 6)
    PLUS = ("PLUS", 3)
    MINUS = ("MINUS", 3)
    MUL = ("MUL", 4)
    DIV = ("DIV", 4)
    MOD = ("MOD", 4)
    AND = ("AND", 1)
    OR = ("OR", 1)
    EQ = ("EQ", 2)
    LIKE = ("LIKE", 2)
    NEQ = ("NEQ", 2)
    LT = ("LT", 2)
    LTE = ("LTE", 2)
    GT = ("GT", 2)
    GTE = ("GTE", 2)
    # LHS is the condition, RHS is the ALTERNATIVE node
    TERNARY = ("TERNARY", 0)
    # LHS is the true choice, RHS is the false choice
    ALTERNATIVE = ("ALTERNATIVE", 0)
    # Prefix operators use the LHS only
    NOT = ("NOT", 6)
    LOWER = ("LOWER", 6)
    UPPER = ("UPPER", 6)
    # LHS is the function name, RHS is the first argument
    FUNCTION = ("FUNCTION", 6)
    # LHS is the enclosed expression
    GROUP = ("GROUP", -1)
    TERMINAL = ("TERMINAL", -1)

    def __init__(self, label: str, precedence: int):
        self.label = label
        self.precedence = precedence


class TerminalType(Enum):
    """
    Kinds of terminal.

    Declaration order matters: the number of '$' prefixes on an attribute
    reference selects the attribute kind by position.
    """

    IN_PROCESS_ATTRIBUTE = "IN_PROCESS_ATTRIBUTE"
    CURRENT_ATTRIBUTE = "CURRENT_ATTRIBUTE"
    NUMBER = "NUMBER"
    IDENT = "IDENT"
    STRING = "STRING"


ATTRIBUTE_TYPES: Tuple[TerminalType, ...] = (
    TerminalType.IN_PROCESS_ATTRIBUTE,
    TerminalType.CURRENT_ATTRIBUTE,
)


# ============================================================
# AST Node Types
# ============================================================


@dataclass(frozen=True)
class Node:
    """Binary AST node. A node exclusively owns its children."""

    operation: Operation
    left: Optional["Node"] = None
    right: Optional["Node"] = None


@dataclass(frozen=True)
class Terminal(Node):
    """Leaf node: a literal, identifier or attribute reference."""

    operation: Operation = field(default=Operation.TERMINAL, init=False)
    terminal_type: TerminalType = TerminalType.IDENT
    value: str = ""


@dataclass(frozen=True)
class FunctionCall(Node):
    """
    Function call node.

    ``left`` is an IDENT terminal with the function name and ``right`` the
    first argument; ``arguments`` keeps every argument in call order.
    """

    operation: Operation = field(default=Operation.FUNCTION, init=False)
    arguments: Tuple[Node, ...] = ()

    @property
    def name(self) -> str:
        assert isinstance(self.left, Terminal)
        return self.left.value


def function_call(name: str, arguments: Tuple[Node, ...] = ()) -> FunctionCall:
    """Builds a FUNCTION node for ``name`` applied to ``arguments``."""
    return FunctionCall(
        left=Terminal(terminal_type=TerminalType.IDENT, value=name),
        right=arguments[0] if arguments else None,
        arguments=arguments,
    )


def ternary(condition: Node, when_true: Node, when_false: Node) -> Node:
    """Builds a TERNARY node with its ALTERNATIVE child."""
    return Node(
        Operation.TERNARY,
        condition,
        Node(Operation.ALTERNATIVE, when_true, when_false),
    )


# ============================================================
# AST Utilities
# ============================================================


def _children(node: Node) -> Tuple[Node, ...]:
    if isinstance(node, Terminal):
        return ()
    if isinstance(node, FunctionCall):
        return (node.left,) + node.arguments  # type: ignore[operator]
    return tuple(child for child in (node.left, node.right) if child is not None)


def count_nodes(node: Node) -> int:
    """
    Counts the total number of nodes in an AST.

    Walks with an explicit stack; a left-associated chain adds one level per
    operator and may nest deeper than the interpreter's recursion limit.
    """
    count = 0
    pending = [node]
    while pending:
        current = pending.pop()
        count += 1
        pending.extend(_children(current))
    return count


def calculate_depth(node: Node) -> int:
    """Calculates the maximum depth of an AST (a lone terminal has depth 1)."""
    deepest = 0
    pending = [(node, 1)]
    while pending:
        current, depth = pending.pop()
        deepest = max(deepest, depth)
        pending.extend((child, depth + 1) for child in _children(current))
    return deepest


def dump(node: Optional[Node]) -> str:
    """
    Returns a prefix-notation dump of the AST: ``[OP|lhs|rhs]``.

    Terminals print their text; in-process attributes print as ``$(name)``
    and current attributes as ``$$(name)``. Missing children print as
    ``null``. This is a diagnostic format, not a formula.
    """
    if node is None:
        return "null"

    if isinstance(node, Terminal):
        if node.terminal_type == TerminalType.IN_PROCESS_ATTRIBUTE:
            return f"$({node.value})"
        if node.terminal_type == TerminalType.CURRENT_ATTRIBUTE:
            return f"$$({node.value})"
        return node.value

    if isinstance(node, FunctionCall):
        args = ",".join(dump(arg) for arg in node.arguments) or "null"
        return f"[{node.operation.label}|{dump(node.left)}|{args}]"

    return f"[{node.operation.label}|{dump(node.left)}|{dump(node.right)}]"


_OPERATOR_SYMBOLS = {
    Operation.PLUS: "+",
    Operation.MINUS: "-",
    Operation.MUL: "*",
    Operation.DIV: "/",
    Operation.MOD: "%",
    Operation.AND: "&&",
    Operation.OR: "||",
    Operation.EQ: "==",
    Operation.NEQ: "!=",
    Operation.LT: "<",
    Operation.LTE: "<=",
    Operation.GT: ">",
    Operation.GTE: ">=",
    Operation.LIKE: "LIKE",
}

_PREFIX_SYMBOLS = {
    Operation.UNARY_PLUS: "+",
    Operation.UNARY_MINUS: "-",
    Operation.NOT: "!",
}


def to_source(node: Optional[Node]) -> str:
    """
    Renders an AST back into formula text.

    Parentheses are emitted only for GROUP nodes, so parsing the result of
    rendering a parsed tree yields an equal tree.
    """
    if node is None:
        return ""

    if isinstance(node, Terminal):
        if node.terminal_type == TerminalType.IN_PROCESS_ATTRIBUTE:
            return f"$({node.value})"
        if node.terminal_type == TerminalType.CURRENT_ATTRIBUTE:
            return f"$$({node.value})"
        if node.terminal_type == TerminalType.STRING:
            escaped = node.value.replace('"', '\\"')
            return f'"{escaped}"'
        return node.value

    if isinstance(node, FunctionCall):
        args = ", ".join(to_source(arg) for arg in node.arguments)
        return f"{node.name}({args})"

    operation = node.operation

    if operation in _OPERATOR_SYMBOLS:
        symbol = _OPERATOR_SYMBOLS[operation]
        return f"{to_source(node.left)} {symbol} {to_source(node.right)}"

    if operation in _PREFIX_SYMBOLS:
        return f"{_PREFIX_SYMBOLS[operation]}{to_source(node.left)}"

    if operation in (Operation.LOWER, Operation.UPPER):
        return f"{operation.label}({to_source(node.left)})"

    if operation == Operation.GROUP:
        return f"({to_source(node.left)})"

    if operation == Operation.TERNARY:
        alternative = node.right
        assert alternative is not None
        return (
            f"{to_source(node.left)} ? {to_source(alternative.left)}"
            f" : {to_source(alternative.right)}"
        )

    return f"{to_source(node.left)} {to_source(node.right)}".strip()
