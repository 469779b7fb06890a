"""
Compiled formula.

A Formula is parsed once and may then be computed any number of times
against different value providers.
"""

import logging
from typing import Any, Optional

from .ast import Node, dump, to_source
from .evaluator import Evaluator, Value
from .limits import FormulaLimits
from .parser import Parser
from .tokenizer import tokenize
from .value_provider import ValueProvider


class Formula:
    """An immutable, parsed formula."""

    def __init__(
        self,
        source: str,
        limits: Optional[FormulaLimits] = None,
        logger: Optional[logging.Logger] = None,
        *,
        condition: bool = False,
    ):
        """
        Parses ``source``.

        Raises:
            LexError: If tokenization fails
            SyntaxError: If parsing fails
            LimitExceededError: If the formula exceeds a limit
        """
        parser = Parser(tokenize(source, limits), source, limits)
        self._source = source
        self._root = parser.parse_condition() if condition else parser.parse()
        self._logger = logger

    @classmethod
    def condition(
        cls,
        source: str,
        limits: Optional[FormulaLimits] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "Formula":
        """Parses ``source`` as a condition: a formula without a top-level ternary."""
        return cls(source, limits, logger, condition=True)

    @property
    def source(self) -> str:
        return self._source

    @property
    def root(self) -> Node:
        return self._root

    def compute(self, provider: ValueProvider) -> Value:
        """Computes the formula against ``provider``."""
        return Evaluator(provider, self._logger).compute(self._root)

    def dump(self) -> str:
        return dump(self._root)

    def to_source(self) -> str:
        return to_source(self._root)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Formula):
            return NotImplemented
        return self._root == other._root

    def __hash__(self) -> int:
        return hash(self._root)

    def __repr__(self) -> str:
        return f"Formula({self._source!r})"

    def __str__(self) -> str:
        return self.to_source()
