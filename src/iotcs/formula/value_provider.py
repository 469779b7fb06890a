"""
Value provider contract.

A value provider is the only thing the evaluator consumes from the host
system: it resolves attribute names referenced by ``$(name)`` and
``$$(name)`` to values for the duration of one ``compute`` call.
"""

from typing import Any, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class ValueProvider(Protocol):
    """Resolves attribute names to values."""

    def get_current_value(self, name: str) -> Optional[Any]:
        """Returns the committed value of ``name``, or None if unknown."""
        ...

    def get_in_process_value(self, name: str) -> Optional[Any]:
        """Returns the pending value of ``name``, or None if there is none."""
        ...


class MappingValueProvider:
    """Value provider backed by plain mappings of attribute values."""

    def __init__(
        self,
        current: Optional[Mapping[str, Any]] = None,
        in_process: Optional[Mapping[str, Any]] = None,
    ):
        self._current = dict(current or {})
        self._in_process = dict(in_process or {})

    def get_current_value(self, name: str) -> Optional[Any]:
        return self._current.get(name)

    def get_in_process_value(self, name: str) -> Optional[Any]:
        return self._in_process.get(name)

    def with_in_process(self, name: str, value: Any) -> "MappingValueProvider":
        """Returns a copy with ``value`` pending for ``name``."""
        in_process = dict(self._in_process)
        in_process[name] = value
        return MappingValueProvider(self._current, in_process)

    def __repr__(self) -> str:
        return (
            f"MappingValueProvider(current={self._current!r}, "
            f"in_process={self._in_process!r})"
        )
