"""
Formula-driven device functions.

Device functions are the steps of a device policy pipeline. Each function
receives the attribute value flowing through the pipeline and reports
whether the pipeline continues, the value handed to the next step, and any
alert or action the host should raise. Functions never send messages or
invoke device actions themselves.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Union

from iotcs.formula.errors import FormulaError
from iotcs.formula.evaluator import NAN, Value
from iotcs.formula.formula import Formula
from iotcs.formula.limits import FormulaLimits
from iotcs.formula.value_provider import ValueProvider

logger = logging.getLogger("iotcs.policy.device_function")


class AlertSeverity(str, Enum):
    """Alert severities, lowest to highest."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    SIGNIFICANT = "SIGNIFICANT"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Any) -> AlertSeverity:
        """Case-insensitive lookup; missing or unknown severities are NORMAL."""
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                logger.warning("unknown_alert_severity", extra={"severity": value})
        return cls.NORMAL


@dataclass(frozen=True)
class AlertEvent:
    """An alert the host should raise."""

    attribute: str
    value: Any
    urn: Optional[str]
    severity: AlertSeverity = AlertSeverity.NORMAL
    fields: dict[str, Value] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionEvent:
    """A device action the host should invoke."""

    attribute: str
    value: Any
    name: Optional[str]
    arguments: tuple[Value, ...] = ()


PolicyEvent = Union[AlertEvent, ActionEvent]


@dataclass(frozen=True)
class FunctionOutcome:
    """Result of applying one device function to a value."""

    # False stops the pipeline; the value is not offered further
    passed: bool
    # Value handed to the next function when passed
    value: Any = None
    events: tuple[PolicyEvent, ...] = ()


def convert_formula(
    source: str,
    provider: ValueProvider,
    limits: Optional[FormulaLimits] = None,
) -> Value:
    """
    Computes a one-off formula such as an alert field or action argument.

    A formula that does not parse is logged and computes to NaN.
    """
    try:
        formula = Formula(source, limits)
    except FormulaError as e:
        logger.warning(
            "formula_parse_error",
            extra={"formula": source, "error": e.format_with_context()},
        )
        return NAN

    return formula.compute(provider)


def _is_number(value: Value) -> bool:
    return isinstance(value, float) and not math.isnan(value) and not math.isinf(value)


def _is_triggered(value: Value) -> bool:
    """A condition fires on any finite, non-zero number."""
    return _is_number(value) and value != 0.0


def _filter_enabled(parameters: Mapping[str, Any]) -> bool:
    """
    Reads the "filter" flag of alert and action conditions.

    An absent flag means filter. Besides booleans, the strings "true" and
    "false" are accepted in any case.
    """
    flag = parameters.get("filter")
    if flag is None:
        return True
    if isinstance(flag, bool):
        return flag
    if isinstance(flag, str) and flag.strip().lower() in ("true", "false"):
        return flag.strip().lower() == "true"
    raise ValueError(f'"filter" must be a boolean, got {flag!r}')


class DeviceFunction:
    """
    Base class for device functions.

    Subclasses name the parameter carrying their formula; the formula is
    compiled once per pipeline step and passed back on every apply.
    """

    id: str = ""
    # Parameter holding the formula source
    formula_parameter: str = ""
    # Whether the formula parses as a condition (no top-level ternary)
    condition: bool = False
    # Whether the function reads the "filter" flag
    filters: bool = False

    def compile(
        self,
        parameters: Mapping[str, Any],
        limits: Optional[FormulaLimits] = None,
    ) -> Formula:
        """
        Compiles this function's formula parameter.

        Raises:
            ValueError: If the parameter is missing or empty, or the
                "filter" flag is not a boolean
            FormulaError: If the formula does not parse
        """
        source = parameters.get(self.formula_parameter)
        if not isinstance(source, str) or not source.strip():
            raise ValueError(
                f'Device function "{self.id}" requires a '
                f'"{self.formula_parameter}" parameter'
            )
        if self.filters:
            _filter_enabled(parameters)

        source = source.strip()
        if self.condition:
            return Formula.condition(source, limits)
        return Formula(source, limits)

    def apply(
        self,
        attribute: str,
        value: Any,
        parameters: Mapping[str, Any],
        formula: Formula,
        provider: ValueProvider,
    ) -> FunctionOutcome:
        raise NotImplementedError

    def details(self, parameters: Mapping[str, Any]) -> str:
        """Human-readable description of this function with its parameters."""
        return f'{self.id}[{self.formula_parameter}="{parameters.get(self.formula_parameter)}"]'

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class ComputedMetric(DeviceFunction):
    """Replaces the value with the result of a formula."""

    id = "computedMetric"
    formula_parameter = "formula"

    def apply(self, attribute, value, parameters, formula, provider):
        computed = formula.compute(provider)
        if not _is_number(computed):
            logger.debug(
                "computed_metric_dropped",
                extra={"attribute": attribute, "formula": formula.source},
            )
            return FunctionOutcome(passed=False)

        return FunctionOutcome(passed=True, value=computed)


class FilterCondition(DeviceFunction):
    """Filters the value out when the condition is true."""

    id = "filterCondition"
    formula_parameter = "condition"
    condition = True

    def apply(self, attribute, value, parameters, formula, provider):
        computed = formula.compute(provider)
        # "filter" means out: only a false condition keeps the value
        keep = isinstance(computed, float) and -1.0 < computed < 1.0
        return FunctionOutcome(passed=keep, value=value if keep else None)


class AlertCondition(DeviceFunction):
    """Raises an alert when the condition is true."""

    id = "alertCondition"
    formula_parameter = "condition"
    condition = True
    filters = True

    def apply(self, attribute, value, parameters, formula, provider):
        if not _is_triggered(formula.compute(provider)):
            return FunctionOutcome(passed=True, value=value)

        raw_fields = parameters.get("fields") or {}
        fields = {
            name: convert_formula(str(source), provider)
            for name, source in raw_fields.items()
            if source is not None
        }
        event = AlertEvent(
            attribute=attribute,
            value=value,
            urn=parameters.get("urn"),
            severity=AlertSeverity.parse(parameters.get("severity")),
            fields=fields,
        )
        logger.debug(
            "alert_condition_triggered",
            extra={"attribute": attribute, "urn": event.urn},
        )

        if _filter_enabled(parameters):
            return FunctionOutcome(passed=False, events=(event,))
        return FunctionOutcome(passed=True, value=value, events=(event,))

    def details(self, parameters):
        return (
            f'{self.id}[condition="{parameters.get("condition")}", '
            f'urn="{parameters.get("urn")}", fields={parameters.get("fields")}, '
            f"filter={_filter_enabled(parameters)}]"
        )


class ActionCondition(DeviceFunction):
    """Invokes a device action when the condition is true."""

    id = "actionCondition"
    formula_parameter = "condition"
    condition = True
    filters = True

    def apply(self, attribute, value, parameters, formula, provider):
        if not _is_triggered(formula.compute(provider)):
            return FunctionOutcome(passed=True, value=value)

        raw_arguments = parameters.get("arguments") or []
        arguments = tuple(
            convert_formula(str(source), provider) if source is not None else NAN
            for source in raw_arguments
        )
        event = ActionEvent(
            attribute=attribute,
            value=value,
            name=parameters.get("name"),
            arguments=arguments,
        )
        logger.debug(
            "action_condition_triggered",
            extra={"attribute": attribute, "action": event.name},
        )

        if _filter_enabled(parameters):
            return FunctionOutcome(passed=False, events=(event,))
        return FunctionOutcome(passed=True, value=value, events=(event,))

    def details(self, parameters):
        return (
            f'{self.id}[condition="{parameters.get("condition")}", '
            f'action="{parameters.get("name")}", '
            f"arguments={parameters.get('arguments')}, "
            f"filter={_filter_enabled(parameters)}]"
        )


DEVICE_FUNCTIONS: dict[str, DeviceFunction] = {
    function.id: function
    for function in (
        FilterCondition(),
        AlertCondition(),
        ComputedMetric(),
        ActionCondition(),
    )
}


def get_device_function(function_id: str) -> Optional[DeviceFunction]:
    """Returns the device function registered under ``function_id``."""
    return DEVICE_FUNCTIONS.get(function_id)
