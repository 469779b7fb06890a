"""
Device policy pipelines.

Compiles a device policy definition once and applies its per-attribute
pipelines to offered attribute values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from iotcs.formula.errors import FormulaError
from iotcs.formula.formula import Formula
from iotcs.formula.limits import DEFAULT_FORMULA_LIMITS, FormulaLimits
from iotcs.formula.value_provider import ValueProvider

from .device_function import DeviceFunction, PolicyEvent, get_device_function
from .device_policy_definition import (
    ALL_ATTRIBUTES,
    DevicePolicyConfig,
    DevicePolicyDefinition,
    DevicePolicyPipeline,
)

logger = logging.getLogger("iotcs.policy.device_policy")


@dataclass
class CompiledFunction:
    """Compiled pipeline step for efficient repeated application."""

    # The device function
    function: DeviceFunction
    # Parameters from the policy document
    parameters: Mapping[str, Any]
    # Compiled formula or condition
    formula: Formula


@dataclass(frozen=True)
class PipelineResult:
    """Result of running an attribute value through its pipeline."""

    # The value after the last function that ran
    value: Any
    # False if a function stopped the pipeline
    passed: bool
    events: tuple[PolicyEvent, ...] = ()


class _InProcessOverlay:
    """Exposes the value in flight as the attribute's in-process value."""

    def __init__(self, provider: ValueProvider, attribute: str, value: Any):
        self._provider = provider
        self._attribute = attribute
        self._value = value

    def get_current_value(self, name: str) -> Optional[Any]:
        return self._provider.get_current_value(name)

    def get_in_process_value(self, name: str) -> Optional[Any]:
        if name == self._attribute:
            return self._value
        return self._provider.get_in_process_value(name)


def _normalize_limits(
    limits: FormulaLimits | dict[str, Any] | None,
) -> FormulaLimits:
    if limits is None:
        return DEFAULT_FORMULA_LIMITS
    if isinstance(limits, FormulaLimits):
        return limits
    try:
        return FormulaLimits(**limits)
    except TypeError as e:
        raise ValueError(f"Invalid formula limits {limits!r}: {e}") from e


class DevicePolicy:
    """
    A compiled device policy.

    Features:
    - Formulas and conditions are parsed once, at construction
    - Attributes without a pipeline of their own use the "*" pipeline
    - A disabled policy passes every value through untouched
    - Functions report alerts and actions as events; nothing is sent
    """

    def __init__(self, config: DevicePolicyConfig | dict[str, Any]):
        if not isinstance(config, DevicePolicyConfig):
            config = DevicePolicyConfig.model_validate(config)

        self._definition = config.policy_definition
        self._limits = _normalize_limits(config.formula_limits)

        self._pipelines: dict[str, list[CompiledFunction]] = {}
        for pipeline in self._definition.pipelines:
            self._pipelines[pipeline.attribute_name] = self._compile_pipeline(pipeline)

        logger.debug(
            "device_policy_compiled",
            extra={
                "policy_id": self._definition.id,
                "device_model_urn": self._definition.device_model_urn,
                "pipeline_count": len(self._pipelines),
                "enabled": self._definition.enabled,
            },
        )

    @property
    def id(self) -> str:
        return self._definition.id

    @property
    def device_model_urn(self) -> str:
        return self._definition.device_model_urn

    @property
    def enabled(self) -> bool:
        return self._definition.enabled

    @property
    def definition(self) -> DevicePolicyDefinition:
        return self._definition

    def get_pipeline(self, attribute: Optional[str]) -> Optional[list[CompiledFunction]]:
        """Returns the compiled pipeline for ``attribute``, falling back to "*"."""
        if attribute is not None and attribute in self._pipelines:
            return self._pipelines[attribute]
        return self._pipelines.get(ALL_ATTRIBUTES)

    def apply(
        self,
        attribute: str,
        value: Any,
        provider: ValueProvider,
    ) -> PipelineResult:
        """
        Runs ``value`` through the pipeline for ``attribute``.

        Args:
            attribute: Name of the attribute being offered
            value: The offered value
            provider: Current and in-process attribute values of the device

        Returns:
            The resulting value, whether it passed, and the raised events
        """
        if not self._definition.enabled:
            return PipelineResult(value=value, passed=True)

        pipeline = self.get_pipeline(attribute)
        if not pipeline:
            return PipelineResult(value=value, passed=True)

        events: list[PolicyEvent] = []
        current = value

        for step in pipeline:
            overlay = _InProcessOverlay(provider, attribute, current)
            outcome = step.function.apply(
                attribute, current, step.parameters, step.formula, overlay
            )
            events.extend(outcome.events)

            if not outcome.passed:
                logger.debug(
                    "device_policy_pipeline_stopped",
                    extra={
                        "policy_id": self._definition.id,
                        "attribute": attribute,
                        "function_id": step.function.id,
                    },
                )
                return PipelineResult(value=current, passed=False, events=tuple(events))

            current = outcome.value

        return PipelineResult(value=current, passed=True, events=tuple(events))

    def _compile_pipeline(self, pipeline: DevicePolicyPipeline) -> list[CompiledFunction]:
        """Compile all functions of one pipeline."""
        compiled: list[CompiledFunction] = []

        for step in pipeline.pipeline:
            function = get_device_function(step.id)
            if function is None:
                logger.warning(
                    "unsupported_device_function",
                    extra={
                        "policy_id": self._definition.id,
                        "attribute": pipeline.attribute_name,
                        "function_id": step.id,
                    },
                )
                continue

            try:
                formula = function.compile(step.parameters, self._limits)
            except (FormulaError, ValueError) as e:
                raise ValueError(
                    f'Invalid parameters in function "{function.id}" '
                    f'for attribute "{pipeline.attribute_name}": {e}'
                ) from e

            compiled.append(CompiledFunction(function, step.parameters, formula))

        return compiled
