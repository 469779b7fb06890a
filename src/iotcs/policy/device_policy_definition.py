"""
Device policy document models.

A device policy binds a device model to per-attribute pipelines of device
functions. Documents arrive as JSON with camelCase keys; both camelCase and
snake_case are accepted.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from iotcs.formula.limits import FormulaLimits

# Pipeline key applying to every attribute without a pipeline of its own
ALL_ATTRIBUTES = "*"


class DevicePolicyFunction(BaseModel):
    """One step of a pipeline: a device function id and its parameters."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class DevicePolicyPipeline(BaseModel):
    """The ordered functions applied to one attribute."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    attribute_name: str = Field(default=ALL_ATTRIBUTES, alias="attributeName")
    pipeline: list[DevicePolicyFunction] = Field(default_factory=list)


class DevicePolicyDefinition(BaseModel):
    """A device policy as served for a device model."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    device_model_urn: str = Field(alias="deviceModelURN")
    pipelines: list[DevicePolicyPipeline] = Field(default_factory=list)
    description: Optional[str] = None
    # Milliseconds since the epoch
    last_modified: Optional[int] = Field(default=None, alias="lastModified")
    enabled: bool = True

    def get_pipeline(
        self, attribute_name: Optional[str]
    ) -> Optional[list[DevicePolicyFunction]]:
        """
        Returns the pipeline for ``attribute_name``.

        ``None`` selects the all-attributes pipeline. Returns None if the
        policy has no pipeline under that name.
        """
        key = attribute_name if attribute_name is not None else ALL_ATTRIBUTES
        for pipeline in self.pipelines:
            if pipeline.attribute_name == key:
                return pipeline.pipeline
        return None


class DevicePolicyConfig(BaseModel):
    """Configuration for creating a DevicePolicy."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # The policy definition to apply - can be dict or Pydantic model
    policy_definition: DevicePolicyDefinition = Field(alias="policyDefinition")

    # Formula limits for compiling pipeline formulas
    formula_limits: FormulaLimits | dict[str, Any] | None = Field(
        default=None, alias="formulaLimits"
    )
