"""Action and action step schema definitions."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from ..models import StepType
from .base import IdentifiedSchema, ORMModel


class StepSettings(ORMModel):
    """Per-step configuration document."""

    prompt: str | None = None
    description: str | None = None
    input_fields: list[str] = Field(default_factory=list)
    output_fields: list[str] = Field(default_factory=list)
    model: str | None = Field(default=None, description="Override for the default LLM")
    code: str | None = None
    env_vars: list[str] = Field(default_factory=list)
    deployment_url: str | None = None
    image_options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("input_fields", "output_fields", "env_vars")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(item for item in value if item))


class ActionStepBase(ORMModel):
    """Shared payload for action step schemas."""

    name: str = Field(min_length=1)
    type: StepType
    order: int = 0
    config: StepSettings = Field(default_factory=StepSettings)

    @model_validator(mode="after")
    def _check_type_settings(self) -> "ActionStepBase":
        if self.type is StepType.IMAGE_GENERATION and len(self.config.output_fields) != 1:
            raise ValueError(
                f"Image generation step '{self.name}' must declare exactly one output field"
            )
        return self


class ActionStepCreate(ActionStepBase):
    """Payload used to declare a step."""


class ActionStep(ActionStepBase):
    """Action step as loaded from storage."""

    id: UUID | None = None
    action_id: UUID | None = None


class ActionBase(ORMModel):
    """Shared payload for action schemas."""

    name: str = Field(min_length=1)
    title: str | None = None
    description: str | None = None
    target_model: str = Field(min_length=1, description="Name of the data model the action writes")


class ActionCreate(ActionBase):
    """Payload used to create an action with its steps."""

    agent_id: UUID
    steps: list[ActionStepCreate] = Field(default_factory=list)


class ActionDefinition(ActionBase):
    """Action as loaded from storage with its steps."""

    id: UUID
    agent_id: UUID
    steps: list[ActionStep] = Field(default_factory=list)

    @property
    def ordered_steps(self) -> list[ActionStep]:
        return sorted(self.steps, key=lambda step: step.order)


class ActionResponse(ActionDefinition, IdentifiedSchema):
    """Action returned over the API."""


class ActionValidationResult(ORMModel):
    """Outcome of checking an action against its agent's models."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


__all__ = [
    "ActionBase",
    "ActionCreate",
    "ActionDefinition",
    "ActionResponse",
    "ActionStep",
    "ActionStepBase",
    "ActionStepCreate",
    "ActionValidationResult",
    "StepSettings",
]
