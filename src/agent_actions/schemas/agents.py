"""Agent schema definitions."""

from __future__ import annotations

from uuid import UUID

from pydantic import Field, model_validator

from .actions import ActionDefinition
from .base import IdentifiedSchema, ORMModel
from .fields import DataModelCreate, DataModelSchema


class AgentBase(ORMModel):
    """Shared payload for agent schemas."""

    name: str = Field(min_length=1)
    description: str | None = None


class AgentCreate(AgentBase):
    """Payload used to create an agent together with its data models."""

    user_id: UUID | None = None
    models: list[DataModelCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_models(self) -> "AgentCreate":
        names = [model.name for model in self.models]
        if len(names) != len(set(names)):
            raise ValueError("Data model names must be unique within an agent")
        return self


class AgentDefinition(AgentBase):
    """Agent with everything an action run needs to resolve fields and references."""

    id: UUID
    user_id: UUID | None = None
    models: list[DataModelSchema] = Field(default_factory=list)
    actions: list[ActionDefinition] = Field(default_factory=list)

    def get_model(self, name: str) -> DataModelSchema | None:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def get_model_by_id(self, model_id: UUID) -> DataModelSchema | None:
        for model in self.models:
            if model.id == model_id:
                return model
        return None

    def get_action(self, action_id: UUID) -> ActionDefinition | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None


class AgentResponse(AgentDefinition, IdentifiedSchema):
    """Agent returned over the API."""


__all__ = [
    "AgentBase",
    "AgentCreate",
    "AgentDefinition",
    "AgentResponse",
]
