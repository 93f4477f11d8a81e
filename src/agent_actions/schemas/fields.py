"""Field and data model schemas describing the shape of agent records."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import Field, model_validator

from .base import ORMModel


class FieldType(str, Enum):
    """Value kinds a record field may hold."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"
    JSON = "json"
    IMAGE_URL = "image_url"
    REFERENCE = "reference"


class ReferenceType(str, Enum):
    """Cardinality of a reference field."""

    TO_ONE = "to_one"
    TO_MANY = "to_many"


class FieldDefinition(ORMModel):
    """Declared field of a data model."""

    name: str = Field(min_length=1)
    title: str | None = None
    type: FieldType
    required: bool = False
    description: str | None = None
    enum_values: list[str] | None = None
    reference_type: ReferenceType | None = None
    references_model: str | None = None

    @model_validator(mode="after")
    def _check_reference(self) -> "FieldDefinition":
        is_reference = self.type is FieldType.REFERENCE
        has_target = self.reference_type is not None and bool(self.references_model)
        if is_reference and not has_target:
            raise ValueError(
                f"Reference field '{self.name}' requires reference_type and references_model"
            )
        if not is_reference and (self.reference_type is not None or self.references_model):
            raise ValueError(f"Field '{self.name}' is not a reference field")
        return self

    @property
    def label(self) -> str:
        return self.description or self.title or self.name

    def references(self, model_name: str) -> bool:
        return self.type is FieldType.REFERENCE and self.references_model == model_name


class FormDefinition(ORMModel):
    """Named subset of fields presented together."""

    name: str
    title: str | None = None
    fields: list[str] = Field(default_factory=list)


class DataModelBase(ORMModel):
    """Shared payload for data model schemas."""

    name: str = Field(min_length=1)
    title: str | None = None
    description: str | None = None
    fields: list[FieldDefinition] = Field(default_factory=list)
    forms: list[FormDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_fields(self) -> "DataModelBase":
        seen: set[str] = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(f"Duplicate field '{field.name}' in model '{self.name}'")
            seen.add(field.name)
        return self


class DataModelCreate(DataModelBase):
    """Payload used to declare a data model on an agent."""


class DataModelSchema(DataModelBase):
    """A data model as loaded from storage."""

    id: UUID
    agent_id: UUID | None = None

    def get_field(self, name: str) -> FieldDefinition | None:
        for field in self.fields:
            if field.name == name:
                return field
        return None


__all__ = [
    "DataModelBase",
    "DataModelCreate",
    "DataModelSchema",
    "FieldDefinition",
    "FieldType",
    "FormDefinition",
    "ReferenceType",
]
