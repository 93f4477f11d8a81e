"""Record schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from .base import IdentifiedSchema, ORMModel, RecordData


class RecordCreate(ORMModel):
    """Payload used to create a record of a data model."""

    model_id: UUID
    data: RecordData = Field(default_factory=dict)


class RecordUpdate(ORMModel):
    """Partial update; keys present in ``data`` overwrite stored values."""

    data: RecordData


class RecordSchema(IdentifiedSchema):
    """A stored record."""

    model_id: UUID
    data: RecordData = Field(default_factory=dict)
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


__all__ = [
    "RecordCreate",
    "RecordSchema",
    "RecordUpdate",
]
