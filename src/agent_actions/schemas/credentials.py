"""Agent credential schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from .base import IdentifiedSchema, ORMModel


class CredentialUpsert(ORMModel):
    """Token material produced by a completed authorization flow."""

    token_data: dict[str, Any] = Field(default_factory=dict)
    scopes: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None


class CredentialResponse(IdentifiedSchema):
    """Stored credential metadata; token material is never echoed back."""

    agent_id: UUID
    provider: str
    scopes: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None


__all__ = ["CredentialResponse", "CredentialUpsert"]
