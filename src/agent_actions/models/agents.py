"""ORM models for agents, their data models, records and stored credentials."""

from __future__ import annotations

from datetime import datetime
from typing import Any, TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import (
    Base,
    GUID,
    JSONBType,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDPrimaryKey,
    UserOwnedMixin,
)

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .actions import ActionModel
    from .schedules import ScheduleModel


class AgentModel(UUIDPrimaryKey, TimestampMixin, UserOwnedMixin, Base):
    """An agent owning models, actions and schedules."""

    __tablename__ = "agents"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text())

    data_models: Mapped[list["AgentDataModel"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
        order_by="AgentDataModel.name",
    )
    actions: Mapped[list["ActionModel"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
    )
    schedules: Mapped[list["ScheduleModel"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
    )
    credentials: Mapped[list["AgentCredentialModel"]] = relationship(
        back_populates="agent",
        cascade="all, delete-orphan",
    )


class AgentDataModel(UUIDPrimaryKey, TimestampMixin, Base):
    """Named field schema whose records are processed by actions."""

    __tablename__ = "data_models"
    __table_args__ = (
        UniqueConstraint("agent_id", "name", name="uq_data_models_agent_name"),
    )

    agent_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text())
    fields: Mapped[list[dict[str, Any]]] = mapped_column(JSONBType, default=list, nullable=False)
    forms: Mapped[list[dict[str, Any]]] = mapped_column(JSONBType, default=list, nullable=False)

    agent: Mapped[AgentModel] = relationship(back_populates="data_models")
    records: Mapped[list["AgentRecordModel"]] = relationship(
        back_populates="data_model",
        cascade="all, delete-orphan",
    )


class AgentRecordModel(UUIDPrimaryKey, TimestampMixin, SoftDeleteMixin, Base):
    """A single record instance of a data model."""

    __tablename__ = "records"
    __table_args__ = (Index("ix_records_model_id_deleted_at", "model_id", "deleted_at"),)

    model_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("data_models.id", ondelete="CASCADE"),
        nullable=False,
    )
    data: Mapped[dict[str, Any]] = mapped_column(JSONBType, default=dict, nullable=False)

    data_model: Mapped[AgentDataModel] = relationship(back_populates="records")


class AgentCredentialModel(UUIDPrimaryKey, TimestampMixin, Base):
    """Credential stored for an agent and an external provider."""

    __tablename__ = "agent_credentials"
    __table_args__ = (
        UniqueConstraint("agent_id", "provider", name="uq_agent_credentials_agent_provider"),
    )

    agent_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    token_data: Mapped[dict[str, Any]] = mapped_column(JSONBType, default=dict, nullable=False)
    scopes: Mapped[list[str]] = mapped_column(JSONBType, default=list, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    agent: Mapped[AgentModel] = relationship(back_populates="credentials")


__all__ = [
    "AgentCredentialModel",
    "AgentDataModel",
    "AgentModel",
    "AgentRecordModel",
]
