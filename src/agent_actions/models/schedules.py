"""ORM models for schedules and the steps they fan out to."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Enum as SqlEnum, Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, GUID, JSONBType, TimestampMixin, UUIDPrimaryKey

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .agents import AgentModel


class ScheduleMode(str, Enum):
    """How often a schedule fires."""

    ONCE = "once"
    RECURRING = "recurring"


class ScheduleStatus(str, Enum):
    """Whether the schedule is eligible to fire."""

    ACTIVE = "active"
    PAUSED = "paused"


class ScheduleModel(UUIDPrimaryKey, TimestampMixin, Base):
    """Timer that runs actions across filtered record sets."""

    __tablename__ = "schedules"
    __table_args__ = (Index("ix_schedules_status_next_run_at", "status", "next_run_at"),)

    agent_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mode: Mapped[ScheduleMode] = mapped_column(
        SqlEnum(ScheduleMode, name="schedule_mode"),
        default=ScheduleMode.ONCE,
        nullable=False,
    )
    interval_hours: Mapped[float | None] = mapped_column(Float)
    status: Mapped[ScheduleStatus] = mapped_column(
        SqlEnum(ScheduleStatus, name="schedule_status"),
        default=ScheduleStatus.ACTIVE,
        nullable=False,
    )
    next_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    agent: Mapped["AgentModel"] = relationship(back_populates="schedules")
    steps: Mapped[list["ScheduleStepModel"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleStepModel.order",
    )


class ScheduleStepModel(UUIDPrimaryKey, TimestampMixin, Base):
    """Pairs a record query on one model with the action to run on matches."""

    __tablename__ = "schedule_steps"

    schedule_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    model_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("data_models.id", ondelete="CASCADE"),
        nullable=False,
    )
    action_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Structured filter expression, or a legacy free-text query under {"text": ...}.
    query: Mapped[dict[str, Any] | None] = mapped_column(JSONBType)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    schedule: Mapped[ScheduleModel] = relationship(back_populates="steps")


__all__ = [
    "ScheduleMode",
    "ScheduleModel",
    "ScheduleStatus",
    "ScheduleStepModel",
]
