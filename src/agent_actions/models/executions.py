"""Execution history ORM model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, GUID, JSONBType, TimestampMixin, UUIDPrimaryKey


class ExecutionStatus(str, Enum):
    """Lifecycle states for an action run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    AWAITING_OAUTH = "awaiting_oauth"


class ExecutionRecord(UUIDPrimaryKey, TimestampMixin, Base):
    """Audit row for one run of an action against one record."""

    __tablename__ = "executions"
    __table_args__ = (
        Index("ix_executions_status", "status"),
        Index("ix_executions_record_action", "record_id", "action_id"),
        Index("ix_executions_schedule_id", "schedule_id"),
    )

    record_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
    )
    action_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False,
    )
    schedule_id: Mapped[UUID | None] = mapped_column(
        GUID(),
        ForeignKey("schedules.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[ExecutionStatus] = mapped_column(
        SqlEnum(ExecutionStatus, name="execution_status"),
        default=ExecutionStatus.PENDING,
        nullable=False,
    )

    result: Mapped[dict[str, Any] | None] = mapped_column(JSONBType)
    error: Mapped[str | None] = mapped_column(Text())
    input_tokens: Mapped[int | None] = mapped_column(Integer)
    output_tokens: Mapped[int | None] = mapped_column(Integer)
    total_tokens: Mapped[int | None] = mapped_column(Integer)
    execution_time_ms: Mapped[int | None] = mapped_column(Integer)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


__all__ = [
    "ExecutionRecord",
    "ExecutionStatus",
]
