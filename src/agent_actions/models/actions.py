"""ORM models for actions and their ordered steps."""

from __future__ import annotations

from enum import Enum
from typing import Any, TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Enum as SqlEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, GUID, JSONBType, TimestampMixin, UUIDPrimaryKey

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .agents import AgentModel


class StepType(str, Enum):
    """Kinds of work a single action step performs."""

    AI_REASONING = "ai_reasoning"
    WEB_SEARCH = "web_search"
    IMAGE_GENERATION = "image_generation"
    CUSTOM = "custom"


class ActionModel(UUIDPrimaryKey, TimestampMixin, Base):
    """Ordered pipeline of steps bound to one target data model."""

    __tablename__ = "actions"

    agent_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_model: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text())

    agent: Mapped["AgentModel"] = relationship(back_populates="actions")
    steps: Mapped[list["ActionStepModel"]] = relationship(
        back_populates="action",
        cascade="all, delete-orphan",
        order_by="ActionStepModel.order",
    )


class ActionStepModel(UUIDPrimaryKey, TimestampMixin, Base):
    """One step of an action; ``config`` holds the step settings document."""

    __tablename__ = "action_steps"

    action_id: Mapped[UUID] = mapped_column(
        GUID(),
        ForeignKey("actions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[StepType] = mapped_column(
        SqlEnum(StepType, name="step_type"),
        nullable=False,
    )
    config: Mapped[dict[str, Any]] = mapped_column(JSONBType, default=dict, nullable=False)

    action: Mapped[ActionModel] = relationship(back_populates="steps")


__all__ = [
    "ActionModel",
    "ActionStepModel",
    "StepType",
]
