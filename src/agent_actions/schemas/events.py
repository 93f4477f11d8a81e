"""Event payload schemas consumed from Redis Streams."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID, uuid4

from pydantic import Field, TypeAdapter

from .base import ORMModel
from .executions import utcnow


class EngineEvent(ORMModel):
    """Fields shared by every queued request."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: UUID | None = None
    timestamp: datetime = Field(default_factory=utcnow)


class ActionRunRequestEvent(EngineEvent):
    """Run one action against one record."""

    type: Literal["action_run"] = "action_run"
    action_id: UUID
    record_id: UUID


class ScheduleRunEvent(EngineEvent):
    """Fire one schedule, optionally regardless of whether it is due."""

    type: Literal["schedule_run"] = "schedule_run"
    schedule_id: UUID
    force: bool = False


class ScheduleTickEvent(EngineEvent):
    """Fire every schedule that is currently due."""

    type: Literal["schedule_tick"] = "schedule_tick"
    limit: int | None = None


QueuedEvent = Annotated[
    Union[ActionRunRequestEvent, ScheduleRunEvent, ScheduleTickEvent],
    Field(discriminator="type"),
]
queued_event_adapter: TypeAdapter[QueuedEvent] = TypeAdapter(QueuedEvent)


__all__ = [
    "ActionRunRequestEvent",
    "EngineEvent",
    "QueuedEvent",
    "ScheduleRunEvent",
    "ScheduleTickEvent",
    "queued_event_adapter",
]
