"""Dispatches queued requests to the action and schedule runners."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from ..schemas.events import (
    ActionRunRequestEvent,
    QueuedEvent,
    ScheduleRunEvent,
    ScheduleTickEvent,
)
from .runner import ActionRunner
from .scheduler import ScheduleRunner

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Maps each queued event type to the runner call that serves it."""

    def __init__(self, actions: ActionRunner, schedules: ScheduleRunner) -> None:
        self._actions = actions
        self._schedules = schedules
        self._handlers: dict[str, Callable[[Any], Awaitable[dict[str, Any]]]] = {
            "action_run": self._run_action,
            "schedule_run": self._run_schedule,
            "schedule_tick": self._tick,
        }

    async def handle_event(self, event: QueuedEvent) -> dict[str, Any]:
        handler = self._handlers.get(event.type)
        if handler is None:  # pragma: no cover - the event union is closed
            raise ValueError(f"No handler for event type '{event.type}'")
        logger.info("Handling event", extra={"event_id": event.event_id, "type": event.type})
        return await handler(event)

    async def _run_action(self, event: ActionRunRequestEvent) -> dict[str, Any]:
        result = await self._actions.run_action(
            event.action_id, event.record_id, user_id=event.user_id
        )
        return result.model_dump(mode="json")

    async def _run_schedule(self, event: ScheduleRunEvent) -> dict[str, Any]:
        result = await self._schedules.run_schedule(
            event.schedule_id, force=event.force, user_id=event.user_id
        )
        return result.model_dump(mode="json")

    async def _tick(self, event: ScheduleTickEvent) -> dict[str, Any]:
        results = await self._schedules.run_due(limit=event.limit)
        return {"schedules": [result.model_dump(mode="json") for result in results]}


__all__ = ["EventDispatcher"]
