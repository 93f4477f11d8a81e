"""In-process guard allowing one in-flight run per (record, action) pair."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator
from uuid import UUID

from .exceptions import RunInProgressError


class RunGuard:
    """Rejects a second concurrent run of the same action on the same record.

    Different actions on one record are not serialized; their partial saves
    merge field by field and the last write of a given field wins.
    """

    def __init__(self) -> None:
        self._active: set[tuple[UUID, UUID]] = set()
        self._lock = asyncio.Lock()

    def is_running(self, record_id: UUID, action_id: UUID) -> bool:
        return (record_id, action_id) in self._active

    @asynccontextmanager
    async def hold(self, record_id: UUID, action_id: UUID) -> AsyncIterator[None]:
        key = (record_id, action_id)
        async with self._lock:
            if key in self._active:
                raise RunInProgressError(
                    f"Action {action_id} is already running on record {record_id}"
                )
            self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)


__all__ = ["RunGuard"]
