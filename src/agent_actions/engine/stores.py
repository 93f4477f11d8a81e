"""Storage interfaces the engine depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from ..schemas.agents import AgentDefinition
from ..schemas.executions import ExecutionResponse, ExecutionUpdate
from ..schemas.records import RecordSchema
from ..schemas.schedules import ScheduleDefinition


class AgentStore(Protocol):
    """Read access to agents with their models and actions."""

    async def get_agent(self, agent_id: UUID) -> AgentDefinition | None: ...

    async def get_agent_for_action(self, action_id: UUID) -> AgentDefinition | None: ...


class RecordStore(Protocol):
    """Record persistence; deleted records are never returned."""

    async def get_record(self, record_id: UUID) -> RecordSchema | None: ...

    async def list_records(self, model_id: UUID) -> list[RecordSchema]: ...

    async def create_record(self, model_id: UUID, data: dict[str, Any]) -> RecordSchema: ...

    async def save_record_fields(
        self, record_id: UUID, changes: dict[str, Any]
    ) -> RecordSchema | None: ...


class ExecutionStore(Protocol):
    """Append-mostly audit trail of action runs."""

    async def create_execution(
        self,
        *,
        record_id: UUID,
        action_id: UUID,
        schedule_id: UUID | None = None,
    ) -> UUID: ...

    async def update_execution(self, execution_id: UUID, changes: ExecutionUpdate) -> None: ...

    async def get_execution(self, execution_id: UUID) -> ExecutionResponse | None: ...


class ScheduleStore(Protocol):
    """Schedule persistence with an atomic firing claim."""

    async def get_schedule(self, schedule_id: UUID) -> ScheduleDefinition | None: ...

    async def list_due_schedules(self, now: datetime, limit: int) -> list[ScheduleDefinition]: ...

    async def claim_schedule_fire(
        self,
        schedule_id: UUID,
        *,
        expected_next_run_at: datetime | None,
        expected_last_run_at: datetime | None,
        changes: dict[str, Any],
    ) -> bool:
        """Apply ``changes`` only if both run timestamps still hold the expected values."""
        ...

    async def update_schedule(self, schedule_id: UUID, changes: dict[str, Any]) -> None: ...


class CredentialStore(Protocol):
    """Lookup of credentials stored per agent and provider."""

    async def has_credential(self, agent_id: UUID, provider: str) -> bool: ...


__all__ = [
    "AgentStore",
    "CredentialStore",
    "ExecutionStore",
    "RecordStore",
    "ScheduleStore",
]
