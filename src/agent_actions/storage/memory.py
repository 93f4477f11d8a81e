"""Process-local store implementing every storage interface.

Used by tests and single-process tooling; it mirrors the SQL stores' method
signatures so either can back the API dependencies.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from ..engine import clock
from ..schemas import (
    ActionCreate,
    ActionDefinition,
    ActionStep,
    AgentCreate,
    AgentDefinition,
    CredentialResponse,
    CredentialUpsert,
    DataModelCreate,
    DataModelSchema,
    ExecutionResponse,
    ExecutionUpdate,
    RecordSchema,
    ScheduleCreate,
    ScheduleDefinition,
    ScheduleStepConfig,
)
from ..schemas.executions import utcnow
from ..models import ExecutionStatus, ScheduleStatus

__all__ = ["InMemoryStore"]


class InMemoryStore:
    """Agents, records, executions, schedules and credentials held in dictionaries."""

    def __init__(self) -> None:
        self.agents: dict[UUID, AgentDefinition] = {}
        self.records: dict[UUID, RecordSchema] = {}
        self.executions: dict[UUID, ExecutionResponse] = {}
        self.schedules: dict[UUID, ScheduleDefinition] = {}
        self.credentials: dict[tuple[UUID, str], CredentialResponse] = {}
        self._lock = asyncio.Lock()

    # agents -------------------------------------------------------------

    def add_agent(self, agent: AgentDefinition) -> AgentDefinition:
        self.agents[agent.id] = agent
        return agent

    async def get_agent(self, agent_id: UUID) -> AgentDefinition | None:
        agent = self.agents.get(agent_id)
        return agent.model_copy(deep=True) if agent is not None else None

    async def get_agent_for_action(self, action_id: UUID) -> AgentDefinition | None:
        for agent in self.agents.values():
            if agent.get_action(action_id) is not None:
                return agent.model_copy(deep=True)
        return None

    async def create_agent(self, payload: AgentCreate) -> AgentDefinition:
        agent_id = uuid4()
        agent = AgentDefinition(
            id=agent_id,
            user_id=payload.user_id,
            name=payload.name,
            description=payload.description,
            models=[_data_model(agent_id, item) for item in payload.models],
        )
        return self.add_agent(agent)

    async def add_data_model(self, agent_id: UUID, payload: DataModelCreate) -> DataModelSchema:
        model = _data_model(agent_id, payload)
        self.agents[agent_id].models.append(model)
        return model

    async def create_action(self, payload: ActionCreate) -> ActionDefinition:
        action_id = uuid4()
        action = ActionDefinition(
            id=action_id,
            agent_id=payload.agent_id,
            name=payload.name,
            title=payload.title,
            description=payload.description,
            target_model=payload.target_model,
            steps=[
                ActionStep(id=uuid4(), action_id=action_id, **step.model_dump())
                for step in payload.steps
            ],
        )
        self.agents[payload.agent_id].actions.append(action)
        return action

    async def get_action(self, action_id: UUID) -> ActionDefinition | None:
        for agent in self.agents.values():
            action = agent.get_action(action_id)
            if action is not None:
                return action.model_copy(deep=True)
        return None

    # records ------------------------------------------------------------

    async def get_record(self, record_id: UUID) -> RecordSchema | None:
        record = self.records.get(record_id)
        if record is None or record.is_deleted:
            return None
        return record.model_copy(deep=True)

    async def list_records(self, model_id: UUID) -> list[RecordSchema]:
        return [
            record.model_copy(deep=True)
            for record in self.records.values()
            if record.model_id == model_id and not record.is_deleted
        ]

    async def create_record(self, model_id: UUID, data: dict[str, Any]) -> RecordSchema:
        now = utcnow()
        record = RecordSchema(
            id=uuid4(),
            model_id=model_id,
            data=copy.deepcopy(dict(data)),
            created_at=now,
            updated_at=now,
        )
        self.records[record.id] = record
        return record.model_copy(deep=True)

    async def save_record_fields(
        self, record_id: UUID, changes: dict[str, Any]
    ) -> RecordSchema | None:
        async with self._lock:
            record = self.records.get(record_id)
            if record is None or record.is_deleted:
                return None
            updated = record.model_copy(
                update={
                    "data": {**record.data, **copy.deepcopy(changes)},
                    "updated_at": utcnow(),
                }
            )
            self.records[record_id] = updated
            return updated.model_copy(deep=True)

    async def delete_record(self, record_id: UUID) -> bool:
        record = self.records.get(record_id)
        if record is None or record.is_deleted:
            return False
        self.records[record_id] = record.model_copy(update={"deleted_at": utcnow()})
        return True

    # executions ---------------------------------------------------------

    async def create_execution(
        self,
        *,
        record_id: UUID,
        action_id: UUID,
        schedule_id: UUID | None = None,
    ) -> UUID:
        now = utcnow()
        execution = ExecutionResponse(
            id=uuid4(),
            record_id=record_id,
            action_id=action_id,
            schedule_id=schedule_id,
            status=ExecutionStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.executions[execution.id] = execution
        return execution.id

    async def update_execution(self, execution_id: UUID, changes: ExecutionUpdate) -> None:
        execution = self.executions[execution_id]
        values = changes.model_dump(exclude_unset=True)
        values["updated_at"] = utcnow()
        self.executions[execution_id] = execution.model_copy(update=values)

    async def get_execution(self, execution_id: UUID) -> ExecutionResponse | None:
        return self.executions.get(execution_id)

    async def list_executions(
        self,
        *,
        action_id: UUID | None = None,
        record_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionResponse]:
        rows = [
            execution
            for execution in self.executions.values()
            if (action_id is None or execution.action_id == action_id)
            and (record_id is None or execution.record_id == record_id)
        ]
        rows.reverse()
        return rows[offset : offset + limit]

    # schedules ----------------------------------------------------------

    def add_schedule(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        self.schedules[schedule.id] = schedule
        return schedule

    async def create_schedule(self, payload: ScheduleCreate, now: datetime) -> ScheduleDefinition:
        schedule_id = uuid4()
        schedule = ScheduleDefinition(
            id=schedule_id,
            agent_id=payload.agent_id,
            name=payload.name,
            mode=payload.mode,
            interval_hours=payload.interval_hours,
            status=ScheduleStatus.ACTIVE,
            next_run_at=clock.first_run_at(now, payload.start_at),
            steps=[
                ScheduleStepConfig(id=uuid4(), schedule_id=schedule_id, **step.model_dump())
                for step in payload.steps
            ],
        )
        return self.add_schedule(schedule)

    async def get_schedule(self, schedule_id: UUID) -> ScheduleDefinition | None:
        schedule = self.schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule is not None else None

    async def list_due_schedules(self, now: datetime, limit: int) -> list[ScheduleDefinition]:
        return clock.due_schedules(self.schedules.values(), now, limit)

    async def claim_schedule_fire(
        self,
        schedule_id: UUID,
        *,
        expected_next_run_at: datetime | None,
        expected_last_run_at: datetime | None,
        changes: dict[str, Any],
    ) -> bool:
        async with self._lock:
            schedule = self.schedules.get(schedule_id)
            if (
                schedule is None
                or schedule.next_run_at != expected_next_run_at
                or schedule.last_run_at != expected_last_run_at
            ):
                return False
            self.schedules[schedule_id] = schedule.model_copy(update=changes)
            return True

    async def update_schedule(self, schedule_id: UUID, changes: dict[str, Any]) -> None:
        schedule = self.schedules[schedule_id]
        self.schedules[schedule_id] = schedule.model_copy(update=changes)

    # credentials --------------------------------------------------------

    async def has_credential(self, agent_id: UUID, provider: str) -> bool:
        return (agent_id, provider) in self.credentials

    async def store_credential(
        self, agent_id: UUID, provider: str, payload: CredentialUpsert
    ) -> CredentialResponse:
        now = utcnow()
        existing = self.credentials.get((agent_id, provider))
        credential = CredentialResponse(
            id=existing.id if existing is not None else uuid4(),
            agent_id=agent_id,
            provider=provider,
            scopes=list(payload.scopes),
            expires_at=payload.expires_at,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self.credentials[(agent_id, provider)] = credential
        return credential

    async def delete_credential(self, agent_id: UUID, provider: str) -> bool:
        return self.credentials.pop((agent_id, provider), None) is not None


def _data_model(agent_id: UUID, payload: DataModelCreate) -> DataModelSchema:
    return DataModelSchema(id=uuid4(), agent_id=agent_id, **payload.model_dump())
