"""Tests for the schedule runner (agent_actions/engine/scheduler.py)."""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from agent_actions.engine import (
    AccessDeniedError,
    ActionRunner,
    ScheduleNotFoundError,
    ScheduleRunner,
)
from agent_actions.models import ExecutionStatus, ScheduleMode, ScheduleStatus
from agent_actions.schemas import (
    ActionDefinition,
    AgentDefinition,
    FilterExpression,
    RecordSchema,
    ScheduleCreate,
    ScheduleDefinition,
    ScheduleFilter,
    ScheduleStepCreate,
)
from agent_actions.storage import InMemoryStore
from tests.helpers import FakeBackend, analyze_health, model_named, pet_agent

pytestmark = pytest.mark.unit

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
DOGS = FilterExpression(filters=[ScheduleFilter(field="species", operator="equals", value="dog")])
SCORE = {"health_score": 8, "needs_vet": False}


@pytest.fixture
def scheduler(store: InMemoryStore, runner: ActionRunner) -> ScheduleRunner:
    return ScheduleRunner(store, store, store, runner, now=lambda: NOW)


@pytest.fixture
def action(agent: AgentDefinition) -> ActionDefinition:
    return analyze_health(agent)


@pytest.fixture
async def tom(store: InMemoryStore, agent: AgentDefinition) -> RecordSchema:
    return await store.create_record(
        model_named(agent, "Pet").id, {"name": "Tom", "species": "cat", "age": 12}
    )


async def _schedule(
    store: InMemoryStore,
    agent: AgentDefinition,
    action_id: UUID,
    *,
    start_at: datetime = NOW - timedelta(minutes=1),
    **overrides: object,
) -> ScheduleDefinition:
    payload = ScheduleCreate(
        agent_id=agent.id,
        name="checkups",
        start_at=start_at,
        steps=[
            ScheduleStepCreate(
                model_id=model_named(agent, "Pet").id,
                action_id=action_id,
                query=DOGS,
            )
        ],
        **overrides,
    )
    return await store.create_schedule(payload, NOW)


class TestRunDue:
    """Due schedules fire and run their action on every matching record."""

    async def test_once_schedule_fires_on_matching_records_and_pauses(
        self,
        scheduler: ScheduleRunner,
        store: InMemoryStore,
        agent: AgentDefinition,
        action: ActionDefinition,
        backend: FakeBackend,
        rex: RecordSchema,
        tom: RecordSchema,
    ) -> None:
        schedule = await _schedule(store, agent, action.id)
        backend.queue({"health_summary": "Healthy"}, SCORE)

        results = await scheduler.run_due()

        assert len(results) == 1
        result = results[0]
        assert result.fired
        assert result.status is ScheduleStatus.PAUSED
        report = result.steps[0]
        assert report.model_name == "Pet"
        assert report.action_name == "AnalyzeHealth"
        assert report.query == "species equals 'dog'"
        assert report.total_records == 1
        assert report.processed_records == 1
        assert report.record_results[0].record_id == rex.id
        assert report.record_results[0].success

        stored = store.schedules[schedule.id]
        assert stored.status is ScheduleStatus.PAUSED
        assert stored.last_run_at == NOW
        assert store.records[rex.id].data["health_score"] == 8
        assert "health_score" not in store.records[tom.id].data
        (execution,) = store.executions.values()
        assert execution.schedule_id == schedule.id

    async def test_nothing_due(
        self, scheduler: ScheduleRunner, store: InMemoryStore, agent: AgentDefinition, action: ActionDefinition
    ) -> None:
        await _schedule(store, agent, action.id, start_at=NOW + timedelta(hours=1))

        assert await scheduler.run_due() == []

    async def test_limit_caps_the_tick(
        self, scheduler: ScheduleRunner, store: InMemoryStore, agent: AgentDefinition
    ) -> None:
        first = await _schedule(store, agent, uuid4(), start_at=NOW - timedelta(hours=2))
        await _schedule(store, agent, uuid4(), start_at=NOW - timedelta(hours=1))

        results = await scheduler.run_due(limit=1)

        assert [result.schedule_id for result in results] == [first.id]

    async def test_recurring_schedule_advances(
        self,
        scheduler: ScheduleRunner,
        store: InMemoryStore,
        agent: AgentDefinition,
        action: ActionDefinition,
    ) -> None:
        start = NOW - timedelta(minutes=1)
        schedule = await _schedule(
            store,
            agent,
            action.id,
            start_at=start,
            mode=ScheduleMode.RECURRING,
            interval_hours=24,
        )

        (result,) = await scheduler.run_due()

        assert result.fired
        assert result.status is ScheduleStatus.ACTIVE
        assert result.next_run_at == start + timedelta(hours=24)
        assert store.schedules[schedule.id].next_run_at == start + timedelta(hours=24)
        assert await scheduler.run_due() == []


class TestRunSchedule:
    """Explicit runs check due-ness unless forced."""

    async def test_not_due_is_skipped(
        self, scheduler: ScheduleRunner, store: InMemoryStore, agent: AgentDefinition, action: ActionDefinition
    ) -> None:
        schedule = await _schedule(store, agent, action.id, start_at=NOW + timedelta(hours=1))

        result = await scheduler.run_schedule(schedule.id)

        assert not result.fired
        assert result.skipped_reason == "not due"
        assert store.schedules[schedule.id].last_run_at is None

    async def test_force_fires_anyway(
        self,
        scheduler: ScheduleRunner,
        store: InMemoryStore,
        agent: AgentDefinition,
        action: ActionDefinition,
        backend: FakeBackend,
        rex: RecordSchema,
    ) -> None:
        schedule = await _schedule(store, agent, action.id, start_at=NOW + timedelta(hours=1))
        backend.queue({"health_summary": "Healthy"}, SCORE)

        result = await scheduler.run_schedule(schedule.id, force=True)

        assert result.fired
        assert result.status is ScheduleStatus.PAUSED
        assert result.steps[0].processed_records == 1

    async def test_paused_is_skipped(
        self, scheduler: ScheduleRunner, store: InMemoryStore, agent: AgentDefinition, action: ActionDefinition
    ) -> None:
        schedule = await _schedule(store, agent, action.id)
        await store.update_schedule(schedule.id, {"status": ScheduleStatus.PAUSED})

        result = await scheduler.run_schedule(schedule.id)

        assert not result.fired
        assert result.skipped_reason == "paused"

    async def test_unknown_schedule(self, scheduler: ScheduleRunner) -> None:
        with pytest.raises(ScheduleNotFoundError):
            await scheduler.run_schedule(uuid4())

    async def test_other_users_schedule(self, scheduler: ScheduleRunner, store: InMemoryStore) -> None:
        owned = store.add_agent(pet_agent(user_id=uuid4()))
        schedule = await _schedule(store, owned, analyze_health(owned).id)

        with pytest.raises(AccessDeniedError):
            await scheduler.run_schedule(schedule.id, user_id=uuid4())


class TestSingleFiring:
    """A due schedule fires once even when two callers race for it."""

    async def test_stale_read_loses_the_claim(
        self,
        scheduler: ScheduleRunner,
        store: InMemoryStore,
        agent: AgentDefinition,
        action: ActionDefinition,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        schedule = await _schedule(store, agent, action.id)
        stale = await store.get_schedule(schedule.id)

        first = await scheduler.run_schedule(schedule.id)

        async def stale_get(schedule_id: UUID) -> ScheduleDefinition | None:
            return stale

        monkeypatch.setattr(store, "get_schedule", stale_get)
        second = await scheduler.run_schedule(schedule.id)

        assert first.fired
        assert not second.fired
        assert second.skipped_reason == "already fired"

    async def test_concurrent_runs_fire_once(
        self, scheduler: ScheduleRunner, store: InMemoryStore, agent: AgentDefinition, action: ActionDefinition
    ) -> None:
        schedule = await _schedule(store, agent, action.id)

        results = await asyncio.gather(
            scheduler.run_schedule(schedule.id),
            scheduler.run_schedule(schedule.id),
        )

        assert sum(1 for result in results if result.fired) == 1


class TestStepReports:
    """Step and record problems are reported, not raised."""

    async def test_missing_action_is_reported(
        self, scheduler: ScheduleRunner, store: InMemoryStore, agent: AgentDefinition
    ) -> None:
        missing = uuid4()
        schedule = await _schedule(store, agent, missing)

        result = await scheduler.run_schedule(schedule.id)

        assert result.fired
        assert result.steps[0].error == f"Action {missing} not found"
        assert result.steps[0].record_results == []

    async def test_record_failure_is_reported(
        self,
        scheduler: ScheduleRunner,
        store: InMemoryStore,
        agent: AgentDefinition,
        action: ActionDefinition,
        backend: FakeBackend,
        rex: RecordSchema,
    ) -> None:
        schedule = await _schedule(store, agent, action.id)
        backend.queue(RuntimeError("provider down"))

        result = await scheduler.run_schedule(schedule.id)

        outcome = result.steps[0].record_results[0]
        assert not outcome.success
        assert outcome.error == "RuntimeError: provider down"
        assert outcome.result is not None
        assert outcome.result.status is ExecutionStatus.FAILED
