"""Tests for the action runner (agent_actions/engine/runner.py)."""

from typing import Any
from uuid import uuid4

import pytest

from agent_actions.engine import (
    AccessDeniedError,
    ActionNotFoundError,
    ActionRunner,
    ConfigurationError,
    RecordNotFoundError,
    RunGuard,
    RunInProgressError,
    StepExecutor,
)
from agent_actions.models import ExecutionStatus, StepType
from agent_actions.schemas import AgentDefinition, CredentialUpsert, RecordSchema
from agent_actions.storage import InMemoryStore
from tests.helpers import FakeBackend, add_action, analyze_health, model_named, pet_agent, step

pytestmark = pytest.mark.unit

SCORE = {"health_score": 8, "needs_vet": False}
POST_CODE = "def handler(data):\n    return {'post_url': 'https://x.test/' + data['name']}\n"


class TestSuccessfulRun:
    """Steps run in order and later steps see earlier outputs."""

    async def test_outputs_flow_between_steps_and_commit(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
        rex: RecordSchema,
    ) -> None:
        action = analyze_health(agent)
        backend.queue({"health_summary": "Healthy and active"}, SCORE)

        result = await runner.run_action(action.id, rex.id)

        assert result.status is ExecutionStatus.SUCCESS
        assert "health_summary (text): Healthy and active" in backend.prompts[1]
        assert [item.step_name for item in result.step_results] == ["Assess", "Score"]
        assert result.step_results[1].inputs == {"health_summary": "Healthy and active"}
        assert result.execution_metrics.token_usage.total_tokens == 30
        assert result.final_data == {
            "name": "Rex",
            "species": "dog",
            "age": 5,
            "health_summary": "Healthy and active",
            "health_score": 8,
            "needs_vet": False,
        }
        assert store.records[rex.id].data == result.final_data

        execution = store.executions[result.execution_id]
        assert execution.status is ExecutionStatus.SUCCESS
        assert execution.total_tokens == 30
        assert execution.started_at is not None
        assert execution.completed_at is not None
        assert execution.result is not None
        assert execution.result["final_data"]["health_score"] == 8
        assert len(execution.result["step_results"]) == 2

    async def test_steps_follow_order_not_declaration(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        rex: RecordSchema,
    ) -> None:
        action = add_action(
            agent,
            "Reversed",
            [
                step("Second", ["health_summary"], ["health_score"], order=2),
                step("First", ["name"], ["health_summary"], order=1),
            ],
        )
        backend.queue({"health_summary": "Fine"}, {"health_score": 7})

        result = await runner.run_action(action.id, rex.id)

        assert [item.step_name for item in result.step_results] == ["First", "Second"]

    async def test_events_are_emitted(
        self,
        agent: AgentDefinition,
        store: InMemoryStore,
        executor: StepExecutor,
        backend: FakeBackend,
        rex: RecordSchema,
    ) -> None:
        seen: list[tuple[str, dict[str, Any]]] = []

        async def on_event(name: str, payload: dict[str, Any]) -> None:
            seen.append((name, payload))

        runner = ActionRunner(store, store, store, executor, on_event=on_event)
        action = analyze_health(agent)
        backend.queue({"health_summary": "Fine"}, SCORE)

        await runner.run_action(action.id, rex.id)

        assert [name for name, _ in seen] == [
            "step_started",
            "step_completed",
            "step_started",
            "step_completed",
            "run_finished",
        ]
        assert seen[-1][1]["status"] == "success"
        assert seen[0][1]["record_id"] == str(rex.id)


class TestFailedRun:
    """A failing step stops the run and leaves the stored record untouched."""

    async def test_validation_failure_in_second_step(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
        rex: RecordSchema,
    ) -> None:
        action = analyze_health(agent)
        backend.queue({"health_summary": "Fine"}, {"health_score": "high", "needs_vet": False})

        result = await runner.run_action(action.id, rex.id)

        assert result.status is ExecutionStatus.FAILED
        assert result.final_data is None
        assert result.error is not None
        assert result.error.startswith("Step output failed validation")
        assert len(result.step_results) == 1
        assert store.records[rex.id].data == {"name": "Rex", "species": "dog", "age": 5}

        execution = store.executions[result.execution_id]
        assert execution.status is ExecutionStatus.FAILED
        assert execution.result is not None
        assert execution.result["failed_step"] == "Score"

    async def test_cancellation_between_steps(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
        rex: RecordSchema,
    ) -> None:
        action = analyze_health(agent)
        backend.queue({"health_summary": "Fine"}, SCORE)
        checks: list[int] = []

        async def cancel_after_first_step() -> bool:
            checks.append(1)
            return len(checks) > 1

        result = await runner.run_action(action.id, rex.id, cancel_check=cancel_after_first_step)

        assert result.status is ExecutionStatus.FAILED
        assert result.error == "Run cancelled before step 'Score'"
        assert len(backend.prompts) == 1
        assert "health_summary" not in store.records[rex.id].data

    async def test_commit_error_marks_run_failed_and_propagates(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
        rex: RecordSchema,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        async def broken_save(record_id: Any, changes: dict[str, Any]) -> None:
            raise RuntimeError("disk full")

        monkeypatch.setattr(store, "save_record_fields", broken_save)
        action = analyze_health(agent)
        backend.queue({"health_summary": "Fine"}, SCORE)

        with pytest.raises(RuntimeError, match="disk full"):
            await runner.run_action(action.id, rex.id)

        (execution,) = store.executions.values()
        assert execution.status is ExecutionStatus.FAILED
        assert execution.error == "RuntimeError: disk full"

    async def test_record_deleted_mid_run_fails_the_run(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
        rex: RecordSchema,
    ) -> None:
        action = analyze_health(agent)
        backend.queue({"health_summary": "Fine"}, SCORE)
        checks: list[int] = []

        async def delete_before_second_step() -> bool:
            checks.append(1)
            if len(checks) == 2:
                await store.delete_record(rex.id)
            return False

        with pytest.raises(RecordNotFoundError, match="deleted during the run"):
            await runner.run_action(action.id, rex.id, cancel_check=delete_before_second_step)

        (execution,) = store.executions.values()
        assert execution.status is ExecutionStatus.FAILED
        assert execution.error is not None
        assert execution.error.startswith("RecordNotFoundError")
        assert "health_summary" not in store.records[rex.id].data


class TestCredentialGate:
    """A custom step without its credential pauses the run for authorization."""

    async def test_gate_then_resume(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
        rex: RecordSchema,
    ) -> None:
        action = add_action(
            agent,
            "Announce",
            [
                step("Assess", ["name"], ["health_summary"], order=0),
                step("Post to X", ["name"], ["post_url"], order=1, type_=StepType.CUSTOM, code=POST_CODE),
            ],
        )
        backend.queue({"health_summary": "Fine"})

        gated = await runner.run_action(action.id, rex.id)

        assert gated.status is ExecutionStatus.AWAITING_OAUTH
        assert gated.oauth is not None
        assert gated.oauth.provider == "x"
        assert gated.oauth.step_name == "Post to X"
        assert gated.oauth.record_id == rex.id
        assert gated.oauth.message is not None
        assert gated.oauth.message.startswith("X (Twitter) authorization is required")
        assert store.records[rex.id].data == {"name": "Rex", "species": "dog", "age": 5}
        assert store.executions[gated.execution_id].status is ExecutionStatus.AWAITING_OAUTH

        await store.store_credential(agent.id, "x", CredentialUpsert(token_data={"access_token": "t"}))
        backend.queue({"health_summary": "Fine"})

        resumed = await runner.run_action(action.id, rex.id)

        assert resumed.status is ExecutionStatus.SUCCESS
        assert store.records[rex.id].data["post_url"] == "https://x.test/Rex"
        assert resumed.execution_id != gated.execution_id


class TestResolution:
    """Lookup and ownership errors raise before any execution is recorded."""

    async def test_unknown_action(self, runner: ActionRunner, store: InMemoryStore, rex: RecordSchema) -> None:
        with pytest.raises(ActionNotFoundError):
            await runner.run_action(uuid4(), rex.id)
        assert store.executions == {}

    async def test_unknown_record(self, agent: AgentDefinition, runner: ActionRunner, store: InMemoryStore) -> None:
        action = analyze_health(agent)

        with pytest.raises(RecordNotFoundError):
            await runner.run_action(action.id, uuid4())
        assert store.executions == {}

    async def test_deleted_record(
        self, agent: AgentDefinition, runner: ActionRunner, store: InMemoryStore, rex: RecordSchema
    ) -> None:
        action = analyze_health(agent)
        await store.delete_record(rex.id)

        with pytest.raises(RecordNotFoundError):
            await runner.run_action(action.id, rex.id)

    async def test_other_users_agent(self, runner: ActionRunner, store: InMemoryStore) -> None:
        owned = store.add_agent(pet_agent(user_id=uuid4()))
        action = analyze_health(owned)
        record = await store.create_record(model_named(owned, "Pet").id, {"name": "Tom"})

        with pytest.raises(AccessDeniedError):
            await runner.run_action(action.id, record.id, user_id=uuid4())
        assert store.executions == {}

    async def test_record_of_another_model(
        self, agent: AgentDefinition, runner: ActionRunner, store: InMemoryStore
    ) -> None:
        action = analyze_health(agent)
        owner = await store.create_record(model_named(agent, "Owner").id, {"name": "Ann"})

        with pytest.raises(ConfigurationError):
            await runner.run_action(action.id, owner.id)
        assert store.executions == {}


class TestToManyOutputs:
    """Nested outputs for to_many fields become new linked records."""

    async def test_related_record_is_created_and_linked(
        self,
        agent: AgentDefinition,
        runner: ActionRunner,
        backend: FakeBackend,
        store: InMemoryStore,
    ) -> None:
        existing = str(uuid4())
        pet = await store.create_record(
            model_named(agent, "Pet").id, {"name": "Rex", "visits": [existing]}
        )
        action = add_action(agent, "PlanVisit", [step("Plan", ["name"], ["visits"])])
        backend.queue({"visits": {"notes": "Annual checkup", "date": "2024-07-01"}})

        result = await runner.run_action(action.id, pet.id)

        assert result.status is ExecutionStatus.SUCCESS
        visits = await store.list_records(model_named(agent, "Visit").id)
        assert len(visits) == 1
        assert visits[0].data == {
            "notes": "Annual checkup",
            "date": "2024-07-01",
            "pet": str(pet.id),
        }
        assert store.records[pet.id].data["visits"] == [existing, str(visits[0].id)]
        assert result.final_data is not None
        assert result.final_data["visits"] == [existing, str(visits[0].id)]


class TestRunGuard:
    """Only one run of an action per record may be in flight."""

    async def test_second_run_is_rejected(
        self, agent: AgentDefinition, runner: ActionRunner, guard: RunGuard, rex: RecordSchema
    ) -> None:
        action = analyze_health(agent)

        async with guard.hold(rex.id, action.id):
            assert guard.is_running(rex.id, action.id)
            with pytest.raises(RunInProgressError):
                await runner.run_action(action.id, rex.id)

        assert not guard.is_running(rex.id, action.id)

    async def test_different_actions_may_overlap(self, guard: RunGuard) -> None:
        record_id = uuid4()

        async with guard.hold(record_id, uuid4()):
            async with guard.hold(record_id, uuid4()):
                pass
