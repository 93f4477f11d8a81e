"""Action runner: executes an action's steps against one record."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Mapping
from uuid import UUID

from ..models import ExecutionStatus
from ..schemas.actions import ActionDefinition, ActionStep
from ..schemas.agents import AgentDefinition
from ..schemas.executions import (
    ActionRunResult,
    ExecutionMetrics,
    ExecutionUpdate,
    OAuthGatePayload,
    OAuthRequirement,
    StepResult,
    TokenUsage,
    utcnow,
)
from ..schemas.fields import DataModelSchema, FieldType, ReferenceType
from ..schemas.records import RecordSchema
from .exceptions import (
    AccessDeniedError,
    ActionNotFoundError,
    ConfigurationError,
    ModelNotFoundError,
    RecordNotFoundError,
    RunCancelledError,
)
from .executors import StepExecutor, StepFailed, StepNeedsAuth, StepRequest
from .guard import RunGuard
from .input_context import build_input_context
from .oauth import display_name
from .output_schema import build_output_contract
from .snapshot import RecordSnapshot
from .stores import AgentStore, ExecutionStore, RecordStore

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], "bool | Awaitable[bool]"]
EventCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class ActionRunner:
    """Runs an action's steps in order and commits the result to the record."""

    def __init__(
        self,
        agents: AgentStore,
        records: RecordStore,
        executions: ExecutionStore,
        executor: StepExecutor,
        *,
        guard: RunGuard | None = None,
        on_event: EventCallback | None = None,
    ) -> None:
        self._agents = agents
        self._records = records
        self._executions = executions
        self._executor = executor
        self._guard = guard
        self._on_event = on_event

    async def run_action(
        self,
        action_id: UUID,
        record_id: UUID,
        *,
        user_id: UUID | None = None,
        schedule_id: UUID | None = None,
        cancel_check: CancelCheck | None = None,
    ) -> ActionRunResult:
        """Run ``action_id`` against ``record_id``.

        Missing entities and ownership violations raise before any execution
        row is written.  Step failures and credential gates are reported in
        the returned result, never raised.
        """

        if self._guard is None:
            return await self._run(action_id, record_id, user_id, schedule_id, cancel_check)
        async with self._guard.hold(record_id, action_id):
            return await self._run(action_id, record_id, user_id, schedule_id, cancel_check)

    async def _run(
        self,
        action_id: UUID,
        record_id: UUID,
        user_id: UUID | None,
        schedule_id: UUID | None,
        cancel_check: CancelCheck | None,
    ) -> ActionRunResult:
        agent, action, target_model, record = await self._resolve(action_id, record_id, user_id)

        execution_id = await self._executions.create_execution(
            record_id=record.id, action_id=action.id, schedule_id=schedule_id
        )
        await self._executions.update_execution(
            execution_id,
            ExecutionUpdate(status=ExecutionStatus.RUNNING, started_at=utcnow()),
        )
        logger.info(
            "Action run started",
            extra={
                "execution_id": str(execution_id),
                "action_id": str(action.id),
                "record_id": str(record.id),
            },
        )

        run = _RunState(execution_id, action, record, asyncio.get_running_loop())
        snapshot = RecordSnapshot.start(record.data)

        try:
            for step in action.ordered_steps:
                if cancel_check is not None and await _is_cancelled(cancel_check):
                    raise RunCancelledError(f"Run cancelled before step '{step.name}'")

                context = await build_input_context(
                    step.config.input_fields,
                    snapshot.data,
                    target_model,
                    agent,
                    self._records.get_record,
                )
                contract = build_output_contract(
                    step.config.output_fields,
                    target_model,
                    agent,
                    name=f"{action.name}_{step.name}",
                )
                await self._emit("step_started", run, step=step.name)

                step_start = run.loop.time()
                outcome = await self._executor.execute(
                    StepRequest(agent_id=agent.id, step=step, context=context, contract=contract)
                )
                duration_ms = int((run.loop.time() - step_start) * 1000)

                if isinstance(outcome, StepNeedsAuth):
                    return await self._finish_awaiting_oauth(run, agent, step, outcome.requirement)
                if isinstance(outcome, StepFailed):
                    return await self._finish_failed(run, outcome.message, failed_step=step.name)

                snapshot = snapshot.merge(outcome.fields)
                run.usage = run.usage + outcome.usage
                run.step_results.append(
                    StepResult(
                        step_name=step.name,
                        step_type=step.type,
                        inputs=context.values,
                        outputs=outcome.fields,
                        tokens_used=outcome.usage,
                        duration_ms=duration_ms,
                    )
                )
                await self._emit("step_completed", run, step=step.name, duration_ms=duration_ms)
        except RunCancelledError as exc:
            return await self._finish_failed(run, str(exc))
        except Exception as exc:
            logger.exception(
                "Action run aborted",
                extra={"execution_id": str(execution_id), "action_id": str(action.id)},
            )
            await self._finish_failed(run, f"{type(exc).__name__}: {exc}")
            raise

        try:
            final_data = await self._commit(agent, target_model, record, snapshot)
        except Exception as exc:
            logger.exception(
                "Committing action outputs failed",
                extra={"execution_id": str(execution_id), "record_id": str(record.id)},
            )
            await self._finish_failed(run, f"{type(exc).__name__}: {exc}")
            raise
        return await self._finish_success(run, final_data)

    async def _resolve(
        self, action_id: UUID, record_id: UUID, user_id: UUID | None
    ) -> tuple[AgentDefinition, ActionDefinition, DataModelSchema, RecordSchema]:
        agent = await self._agents.get_agent_for_action(action_id)
        action = agent.get_action(action_id) if agent is not None else None
        if agent is None or action is None:
            raise ActionNotFoundError(f"Action {action_id} not found")
        if user_id is not None and agent.user_id is not None and agent.user_id != user_id:
            raise AccessDeniedError(f"User {user_id} does not own agent {agent.id}")

        target_model = agent.get_model(action.target_model)
        if target_model is None:
            raise ModelNotFoundError(
                f"Target model '{action.target_model}' of action {action.id} not found"
            )

        record = await self._records.get_record(record_id)
        if record is None or record.is_deleted:
            raise RecordNotFoundError(f"Record {record_id} not found")
        if record.model_id != target_model.id:
            raise ConfigurationError(
                f"Record {record_id} is not a '{target_model.name}' record"
            )
        return agent, action, target_model, record

    async def _commit(
        self,
        agent: AgentDefinition,
        target_model: DataModelSchema,
        record: RecordSchema,
        snapshot: RecordSnapshot,
    ) -> dict[str, Any]:
        changes = snapshot.changes()
        final_data = snapshot.as_dict()

        for field_name, value in list(changes.items()):
            definition = target_model.get_field(field_name)
            if (
                definition is None
                or definition.type is not FieldType.REFERENCE
                or definition.reference_type is not ReferenceType.TO_MANY
                or not isinstance(value, Mapping)
            ):
                continue
            related_id = await self._create_related_record(
                agent, target_model, record.id, definition.references_model or "", value
            )
            existing = snapshot.original.get(field_name)
            linked = [*existing, str(related_id)] if isinstance(existing, list) else [str(related_id)]
            changes[field_name] = linked
            final_data[field_name] = linked

        if changes:
            saved = await self._records.save_record_fields(record.id, changes)
            if saved is None:
                raise RecordNotFoundError(f"Record {record.id} was deleted during the run")
        return final_data

    async def _create_related_record(
        self,
        agent: AgentDefinition,
        origin: DataModelSchema,
        origin_record_id: UUID,
        model_name: str,
        value: Mapping[str, Any],
    ) -> UUID:
        referenced = agent.get_model(model_name)
        if referenced is None:
            raise ModelNotFoundError(f"Referenced model '{model_name}' not found")

        data = {key: item for key, item in value.items() if item is not None}
        for definition in referenced.fields:
            if not definition.references(origin.name):
                continue
            if definition.reference_type is ReferenceType.TO_MANY:
                data[definition.name] = [str(origin_record_id)]
            else:
                data[definition.name] = str(origin_record_id)

        created = await self._records.create_record(referenced.id, data)
        logger.info(
            "Created related record",
            extra={"model": referenced.name, "record_id": str(created.id)},
        )
        return created.id

    async def _finish_success(self, run: "_RunState", final_data: dict[str, Any]) -> ActionRunResult:
        metrics = run.metrics()
        await self._executions.update_execution(
            run.execution_id,
            ExecutionUpdate(
                status=ExecutionStatus.SUCCESS,
                result={
                    "step_results": run.dump_steps(),
                    "final_data": final_data,
                    "execution_metrics": metrics.model_dump(mode="json"),
                },
                input_tokens=run.usage.input_tokens,
                output_tokens=run.usage.output_tokens,
                total_tokens=run.usage.total_tokens,
                execution_time_ms=metrics.execution_time_ms,
                completed_at=utcnow(),
            ),
        )
        await self._emit("run_finished", run, status=ExecutionStatus.SUCCESS.value)
        return run.result(ExecutionStatus.SUCCESS, metrics, final_data=final_data)

    async def _finish_failed(
        self, run: "_RunState", error: str, *, failed_step: str | None = None
    ) -> ActionRunResult:
        metrics = run.metrics()
        logger.warning(
            "Action run failed",
            extra={"execution_id": str(run.execution_id), "step": failed_step, "error": error},
        )
        await self._executions.update_execution(
            run.execution_id,
            ExecutionUpdate(
                status=ExecutionStatus.FAILED,
                result={"step_results": run.dump_steps(), "failed_step": failed_step},
                error=error,
                input_tokens=run.usage.input_tokens,
                output_tokens=run.usage.output_tokens,
                total_tokens=run.usage.total_tokens,
                execution_time_ms=metrics.execution_time_ms,
                completed_at=utcnow(),
            ),
        )
        await self._emit("run_finished", run, status=ExecutionStatus.FAILED.value)
        return run.result(ExecutionStatus.FAILED, metrics, error=error)

    async def _finish_awaiting_oauth(
        self,
        run: "_RunState",
        agent: AgentDefinition,
        step: ActionStep,
        requirement: OAuthRequirement,
    ) -> ActionRunResult:
        gate = OAuthGatePayload(
            **requirement.model_dump(),
            agent_id=agent.id,
            record_id=run.record.id,
            action_id=run.action.id,
            step_name=step.name,
            message=(
                f"{display_name(requirement.provider)} authorization is required "
                f"before step '{step.name}' can run"
            ),
        )
        metrics = run.metrics()
        await self._executions.update_execution(
            run.execution_id,
            ExecutionUpdate(
                status=ExecutionStatus.AWAITING_OAUTH,
                result={"step_results": run.dump_steps(), "oauth": gate.model_dump(mode="json")},
                execution_time_ms=metrics.execution_time_ms,
                completed_at=utcnow(),
            ),
        )
        await self._emit("run_finished", run, status=ExecutionStatus.AWAITING_OAUTH.value)
        return run.result(ExecutionStatus.AWAITING_OAUTH, metrics, oauth=gate)

    async def _emit(self, event: str, run: "_RunState", **details: Any) -> None:
        if self._on_event is None:
            return
        payload = {
            "execution_id": str(run.execution_id),
            "action_id": str(run.action.id),
            "record_id": str(run.record.id),
            **details,
        }
        await self._on_event(event, payload)


class _RunState:
    """Mutable bookkeeping for one run; the record snapshot itself stays immutable."""

    def __init__(
        self,
        execution_id: UUID,
        action: ActionDefinition,
        record: RecordSchema,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.execution_id = execution_id
        self.action = action
        self.record = record
        self.loop = loop
        self.started = loop.time()
        self.usage = TokenUsage()
        self.step_results: list[StepResult] = []

    def metrics(self) -> ExecutionMetrics:
        elapsed_ms = int((self.loop.time() - self.started) * 1000)
        return ExecutionMetrics(execution_time_ms=elapsed_ms, token_usage=self.usage)

    def dump_steps(self) -> list[dict[str, Any]]:
        return [result.model_dump(mode="json") for result in self.step_results]

    def result(self, status: ExecutionStatus, metrics: ExecutionMetrics, **fields: Any) -> ActionRunResult:
        return ActionRunResult(
            execution_id=self.execution_id,
            action_id=self.action.id,
            record_id=self.record.id,
            status=status,
            step_results=list(self.step_results),
            execution_metrics=metrics,
            **fields,
        )


async def _is_cancelled(cancel_check: CancelCheck) -> bool:
    outcome = cancel_check()
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return bool(outcome)


__all__ = ["ActionRunner", "CancelCheck", "EventCallback"]
