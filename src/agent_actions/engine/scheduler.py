"""Schedule runner: fans schedule steps out over matching records."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

from ..models import ExecutionStatus, ScheduleStatus
from ..schemas.agents import AgentDefinition
from ..schemas.records import RecordSchema
from ..schemas.schedules import (
    RecordRunOutcome,
    ScheduleDefinition,
    ScheduleRunResult,
    ScheduleStepConfig,
    ScheduleStepReport,
)
from . import clock
from .exceptions import (
    AccessDeniedError,
    ActionNotFoundError,
    EngineError,
    ModelNotFoundError,
    ScheduleNotFoundError,
)
from .filters import describe_query, select_records
from .runner import ActionRunner
from .stores import AgentStore, RecordStore, ScheduleStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleRunner:
    """Fires schedules and runs each schedule step's action on its matched records."""

    def __init__(
        self,
        schedules: ScheduleStore,
        agents: AgentStore,
        records: RecordStore,
        runner: ActionRunner,
        *,
        concurrency: int = 5,
        max_per_tick: int = 100,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._schedules = schedules
        self._agents = agents
        self._records = records
        self._runner = runner
        self._concurrency = max(1, concurrency)
        self._max_per_tick = max_per_tick
        self._now = now

    async def run_schedule(
        self,
        schedule_id: UUID,
        *,
        force: bool = False,
        user_id: UUID | None = None,
    ) -> ScheduleRunResult:
        """Fire ``schedule_id`` if it is due, or unconditionally when ``force`` is set."""

        schedule = await self._schedules.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(f"Schedule {schedule_id} not found")
        agent = await self._agents.get_agent(schedule.agent_id)
        if agent is None:
            raise ScheduleNotFoundError(f"Agent of schedule {schedule_id} not found")
        if user_id is not None and agent.user_id is not None and agent.user_id != user_id:
            raise AccessDeniedError(f"User {user_id} does not own schedule {schedule_id}")
        return await self._fire(schedule, agent, force=force)

    async def run_due(self, *, limit: int | None = None) -> list[ScheduleRunResult]:
        """Fire every due schedule, oldest first, up to the per-tick cap."""

        now = self._now()
        cap = self._max_per_tick if limit is None else min(limit, self._max_per_tick)
        candidates = await self._schedules.list_due_schedules(now, cap)
        results: list[ScheduleRunResult] = []
        for schedule in clock.due_schedules(candidates, now, cap):
            try:
                agent = await self._agents.get_agent(schedule.agent_id)
                if agent is None:
                    raise ScheduleNotFoundError(f"Agent of schedule {schedule.id} not found")
                results.append(await self._fire(schedule, agent, force=False))
            except EngineError:
                logger.exception("Scheduled run failed", extra={"schedule_id": str(schedule.id)})
        logger.info(
            "Schedule tick finished",
            extra={"due": len(candidates), "fired": sum(1 for r in results if r.fired)},
        )
        return results

    async def _fire(
        self, schedule: ScheduleDefinition, agent: AgentDefinition, *, force: bool
    ) -> ScheduleRunResult:
        now = self._now()
        transition = clock.manual_fire(schedule, now) if force else clock.fire(schedule, now)
        if not transition.fired:
            reason = "paused" if schedule.status is ScheduleStatus.PAUSED else "not due"
            return self._skipped(schedule, reason)

        claimed = await self._schedules.claim_schedule_fire(
            schedule.id,
            expected_next_run_at=schedule.next_run_at,
            expected_last_run_at=schedule.last_run_at,
            changes=transition.changes(),
        )
        if not claimed:
            logger.info("Schedule already claimed", extra={"schedule_id": str(schedule.id)})
            return self._skipped(schedule, "already fired")

        logger.info(
            "Schedule fired",
            extra={"schedule_id": str(schedule.id), "steps": len(schedule.steps)},
        )
        reports = [await self._run_step(schedule, agent, step) for step in schedule.ordered_steps]
        return ScheduleRunResult(
            schedule_id=schedule.id,
            fired=True,
            status=transition.status,
            last_run_at=transition.last_run_at,
            next_run_at=transition.next_run_at,
            steps=reports,
        )

    async def _run_step(
        self,
        schedule: ScheduleDefinition,
        agent: AgentDefinition,
        step: ScheduleStepConfig,
    ) -> ScheduleStepReport:
        report = ScheduleStepReport(
            order=step.order,
            model_id=step.model_id,
            action_id=step.action_id,
            query=describe_query(step.query),
        )
        try:
            model = agent.get_model_by_id(step.model_id)
            if model is None:
                raise ModelNotFoundError(f"Model {step.model_id} not found")
            action = agent.get_action(step.action_id)
            if action is None:
                raise ActionNotFoundError(f"Action {step.action_id} not found")
            report.model_name = model.name
            report.action_name = action.name

            records = await self._records.list_records(model.id)
            matched = select_records(records, step.query)
            report.total_records = len(matched)
            report.record_results = await self._run_records(schedule, action.id, matched)
            report.processed_records = len(report.record_results)
        except EngineError as exc:
            logger.warning(
                "Schedule step failed",
                extra={"schedule_id": str(schedule.id), "order": step.order, "error": str(exc)},
            )
            report.error = str(exc)
        return report

    async def _run_records(
        self,
        schedule: ScheduleDefinition,
        action_id: UUID,
        records: list[RecordSchema],
    ) -> list[RecordRunOutcome]:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def run_one(record: RecordSchema) -> RecordRunOutcome:
            async with semaphore:
                try:
                    result = await self._runner.run_action(
                        action_id, record.id, schedule_id=schedule.id
                    )
                except EngineError as exc:
                    return RecordRunOutcome(record_id=record.id, success=False, error=str(exc))
                except Exception as exc:
                    logger.exception(
                        "Record run raised",
                        extra={"schedule_id": str(schedule.id), "record_id": str(record.id)},
                    )
                    return RecordRunOutcome(
                        record_id=record.id,
                        success=False,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                return RecordRunOutcome(
                    record_id=record.id,
                    success=result.status is ExecutionStatus.SUCCESS,
                    result=result,
                    error=result.error,
                )

        return list(await asyncio.gather(*(run_one(record) for record in records)))

    @staticmethod
    def _skipped(schedule: ScheduleDefinition, reason: str) -> ScheduleRunResult:
        return ScheduleRunResult(
            schedule_id=schedule.id,
            fired=False,
            skipped_reason=reason,
            status=schedule.status,
            last_run_at=schedule.last_run_at,
            next_run_at=schedule.next_run_at,
        )


__all__ = ["ScheduleRunner"]
