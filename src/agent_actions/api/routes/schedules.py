"""Schedule endpoints: create, preview selections, run and pause."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from ...engine import EngineError, clock, describe_query, select_records
from ...schemas import (
    AgentDefinition,
    ScheduleCreate,
    ScheduleDefinition,
    SchedulePreviewRequest,
    SchedulePreviewResponse,
    ScheduleRunResult,
)
from ..deps import (
    AgentStoreDep,
    CurrentUserId,
    RecordStoreDep,
    ScheduleRunnerDep,
    ScheduleStoreDep,
)
from ..errors import ensure_owner, http_error

router = APIRouter()


def _check_steps(agent: AgentDefinition, payload: ScheduleCreate) -> None:
    for step in payload.steps:
        model = agent.get_model_by_id(step.model_id)
        if model is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Model {step.model_id} does not belong to agent {agent.id}",
            )
        action = agent.get_action(step.action_id)
        if action is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Action {step.action_id} does not belong to agent {agent.id}",
            )
        if action.target_model != model.name:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Action '{action.name}' targets '{action.target_model}', not '{model.name}'",
            )


async def _owned_schedule(
    schedule_id: UUID,
    schedules: ScheduleStoreDep,
    agents: AgentStoreDep,
    user_id: UUID | None,
) -> ScheduleDefinition:
    schedule = await schedules.get_schedule(schedule_id)
    if schedule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found")
    ensure_owner(await agents.get_agent(schedule.agent_id), user_id)
    return schedule


@router.post("/", response_model=ScheduleDefinition, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    payload: ScheduleCreate,
    agents: AgentStoreDep,
    schedules: ScheduleStoreDep,
    user_id: CurrentUserId,
) -> ScheduleDefinition:
    """Create an active schedule whose first run is ``start_at`` or now."""

    try:
        agent = ensure_owner(await agents.get_agent(payload.agent_id), user_id)
        _check_steps(agent, payload)
        return await schedules.create_schedule(payload, datetime.now(timezone.utc))
    except EngineError as exc:
        raise http_error(exc) from exc


@router.post("/preview", response_model=SchedulePreviewResponse)
async def preview_selection(
    payload: SchedulePreviewRequest,
    records: RecordStoreDep,
) -> SchedulePreviewResponse:
    """Show which records a schedule step query would select right now."""

    try:
        candidates = await records.list_records(payload.model_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    matched = select_records(candidates, payload.query)
    return SchedulePreviewResponse(
        description=describe_query(payload.query),
        total_records=len(candidates),
        matched_record_ids=[record.id for record in matched],
    )


@router.post("/tick", response_model=list[ScheduleRunResult])
async def run_due_schedules(
    runner: ScheduleRunnerDep,
    limit: int | None = Query(default=None, ge=1),
) -> list[ScheduleRunResult]:
    """Fire every due schedule; intended for a cron or worker trigger."""

    try:
        return await runner.run_due(limit=limit)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.get("/{schedule_id}", response_model=ScheduleDefinition)
async def get_schedule(
    schedule_id: UUID,
    schedules: ScheduleStoreDep,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> ScheduleDefinition:
    try:
        return await _owned_schedule(schedule_id, schedules, agents, user_id)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.post("/{schedule_id}/run", response_model=ScheduleRunResult)
async def run_schedule(
    schedule_id: UUID,
    runner: ScheduleRunnerDep,
    user_id: CurrentUserId,
    force: bool = Query(default=False),
) -> ScheduleRunResult:
    try:
        return await runner.run_schedule(schedule_id, force=force, user_id=user_id)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.post("/{schedule_id}/pause", response_model=ScheduleDefinition)
async def pause_schedule(
    schedule_id: UUID,
    schedules: ScheduleStoreDep,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> ScheduleDefinition:
    try:
        schedule = await _owned_schedule(schedule_id, schedules, agents, user_id)
        transition = clock.pause(schedule)
        await schedules.update_schedule(schedule_id, transition.changes())
        return schedule.model_copy(update=transition.changes())
    except EngineError as exc:
        raise http_error(exc) from exc


@router.post("/{schedule_id}/resume", response_model=ScheduleDefinition)
async def resume_schedule(
    schedule_id: UUID,
    schedules: ScheduleStoreDep,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> ScheduleDefinition:
    try:
        schedule = await _owned_schedule(schedule_id, schedules, agents, user_id)
        transition = clock.resume(schedule, datetime.now(timezone.utc))
        await schedules.update_schedule(schedule_id, transition.changes())
        return schedule.model_copy(update=transition.changes())
    except EngineError as exc:
        raise http_error(exc) from exc


__all__ = ["router"]
