"""Action endpoints: save with validation, run against a record, history."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...engine import EngineError, validate_action
from ...schemas import (
    ActionCreate,
    ActionDefinition,
    ActionRunResult,
    ActionValidationResult,
    ExecutionResponse,
)
from ..deps import ActionRunnerDep, AgentStoreDep, CurrentUserId, ExecutionStoreDep
from ..errors import ensure_owner, http_error

router = APIRouter()


class RunActionRequest(BaseModel):
    """Payload for running an action on one record."""

    record_id: UUID = Field(..., description="Record the action reads and writes")


@router.post("/validate", response_model=ActionValidationResult)
async def validate_action_definition(
    payload: ActionCreate,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> ActionValidationResult:
    """Check an action against its agent's models without saving it."""

    try:
        agent = ensure_owner(await agents.get_agent(payload.agent_id), user_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return validate_action(payload, list(payload.steps), agent)


@router.post("/", response_model=ActionDefinition, status_code=status.HTTP_201_CREATED)
async def create_action(
    payload: ActionCreate,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> ActionDefinition:
    """Validate and persist an action with its steps."""

    try:
        agent = ensure_owner(await agents.get_agent(payload.agent_id), user_id)
        report = validate_action(payload, list(payload.steps), agent)
        if not report.valid:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"errors": report.errors, "warnings": report.warnings},
            )
        return await agents.create_action(payload)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.get("/{action_id}", response_model=ActionDefinition)
async def get_action(
    action_id: UUID,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> ActionDefinition:
    try:
        action = await agents.get_action(action_id)
        if action is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Action not found")
        ensure_owner(await agents.get_agent(action.agent_id), user_id)
    except EngineError as exc:
        raise http_error(exc) from exc
    return action


@router.post("/{action_id}/run", response_model=ActionRunResult)
async def run_action(
    action_id: UUID,
    request: RunActionRequest,
    runner: ActionRunnerDep,
    user_id: CurrentUserId,
) -> ActionRunResult:
    """Run an action on a record.

    Step failures and authorization gates are returned with HTTP 200 and a
    ``failed`` or ``awaiting_oauth`` status.
    """

    try:
        return await runner.run_action(action_id, request.record_id, user_id=user_id)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.get("/{action_id}/executions", response_model=list[ExecutionResponse])
async def list_action_executions(
    action_id: UUID,
    agents: AgentStoreDep,
    executions: ExecutionStoreDep,
    user_id: CurrentUserId,
    record_id: UUID | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[ExecutionResponse]:
    """Return the most recent runs of an action."""

    try:
        ensure_owner(await agents.get_agent_for_action(action_id), user_id)
        return await executions.list_executions(
            action_id=action_id, record_id=record_id, limit=limit, offset=skip
        )
    except EngineError as exc:
        raise http_error(exc) from exc


__all__ = ["RunActionRequest", "router"]
