"""Record endpoints, scoped to the agent that owns the record's data model."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from ...engine import EngineError
from ...schemas import AgentDefinition, RecordCreate, RecordSchema, RecordUpdate
from ..deps import AgentStoreDep, CurrentUserId, RecordStoreDep
from ..errors import ensure_owner, http_error

router = APIRouter()


def _require_model(agent: AgentDefinition, model_id: UUID) -> None:
    if agent.get_model_by_id(model_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Data model not found")


async def _owned_record(
    agent: AgentDefinition, record_id: UUID, records: RecordStoreDep
) -> RecordSchema:
    record = await records.get_record(record_id)
    if record is None or agent.get_model_by_id(record.model_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return record


@router.post(
    "/{agent_id}/records",
    response_model=RecordSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_record(
    agent_id: UUID,
    payload: RecordCreate,
    agents: AgentStoreDep,
    records: RecordStoreDep,
    user_id: CurrentUserId,
) -> RecordSchema:
    try:
        agent = ensure_owner(await agents.get_agent(agent_id), user_id)
        _require_model(agent, payload.model_id)
        return await records.create_record(payload.model_id, dict(payload.data))
    except EngineError as exc:
        raise http_error(exc) from exc


@router.get("/{agent_id}/models/{model_id}/records", response_model=list[RecordSchema])
async def list_records(
    agent_id: UUID,
    model_id: UUID,
    agents: AgentStoreDep,
    records: RecordStoreDep,
    user_id: CurrentUserId,
) -> list[RecordSchema]:
    try:
        agent = ensure_owner(await agents.get_agent(agent_id), user_id)
        _require_model(agent, model_id)
        return await records.list_records(model_id)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.get("/{agent_id}/records/{record_id}", response_model=RecordSchema)
async def get_record(
    agent_id: UUID,
    record_id: UUID,
    agents: AgentStoreDep,
    records: RecordStoreDep,
    user_id: CurrentUserId,
) -> RecordSchema:
    try:
        agent = ensure_owner(await agents.get_agent(agent_id), user_id)
        return await _owned_record(agent, record_id, records)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.patch("/{agent_id}/records/{record_id}", response_model=RecordSchema)
async def update_record(
    agent_id: UUID,
    record_id: UUID,
    payload: RecordUpdate,
    agents: AgentStoreDep,
    records: RecordStoreDep,
    user_id: CurrentUserId,
) -> RecordSchema:
    """Merge ``payload.data`` into the stored record."""

    try:
        agent = ensure_owner(await agents.get_agent(agent_id), user_id)
        await _owned_record(agent, record_id, records)
        updated = await records.save_record_fields(record_id, dict(payload.data))
    except EngineError as exc:
        raise http_error(exc) from exc
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return updated


@router.delete("/{agent_id}/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    agent_id: UUID,
    record_id: UUID,
    agents: AgentStoreDep,
    records: RecordStoreDep,
    user_id: CurrentUserId,
) -> None:
    try:
        agent = ensure_owner(await agents.get_agent(agent_id), user_id)
        await _owned_record(agent, record_id, records)
        await records.delete_record(record_id)
    except EngineError as exc:
        raise http_error(exc) from exc


__all__ = ["router"]
