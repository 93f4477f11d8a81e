"""Agent, data model and credential endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from ...engine import EngineError
from ...schemas import (
    AgentCreate,
    AgentDefinition,
    CredentialResponse,
    CredentialUpsert,
    DataModelCreate,
    DataModelSchema,
)
from ..deps import AgentStoreDep, CredentialStoreDep, CurrentUserId
from ..errors import ensure_owner, http_error

router = APIRouter()


@router.post("/", response_model=AgentDefinition, status_code=status.HTTP_201_CREATED)
async def create_agent(
    payload: AgentCreate,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> AgentDefinition:
    """Create an agent with its data models, owned by the caller."""

    if user_id is not None and payload.user_id is None:
        payload = payload.model_copy(update={"user_id": user_id})
    try:
        return await agents.create_agent(payload)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.get("/{agent_id}", response_model=AgentDefinition)
async def get_agent(agent_id: UUID, agents: AgentStoreDep, user_id: CurrentUserId) -> AgentDefinition:
    try:
        return ensure_owner(await agents.get_agent(agent_id), user_id)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.post(
    "/{agent_id}/models",
    response_model=DataModelSchema,
    status_code=status.HTTP_201_CREATED,
)
async def add_data_model(
    agent_id: UUID,
    payload: DataModelCreate,
    agents: AgentStoreDep,
    user_id: CurrentUserId,
) -> DataModelSchema:
    try:
        agent = ensure_owner(await agents.get_agent(agent_id), user_id)
        if agent.get_model(payload.name) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Model '{payload.name}' already exists",
            )
        return await agents.add_data_model(agent_id, payload)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.put("/{agent_id}/credentials/{provider}", response_model=CredentialResponse)
async def store_credential(
    agent_id: UUID,
    provider: str,
    payload: CredentialUpsert,
    agents: AgentStoreDep,
    credentials: CredentialStoreDep,
    user_id: CurrentUserId,
) -> CredentialResponse:
    """Store the token produced by an authorization flow; gated runs can then be retried."""

    try:
        ensure_owner(await agents.get_agent(agent_id), user_id)
        return await credentials.store_credential(agent_id, provider, payload)
    except EngineError as exc:
        raise http_error(exc) from exc


@router.delete("/{agent_id}/credentials/{provider}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(
    agent_id: UUID,
    provider: str,
    agents: AgentStoreDep,
    credentials: CredentialStoreDep,
    user_id: CurrentUserId,
) -> None:
    try:
        ensure_owner(await agents.get_agent(agent_id), user_id)
        deleted = await credentials.delete_credential(agent_id, provider)
    except EngineError as exc:
        raise http_error(exc) from exc
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Credential not found")


__all__ = ["router"]
