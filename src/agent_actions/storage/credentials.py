"""Async repository for agent credentials."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..engine.exceptions import RepositoryError
from ..models import AgentCredentialModel
from ..schemas import CredentialResponse, CredentialUpsert

__all__ = ["SQLCredentialStore"]


class SQLCredentialStore:
    """Stores one credential per (agent, provider)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def has_credential(self, agent_id: UUID, provider: str) -> bool:
        stmt = select(AgentCredentialModel.id).where(
            AgentCredentialModel.agent_id == agent_id,
            AgentCredentialModel.provider == provider,
        )
        try:
            async with self._session_factory() as session:
                return await session.scalar(stmt) is not None
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to look up credential") from exc

    async def store_credential(
        self, agent_id: UUID, provider: str, payload: CredentialUpsert
    ) -> CredentialResponse:
        """Insert or replace the credential for ``provider``."""

        stmt = select(AgentCredentialModel).where(
            AgentCredentialModel.agent_id == agent_id,
            AgentCredentialModel.provider == provider,
        )
        try:
            async with self._session_factory() as session:
                model = (await session.execute(stmt)).scalars().first()
                if model is None:
                    model = AgentCredentialModel(agent_id=agent_id, provider=provider)
                    session.add(model)
                model.token_data = dict(payload.token_data)
                model.scopes = list(payload.scopes)
                model.expires_at = payload.expires_at
                await session.commit()
                await session.refresh(model)
                return CredentialResponse.model_validate(model)
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to store credential") from exc

    async def delete_credential(self, agent_id: UUID, provider: str) -> bool:
        stmt = select(AgentCredentialModel).where(
            AgentCredentialModel.agent_id == agent_id,
            AgentCredentialModel.provider == provider,
        )
        try:
            async with self._session_factory() as session:
                model = (await session.execute(stmt)).scalars().first()
                if model is None:
                    return False
                await session.delete(model)
                await session.commit()
                return True
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to delete credential") from exc
