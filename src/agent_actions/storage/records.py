"""Async repository for records with soft delete."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..engine.exceptions import RepositoryError
from ..models import AgentRecordModel
from ..schemas import RecordSchema
from ..schemas.executions import utcnow
from .serialization import record_to_schema

__all__ = ["SQLRecordStore"]


class SQLRecordStore:
    """Record persistence; soft-deleted rows are invisible to every read."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_record(self, record_id: UUID) -> RecordSchema | None:
        try:
            async with self._session_factory() as session:
                model = await session.get(AgentRecordModel, record_id)
                if model is None or model.is_deleted:
                    return None
                return record_to_schema(model)
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to fetch record") from exc

    async def list_records(self, model_id: UUID) -> list[RecordSchema]:
        stmt = (
            select(AgentRecordModel)
            .where(AgentRecordModel.model_id == model_id, AgentRecordModel.deleted_at.is_(None))
            .order_by(AgentRecordModel.created_at)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [record_to_schema(model) for model in result.scalars().all()]
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to list records") from exc

    async def create_record(self, model_id: UUID, data: dict[str, Any]) -> RecordSchema:
        model = AgentRecordModel(model_id=model_id, data=dict(data))
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.commit()
                await session.refresh(model)
                return record_to_schema(model)
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to create record") from exc

    async def save_record_fields(
        self, record_id: UUID, changes: dict[str, Any]
    ) -> RecordSchema | None:
        """Merge ``changes`` into the stored data; untouched keys keep their values."""

        try:
            async with self._session_factory() as session:
                model = await session.get(AgentRecordModel, record_id, with_for_update=True)
                if model is None or model.is_deleted:
                    return None
                model.data = {**(model.data or {}), **changes}
                await session.commit()
                await session.refresh(model)
                return record_to_schema(model)
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to save record fields") from exc

    async def delete_record(self, record_id: UUID) -> bool:
        try:
            async with self._session_factory() as session:
                model = await session.get(AgentRecordModel, record_id)
                if model is None or model.is_deleted:
                    return False
                model.deleted_at = utcnow()
                await session.commit()
                return True
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to delete record") from exc
