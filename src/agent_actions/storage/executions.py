"""Async repository for execution history."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..engine.exceptions import RepositoryError
from ..models import ExecutionRecord, ExecutionStatus
from ..schemas import ExecutionResponse, ExecutionUpdate

__all__ = ["SQLExecutionStore"]


class SQLExecutionStore:
    """Writes and reads ``executions`` rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_execution(
        self,
        *,
        record_id: UUID,
        action_id: UUID,
        schedule_id: UUID | None = None,
    ) -> UUID:
        model = ExecutionRecord(
            record_id=record_id,
            action_id=action_id,
            schedule_id=schedule_id,
            status=ExecutionStatus.PENDING,
        )
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.flush()
                execution_id = model.id
                await session.commit()
                return execution_id
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to create execution record") from exc

    async def update_execution(self, execution_id: UUID, changes: ExecutionUpdate) -> None:
        values = changes.model_dump(exclude_unset=True)
        try:
            async with self._session_factory() as session:
                model = await session.get(ExecutionRecord, execution_id)
                if model is None:
                    raise RepositoryError(f"Execution {execution_id} not found")
                for key, value in values.items():
                    setattr(model, key, value)
                await session.commit()
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to update execution record") from exc

    async def get_execution(self, execution_id: UUID) -> ExecutionResponse | None:
        try:
            async with self._session_factory() as session:
                model = await session.get(ExecutionRecord, execution_id)
                return ExecutionResponse.model_validate(model) if model is not None else None
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to fetch execution record") from exc

    async def list_executions(
        self,
        *,
        action_id: UUID | None = None,
        record_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionResponse]:
        """Most recent executions first, optionally narrowed to an action or record."""

        stmt = select(ExecutionRecord)
        if action_id is not None:
            stmt = stmt.where(ExecutionRecord.action_id == action_id)
        if record_id is not None:
            stmt = stmt.where(ExecutionRecord.record_id == record_id)
        stmt = stmt.order_by(ExecutionRecord.created_at.desc()).offset(offset).limit(limit)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [ExecutionResponse.model_validate(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to list execution records") from exc
