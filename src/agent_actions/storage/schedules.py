"""Async repository for schedules."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..engine import clock
from ..engine.exceptions import RepositoryError
from ..models import ScheduleModel, ScheduleStatus, ScheduleStepModel
from ..schemas import ScheduleCreate, ScheduleDefinition
from .serialization import encode_query, schedule_to_definition

__all__ = ["SQLScheduleStore"]


class SQLScheduleStore:
    """Schedule persistence with a compare-and-set firing claim."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_schedule(self, payload: ScheduleCreate, now: datetime) -> ScheduleDefinition:
        model = ScheduleModel(
            agent_id=payload.agent_id,
            name=payload.name,
            mode=payload.mode,
            interval_hours=payload.interval_hours,
            status=ScheduleStatus.ACTIVE,
            next_run_at=clock.first_run_at(now, payload.start_at),
            steps=[
                ScheduleStepModel(
                    model_id=step.model_id,
                    action_id=step.action_id,
                    query=encode_query(step.query),
                    order=step.order,
                )
                for step in payload.steps
            ],
        )
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.flush()
                schedule_id = model.id
                await session.commit()
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to create schedule") from exc
        created = await self.get_schedule(schedule_id)
        assert created is not None
        return created

    async def get_schedule(self, schedule_id: UUID) -> ScheduleDefinition | None:
        stmt = (
            select(ScheduleModel)
            .where(ScheduleModel.id == schedule_id)
            .options(selectinload(ScheduleModel.steps))
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                model = result.scalars().first()
                return schedule_to_definition(model) if model is not None else None
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to fetch schedule") from exc

    async def list_due_schedules(self, now: datetime, limit: int) -> list[ScheduleDefinition]:
        """Active schedules whose ``next_run_at`` has passed, oldest first."""

        stmt = (
            select(ScheduleModel)
            .where(
                ScheduleModel.status == ScheduleStatus.ACTIVE,
                or_(ScheduleModel.next_run_at.is_(None), ScheduleModel.next_run_at <= now),
            )
            .options(selectinload(ScheduleModel.steps))
            .order_by(ScheduleModel.next_run_at)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [schedule_to_definition(model) for model in result.scalars().all()]
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to list due schedules") from exc

    async def claim_schedule_fire(
        self,
        schedule_id: UUID,
        *,
        expected_next_run_at: datetime | None,
        expected_last_run_at: datetime | None,
        changes: dict[str, Any],
    ) -> bool:
        """Apply ``changes`` only if no other firing touched the run timestamps meanwhile."""

        stmt = (
            update(ScheduleModel)
            .where(
                ScheduleModel.id == schedule_id,
                _matches(ScheduleModel.next_run_at, expected_next_run_at),
                _matches(ScheduleModel.last_run_at, expected_last_run_at),
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to claim schedule") from exc

    async def update_schedule(self, schedule_id: UUID, changes: dict[str, Any]) -> None:
        stmt = (
            update(ScheduleModel)
            .where(ScheduleModel.id == schedule_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to update schedule") from exc


def _matches(column: Any, expected: datetime | None) -> Any:
    return column.is_(None) if expected is None else column == expected
