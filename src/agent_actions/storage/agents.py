"""Async repository for agents, their data models and actions."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..engine.exceptions import RepositoryError
from ..models import ActionModel, ActionStepModel, AgentDataModel, AgentModel
from ..schemas import (
    ActionCreate,
    ActionDefinition,
    AgentCreate,
    AgentDefinition,
    DataModelCreate,
    DataModelSchema,
)
from .serialization import action_to_definition, agent_to_definition, data_model_to_schema

__all__ = ["SQLAgentStore"]


def _agent_query(agent_id: UUID):
    return (
        select(AgentModel)
        .where(AgentModel.id == agent_id)
        .options(
            selectinload(AgentModel.data_models),
            selectinload(AgentModel.actions).selectinload(ActionModel.steps),
        )
    )


class SQLAgentStore:
    """Loads agents together with everything an action run resolves against."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_agent(self, agent_id: UUID) -> AgentDefinition | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(_agent_query(agent_id))
                model = result.scalars().first()
                return agent_to_definition(model) if model is not None else None
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to fetch agent") from exc

    async def get_agent_for_action(self, action_id: UUID) -> AgentDefinition | None:
        try:
            async with self._session_factory() as session:
                agent_id = await session.scalar(
                    select(ActionModel.agent_id).where(ActionModel.id == action_id)
                )
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to resolve action owner") from exc
        if agent_id is None:
            return None
        return await self.get_agent(agent_id)

    async def create_agent(self, payload: AgentCreate) -> AgentDefinition:
        """Persist an agent and its data models."""

        model = AgentModel(
            name=payload.name,
            description=payload.description,
            user_id=payload.user_id,
            data_models=[_data_model_row(item) for item in payload.models],
        )
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.flush()
                agent_id = model.id
                await session.commit()
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to create agent") from exc
        created = await self.get_agent(agent_id)
        assert created is not None
        return created

    async def add_data_model(self, agent_id: UUID, payload: DataModelCreate) -> DataModelSchema:
        row = _data_model_row(payload)
        row.agent_id = agent_id
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
                return data_model_to_schema(row)
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to create data model") from exc

    async def create_action(self, payload: ActionCreate) -> ActionDefinition:
        """Persist an action with its ordered steps."""

        model = ActionModel(
            agent_id=payload.agent_id,
            name=payload.name,
            title=payload.title,
            description=payload.description,
            target_model=payload.target_model,
            steps=[
                ActionStepModel(
                    name=step.name,
                    type=step.type,
                    order=step.order,
                    config=step.config.model_dump(mode="json"),
                )
                for step in payload.steps
            ],
        )
        try:
            async with self._session_factory() as session:
                session.add(model)
                await session.flush()
                action_id = model.id
                await session.commit()
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to create action") from exc
        created = await self.get_action(action_id)
        assert created is not None
        return created

    async def get_action(self, action_id: UUID) -> ActionDefinition | None:
        stmt = (
            select(ActionModel)
            .where(ActionModel.id == action_id)
            .options(selectinload(ActionModel.steps))
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                model = result.scalars().first()
                return action_to_definition(model) if model is not None else None
        except SQLAlchemyError as exc:  # pragma: no cover - database errors
            raise RepositoryError("Failed to fetch action") from exc


def _data_model_row(payload: DataModelCreate) -> AgentDataModel:
    return AgentDataModel(
        name=payload.name,
        title=payload.title,
        description=payload.description,
        fields=[field.model_dump(mode="json") for field in payload.fields],
        forms=[form.model_dump(mode="json") for form in payload.forms],
    )
