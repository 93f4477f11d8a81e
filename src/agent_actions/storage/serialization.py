"""Conversions between ORM rows and engine schemas."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from ..engine.clock import as_utc
from ..engine.exceptions import RepositoryError
from ..models import (
    ActionModel,
    ActionStepModel,
    AgentDataModel,
    AgentModel,
    AgentRecordModel,
    ScheduleModel,
    ScheduleStepModel,
)
from ..schemas import (
    ActionDefinition,
    ActionStep,
    AgentDefinition,
    DataModelSchema,
    FilterExpression,
    RecordQuery,
    RecordSchema,
    ScheduleDefinition,
    ScheduleStepConfig,
)

__all__ = [
    "action_to_definition",
    "agent_to_definition",
    "data_model_to_schema",
    "decode_query",
    "encode_query",
    "record_to_schema",
    "schedule_to_definition",
]


def encode_query(query: RecordQuery) -> dict[str, Any] | None:
    """Store legacy text queries under ``text`` and expressions as-is."""

    if query is None:
        return None
    if isinstance(query, str):
        return {"text": query}
    return query.model_dump(mode="json")


def decode_query(raw: dict[str, Any] | None) -> RecordQuery:
    if not raw:
        return None
    if "text" in raw and "filters" not in raw:
        return str(raw["text"])
    return FilterExpression.model_validate(raw)


def data_model_to_schema(model: AgentDataModel) -> DataModelSchema:
    return DataModelSchema(
        id=model.id,
        agent_id=model.agent_id,
        name=model.name,
        title=model.title,
        description=model.description,
        fields=model.fields or [],
        forms=model.forms or [],
    )


def _step_to_schema(model: ActionStepModel) -> ActionStep:
    return ActionStep(
        id=model.id,
        action_id=model.action_id,
        name=model.name,
        type=model.type,
        order=model.order,
        config=model.config or {},
    )


def action_to_definition(model: ActionModel) -> ActionDefinition:
    try:
        return ActionDefinition(
            id=model.id,
            agent_id=model.agent_id,
            name=model.name,
            title=model.title,
            description=model.description,
            target_model=model.target_model,
            steps=[_step_to_schema(step) for step in model.steps],
        )
    except ValidationError as exc:
        raise RepositoryError(f"Stored action {model.id} is invalid: {exc}") from exc


def agent_to_definition(model: AgentModel) -> AgentDefinition:
    try:
        return AgentDefinition(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            description=model.description,
            models=[data_model_to_schema(item) for item in model.data_models],
            actions=[action_to_definition(action) for action in model.actions],
        )
    except ValidationError as exc:
        raise RepositoryError(f"Stored agent {model.id} is invalid: {exc}") from exc


def record_to_schema(model: AgentRecordModel) -> RecordSchema:
    return RecordSchema(
        id=model.id,
        model_id=model.model_id,
        data=dict(model.data or {}),
        deleted_at=model.deleted_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _schedule_step_to_schema(model: ScheduleStepModel) -> ScheduleStepConfig:
    return ScheduleStepConfig(
        id=model.id,
        schedule_id=model.schedule_id,
        model_id=model.model_id,
        action_id=model.action_id,
        query=decode_query(model.query),
        order=model.order,
    )


def schedule_to_definition(model: ScheduleModel) -> ScheduleDefinition:
    try:
        return ScheduleDefinition(
            id=model.id,
            agent_id=model.agent_id,
            name=model.name,
            mode=model.mode,
            interval_hours=model.interval_hours,
            status=model.status,
            next_run_at=as_utc(model.next_run_at),
            last_run_at=as_utc(model.last_run_at),
            steps=[_schedule_step_to_schema(step) for step in model.steps],
        )
    except ValidationError as exc:
        raise RepositoryError(f"Stored schedule {model.id} is invalid: {exc}") from exc
