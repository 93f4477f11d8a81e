"""Schedule, record filter and schedule run report schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import Field, model_validator

from ..models import ScheduleMode, ScheduleStatus
from .base import IdentifiedSchema, ORMModel
from .executions import ActionRunResult


class FilterOperator(str, Enum):
    """Operators understood by the record filter evaluator."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    IN = "in"
    NOT_IN = "not_in"


class FilterLogic(str, Enum):
    """How individual filters are combined."""

    AND = "AND"
    OR = "OR"


class ScheduleFilter(ORMModel):
    """Single field predicate.

    ``operator`` is kept as a plain string so that expressions stored with an
    operator this build does not know still load; such filters never match.
    """

    field: str
    operator: str
    value: Any = None


class FilterExpression(ORMModel):
    """Filters joined by one logic operator."""

    filters: list[ScheduleFilter] = Field(default_factory=list)
    logic: FilterLogic = FilterLogic.AND


RecordQuery = FilterExpression | str | None


class ScheduleStepBase(ORMModel):
    """Shared payload for schedule step schemas."""

    model_id: UUID
    action_id: UUID
    query: RecordQuery = None
    order: int = 0


class ScheduleStepCreate(ScheduleStepBase):
    """Payload used to declare a schedule step."""


class ScheduleStepConfig(ScheduleStepBase):
    """Schedule step as loaded from storage."""

    id: UUID | None = None
    schedule_id: UUID | None = None


class ScheduleBase(ORMModel):
    """Shared payload for schedule schemas."""

    name: str = Field(min_length=1)
    mode: ScheduleMode = ScheduleMode.ONCE
    interval_hours: float | None = None

    @model_validator(mode="after")
    def _check_interval(self) -> "ScheduleBase":
        if self.mode is ScheduleMode.RECURRING and (
            self.interval_hours is None or self.interval_hours <= 0
        ):
            raise ValueError("Recurring schedules require a positive interval_hours")
        return self


class ScheduleCreate(ScheduleBase):
    """Payload used to create a schedule."""

    agent_id: UUID
    start_at: datetime | None = Field(
        default=None, description="First firing time; defaults to now"
    )
    steps: list[ScheduleStepCreate] = Field(default_factory=list)


class ScheduleDefinition(ScheduleBase):
    """Schedule as loaded from storage."""

    id: UUID
    agent_id: UUID
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    steps: list[ScheduleStepConfig] = Field(default_factory=list)

    @property
    def ordered_steps(self) -> list[ScheduleStepConfig]:
        return sorted(self.steps, key=lambda step: step.order)


class ScheduleResponse(ScheduleDefinition, IdentifiedSchema):
    """Schedule returned over the API."""


class RecordRunOutcome(ORMModel):
    """Outcome of running the step's action on one matched record."""

    record_id: UUID
    success: bool
    result: ActionRunResult | None = None
    error: str | None = None


class ScheduleStepReport(ORMModel):
    """Per-step summary of a schedule run."""

    order: int
    model_id: UUID
    action_id: UUID
    model_name: str | None = None
    action_name: str | None = None
    query: str | None = None
    total_records: int = 0
    processed_records: int = 0
    record_results: list[RecordRunOutcome] = Field(default_factory=list)
    error: str | None = None


class ScheduleRunResult(ORMModel):
    """Result of firing (or declining to fire) a schedule."""

    schedule_id: UUID
    fired: bool
    skipped_reason: str | None = None
    status: ScheduleStatus
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    steps: list[ScheduleStepReport] = Field(default_factory=list)


class SchedulePreviewRequest(ORMModel):
    """Ask which records a query would select."""

    model_id: UUID
    query: RecordQuery = None


class SchedulePreviewResponse(ORMModel):
    """Records a query selects, with a readable description of the query."""

    description: str
    total_records: int
    matched_record_ids: list[UUID] = Field(default_factory=list)


__all__ = [
    "FilterExpression",
    "FilterLogic",
    "FilterOperator",
    "RecordQuery",
    "RecordRunOutcome",
    "ScheduleBase",
    "ScheduleCreate",
    "ScheduleDefinition",
    "ScheduleFilter",
    "SchedulePreviewRequest",
    "SchedulePreviewResponse",
    "ScheduleResponse",
    "ScheduleRunResult",
    "ScheduleStepBase",
    "ScheduleStepConfig",
    "ScheduleStepCreate",
    "ScheduleStepReport",
]
