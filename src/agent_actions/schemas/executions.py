"""Execution schemas: per-step results, run outcomes and persisted history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import Field

from ..models import ExecutionStatus, StepType
from .base import IdentifiedSchema, ORMModel, RecordData


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenUsage(ORMModel):
    """Token counters reported by LLM backends."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class StepResult(ORMModel):
    """What a single successful step consumed and produced."""

    step_name: str
    step_type: StepType
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)
    tokens_used: TokenUsage = Field(default_factory=TokenUsage)
    duration_ms: int = 0
    executed_at: datetime = Field(default_factory=utcnow)


class ExecutionMetrics(ORMModel):
    """Aggregate metrics for a whole action run."""

    execution_time_ms: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)


class OAuthRequirement(ORMModel):
    """Credential a step needs before it can run."""

    provider: str
    scopes: list[str] = Field(default_factory=list)
    output_field: str | None = None
    requires_existing: bool = False


class OAuthGatePayload(OAuthRequirement):
    """Everything a client needs to start authorization and resume the run."""

    requires_oauth: bool = True
    agent_id: UUID
    record_id: UUID
    action_id: UUID
    step_name: str
    message: str | None = None


class ActionRunResult(ORMModel):
    """Result of running one action against one record."""

    execution_id: UUID
    action_id: UUID
    record_id: UUID
    status: ExecutionStatus
    final_data: RecordData | None = None
    step_results: list[StepResult] = Field(default_factory=list)
    execution_metrics: ExecutionMetrics = Field(default_factory=ExecutionMetrics)
    oauth: OAuthGatePayload | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS


class ExecutionUpdate(ORMModel):
    """Partial change applied to a stored execution."""

    status: ExecutionStatus | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    execution_time_ms: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ExecutionResponse(IdentifiedSchema):
    """Execution history row."""

    record_id: UUID
    action_id: UUID
    schedule_id: UUID | None = None
    status: ExecutionStatus
    result: dict[str, Any] | None = None
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    execution_time_ms: int | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


__all__ = [
    "ActionRunResult",
    "ExecutionMetrics",
    "ExecutionResponse",
    "ExecutionUpdate",
    "OAuthGatePayload",
    "OAuthRequirement",
    "StepResult",
    "TokenUsage",
    "utcnow",
]
