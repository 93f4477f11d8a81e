"""Pydantic schemas exposed by the action engine."""

from .actions import (
    ActionCreate,
    ActionDefinition,
    ActionResponse,
    ActionStep,
    ActionStepCreate,
    ActionValidationResult,
    StepSettings,
)
from .agents import AgentCreate, AgentDefinition, AgentResponse
from .base import IdentifiedSchema, ORMModel, RecordData, TimestampedSchema
from .credentials import CredentialResponse, CredentialUpsert
from .events import (
    ActionRunRequestEvent,
    QueuedEvent,
    ScheduleRunEvent,
    ScheduleTickEvent,
    queued_event_adapter,
)
from .executions import (
    ActionRunResult,
    ExecutionMetrics,
    ExecutionResponse,
    ExecutionUpdate,
    OAuthGatePayload,
    OAuthRequirement,
    StepResult,
    TokenUsage,
)
from .fields import (
    DataModelCreate,
    DataModelSchema,
    FieldDefinition,
    FieldType,
    FormDefinition,
    ReferenceType,
)
from .records import RecordCreate, RecordSchema, RecordUpdate
from .schedules import (
    FilterExpression,
    FilterLogic,
    FilterOperator,
    RecordQuery,
    RecordRunOutcome,
    ScheduleCreate,
    ScheduleDefinition,
    ScheduleFilter,
    SchedulePreviewRequest,
    SchedulePreviewResponse,
    ScheduleResponse,
    ScheduleRunResult,
    ScheduleStepConfig,
    ScheduleStepCreate,
    ScheduleStepReport,
)

__all__ = [
    "ActionCreate",
    "ActionDefinition",
    "ActionResponse",
    "ActionRunRequestEvent",
    "ActionRunResult",
    "ActionStep",
    "ActionStepCreate",
    "ActionValidationResult",
    "AgentCreate",
    "AgentDefinition",
    "AgentResponse",
    "CredentialResponse",
    "CredentialUpsert",
    "DataModelCreate",
    "DataModelSchema",
    "ExecutionMetrics",
    "ExecutionResponse",
    "ExecutionUpdate",
    "FieldDefinition",
    "FieldType",
    "FilterExpression",
    "FilterLogic",
    "FilterOperator",
    "FormDefinition",
    "IdentifiedSchema",
    "OAuthGatePayload",
    "OAuthRequirement",
    "ORMModel",
    "QueuedEvent",
    "RecordCreate",
    "RecordData",
    "RecordQuery",
    "RecordRunOutcome",
    "RecordSchema",
    "RecordUpdate",
    "ReferenceType",
    "ScheduleCreate",
    "ScheduleDefinition",
    "ScheduleFilter",
    "SchedulePreviewRequest",
    "SchedulePreviewResponse",
    "ScheduleResponse",
    "ScheduleRunEvent",
    "ScheduleRunResult",
    "ScheduleStepConfig",
    "ScheduleStepCreate",
    "ScheduleStepReport",
    "ScheduleTickEvent",
    "StepResult",
    "StepSettings",
    "TimestampedSchema",
    "TokenUsage",
    "queued_event_adapter",
]
