"""Export SQLAlchemy models and enums for convenient imports."""

from .actions import ActionModel, ActionStepModel, StepType
from .agents import AgentCredentialModel, AgentDataModel, AgentModel, AgentRecordModel
from .base import (
    Base,
    GUID,
    JSONBType,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDPrimaryKey,
    UserOwnedMixin,
)
from .executions import ExecutionRecord, ExecutionStatus
from .schedules import ScheduleMode, ScheduleModel, ScheduleStatus, ScheduleStepModel

__all__ = [
    "ActionModel",
    "ActionStepModel",
    "AgentCredentialModel",
    "AgentDataModel",
    "AgentModel",
    "AgentRecordModel",
    "Base",
    "ExecutionRecord",
    "ExecutionStatus",
    "GUID",
    "JSONBType",
    "ScheduleMode",
    "ScheduleModel",
    "ScheduleStatus",
    "ScheduleStepModel",
    "SoftDeleteMixin",
    "StepType",
    "TimestampMixin",
    "UUIDPrimaryKey",
    "UserOwnedMixin",
]
