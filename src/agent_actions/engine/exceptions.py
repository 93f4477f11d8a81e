"""Exception hierarchy for the action engine."""

from __future__ import annotations

__all__ = [
    "AccessDeniedError",
    "ActionNotFoundError",
    "ConfigurationError",
    "EngineError",
    "ExecutorError",
    "ModelNotFoundError",
    "NotFoundError",
    "RecordNotFoundError",
    "RepositoryError",
    "RunCancelledError",
    "RunInProgressError",
    "ScheduleNotFoundError",
    "StepValidationError",
]


class EngineError(RuntimeError):
    """Base error for all action engine components."""


class ConfigurationError(EngineError):
    """Raised when an action, step or schedule is misconfigured."""


class StepValidationError(EngineError):
    """Raised when step output does not satisfy the step's output contract."""


class ExecutorError(EngineError):
    """Raised when a step executor's backend fails or times out."""


class NotFoundError(EngineError):
    """Raised when a referenced entity cannot be located."""


class ActionNotFoundError(NotFoundError):
    """Raised when an action id does not resolve."""


class RecordNotFoundError(NotFoundError):
    """Raised when a record id does not resolve or the record was deleted."""


class ModelNotFoundError(NotFoundError):
    """Raised when a data model name or id does not resolve."""


class ScheduleNotFoundError(NotFoundError):
    """Raised when a schedule id does not resolve."""


class AccessDeniedError(EngineError):
    """Raised when the caller does not own the agent."""


class RunInProgressError(EngineError):
    """Raised when the same action is already running on the same record."""


class RunCancelledError(EngineError):
    """Raised when a caller cancels a run between steps."""


class RepositoryError(EngineError):
    """Raised when persistence operations fail."""
