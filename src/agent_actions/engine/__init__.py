"""Action execution engine and schedule evaluator."""

from .clock import ScheduleTransition, due_schedules, fire, is_due, manual_fire
from .events import EventDispatcher
from .exceptions import (
    AccessDeniedError,
    ActionNotFoundError,
    ConfigurationError,
    EngineError,
    ExecutorError,
    ModelNotFoundError,
    NotFoundError,
    RecordNotFoundError,
    RepositoryError,
    RunCancelledError,
    RunInProgressError,
    ScheduleNotFoundError,
    StepValidationError,
)
from .executors import (
    StepExecutor,
    StepFailed,
    StepNeedsAuth,
    StepOutcome,
    StepRequest,
    StepSucceeded,
)
from .filters import describe_query, evaluate_filter, filter_records, select_records
from .guard import RunGuard
from .input_context import InputContext, build_input_context
from .oauth import OAUTH_PROVIDERS, detect_required_credentials
from .output_schema import StepOutputContract, build_output_contract
from .runner import ActionRunner
from .scheduler import ScheduleRunner
from .snapshot import RecordSnapshot
from .validation import validate_action

__all__ = [
    "AccessDeniedError",
    "ActionNotFoundError",
    "ActionRunner",
    "ConfigurationError",
    "EngineError",
    "EventDispatcher",
    "ExecutorError",
    "InputContext",
    "ModelNotFoundError",
    "NotFoundError",
    "OAUTH_PROVIDERS",
    "RecordNotFoundError",
    "RecordSnapshot",
    "RepositoryError",
    "RunCancelledError",
    "RunGuard",
    "RunInProgressError",
    "ScheduleNotFoundError",
    "ScheduleRunner",
    "ScheduleTransition",
    "StepExecutor",
    "StepFailed",
    "StepNeedsAuth",
    "StepOutcome",
    "StepOutputContract",
    "StepRequest",
    "StepSucceeded",
    "StepValidationError",
    "build_input_context",
    "build_output_contract",
    "describe_query",
    "detect_required_credentials",
    "due_schedules",
    "evaluate_filter",
    "filter_records",
    "fire",
    "is_due",
    "manual_fire",
    "select_records",
    "validate_action",
]
