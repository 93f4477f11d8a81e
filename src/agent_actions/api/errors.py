"""Translate engine errors into HTTP errors."""

from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, status

from ..engine.exceptions import (
    AccessDeniedError,
    ConfigurationError,
    EngineError,
    NotFoundError,
    RunInProgressError,
    StepValidationError,
)
from ..schemas import AgentDefinition

_STATUS_BY_ERROR: tuple[tuple[type[EngineError], int], ...] = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (RunInProgressError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (StepValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def http_error(exc: EngineError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def ensure_owner(agent: AgentDefinition | None, user_id: UUID | None) -> AgentDefinition:
    """Return ``agent`` if it exists and the caller may use it."""

    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    if user_id is not None and agent.user_id is not None and agent.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your agent")
    return agent


__all__ = ["ensure_owner", "http_error"]
