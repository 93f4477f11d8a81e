"""Reusable FastAPI dependency providers for the REST API layer."""

from __future__ import annotations

import logging
from typing import Annotated, AsyncGenerator
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ..backends import AIBackend, LiteLLMBackend
from ..config import EngineSettings, get_settings
from ..engine import ActionRunner, RunGuard, ScheduleRunner, StepExecutor
from ..storage import (
    SQLAgentStore,
    SQLCredentialStore,
    SQLExecutionStore,
    SQLRecordStore,
    SQLScheduleStore,
)
from ..storage.database import get_async_session, get_session_factory

logger = logging.getLogger(__name__)

_run_guard = RunGuard()
_backend: AIBackend | None = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for request-scoped usage."""

    async with get_async_session() as session:
        yield session


def get_engine_settings() -> EngineSettings:
    return get_settings()


def get_agent_store() -> SQLAgentStore:
    return SQLAgentStore(get_session_factory())


def get_record_store() -> SQLRecordStore:
    return SQLRecordStore(get_session_factory())


def get_execution_store() -> SQLExecutionStore:
    return SQLExecutionStore(get_session_factory())


def get_schedule_store() -> SQLScheduleStore:
    return SQLScheduleStore(get_session_factory())


def get_credential_store() -> SQLCredentialStore:
    return SQLCredentialStore(get_session_factory())


def get_backend() -> AIBackend:
    """Provide a singleton LiteLLM backend."""

    global _backend
    if _backend is None:
        _backend = LiteLLMBackend(get_settings())
        logger.info("LiteLLM backend initialised")
    return _backend


def get_run_guard() -> RunGuard:
    return _run_guard


def get_current_user_id(
    x_user_id: Annotated[UUID | None, Header(alias="X-User-Id")] = None,
) -> UUID | None:
    """Caller identity forwarded by the gateway; absent for internal callers."""

    return x_user_id


def get_step_executor(
    credentials: SQLCredentialStore = Depends(get_credential_store),
    backend: AIBackend = Depends(get_backend),
    settings: EngineSettings = Depends(get_engine_settings),
) -> StepExecutor:
    return StepExecutor(
        backend,
        credentials,
        timeout_seconds=settings.step_timeout_seconds,
        search_model=settings.search_model,
        image_model=settings.image_model,
    )


def get_action_runner(
    agents: SQLAgentStore = Depends(get_agent_store),
    records: SQLRecordStore = Depends(get_record_store),
    executions: SQLExecutionStore = Depends(get_execution_store),
    executor: StepExecutor = Depends(get_step_executor),
    guard: RunGuard = Depends(get_run_guard),
) -> ActionRunner:
    return ActionRunner(agents, records, executions, executor, guard=guard)


def get_schedule_runner(
    schedules: SQLScheduleStore = Depends(get_schedule_store),
    agents: SQLAgentStore = Depends(get_agent_store),
    records: SQLRecordStore = Depends(get_record_store),
    runner: ActionRunner = Depends(get_action_runner),
    settings: EngineSettings = Depends(get_engine_settings),
) -> ScheduleRunner:
    return ScheduleRunner(
        schedules,
        agents,
        records,
        runner,
        concurrency=settings.schedule_concurrency,
        max_per_tick=settings.max_schedules_per_tick,
    )


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AgentStoreDep = Annotated[SQLAgentStore, Depends(get_agent_store)]
RecordStoreDep = Annotated[SQLRecordStore, Depends(get_record_store)]
ExecutionStoreDep = Annotated[SQLExecutionStore, Depends(get_execution_store)]
ScheduleStoreDep = Annotated[SQLScheduleStore, Depends(get_schedule_store)]
CredentialStoreDep = Annotated[SQLCredentialStore, Depends(get_credential_store)]
ActionRunnerDep = Annotated[ActionRunner, Depends(get_action_runner)]
ScheduleRunnerDep = Annotated[ScheduleRunner, Depends(get_schedule_runner)]
CurrentUserId = Annotated[UUID | None, Depends(get_current_user_id)]


__all__ = [
    "ActionRunnerDep",
    "AgentStoreDep",
    "CredentialStoreDep",
    "CurrentUserId",
    "DbSession",
    "ExecutionStoreDep",
    "RecordStoreDep",
    "ScheduleRunnerDep",
    "ScheduleStoreDep",
    "get_action_runner",
    "get_agent_store",
    "get_backend",
    "get_credential_store",
    "get_current_user_id",
    "get_db_session",
    "get_engine_settings",
    "get_execution_store",
    "get_record_store",
    "get_run_guard",
    "get_schedule_runner",
    "get_schedule_store",
    "get_step_executor",
]
