"""Fixtures backing integration tests with SQLite and the ASGI app."""

from typing import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agent_actions.api import create_app, deps
from agent_actions.schemas import AgentDefinition
from agent_actions.storage import (
    InMemoryStore,
    SQLAgentStore,
    SQLCredentialStore,
    SQLExecutionStore,
    SQLRecordStore,
    SQLScheduleStore,
)
from agent_actions.storage.database import init_db
from tests.helpers import FakeBackend, clinic_payload


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def sql_agents(session_factory: async_sessionmaker[AsyncSession]) -> SQLAgentStore:
    return SQLAgentStore(session_factory)


@pytest.fixture
def sql_records(session_factory: async_sessionmaker[AsyncSession]) -> SQLRecordStore:
    return SQLRecordStore(session_factory)


@pytest.fixture
def sql_executions(session_factory: async_sessionmaker[AsyncSession]) -> SQLExecutionStore:
    return SQLExecutionStore(session_factory)


@pytest.fixture
def sql_schedules(session_factory: async_sessionmaker[AsyncSession]) -> SQLScheduleStore:
    return SQLScheduleStore(session_factory)


@pytest.fixture
def sql_credentials(session_factory: async_sessionmaker[AsyncSession]) -> SQLCredentialStore:
    return SQLCredentialStore(session_factory)


@pytest.fixture
async def sql_agent(sql_agents: SQLAgentStore) -> AgentDefinition:
    return await sql_agents.create_agent(clinic_payload())


@pytest.fixture
async def client(store: InMemoryStore, backend: FakeBackend) -> AsyncIterator[AsyncClient]:
    """API client whose stores and backend are replaced with in-process fakes."""
    app = create_app()
    for provider in (
        deps.get_agent_store,
        deps.get_record_store,
        deps.get_execution_store,
        deps.get_schedule_store,
        deps.get_credential_store,
    ):
        app.dependency_overrides[provider] = lambda: store
    app.dependency_overrides[deps.get_backend] = lambda: backend

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
