"""Root test fixtures shared across unit and integration tests."""

import os

os.environ.setdefault("AGENT_ACTIONS_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# ruff: noqa: E402 - Imports must be after env var setup
import pytest

from agent_actions.config import get_settings
from agent_actions.engine import ActionRunner, RunGuard, StepExecutor
from agent_actions.schemas import AgentDefinition, RecordSchema
from agent_actions.storage import InMemoryStore
from tests.helpers import FakeBackend, model_named, pet_agent

get_settings.cache_clear()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def agent(store: InMemoryStore) -> AgentDefinition:
    """Pet clinic agent registered in the in-memory store.

    Tests that add actions append them to this object before running.
    """
    return store.add_agent(pet_agent())


@pytest.fixture
def executor(backend: FakeBackend, store: InMemoryStore) -> StepExecutor:
    return StepExecutor(backend, store)


@pytest.fixture
def guard() -> RunGuard:
    return RunGuard()


@pytest.fixture
def runner(store: InMemoryStore, executor: StepExecutor, guard: RunGuard) -> ActionRunner:
    return ActionRunner(store, store, store, executor, guard=guard)


@pytest.fixture
async def rex(store: InMemoryStore, agent: AgentDefinition) -> RecordSchema:
    """A dog record with no derived fields filled in yet."""
    return await store.create_record(
        model_named(agent, "Pet").id,
        {"name": "Rex", "species": "dog", "age": 5},
    )
