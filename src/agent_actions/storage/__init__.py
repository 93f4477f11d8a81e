"""Persistence for agents, records, executions, schedules and credentials."""

from .agents import SQLAgentStore
from .credentials import SQLCredentialStore
from .database import get_engine, get_session_factory, init_db
from .executions import SQLExecutionStore
from .memory import InMemoryStore
from .records import SQLRecordStore
from .schedules import SQLScheduleStore

__all__ = [
    "InMemoryStore",
    "SQLAgentStore",
    "SQLCredentialStore",
    "SQLExecutionStore",
    "SQLRecordStore",
    "SQLScheduleStore",
    "get_engine",
    "get_session_factory",
    "init_db",
]
