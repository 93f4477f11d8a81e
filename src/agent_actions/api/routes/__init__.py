"""Router exports for the API module."""

from .actions import router as actions_router
from .agents import router as agents_router
from .health import router as health_router
from .records import router as records_router
from .schedules import router as schedules_router

__all__ = [
    "actions_router",
    "agents_router",
    "health_router",
    "records_router",
    "schedules_router",
]
