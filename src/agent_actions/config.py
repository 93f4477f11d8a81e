"""Runtime settings for the action engine, API and worker."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelDeployment(BaseModel):
    """LiteLLM deployment entry; a non-empty list enables the LiteLLM router."""

    model_name: str
    litellm_params: dict[str, Any] = Field(default_factory=dict)
    model_info: dict[str, Any] | None = None


class EngineSettings(BaseSettings):
    """Settings read from ``AGENT_ACTIONS_*`` environment variables or ``.env``."""

    database_url: str = Field(
        default="sqlite+aiosqlite:///./agent_actions.db",
        description="SQLAlchemy URL; sync PostgreSQL and SQLite URLs are upgraded to async drivers",
    )
    database_echo: bool = False

    default_model: str = Field(default="gpt-4o-mini", description="Model for structured steps")
    search_model: str = Field(
        default="gpt-4o-mini-search-preview", description="Model used by web search steps"
    )
    image_model: str = Field(default="dall-e-3", description="Model used by image steps")
    model_list: list[ModelDeployment] = Field(default_factory=list)
    routing_strategy: str = "simple-shuffle"
    num_retries: int = Field(default=2, ge=0)

    step_timeout_seconds: float = Field(default=120.0, gt=0)
    schedule_concurrency: int = Field(default=5, ge=1)
    max_schedules_per_tick: int = Field(default=100, ge=1)

    redis_url: str = "redis://localhost:6379"
    stream_key: str = "events:action_requests"
    consumer_group: str = "action-workers"
    consumer_name: str | None = None

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="AGENT_ACTIONS_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return the process-wide settings instance."""

    return EngineSettings()


__all__ = ["EngineSettings", "ModelDeployment", "get_settings"]
