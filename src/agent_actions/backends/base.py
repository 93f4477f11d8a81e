"""Interface between step executors and the model provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from ..schemas.executions import TokenUsage


@dataclass
class StructuredGeneration:
    """JSON object produced against a schema."""

    data: Any
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class SearchResult:
    """Web-grounded answer text."""

    text: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class AIBackend(Protocol):
    """Operations the step executors need from an LLM provider."""

    async def generate_structured(
        self,
        prompt: str,
        json_schema: dict[str, Any],
        *,
        model: str | None = None,
    ) -> StructuredGeneration: ...

    async def search(self, query: str, *, model: str | None = None) -> SearchResult: ...

    async def generate_image(
        self,
        prompt: str,
        *,
        model: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> list[str]: ...


__all__ = ["AIBackend", "SearchResult", "StructuredGeneration"]
