"""LiteLLM implementation of the step executor backend."""

from __future__ import annotations

import json
import logging
from typing import Any

import litellm
from litellm import Router

from ..config import EngineSettings
from ..engine.exceptions import ExecutorError
from ..schemas.executions import TokenUsage
from .base import SearchResult, StructuredGeneration

logger = logging.getLogger(__name__)

STRUCTURED_SYSTEM_PROMPT = (
    "You fill in fields of a data record. Reply with a single JSON object that "
    "matches the provided schema and nothing else."
)
SEARCH_SYSTEM_PROMPT = "Search the web and summarise the most relevant, current findings."


def _usage_from(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    prompt = int(getattr(usage, "prompt_tokens", 0) or 0)
    completion = int(getattr(usage, "completion_tokens", 0) or 0)
    total = int(getattr(usage, "total_tokens", 0) or prompt + completion)
    return TokenUsage(input_tokens=prompt, output_tokens=completion, total_tokens=total)


def _message_content(response: Any) -> str:
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError) as exc:
        raise ExecutorError("Model response contained no message") from exc
    return content or ""


class LiteLLMBackend:
    """Calls models through LiteLLM, via a Router when deployments are configured."""

    def __init__(self, settings: EngineSettings, router: Router | None = None) -> None:
        self._settings = settings
        if router is None and settings.model_list:
            router = Router(
                model_list=[deployment.model_dump() for deployment in settings.model_list],
                routing_strategy=settings.routing_strategy,
                num_retries=settings.num_retries,
            )
        self._router = router

    async def generate_structured(
        self,
        prompt: str,
        json_schema: dict[str, Any],
        *,
        model: str | None = None,
    ) -> StructuredGeneration:
        response = await self._completion(
            model=model or self._settings.default_model,
            messages=[
                {"role": "system", "content": STRUCTURED_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "step_output", "schema": json_schema},
            },
        )
        content = _message_content(response)
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ExecutorError("Model returned output that is not valid JSON") from exc
        return StructuredGeneration(data=data, usage=_usage_from(response))

    async def search(self, query: str, *, model: str | None = None) -> SearchResult:
        response = await self._completion(
            model=model or self._settings.search_model,
            messages=[
                {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            web_search_options={"search_context_size": "medium"},
        )
        return SearchResult(text=_message_content(response), usage=_usage_from(response))

    async def generate_image(
        self,
        prompt: str,
        *,
        model: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> list[str]:
        kwargs = {"prompt": prompt, "model": model or self._settings.image_model, **(options or {})}
        if self._router is not None:
            response = await self._router.aimage_generation(**kwargs)
        else:
            response = await litellm.aimage_generation(**kwargs)

        images: list[str] = []
        for item in getattr(response, "data", None) or []:
            url = _item_value(item, "url")
            encoded = _item_value(item, "b64_json")
            if url:
                images.append(url)
            elif encoded:
                images.append(f"data:image/png;base64,{encoded}")
        logger.debug("Generated images", extra={"count": len(images)})
        return images

    async def _completion(self, **kwargs: Any) -> Any:
        if self._router is not None:
            return await self._router.acompletion(**kwargs)
        return await litellm.acompletion(**kwargs)


def _item_value(item: Any, key: str) -> str | None:
    if isinstance(item, dict):
        return item.get(key)
    return getattr(item, key, None)


__all__ = ["LiteLLMBackend"]
