"""Executors for the four step types.

Every executor takes a :class:`StepRequest` and returns exactly one
:class:`StepOutcome`: the validated output fields, a credential requirement,
or a failure.  Executors never touch storage other than the credential lookup.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Union
from uuid import UUID

import httpx

from ..backends.base import AIBackend
from ..models import StepType
from ..schemas.actions import ActionStep
from ..schemas.executions import OAuthRequirement, TokenUsage
from .exceptions import ConfigurationError, EngineError, ExecutorError, StepValidationError
from .input_context import InputContext, render_value
from .oauth import find_missing_credential, required_credentials
from .output_schema import StepOutputContract
from .stores import CredentialStore

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")
DEFAULT_PROMPT = "Process the input data and produce the requested fields."
HANDLER_NAMES = ("handler", "process_data", "main")


class FailureKind(str, Enum):
    """Why a step did not produce outputs."""

    VALIDATION = "validation"
    EXECUTOR = "executor"
    CONFIGURATION = "configuration"


@dataclass(frozen=True)
class StepSucceeded:
    fields: dict[str, Any]
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass(frozen=True)
class StepNeedsAuth:
    requirement: OAuthRequirement


@dataclass(frozen=True)
class StepFailed:
    message: str
    kind: FailureKind = FailureKind.EXECUTOR


StepOutcome = Union[StepSucceeded, StepNeedsAuth, StepFailed]


@dataclass(frozen=True)
class StepRequest:
    """Everything one step needs to run."""

    agent_id: UUID
    step: ActionStep
    context: InputContext
    contract: StepOutputContract


Handler = Callable[[StepRequest], Awaitable[StepOutcome]]


def render_prompt(template: str | None, values: Mapping[str, Any]) -> str:
    """Replace ``{field}`` placeholders with input values, leaving unknown ones intact."""

    if not template:
        return DEFAULT_PROMPT

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        return render_value(values[key])

    return _PLACEHOLDER.sub(_substitute, template)


class StepExecutor:
    """Dispatches a step to the executor registered for its type."""

    def __init__(
        self,
        backend: AIBackend,
        credentials: CredentialStore,
        *,
        timeout_seconds: float | None = None,
        search_model: str | None = None,
        image_model: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._backend = backend
        self._credentials = credentials
        self._timeout = timeout_seconds
        self._search_model = search_model
        self._image_model = image_model
        self._http_client = http_client
        self._handlers: dict[StepType, Handler] = {
            StepType.AI_REASONING: self._run_ai_reasoning,
            StepType.WEB_SEARCH: self._run_web_search,
            StepType.IMAGE_GENERATION: self._run_image_generation,
            StepType.CUSTOM: self._run_custom,
        }

    async def execute(self, request: StepRequest) -> StepOutcome:
        step = request.step
        handler = self._handlers.get(step.type)
        if handler is None:
            return StepFailed(f"Unsupported step type: {step.type}", FailureKind.CONFIGURATION)

        try:
            if self._timeout:
                return await asyncio.wait_for(handler(request), timeout=self._timeout)
            return await handler(request)
        except TimeoutError:
            limit = f" after {self._timeout:g}s" if self._timeout else ""
            return StepFailed(f"Step '{step.name}' timed out{limit}", FailureKind.EXECUTOR)
        except StepValidationError as exc:
            return StepFailed(str(exc), FailureKind.VALIDATION)
        except ConfigurationError as exc:
            return StepFailed(str(exc), FailureKind.CONFIGURATION)
        except EngineError as exc:
            return StepFailed(str(exc), FailureKind.EXECUTOR)
        except Exception as exc:
            logger.exception(
                "Step executor raised",
                extra={"step": step.name, "step_type": step.type.value},
            )
            return StepFailed(f"{type(exc).__name__}: {exc}", FailureKind.EXECUTOR)

    async def _run_ai_reasoning(self, request: StepRequest) -> StepOutcome:
        settings = request.step.config
        prompt = self._compose_prompt(render_prompt(settings.prompt, request.context.values), request)
        generation = await self._backend.generate_structured(
            prompt, request.contract.json_schema(), model=settings.model
        )
        return StepSucceeded(request.contract.validate(generation.data), generation.usage)

    async def _run_web_search(self, request: StepRequest) -> StepOutcome:
        settings = request.step.config
        if settings.prompt:
            query = render_prompt(settings.prompt, request.context.values)
        else:
            query = " ".join(
                render_value(value) for value in request.context.values.values() if value
            )
        if not query.strip():
            raise ExecutorError(f"Web search step '{request.step.name}' has an empty query")

        search = await self._backend.search(query, model=settings.model or self._search_model)
        prompt = self._compose_prompt(
            f"Use these web search results to answer.\n\nSearch query: {query}\n\n"
            f"Search results:\n{search.text}",
            request,
        )
        generation = await self._backend.generate_structured(
            prompt, request.contract.json_schema(), model=settings.model
        )
        fields = request.contract.validate(generation.data)
        return StepSucceeded(fields, search.usage + generation.usage)

    async def _run_image_generation(self, request: StepRequest) -> StepOutcome:
        settings = request.step.config
        if len(settings.output_fields) != 1:
            raise ConfigurationError(
                f"Image generation step '{request.step.name}' must declare exactly one output field"
            )
        if settings.prompt:
            prompt = render_prompt(settings.prompt, request.context.values)
        else:
            prompt = "\n".join(request.context.lines) or request.step.name

        images = await self._backend.generate_image(
            prompt,
            model=settings.model or self._image_model,
            options=dict(settings.image_options),
        )
        if not images:
            raise ExecutorError(f"Image generation step '{request.step.name}' returned no images")
        return StepSucceeded(request.contract.validate({settings.output_fields[0]: images[0]}))

    async def _run_custom(self, request: StepRequest) -> StepOutcome:
        step = request.step
        missing = await find_missing_credential(
            request.agent_id, required_credentials(step), self._credentials
        )
        if missing is not None:
            return StepNeedsAuth(missing)

        settings = step.config
        if settings.deployment_url:
            payload = await self._call_deployment(request)
        elif settings.code:
            payload = await self._call_inline_code(request)
        else:
            raise ConfigurationError(f"Custom step '{step.name}' has no code or deployment URL")

        requirement = _oauth_request_from(payload)
        if requirement is not None:
            return StepNeedsAuth(requirement)
        return StepSucceeded(request.contract.validate(payload))

    async def _call_deployment(self, request: StepRequest) -> dict[str, Any]:
        step = request.step
        body = {
            **request.context.values,
            "metadata": {
                "step_name": step.name,
                "executed_at": datetime.now(timezone.utc).isoformat(),
            },
        }
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout)
        try:
            response = await client.post(str(step.config.deployment_url), json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ExecutorError(
                f"Deployed step '{step.name}' returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExecutorError(f"Deployed step '{step.name}' is unreachable: {exc}") from exc
        except ValueError as exc:
            raise ExecutorError(f"Deployed step '{step.name}' returned invalid JSON") from exc
        finally:
            if self._http_client is None:
                await client.aclose()

        if not isinstance(payload, dict) or not payload.get("success"):
            detail = payload.get("error") if isinstance(payload, dict) else None
            raise ExecutorError(
                f"Deployed step '{step.name}' reported failure"
                + (f": {detail}" if detail else "")
            )
        return payload

    async def _call_inline_code(self, request: StepRequest) -> dict[str, Any]:
        handler = _load_handler(request.step)
        inputs = dict(request.context.values)
        if inspect.iscoroutinefunction(handler):
            result = await handler(inputs)
        else:
            result = await asyncio.to_thread(handler, inputs)
            if inspect.isawaitable(result):
                result = await result
        if not isinstance(result, Mapping):
            raise ExecutorError(
                f"Custom step '{request.step.name}' must return a mapping, "
                f"got {type(result).__name__}"
            )
        return dict(result)

    def _compose_prompt(self, instructions: str, request: StepRequest) -> str:
        sections = [instructions]
        if request.context.lines:
            sections.append("Input data:\n" + request.context.text)
        for field_name, model_name in request.contract.relationships.items():
            sections.append(
                f"For '{field_name}', return one object describing a new {model_name} record; "
                "it will be created and linked to this record."
            )
        sections.append(
            "Respond with a JSON object containing exactly these fields: "
            + ", ".join(request.contract.field_names)
        )
        return "\n\n".join(sections)


def _load_handler(step: ActionStep) -> Callable[[dict[str, Any]], Any]:
    namespace: dict[str, Any] = {"__name__": f"custom_step_{step.name}"}
    try:
        exec(compile(step.config.code or "", f"<custom step {step.name}>", "exec"), namespace)
    except SyntaxError as exc:
        raise ConfigurationError(f"Custom step '{step.name}' code does not compile: {exc}") from exc
    for name in HANDLER_NAMES:
        candidate = namespace.get(name)
        if callable(candidate):
            return candidate
    raise ConfigurationError(
        f"Custom step '{step.name}' code must define one of: {', '.join(HANDLER_NAMES)}"
    )


def _oauth_request_from(payload: Mapping[str, Any]) -> OAuthRequirement | None:
    if not (payload.get("requires_oauth") or payload.get("requiresOAuth")):
        return None
    config = payload.get("oauth_config") or payload.get("oauthConfig") or payload
    provider = config.get("provider")
    if not provider:
        raise ExecutorError("Custom step requested authorization without naming a provider")
    return OAuthRequirement(
        provider=str(provider),
        scopes=list(config.get("scopes") or []),
        output_field=config.get("output_field") or config.get("outputField"),
        requires_existing=bool(config.get("requires_existing") or config.get("requiresExisting")),
    )


__all__ = [
    "DEFAULT_PROMPT",
    "FailureKind",
    "StepExecutor",
    "StepFailed",
    "StepNeedsAuth",
    "StepOutcome",
    "StepRequest",
    "StepSucceeded",
    "render_prompt",
]
