"""Tests for the step executors (agent_actions/engine/executors.py)."""

import json
from typing import Any

import httpx
import pytest

from agent_actions.engine import (
    StepExecutor,
    StepFailed,
    StepNeedsAuth,
    StepRequest,
    StepSucceeded,
    build_input_context,
    build_output_contract,
)
from agent_actions.engine.executors import FailureKind, render_prompt
from agent_actions.models import StepType
from agent_actions.schemas import ActionStep, AgentDefinition, CredentialUpsert
from agent_actions.storage import InMemoryStore
from tests.helpers import FakeBackend, model_named, step

pytestmark = pytest.mark.unit

REX = {"name": "Rex", "species": "dog", "age": 5}


async def _request(agent: AgentDefinition, action_step: ActionStep, data: dict[str, Any] = REX) -> StepRequest:
    pet = model_named(agent, "Pet")
    context = await build_input_context(action_step.config.input_fields, data, pet, agent)
    contract = build_output_contract(action_step.config.output_fields, pet, agent)
    return StepRequest(agent_id=agent.id, step=action_step, context=context, contract=contract)


def _custom(name: str, outputs: list[str], **settings: Any) -> ActionStep:
    return step(name, ["name"], outputs, type_=StepType.CUSTOM, **settings)


class TestRenderPrompt:
    """Placeholders are filled from input values."""

    def test_known_placeholders_are_replaced(self) -> None:
        assert render_prompt("Describe {name} the {species}", REX) == "Describe Rex the dog"

    def test_unknown_placeholders_are_kept(self) -> None:
        assert render_prompt("Hello {owner}", REX) == "Hello {owner}"

    def test_empty_template_uses_default(self) -> None:
        assert render_prompt(None, REX).startswith("Process the input data")


class TestAIReasoning:
    """Structured generation validated against the step contract."""

    async def test_success(self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend) -> None:
        backend.queue({"health_summary": "Healthy and active"})
        action_step = step("Assess", ["name", "age"], ["health_summary"], prompt="Assess {name}")

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepSucceeded)
        assert outcome.fields == {"health_summary": "Healthy and active"}
        assert outcome.usage.total_tokens == 15
        prompt = backend.prompts[0]
        assert prompt.startswith("Assess Rex")
        assert "Input data:\nname (text): Rex\nage (number): 5" in prompt
        assert prompt.endswith("containing exactly these fields: health_summary")
        assert backend.schemas[0]["required"] == ["health_summary"]

    async def test_invalid_output_fails_validation(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.queue({"health_score": "very good"})

        outcome = await executor.execute(await _request(agent, step("Score", [], ["health_score"])))

        assert isinstance(outcome, StepFailed)
        assert outcome.kind is FailureKind.VALIDATION
        assert "health_score" in outcome.message

    async def test_backend_error_becomes_failure(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.queue(RuntimeError("provider down"))

        outcome = await executor.execute(await _request(agent, step("Assess", [], ["health_summary"])))

        assert isinstance(outcome, StepFailed)
        assert outcome.kind is FailureKind.EXECUTOR
        assert outcome.message == "RuntimeError: provider down"

    async def test_timeout(self, agent: AgentDefinition, backend: FakeBackend, store: InMemoryStore) -> None:
        backend.delay = 1.0
        backend.queue({"health_summary": "late"})
        executor = StepExecutor(backend, store, timeout_seconds=0.01)

        outcome = await executor.execute(await _request(agent, step("Assess", [], ["health_summary"])))

        assert isinstance(outcome, StepFailed)
        assert "timed out after 0.01s" in outcome.message

    async def test_to_many_output_prompt_mentions_new_record(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.queue({"visits": {"notes": "Annual checkup"}})

        outcome = await executor.execute(await _request(agent, step("Plan", ["name"], ["visits"])))

        assert isinstance(outcome, StepSucceeded)
        assert outcome.fields == {"visits": {"notes": "Annual checkup", "date": None}}
        assert "describing a new Visit record" in backend.prompts[0]


class TestWebSearch:
    """Search first, then structure the answer."""

    async def test_query_from_prompt(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.queue({"health_summary": "Healthy"})
        action_step = step(
            "Research",
            ["species"],
            ["health_summary"],
            type_=StepType.WEB_SEARCH,
            prompt="common {species} illnesses",
        )

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepSucceeded)
        assert backend.queries == ["common dog illnesses"]
        assert backend.search_text in backend.prompts[0]
        assert outcome.usage.total_tokens == 30

    async def test_query_defaults_to_input_values(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.queue({"health_summary": "Healthy"})
        action_step = step("Research", ["name", "species"], ["health_summary"], type_=StepType.WEB_SEARCH)

        await executor.execute(await _request(agent, action_step))

        assert backend.queries == ["Rex dog"]

    async def test_empty_query_fails(self, agent: AgentDefinition, executor: StepExecutor) -> None:
        action_step = step("Research", ["health_summary"], ["notes"], type_=StepType.WEB_SEARCH)

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepFailed)
        assert "empty query" in outcome.message


class TestImageGeneration:
    """The first generated image fills the single output field."""

    async def test_first_image_is_used(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.images = ["https://images.test/1.png", "https://images.test/2.png"]
        action_step = step(
            "Portrait",
            ["name", "species"],
            ["avatar"],
            type_=StepType.IMAGE_GENERATION,
            prompt="A portrait of {name} the {species}",
        )

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepSucceeded)
        assert outcome.fields == {"avatar": "https://images.test/1.png"}
        assert backend.image_prompts == ["A portrait of Rex the dog"]

    async def test_no_images_fails(
        self, agent: AgentDefinition, executor: StepExecutor, backend: FakeBackend
    ) -> None:
        backend.images = []
        action_step = step("Portrait", ["name"], ["avatar"], type_=StepType.IMAGE_GENERATION)

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepFailed)
        assert "returned no images" in outcome.message


class TestCustomInlineCode:
    """Inline code defines a handler that receives the input values."""

    async def test_sync_handler(self, agent: AgentDefinition, executor: StepExecutor) -> None:
        code = "def handler(data):\n    return {'post_url': 'https://pets.test/' + data['name']}\n"

        outcome = await executor.execute(await _request(agent, _custom("Link", ["post_url"], code=code)))

        assert isinstance(outcome, StepSucceeded)
        assert outcome.fields == {"post_url": "https://pets.test/Rex"}

    async def test_async_main(self, agent: AgentDefinition, executor: StepExecutor) -> None:
        code = "async def main(data):\n    return {'post_url': data['name'].lower()}\n"

        outcome = await executor.execute(await _request(agent, _custom("Link", ["post_url"], code=code)))

        assert isinstance(outcome, StepSucceeded)
        assert outcome.fields == {"post_url": "rex"}

    async def test_missing_handler_is_a_configuration_error(
        self, agent: AgentDefinition, executor: StepExecutor
    ) -> None:
        outcome = await executor.execute(
            await _request(agent, _custom("Link", ["post_url"], code="value = 1\n"))
        )

        assert isinstance(outcome, StepFailed)
        assert outcome.kind is FailureKind.CONFIGURATION

    async def test_handler_exception_is_reported(self, agent: AgentDefinition, executor: StepExecutor) -> None:
        code = "def handler(data):\n    raise ValueError('bad pet')\n"

        outcome = await executor.execute(await _request(agent, _custom("Link", ["post_url"], code=code)))

        assert isinstance(outcome, StepFailed)
        assert outcome.message == "ValueError: bad pet"

    async def test_non_mapping_result_fails(self, agent: AgentDefinition, executor: StepExecutor) -> None:
        code = "def handler(data):\n    return 'done'\n"

        outcome = await executor.execute(await _request(agent, _custom("Link", ["post_url"], code=code)))

        assert isinstance(outcome, StepFailed)
        assert "must return a mapping" in outcome.message

    async def test_handler_can_request_authorization(
        self, agent: AgentDefinition, executor: StepExecutor
    ) -> None:
        code = (
            "def handler(data):\n"
            "    return {'requires_oauth': True, 'provider': 'instagram', 'scopes': ['instagram_basic']}\n"
        )

        outcome = await executor.execute(await _request(agent, _custom("Share", ["post_url"], code=code)))

        assert isinstance(outcome, StepNeedsAuth)
        assert outcome.requirement.provider == "instagram"
        assert outcome.requirement.scopes == ["instagram_basic"]


class TestCustomCredentialGate:
    """Custom steps check stored credentials before running anything."""

    async def test_missing_credential_gates_the_step(
        self, agent: AgentDefinition, executor: StepExecutor
    ) -> None:
        code = "def handler(data):\n    raise AssertionError('must not run')\n"

        outcome = await executor.execute(await _request(agent, _custom("Post to X", ["post_url"], code=code)))

        assert isinstance(outcome, StepNeedsAuth)
        assert outcome.requirement.provider == "x"

    async def test_stored_credential_lets_the_step_run(
        self, agent: AgentDefinition, executor: StepExecutor, store: InMemoryStore
    ) -> None:
        await store.store_credential(agent.id, "x", CredentialUpsert(token_data={"access_token": "t"}))
        code = "def handler(data):\n    return {'post_url': 'https://x.test/1'}\n"

        outcome = await executor.execute(await _request(agent, _custom("Post to X", ["post_url"], code=code)))

        assert isinstance(outcome, StepSucceeded)

    async def test_step_without_code_or_url(self, agent: AgentDefinition, executor: StepExecutor) -> None:
        outcome = await executor.execute(await _request(agent, _custom("Link", ["post_url"])))

        assert isinstance(outcome, StepFailed)
        assert outcome.kind is FailureKind.CONFIGURATION


class TestCustomDeployment:
    """Deployed steps are called over HTTP with the inputs and step metadata."""

    def _executor(self, backend: FakeBackend, store: InMemoryStore, handler: Any) -> StepExecutor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return StepExecutor(backend, store, http_client=client)

    async def test_success_payload(self, agent: AgentDefinition, backend: FakeBackend, store: InMemoryStore) -> None:
        seen: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "post_url": "https://pets.test/rex"})

        executor = self._executor(backend, store, handler)
        action_step = _custom("Publish", ["post_url"], deployment_url="https://deploy.test/run")

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepSucceeded)
        assert outcome.fields == {"post_url": "https://pets.test/rex"}
        assert seen[0]["name"] == "Rex"
        assert seen[0]["metadata"]["step_name"] == "Publish"

    async def test_reported_failure(self, agent: AgentDefinition, backend: FakeBackend, store: InMemoryStore) -> None:
        executor = self._executor(
            backend, store, lambda request: httpx.Response(200, json={"success": False, "error": "quota"})
        )
        action_step = _custom("Publish", ["post_url"], deployment_url="https://deploy.test/run")

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepFailed)
        assert outcome.message == "Deployed step 'Publish' reported failure: quota"

    async def test_http_error(self, agent: AgentDefinition, backend: FakeBackend, store: InMemoryStore) -> None:
        executor = self._executor(backend, store, lambda request: httpx.Response(502))
        action_step = _custom("Publish", ["post_url"], deployment_url="https://deploy.test/run")

        outcome = await executor.execute(await _request(agent, action_step))

        assert isinstance(outcome, StepFailed)
        assert "returned HTTP 502" in outcome.message
