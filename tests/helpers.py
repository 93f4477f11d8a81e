"""Shared builders for engine tests: a small pet clinic agent and a scripted backend."""

from __future__ import annotations

import asyncio
from typing import Any
from uuid import UUID, uuid4

from agent_actions.backends.base import SearchResult, StructuredGeneration
from agent_actions.models import StepType
from agent_actions.schemas import (
    ActionDefinition,
    ActionStep,
    AgentCreate,
    AgentDefinition,
    DataModelCreate,
    DataModelSchema,
    FieldDefinition,
    StepSettings,
    TokenUsage,
)

USAGE = TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15)


class FakeBackend:
    """Backend returning queued responses and recording every call."""

    def __init__(self) -> None:
        self.structured: list[Any] = []
        self.search_text = "Rex is a healthy five year old dog."
        self.images = ["https://images.test/rex.png"]
        self.delay: float = 0.0
        self.prompts: list[str] = []
        self.schemas: list[dict[str, Any]] = []
        self.queries: list[str] = []
        self.image_prompts: list[str] = []

    def queue(self, *responses: Any) -> "FakeBackend":
        self.structured.extend(responses)
        return self

    async def generate_structured(
        self,
        prompt: str,
        json_schema: dict[str, Any],
        *,
        model: str | None = None,
    ) -> StructuredGeneration:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.prompts.append(prompt)
        self.schemas.append(json_schema)
        response = self.structured.pop(0)
        if isinstance(response, Exception):
            raise response
        return StructuredGeneration(data=response, usage=USAGE)

    async def search(self, query: str, *, model: str | None = None) -> SearchResult:
        self.queries.append(query)
        return SearchResult(text=self.search_text, usage=USAGE)

    async def generate_image(
        self,
        prompt: str,
        *,
        model: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> list[str]:
        self.image_prompts.append(prompt)
        return list(self.images)


def _field(name: str, type_: str, **extra: Any) -> FieldDefinition:
    return FieldDefinition(name=name, type=type_, **extra)


def pet_agent(user_id: UUID | None = None) -> AgentDefinition:
    """Agent with Pet, Owner and Visit models.

    Pet links to one Owner and many Visits; Visit points back at its Pet.
    """

    agent_id = uuid4()
    owner = DataModelSchema(
        id=uuid4(),
        agent_id=agent_id,
        name="Owner",
        fields=[_field("name", "text", required=True), _field("email", "text")],
    )
    visit = DataModelSchema(
        id=uuid4(),
        agent_id=agent_id,
        name="Visit",
        fields=[
            _field("notes", "text", required=True),
            _field("date", "date"),
            _field("pet", "reference", reference_type="to_one", references_model="Pet"),
        ],
    )
    pet = DataModelSchema(
        id=uuid4(),
        agent_id=agent_id,
        name="Pet",
        fields=[
            _field("name", "text", required=True),
            _field("species", "enum", enum_values=["dog", "cat"]),
            _field("age", "number"),
            _field("birthday", "date"),
            _field("health_summary", "text", description="Short health assessment"),
            _field("health_score", "number"),
            _field("needs_vet", "boolean"),
            _field("notes", "json"),
            _field("avatar", "image_url"),
            _field("post_url", "text"),
            _field("owner", "reference", reference_type="to_one", references_model="Owner"),
            _field("visits", "reference", reference_type="to_many", references_model="Visit"),
        ],
    )
    return AgentDefinition(
        id=agent_id,
        user_id=user_id,
        name="Clinic",
        models=[pet, owner, visit],
    )


def step(
    name: str,
    inputs: list[str],
    outputs: list[str],
    *,
    order: int = 0,
    type_: StepType = StepType.AI_REASONING,
    **settings: Any,
) -> ActionStep:
    return ActionStep(
        id=uuid4(),
        name=name,
        type=type_,
        order=order,
        config=StepSettings(input_fields=inputs, output_fields=outputs, **settings),
    )


def add_action(
    agent: AgentDefinition,
    name: str,
    steps: list[ActionStep],
    *,
    target_model: str = "Pet",
) -> ActionDefinition:
    action = ActionDefinition(
        id=uuid4(),
        agent_id=agent.id,
        name=name,
        target_model=target_model,
        steps=steps,
    )
    agent.actions.append(action)
    return action


def analyze_health(agent: AgentDefinition) -> ActionDefinition:
    """Two reasoning steps; the second reads what the first wrote."""

    return add_action(
        agent,
        "AnalyzeHealth",
        [
            step("Assess", ["name", "species", "age"], ["health_summary"], order=0),
            step("Score", ["health_summary"], ["health_score", "needs_vet"], order=1),
        ],
    )


def model_named(agent: AgentDefinition, name: str) -> DataModelSchema:
    model = agent.get_model(name)
    assert model is not None
    return model


def clinic_payload() -> AgentCreate:
    """The pet clinic agent as a creation payload."""
    return AgentCreate(
        name="Clinic",
        models=[
            DataModelCreate(**model.model_dump(exclude={"id", "agent_id"}))
            for model in pet_agent().models
        ],
    )
