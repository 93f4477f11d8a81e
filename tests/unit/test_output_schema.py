"""Tests for step output contracts (agent_actions/engine/output_schema.py)."""

import pytest

from agent_actions.engine import StepValidationError, build_output_contract
from agent_actions.schemas import AgentDefinition
from tests.helpers import model_named

pytestmark = pytest.mark.unit


def _contract(agent: AgentDefinition, *fields: str):
    return build_output_contract(list(fields), model_named(agent, "Pet"), agent)


class TestJsonSchema:
    """The schema sent to the backend is keyed by real field names."""

    def test_every_declared_output_is_required(self, agent: AgentDefinition) -> None:
        schema = _contract(agent, "health_summary", "health_score").json_schema()

        assert set(schema["properties"]) == {"health_summary", "health_score"}
        assert sorted(schema["required"]) == ["health_score", "health_summary"]

    def test_field_description_is_carried_over(self, agent: AgentDefinition) -> None:
        schema = _contract(agent, "health_summary").json_schema()

        assert schema["properties"]["health_summary"]["description"] == "Short health assessment"

    def test_enum_lists_allowed_values(self, agent: AgentDefinition) -> None:
        schema = _contract(agent, "species").json_schema()

        assert schema["properties"]["species"]["enum"] == ["dog", "cat"]

    def test_to_many_reference_nests_the_referenced_model(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "visits")
        schema = contract.json_schema()

        nested = schema["$defs"]["VisitRecord"]
        assert contract.relationships == {"visits": "Visit"}
        assert set(nested["properties"]) == {"notes", "date"}
        assert nested["required"] == ["notes"]

    def test_back_reference_is_excluded_from_nested_model(self, agent: AgentDefinition) -> None:
        schema = _contract(agent, "visits").json_schema()

        assert "pet" not in schema["$defs"]["VisitRecord"]["properties"]

    def test_unknown_output_falls_back_to_string(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "mystery")

        assert contract.unknown_fields == ("mystery",)
        assert contract.json_schema()["properties"]["mystery"]["type"] == "string"
        assert contract.json_schema()["required"] == ["mystery"]

    def test_unknown_output_is_still_required(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "mystery")

        assert contract.validate({"mystery": "clue"}) == {"mystery": "clue"}
        with pytest.raises(StepValidationError, match="mystery"):
            contract.validate({})

    def test_duplicate_outputs_collapse(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "age", "age")

        assert contract.field_names == ("age",)


class TestValidate:
    """Backend payloads are checked before they reach the record."""

    def test_returns_declared_fields_and_drops_extras(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "health_score", "needs_vet")

        result = contract.validate({"health_score": 7.5, "needs_vet": False, "chatter": "hi"})

        assert result == {"health_score": 7.5, "needs_vet": False}

    def test_missing_field_is_rejected(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "health_score", "needs_vet")

        with pytest.raises(StepValidationError, match="needs_vet"):
            contract.validate({"health_score": 3})

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("health_score", "7"),
            ("needs_vet", "yes"),
            ("health_summary", 12),
            ("species", "fish"),
            ("birthday", "05/01/2020"),
            ("birthday", "2021-02-30"),
        ],
    )
    def test_wrong_types_are_rejected(self, agent: AgentDefinition, field: str, value: object) -> None:
        contract = _contract(agent, field)

        with pytest.raises(StepValidationError):
            contract.validate({field: value})

    def test_valid_date_and_json_pass(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "birthday", "notes")

        result = contract.validate({"birthday": "2020-05-01", "notes": {"diet": ["kibble"]}})

        assert result == {"birthday": "2020-05-01", "notes": {"diet": ["kibble"]}}

    def test_to_one_reference_is_a_record_id_string(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "owner")

        assert contract.validate({"owner": "7b0f"}) == {"owner": "7b0f"}
        with pytest.raises(StepValidationError):
            contract.validate({"owner": {"name": "Ann"}})

    def test_to_many_reference_takes_one_nested_object(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "visits")

        result = contract.validate({"visits": {"notes": "Checkup", "pet": "ignored"}})

        assert result == {"visits": {"notes": "Checkup", "date": None}}

    def test_non_object_payload_is_rejected(self, agent: AgentDefinition) -> None:
        contract = _contract(agent, "age")

        with pytest.raises(StepValidationError, match="must be an object"):
            contract.validate(["age", 3])
