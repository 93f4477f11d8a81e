"""Derive the output contract of a step from its declared output fields.

The contract is a dynamically created Pydantic model.  Its JSON schema is what
the LLM backend is asked to fill in, and the same model validates whatever the
backend returns before any value reaches the working record snapshot.

Field kinds map as follows:

* ``text`` / ``image_url`` to a strict string, ``number`` to a strict int or
  float, ``boolean`` to a strict bool, ``date`` to a ``YYYY-MM-DD`` string that
  must also be a real calendar date, ``enum`` to a ``Literal`` of its values and
  ``json`` to any JSON value.
* ``to_one`` references become the referenced record id (a string).
* ``to_many`` references become one nested object shaped like the referenced
  model; the record for it is created when the run commits.  Fields on the
  referenced model that point back at the origin model are left out, which is
  what stops mutually referencing models from recursing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)

from ..schemas.agents import AgentDefinition
from ..schemas.fields import DataModelSchema, FieldDefinition, FieldType, ReferenceType
from .exceptions import StepValidationError

logger = logging.getLogger(__name__)

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def _check_calendar_date(value: str) -> str:
    date.fromisoformat(value)
    return value


DateString = Annotated[StrictStr, Field(pattern=DATE_PATTERN), AfterValidator(_check_calendar_date)]
Number = Union[StrictInt, StrictFloat]

_SCALAR_TYPES: dict[FieldType, Any] = {
    FieldType.TEXT: StrictStr,
    FieldType.NUMBER: Number,
    FieldType.BOOLEAN: StrictBool,
    FieldType.DATE: DateString,
    FieldType.JSON: Any,
    FieldType.IMAGE_URL: StrictStr,
}

_CONTRACT_CONFIG = ConfigDict(extra="ignore", populate_by_name=False)


@dataclass(frozen=True)
class StepOutputContract:
    """Validator and JSON schema for the outputs of one step."""

    model: type[BaseModel]
    field_names: tuple[str, ...]
    # to_many output field -> referenced model name
    relationships: dict[str, str] = field(default_factory=dict)
    # output fields the target model does not declare
    unknown_fields: tuple[str, ...] = ()

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema(by_alias=True)

    def validate(self, payload: Any) -> dict[str, Any]:
        """Return the declared outputs from ``payload`` or raise ``StepValidationError``."""

        if not isinstance(payload, dict):
            raise StepValidationError(
                f"Step output must be an object, got {type(payload).__name__}"
            )
        try:
            parsed = self.model.model_validate(payload)
        except ValidationError as exc:
            raise StepValidationError(_describe_errors(exc)) from exc
        return parsed.model_dump(by_alias=True, mode="json")


def build_output_contract(
    output_fields: list[str],
    target_model: DataModelSchema,
    agent: AgentDefinition,
    *,
    name: str = "StepOutput",
) -> StepOutputContract:
    """Build the contract for ``output_fields`` of ``target_model``.

    Every declared output is required.  Output names missing from the target
    model fall back to strings and are reported in ``unknown_fields``.
    """

    definitions: dict[str, Any] = {}
    relationships: dict[str, str] = {}
    unknown: list[str] = []

    for index, field_name in enumerate(dict.fromkeys(output_fields)):
        definition = target_model.get_field(field_name)
        if definition is None:
            logger.warning(
                "Output field not declared on target model",
                extra={"field": field_name, "model": target_model.name},
            )
            unknown.append(field_name)
            annotation: Any = StrictStr
            description = field_name
        else:
            annotation = _output_annotation(definition, target_model, agent, relationships)
            description = definition.label
        definitions[f"field_{index}"] = (
            annotation,
            Field(..., alias=field_name, description=description),
        )

    model = create_model(_model_name(name), __config__=_CONTRACT_CONFIG, **definitions)
    return StepOutputContract(
        model=model,
        field_names=tuple(dict.fromkeys(output_fields)),
        relationships=relationships,
        unknown_fields=tuple(unknown),
    )


def _output_annotation(
    definition: FieldDefinition,
    origin: DataModelSchema,
    agent: AgentDefinition,
    relationships: dict[str, str],
) -> Any:
    if definition.type is FieldType.ENUM:
        return _enum_annotation(definition)
    if definition.type is not FieldType.REFERENCE:
        return _SCALAR_TYPES[definition.type]

    if definition.reference_type is ReferenceType.TO_ONE:
        return StrictStr

    referenced = agent.get_model(definition.references_model or "")
    if referenced is None:
        logger.warning(
            "Referenced model not found, falling back to string output",
            extra={"field": definition.name, "references_model": definition.references_model},
        )
        return StrictStr
    relationships[definition.name] = referenced.name
    return _nested_record_model(referenced, origin)


def _nested_record_model(referenced: DataModelSchema, origin: DataModelSchema) -> type[BaseModel]:
    definitions: dict[str, Any] = {}
    for index, definition in enumerate(referenced.fields):
        if definition.references(origin.name):
            continue
        if definition.type is FieldType.REFERENCE:
            annotation: Any = (
                list[StrictStr]
                if definition.reference_type is ReferenceType.TO_MANY
                else StrictStr
            )
        elif definition.type is FieldType.ENUM:
            annotation = _enum_annotation(definition)
        else:
            annotation = _SCALAR_TYPES[definition.type]

        if definition.required:
            field_info = Field(..., alias=definition.name, description=definition.label)
        else:
            annotation = Optional[annotation]
            field_info = Field(None, alias=definition.name, description=definition.label)
        definitions[f"field_{index}"] = (annotation, field_info)

    return create_model(
        _model_name(f"{referenced.name}Record"),
        __config__=_CONTRACT_CONFIG,
        **definitions,
    )


def _enum_annotation(definition: FieldDefinition) -> Any:
    values = tuple(definition.enum_values or ())
    if not values:
        return StrictStr
    return Literal[values]  # type: ignore[valid-type]


def _model_name(name: str) -> str:
    cleaned = re.sub(r"\W+", "_", name).strip("_")
    return cleaned or "StepOutput"


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Step output failed validation: " + "; ".join(parts)


__all__ = [
    "DATE_PATTERN",
    "StepOutputContract",
    "build_output_contract",
]
