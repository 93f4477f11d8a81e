"""Assemble the inputs a step sees from the working record snapshot."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping
from uuid import UUID

from ..schemas.agents import AgentDefinition
from ..schemas.fields import DataModelSchema, FieldType, ReferenceType
from ..schemas.records import RecordSchema

logger = logging.getLogger(__name__)

RecordResolver = Callable[[UUID], Awaitable[RecordSchema | None]]


@dataclass(frozen=True)
class InputContext:
    """Structured inputs plus the rendered context block for AI-backed steps."""

    values: dict[str, Any] = field(default_factory=dict)
    lines: tuple[str, ...] = ()
    referenced: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


async def build_input_context(
    input_fields: list[str],
    snapshot: Mapping[str, Any],
    target_model: DataModelSchema,
    agent: AgentDefinition,
    resolve_record: RecordResolver | None = None,
) -> InputContext:
    """Describe each input field, in declared order, for the step about to run.

    Each line reads ``name (type): value``.  Reference fields add their
    cardinality and target model, and a ``to_one`` reference whose record can
    be resolved also carries that record's data.  Inputs missing from the
    target model are passed through and marked as undeclared.
    """

    values: dict[str, Any] = {}
    lines: list[str] = []
    referenced: dict[str, dict[str, Any]] = {}

    for name in dict.fromkeys(input_fields):
        value = snapshot.get(name)
        values[name] = value
        definition = target_model.get_field(name)
        if definition is None:
            lines.append(f"{name}: {render_value(value)} (field definition not found)")
            continue

        descriptor = definition.type.value
        if definition.type is FieldType.REFERENCE and definition.reference_type is not None:
            descriptor += f" {definition.reference_type.value} → {definition.references_model}"
            if definition.reference_type is ReferenceType.TO_ONE and resolve_record is not None:
                data = await _resolve_reference(
                    value, definition.references_model or "", agent, resolve_record
                )
                if data is not None:
                    referenced[name] = data
                    descriptor += f" - Referenced data: {json.dumps(data, default=str, indent=2)}"
        lines.append(f"{name} ({descriptor}): {render_value(value)}")

    return InputContext(values=values, lines=tuple(lines), referenced=referenced)


async def _resolve_reference(
    value: Any,
    model_name: str,
    agent: AgentDefinition,
    resolve_record: RecordResolver,
) -> dict[str, Any] | None:
    if not value:
        return None
    try:
        record_id = value if isinstance(value, UUID) else UUID(str(value))
    except ValueError:
        logger.warning("Reference value is not a record id", extra={"value": str(value)})
        return None

    record = await resolve_record(record_id)
    model = agent.get_model(model_name)
    if record is None or record.is_deleted or model is None or record.model_id != model.id:
        return None
    return dict(record.data)


def render_value(value: Any) -> str:
    """Render a record value for inclusion in a prompt."""

    if value is None:
        return "(empty)"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


__all__ = [
    "InputContext",
    "RecordResolver",
    "build_input_context",
    "render_value",
]
