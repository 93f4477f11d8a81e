"""Checks applied to an action before it is saved."""

from __future__ import annotations

from ..models import StepType
from ..schemas.actions import ActionBase, ActionStepBase, ActionValidationResult
from ..schemas.agents import AgentDefinition
from ..schemas.fields import FieldType, ReferenceType
from .oauth import display_name, required_credentials


def validate_action(
    action: ActionBase,
    steps: list[ActionStepBase],
    agent: AgentDefinition,
) -> ActionValidationResult:
    """Report configuration errors and warnings for ``action`` on ``agent``."""

    errors: list[str] = []
    warnings: list[str] = []

    target = agent.get_model(action.target_model)
    if target is None:
        errors.append(f"Target model '{action.target_model}' does not exist")
        return ActionValidationResult(valid=False, errors=errors)

    names = [step.name for step in steps]
    for name in sorted({name for name in names if names.count(name) > 1}):
        warnings.append(f"Step name '{name}' is used more than once")

    produced: set[str] = set()
    for step in sorted(steps, key=lambda item: item.order):
        settings = step.config
        if not settings.output_fields:
            errors.append(f"Step '{step.name}' declares no output fields")

        for field_name in settings.output_fields:
            definition = target.get_field(field_name)
            if definition is None:
                warnings.append(
                    f"Step '{step.name}' outputs '{field_name}', which is not a field "
                    f"of '{target.name}'; it will be stored as text"
                )
            elif (
                step.type is StepType.IMAGE_GENERATION
                and definition.type is not FieldType.IMAGE_URL
            ):
                errors.append(
                    f"Image generation step '{step.name}' outputs '{field_name}', "
                    f"a {definition.type.value} field; expected an image_url field"
                )
            elif (
                definition.type is FieldType.REFERENCE
                and definition.reference_type is ReferenceType.TO_MANY
                and agent.get_model(definition.references_model or "") is None
            ):
                warnings.append(
                    f"Field '{field_name}' references unknown model "
                    f"'{definition.references_model}'"
                )

        for field_name in settings.input_fields:
            if target.get_field(field_name) is None and field_name not in produced:
                warnings.append(
                    f"Step '{step.name}' reads '{field_name}', "
                    f"which is not a field of '{target.name}'"
                )

        if step.type is StepType.CUSTOM:
            if not (settings.code or settings.deployment_url):
                errors.append(f"Custom step '{step.name}' needs code or a deployment URL")
            for key in required_credentials(step):
                warnings.append(
                    f"Step '{step.name}' requires a {display_name(key)} credential"
                )

        produced.update(settings.output_fields)

    return ActionValidationResult(valid=not errors, errors=errors, warnings=warnings)


__all__ = ["validate_action"]
