"""Parameter merging.

Reconciles the parameters declared by the template, the values realized on an
existing stack, and the caller's overrides into one ordered parameter set.
"""

from typing import Any, Mapping

from .errors import ValidationError
from .logging import get_logger
from .models import PSEUDO_PARAMETER_PREFIX, Stack, Template

logger = get_logger(__name__)


class ParameterMerger:
    """Merge template defaults, stack values and overrides.

    The result is a list of ``(key, value)`` pairs with unique keys, ordered as:

    1. the base parameters (the existing stack's, or the template defaults)
    2. template declared parameters missing from the base, in declaration order
    3. override keys declared nowhere, in the order given

    Overrides replace values in place, so the order only depends on the inputs.
    """

    def merge(
        self,
        template: Template,
        existing_stack: Stack | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> list[tuple[str, str]]:
        overrides = dict(overrides or {})
        self.validate_overrides(overrides)

        merged: dict[str, str] = {}

        if existing_stack is not None:
            for parameter in existing_stack.parameters:
                # Pseudo parameters are provider managed and refused on input
                if parameter.key.startswith(PSEUDO_PARAMETER_PREFIX):
                    continue
                merged[parameter.key] = parameter.value

        for key, value in template.parameter_defaults():
            merged.setdefault(key, value)

        unknown = [key for key in overrides if key not in merged and key not in template.parameters]
        if unknown:
            logger.warning(
                "Parameter overrides not declared by the template or stack",
                parameters=unknown,
                stack_id=existing_stack.stack_id if existing_stack else None,
            )

        for key, value in overrides.items():
            merged[key] = value

        return list(merged.items())

    def validate_overrides(self, overrides: dict[str, Any]) -> None:
        for key, value in overrides.items():
            if not isinstance(key, str) or not key:
                raise ValidationError(f"Invalid parameter name: {key!r}")
            if key.startswith(PSEUDO_PARAMETER_PREFIX):
                raise ValidationError(f"Parameter '{key}' is managed by the provider and cannot be overridden")
            if not isinstance(value, str):
                raise ValidationError(f"Parameter '{key}' must be a string, got {type(value).__name__}")


def serialize_parameters(parameters: list[tuple[str, str]]) -> dict[str, str]:
    """Positional wire form of a parameter set.

    >>> serialize_parameters([("Desc", "ellison"), ("key", "value")])
    {'Parameters.1.ParameterKey': 'Desc', 'Parameters.1.ParameterValue': 'ellison', 'Parameters.2.ParameterKey': 'key', 'Parameters.2.ParameterValue': 'value'}
    """
    wire: dict[str, str] = {}
    for index, (key, value) in enumerate(parameters, start=1):
        wire[f"Parameters.{index}.ParameterKey"] = key
        wire[f"Parameters.{index}.ParameterValue"] = value
    return wire
