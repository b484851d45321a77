"""Report the HTTP endpoints of a freshly deployed stack."""

from typing import Any

from .display import Display
from .logging import get_logger
from .models import TRIGGER_TYPE, Trigger
from .provider import ProviderClient

logger = get_logger(__name__)

HTTP_TRIGGER_TYPE = "http"


def find_http_triggers(template: dict[str, Any]) -> list[Trigger]:
    """HTTP triggers declared in a realized template document.

    The realized template is whatever the provider hands back, so resources that
    are not well formed are skipped rather than rejected.
    """
    triggers = []
    for logical_id, resource in (template.get("Resources") or {}).items():
        if not isinstance(resource, dict) or resource.get("Type") != TRIGGER_TYPE:
            continue
        properties = resource.get("Properties") or {}
        if str(properties.get("TriggerType", "")).lower() != HTTP_TRIGGER_TYPE:
            continue
        triggers.append(
            Trigger(
                ServiceName=properties.get("ServiceName", ""),
                FunctionName=properties.get("FunctionName", ""),
                TriggerName=properties.get("TriggerName") or logical_id,
                TriggerType=properties["TriggerType"],
                TriggerConfig=properties.get("TriggerConfig") or {},
            )
        )
    return triggers


class TriggerReporter:

    def __init__(self, provider: ProviderClient, display: Display | None = None):
        self.provider = provider
        self.display = display or Display()

    def report(self, stack_id: str) -> list[Trigger]:
        """Show every HTTP trigger of the realized template of ``stack_id``"""
        triggers = find_http_triggers(self.provider.get_template(stack_id))

        logger.info("Reporting HTTP triggers", stack_id=stack_id, count=len(triggers))
        for trigger in triggers:
            self.display.trigger(trigger)
        return triggers
