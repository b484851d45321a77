"""Stack event polling.

Each poll reads every page of the stack's events, keeps the ones whose id has
not been seen yet and handles them in ``CreateTime`` order.  Where a new event
sits on a page is not assumed, so paging stops only on a short page or once
``TotalCount`` events were read.
"""

from typing import Callable
import time

from pydantic import BaseModel

from .config import DeploySettings
from .display import Display
from .errors import PollTimeout
from .logging import get_logger
from .models import StackEvent
from .provider import ProviderClient

logger = get_logger(__name__)


class PollResult(BaseModel):
    """Terminal event observed for the root stack resource"""

    succeeded: bool
    event: StackEvent

    @property
    def reason(self) -> str | None:
        return self.event.status_reason


class EventPoller:

    def __init__(
        self,
        provider: ProviderClient,
        settings: DeploySettings | None = None,
        display: Display | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.settings = settings or DeploySettings()
        self.display = display or Display()
        self.sleep = sleep

    def _list_events(self, stack_id: str) -> list[StackEvent]:
        page_size = self.settings.event_page_size
        events: list[StackEvent] = []
        page_number = 1
        while True:
            page = self.provider.list_stack_events(stack_id, page_number, page_size)
            events.extend(page.events)

            if len(page.events) < page_size:
                return events
            if page.total_count is not None and len(events) >= page.total_count:
                return events
            page_number += 1

    def snapshot(self, stack_id: str) -> set[str]:
        """Ids of every event present before an operation is submitted"""
        return {event.event_id for event in self._list_events(stack_id)}

    def _new_events(self, stack_id: str, known: set[str]) -> list[StackEvent]:
        fresh = [event for event in self._list_events(stack_id) if event.event_id not in known]

        # Stable sort, so events sharing a timestamp keep their wire order
        return sorted(fresh, key=lambda e: e.create_time)

    def is_root_event(self, event: StackEvent, stack_name: str) -> bool:
        return event.resource_type == self.provider.root_stack_type and event.logical_resource_id == stack_name

    def wait_for_terminal(
        self,
        stack_id: str,
        stack_name: str,
        known: set[str] | None = None,
        max_attempts: int | None = None,
    ) -> PollResult:
        """Poll events until the root stack resource reaches a terminal status.

        Terminal looking events of nested resources are shown as progress only.

        :raises PollTimeout: after ``max_attempts`` polls without a terminal root event
        """
        known = set(known or ())
        if max_attempts is None:
            max_attempts = self.settings.event_max_attempts

        attempt = 0
        while True:
            attempt += 1
            for event in self._new_events(stack_id, known):
                known.add(event.event_id)
                self.display.event(event)
                logger.debug(
                    "Stack event",
                    stack_id=stack_id,
                    resource=event.logical_resource_id,
                    resource_type=event.resource_type,
                    status=event.status,
                )

                if not self.is_root_event(event, stack_name):
                    continue
                if event.is_complete():
                    logger.info("Stack operation complete", stack_id=stack_id, status=event.status)
                    return PollResult(succeeded=True, event=event)
                if event.is_failed():
                    logger.error(
                        "Stack operation failed",
                        stack_id=stack_id,
                        status=event.status,
                        reason=event.status_reason,
                    )
                    return PollResult(succeeded=False, event=event)

            if max_attempts is not None and attempt >= max_attempts:
                raise PollTimeout(
                    f"No terminal status for stack '{stack_name}' after {attempt} polls",
                    stack_id=stack_id,
                )

            self.sleep(self.settings.event_poll_interval)
