"""Change set creation, readiness polling and diff rendering."""

from typing import Callable
import time
import uuid

from .config import DeploySettings
from .errors import ChangeSetFailed, PollTimeout
from .logging import get_logger
from .models import ChangeAction, ChangeSet, ChangeSetStatus, Stack, Template
from .provider import ProviderClient

logger = get_logger(__name__)

CHANGE_SET_TYPE_UPDATE = "UPDATE"


def render_diff(change_set: ChangeSet) -> str:
    """Human readable summary of a change set.

    Changes are grouped by action (Add, Modify, Remove).  Modified resources list
    the name of every changed field.
    """
    if not change_set.changes:
        return "No changes."

    lines: list[str] = []
    for action in ChangeAction:
        changes = [c for c in change_set.changes if c.action == action]
        if not changes:
            continue
        lines.append(f"{action.value}:")
        for change in changes:
            lines.append(f"  - {change.logical_resource_id} ({change.resource_type})")
            if action == ChangeAction.MODIFY:
                for name in change.target_field_names:
                    lines.append(f"      {name}")
    return "\n".join(lines)


class ChangeSetManager:
    """Create a change set against an existing stack and wait until it is ready"""

    def __init__(
        self,
        provider: ProviderClient,
        settings: DeploySettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.settings = settings or DeploySettings()
        self.sleep = sleep

    def generate_name(self) -> str:
        return f"{self.settings.change_set_prefix}-{uuid.uuid4()}"

    def create(
        self,
        stack: Stack | None,
        template: Template,
        parameters: list[tuple[str, str]],
    ) -> str | None:
        """Submit an UPDATE change set.

        Returns ``None`` when there is no stack: a new stack has nothing to diff
        against and is created directly.
        """
        if stack is None:
            logger.debug("No existing stack, skipping change set creation")
            return None

        change_set_name = self.generate_name()
        logger.info(
            "Creating change set",
            change_set_name=change_set_name,
            stack_id=stack.stack_id,
            parameters=[k for k, _ in parameters],
        )
        change_set_id = self.provider.create_change_set(
            stack.stack_id,
            change_set_name,
            template,
            parameters,
            change_set_type=CHANGE_SET_TYPE_UPDATE,
        )
        logger.info("Change set creation initiated", change_set_id=change_set_id, stack_id=stack.stack_id)
        return change_set_id

    def await_ready(
        self,
        change_set_id: str,
        stack_id: str | None = None,
        max_attempts: int | None = None,
    ) -> ChangeSet:
        """Poll the change set until it leaves CREATING.

        :raises ChangeSetFailed: the provider reported FAILED
        :raises PollTimeout: ``max_attempts`` polls went by without a final status
        """
        attempt = 0
        while True:
            attempt += 1
            change_set = self.provider.get_change_set(change_set_id)
            logger.debug(
                "Change set status",
                change_set_id=change_set_id,
                status=change_set.status.value,
                attempt=attempt,
            )

            if change_set.status == ChangeSetStatus.COMPLETE:
                logger.info(
                    "Change set ready",
                    change_set_id=change_set_id,
                    changes=len(change_set.changes),
                )
                return change_set

            if change_set.status == ChangeSetStatus.FAILED:
                logger.error(
                    "Change set creation failed",
                    change_set_id=change_set_id,
                    reason=change_set.status_reason,
                )
                raise ChangeSetFailed(
                    change_set.status_reason,
                    stack_id=change_set.stack_id or stack_id,
                    change_set_id=change_set_id,
                )

            if max_attempts is not None and attempt >= max_attempts:
                raise PollTimeout(
                    f"Change set still creating after {attempt} polls",
                    stack_id=stack_id,
                    change_set_id=change_set_id,
                )

            self.sleep(self.settings.change_set_poll_interval)

    render_diff = staticmethod(render_diff)
