"""Apply or discard changes on the provider.

All calls here mutate remote state and are issued exactly once.  A failure is
raised to the caller immediately with the ids involved.
"""

from .errors import ValidationError
from .logging import get_logger
from .models import Template
from .provider import ProviderClient

logger = get_logger(__name__)


class ChangeExecutor:

    def __init__(self, provider: ProviderClient):
        self.provider = provider

    def execute(self, change_set_id: str) -> None:
        """Trigger the change set.  Completion is only observable through stack events."""
        logger.info("Executing change set", change_set_id=change_set_id)
        self.provider.execute_change_set(change_set_id)

    def create_stack(self, stack_name: str, template: Template, parameters: list[tuple[str, str]]) -> str:
        """Submit a new stack.  Completion is only observable through stack events."""
        logger.info("Creating stack", stack_name=stack_name, parameters=[k for k, _ in parameters])
        stack_id = self.provider.create_stack(stack_name, template, parameters)
        logger.info("Stack creation initiated", stack_name=stack_name, stack_id=stack_id)
        return stack_id

    def abort(self, stack_id: str | None, change_set_id: str | None, stack_existed: bool) -> None:
        """Discard a pending change.

        When the stack already existed only the change set is deleted, the stack
        and everything it realized stay untouched.  When the stack was being
        created by this attempt the whole stack is deleted.
        """
        if stack_existed:
            if not change_set_id:
                raise ValidationError("A change set id is required to abort an update", stack_id=stack_id)
            logger.info("Deleting change set", change_set_id=change_set_id, stack_id=stack_id)
            self.provider.delete_change_set(change_set_id)
        else:
            if not stack_id:
                raise ValidationError("A stack id is required to abort a creation", change_set_id=change_set_id)
            logger.info("Deleting stack", stack_id=stack_id)
            self.provider.delete_stack(stack_id)
