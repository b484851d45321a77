"""The provider capability consumed by the deploy engine.

The engine never talks to the control plane directly.  Everything goes through a
:class:`ProviderClient` so the whole state machine can be exercised with a
substitute implementation.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..models import (
    ROOT_STACK_TYPE,
    ChangeSet,
    EventPage,
    Stack,
    StackSummary,
    Template,
)


class ProviderClient(ABC):
    """Abstract control plane.

    Read operations (``list_stacks``, ``get_stack``, ``get_change_set``,
    ``list_stack_events``, ``get_template``) are idempotent and implementations
    may retry them.  Mutating operations must never be retried.
    """

    root_stack_type: str = ROOT_STACK_TYPE

    @abstractmethod
    def list_stacks(self, stack_name: str) -> list[StackSummary]:
        """Return the stacks whose name matches ``stack_name`` exactly"""

    @abstractmethod
    def get_stack(self, stack_id: str) -> Stack: ...

    @abstractmethod
    def create_stack(
        self,
        stack_name: str,
        template: Template,
        parameters: list[tuple[str, str]],
    ) -> str:
        """Submit a stack creation and return the new stack id"""

    @abstractmethod
    def create_change_set(
        self,
        stack_id: str,
        change_set_name: str,
        template: Template,
        parameters: list[tuple[str, str]],
        change_set_type: str = "UPDATE",
    ) -> str:
        """Submit a change set and return its id"""

    @abstractmethod
    def get_change_set(self, change_set_id: str) -> ChangeSet: ...

    @abstractmethod
    def execute_change_set(self, change_set_id: str) -> None: ...

    @abstractmethod
    def delete_change_set(self, change_set_id: str) -> None: ...

    @abstractmethod
    def delete_stack(self, stack_id: str) -> None: ...

    @abstractmethod
    def list_stack_events(self, stack_id: str, page_number: int = 1, page_size: int = 50) -> EventPage: ...

    @abstractmethod
    def get_template(self, stack_id: str) -> dict[str, Any]:
        """Return the realized template document of a stack"""


__all__ = ["ProviderClient"]
