"""Operator confirmation before a change set is applied."""

from typing import Callable
import enum

from rich.prompt import Confirm

from .display import Display
from .errors import UserAborted
from .logging import get_logger

logger = get_logger(__name__)

CONFIRM_MESSAGE = "Please confirm to continue."


class Decision(enum.Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ConfirmationGate:
    """Decide whether a change set may be executed.

    The only point of a deploy that waits on the operator.  ``prompt`` receives
    the question and returns the answer; anything but ``True`` is a rejection.
    """

    def __init__(self, display: Display | None = None, prompt: Callable[[str], object] | None = None):
        self.display = display or Display()
        self.prompt = prompt or self._rich_prompt

    def _rich_prompt(self, message: str) -> bool:
        return Confirm.ask(message, default=False, console=self.display.console)

    def decide(self, assume_yes: bool, diff_summary: str) -> Decision:
        if assume_yes:
            logger.debug("Change set approved without prompting")
            return Decision.CONFIRMED

        self.display.diff(diff_summary)
        try:
            answer = self.prompt(CONFIRM_MESSAGE)
        except EOFError as e:
            raise UserAborted("No answer on standard input, declining the change") from e
        decision = Decision.CONFIRMED if answer is True else Decision.REJECTED

        logger.info("Operator decision", decision=decision.value)
        return decision
