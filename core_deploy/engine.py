"""Stack reconciliation engine.

Drives one deploy through an explicit state machine::

    START -> LOOKED_UP -> CREATING_STACK -----------------------------> POLLING
                       -> PARAMS_MERGED -> CHANGESET_CREATING -> CHANGESET_READY
                                                              -> CHANGESET_FAILED
          CHANGESET_READY -> AWAITING_CONFIRM -> EXECUTING -> POLLING
                                              -> ABORTED
          POLLING -> SUCCEEDED | FAILED

Every run starts with a fresh lookup, so re-running after an interruption simply
diffs against whatever state the provider reached.
"""

from typing import Any, Callable, Mapping
import enum
import re
import time

from pydantic import ValidationError as PydanticValidationError

from .changeset import ChangeSetManager, render_diff
from .config import DeploySettings
from .confirm import ConfirmationGate, Decision
from .display import Display
from .errors import ChangeSetFailed, DeployError, UserAborted, ValidationError
from .events import EventPoller, PollResult
from .executor import ChangeExecutor
from .logging import get_logger
from .models import ChangeSet, DeployOutcome, Stack, Template, Trigger
from .parameters import ParameterMerger
from .provider import ProviderClient
from .triggers import TriggerReporter

logger = get_logger(__name__)

STACK_NAME_PATTERN = re.compile(r"^[a-zA-Z][-_a-zA-Z0-9]{0,254}$")


class DeployState(enum.Enum):
    START = "START"
    LOOKED_UP = "LOOKED_UP"
    CREATING_STACK = "CREATING_STACK"
    PARAMS_MERGED = "PARAMS_MERGED"
    CHANGESET_CREATING = "CHANGESET_CREATING"
    CHANGESET_READY = "CHANGESET_READY"
    CHANGESET_FAILED = "CHANGESET_FAILED"
    AWAITING_CONFIRM = "AWAITING_CONFIRM"
    EXECUTING = "EXECUTING"
    ABORTED = "ABORTED"
    POLLING = "POLLING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    def __str__(self):
        return self.value


TERMINAL_STATES = {
    DeployState.CHANGESET_FAILED,
    DeployState.ABORTED,
    DeployState.SUCCEEDED,
    DeployState.FAILED,
}


class DeployRun:
    """Mutable record of one deploy invocation"""

    def __init__(
        self,
        stack_name: str,
        template: Template,
        assume_yes: bool,
        overrides: dict[str, Any],
    ):
        self.stack_name = stack_name
        self.template = template
        self.assume_yes = assume_yes
        self.overrides = overrides

        self.state = DeployState.START
        self.history: list[DeployState] = [DeployState.START]

        self.stack: Stack | None = None
        self.stack_id: str | None = None
        self.parameters: list[tuple[str, str]] = []
        self.change_set_id: str | None = None
        self.change_set: ChangeSet | None = None
        self.diff: str = ""
        self.known_events: set[str] = set()
        self.poll_result: PollResult | None = None
        self.no_changes = False
        self.error: DeployError | None = None

    @property
    def stack_existed(self) -> bool:
        return self.stack is not None

    def advance(self, state: DeployState) -> None:
        logger.debug("Deploy state", stack_name=self.stack_name, previous=str(self.state), state=str(state))
        self.state = state
        self.history.append(state)


def load_template(template: Template | Mapping[str, Any]) -> Template:
    """Accept a parsed template document or a :class:`Template`"""
    if isinstance(template, Template):
        return template
    if not isinstance(template, Mapping):
        raise ValidationError(f"Template must be a mapping, got {type(template).__name__}")
    try:
        return Template(**template)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid template: {e}") from e


class ReconciliationEngine:
    """Reconcile a named stack with a desired template"""

    def __init__(
        self,
        provider: ProviderClient,
        settings: DeploySettings | None = None,
        display: Display | None = None,
        prompt: Callable[[str], object] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.settings = settings or DeploySettings()
        self.display = display or Display()

        self.merger = ParameterMerger()
        self.change_sets = ChangeSetManager(provider, self.settings, sleep=sleep)
        self.gate = ConfirmationGate(self.display, prompt=prompt)
        self.executor = ChangeExecutor(provider)
        self.poller = EventPoller(provider, self.settings, self.display, sleep=sleep)
        self.reporter = TriggerReporter(provider, self.display)

        self._handlers: dict[DeployState, Callable[[DeployRun], DeployState]] = {
            DeployState.START: self._lookup,
            DeployState.LOOKED_UP: self._merge_parameters,
            DeployState.CREATING_STACK: self._create_stack,
            DeployState.PARAMS_MERGED: self._create_change_set,
            DeployState.CHANGESET_CREATING: self._await_change_set,
            DeployState.CHANGESET_READY: self._render_diff,
            DeployState.AWAITING_CONFIRM: self._confirm,
            DeployState.EXECUTING: self._execute,
            DeployState.POLLING: self._poll,
        }

    def deploy(
        self,
        stack_name: str,
        template: Template | Mapping[str, Any],
        assume_yes: bool = False,
        parameter_override: Mapping[str, Any] | None = None,
    ) -> DeployOutcome:
        """Run a deploy to one of its terminal outcomes.

        Expected branches (operator decline, provider errors, failed change sets)
        come back as a :class:`DeployOutcome`; only interruption propagates.
        """
        try:
            run = DeployRun(
                stack_name,
                load_template(template),
                assume_yes,
                dict(parameter_override or {}),
            )
            self._validate(run)
        except ValidationError as e:
            logger.error("Deploy input rejected", stack_name=stack_name, error=str(e))
            self.display.error(str(e))
            return DeployOutcome.failed(str(e), error=e, states=[str(DeployState.START), str(DeployState.FAILED)])

        logger.info("Deploy started", stack_name=stack_name, assume_yes=assume_yes)

        while not run.state.is_terminal():
            handler = self._handlers[run.state]
            try:
                next_state = handler(run)
            except KeyboardInterrupt:
                self._interrupted(run)
                raise
            except DeployError as e:
                e.stack_id = e.stack_id or run.stack_id
                e.change_set_id = e.change_set_id or run.change_set_id
                run.error = e
                if isinstance(e, ChangeSetFailed):
                    next_state = DeployState.CHANGESET_FAILED
                else:
                    next_state = DeployState.FAILED
            run.advance(next_state)

        return self._finish(run)

    def _validate(self, run: DeployRun) -> None:
        if not STACK_NAME_PATTERN.match(run.stack_name or ""):
            raise ValidationError(f"Invalid stack name: '{run.stack_name}'")
        self.merger.validate_overrides(run.overrides)

    def _lookup(self, run: DeployRun) -> DeployState:
        summaries = self.provider.list_stacks(run.stack_name)
        if summaries:
            if len(summaries) > 1:
                logger.warning("More than one stack matches", stack_name=run.stack_name, count=len(summaries))
            run.stack = self.provider.get_stack(summaries[0].stack_id)
            run.stack_id = run.stack.stack_id
            logger.info("Found existing stack", stack_name=run.stack_name, stack_id=run.stack_id)
        else:
            logger.info("Stack does not exist", stack_name=run.stack_name)
        return DeployState.LOOKED_UP

    def _merge_parameters(self, run: DeployRun) -> DeployState:
        run.parameters = self.merger.merge(run.template, run.stack, run.overrides)
        if not run.stack_existed:
            return DeployState.CREATING_STACK
        return DeployState.PARAMS_MERGED

    def _create_stack(self, run: DeployRun) -> DeployState:
        self.display.info(f"Creating stack [bold]{run.stack_name}[/bold]...")
        run.stack_id = self.executor.create_stack(run.stack_name, run.template, run.parameters)
        run.known_events = set()
        return DeployState.POLLING

    def _create_change_set(self, run: DeployRun) -> DeployState:
        run.change_set_id = self.change_sets.create(run.stack, run.template, run.parameters)
        return DeployState.CHANGESET_CREATING

    def _await_change_set(self, run: DeployRun) -> DeployState:
        run.change_set = self.change_sets.await_ready(run.change_set_id, stack_id=run.stack_id)
        return DeployState.CHANGESET_READY

    def _render_diff(self, run: DeployRun) -> DeployState:
        if not run.change_set.changes:
            # Nothing to apply; the change set is single use so discard it
            self.display.info(f"Stack [bold]{run.stack_name}[/bold] is up to date, no changes to apply.")
            self.executor.abort(run.stack_id, run.change_set_id, stack_existed=True)
            run.no_changes = True
            return DeployState.SUCCEEDED

        run.diff = render_diff(run.change_set)
        return DeployState.AWAITING_CONFIRM

    def _confirm(self, run: DeployRun) -> DeployState:
        try:
            decision = self.gate.decide(run.assume_yes, run.diff)
        except UserAborted as e:
            logger.info("Change declined", reason=e.message)
            decision = Decision.REJECTED

        if decision == Decision.CONFIRMED:
            return DeployState.EXECUTING

        self.executor.abort(run.stack_id, run.change_set_id, stack_existed=run.stack_existed)
        return DeployState.ABORTED

    def _execute(self, run: DeployRun) -> DeployState:
        run.known_events = self.poller.snapshot(run.stack_id)
        self.executor.execute(run.change_set_id)
        return DeployState.POLLING

    def _poll(self, run: DeployRun) -> DeployState:
        run.poll_result = self.poller.wait_for_terminal(run.stack_id, run.stack_name, known=run.known_events)
        if run.poll_result.succeeded:
            return DeployState.SUCCEEDED
        return DeployState.FAILED

    def _interrupted(self, run: DeployRun) -> None:
        logger.warning("Deploy interrupted", state=str(run.state), stack_id=run.stack_id, change_set_id=run.change_set_id)
        if run.state == DeployState.POLLING:
            self.display.warning(
                "Stopped watching the stack. The provider keeps applying the submitted change; "
                "run deploy again to diff against the latest state."
            )

    def _report(self, run: DeployRun) -> list[Trigger]:
        try:
            triggers = self.reporter.report(run.stack_id)
            self.display.outputs(self.provider.get_stack(run.stack_id).outputs)
        except DeployError as e:
            logger.warning("Unable to report deployed endpoints", error=str(e), **e.context())
            self.display.warning(f"Deployed, but unable to report endpoints: {e}")
            return []
        return triggers

    def _finish(self, run: DeployRun) -> DeployOutcome:
        ids = {"stack_id": run.stack_id, "change_set_id": run.change_set_id}
        states = [str(s) for s in run.history]

        if run.state == DeployState.SUCCEEDED:
            triggers = self._report(run)
            if not run.no_changes:
                self.display.success(f"Stack {run.stack_name} deployed.")
            logger.info("Deploy succeeded", stack_name=run.stack_name, **ids)
            return DeployOutcome.succeeded(triggers=triggers, states=states, **ids)

        if run.state == DeployState.ABORTED:
            self.display.info("Deploy cancelled, the pending change set was discarded.")
            logger.info("Deploy aborted", stack_name=run.stack_name, **ids)
            return DeployOutcome.aborted(reason="Declined by operator", states=states, **ids)

        if run.error is not None:
            reason = str(run.error)
        else:
            reason = f"{run.poll_result.event.status}: {run.poll_result.reason or 'no reason given'}"
        self.display.error(f"Deploy of {run.stack_name} failed: {reason}")
        logger.error("Deploy failed", stack_name=run.stack_name, reason=reason, **ids)
        return DeployOutcome.failed(reason, error=run.error, states=states, **ids)
