"""Error taxonomy for the deploy engine.

Every error carries the last known stack and change set identifiers so an
operator can go and inspect the provider side state directly.
"""


class DeployError(Exception):
    """Base class for all deploy errors"""

    def __init__(
        self,
        message: str,
        stack_id: str | None = None,
        change_set_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.stack_id = stack_id
        self.change_set_id = change_set_id

    def context(self) -> dict:
        return {"stack_id": self.stack_id, "change_set_id": self.change_set_id}

    def __str__(self):
        ids = ", ".join(f"{k}={v}" for k, v in self.context().items() if v)
        return f"{self.message} ({ids})" if ids else self.message


class ValidationError(DeployError):
    """Malformed template or parameters, detected before any provider call"""


class ProviderError(DeployError):
    """A provider call failed (transport, auth or service error)"""

    def __init__(
        self,
        operation: str,
        code: str | None,
        message: str,
        stack_id: str | None = None,
        change_set_id: str | None = None,
    ):
        super().__init__(f"{operation} failed: [{code}] {message}", stack_id, change_set_id)
        self.operation = operation
        self.code = code


class StackConflict(ProviderError):
    """The provider reports another change in flight on the same stack.

    Never retried automatically.
    """


class ChangeSetFailed(DeployError):
    """The provider could not compute the change set"""

    def __init__(self, reason: str | None, stack_id: str | None = None, change_set_id: str | None = None):
        super().__init__(f"Change set failed: {reason or 'unknown reason'}", stack_id, change_set_id)
        self.reason = reason


class PollTimeout(DeployError):
    """No terminal status was observed within the polling bound"""


class UserAborted(DeployError):
    """The operator declined the change.  Not a failure."""
