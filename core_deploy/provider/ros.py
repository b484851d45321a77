"""ROS provider: adapts an RPC style transport to :class:`ProviderClient`.

The transport is anything exposing ``request(action, params, options)`` and
returning the decoded response body, which is the shape of the ROS OpenAPI
client.  Signing and HTTP are the transport's business; this module owns the
wire format of every request and the translation of transport failures into
the engine's error taxonomy.
"""

from typing import Any, Callable, TypeVar
import json
import time

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from . import ProviderClient
from ..config import DeploySettings
from ..errors import ProviderError, StackConflict
from ..logging import get_logger
from ..models import ChangeSet, EventPage, Stack, StackSummary, Template
from ..parameters import serialize_parameters

logger = get_logger(__name__)

LIST_STACKS_PAGE_SIZE = 50

REQUEST_OPTIONS = {"method": "POST"}

INVALID_RESPONSE_CODE = "InvalidResponse"

T = TypeVar("T")

# Another operation holds the stack.  Retrying could race a legitimate change.
CONFLICT_ERROR_CODES = {
    "StackLocked",
    "StackBeingUpdated",
    "ChangeSetInProgress",
    "OperationConflict",
}

TRANSIENT_ERROR_CODES = {
    "NetworkError",
    "Throttling",
    "Throttling.User",
    "Throttling.Api",
    "ServiceUnavailable",
    "InternalError",
}


def _error_code(e: Exception) -> str | None:
    if isinstance(e, (ConnectionError, TimeoutError)):
        return "NetworkError"
    code = getattr(e, "code", None)
    if code is None and hasattr(e, "get_error_code"):
        code = e.get_error_code()
    return str(code) if code is not None else None


def _template_body(response: dict[str, Any]) -> dict[str, Any]:
    # GetTemplate returns the document JSON encoded
    body = response.get("TemplateBody") or {}
    if isinstance(body, str):
        body = json.loads(body)
    if not isinstance(body, dict):
        raise TypeError(f"TemplateBody is a {type(body).__name__}, not a mapping")
    return body


def _is_transient(e: BaseException) -> bool:
    return isinstance(e, ProviderError) and not isinstance(e, StackConflict) and e.code in TRANSIENT_ERROR_CODES


class RosProvider(ProviderClient):
    """Provider bound to one region of the ROS control plane"""

    def __init__(
        self,
        transport: Any,
        settings: DeploySettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.settings = settings or DeploySettings()
        self.sleep = sleep

    @property
    def region(self) -> str:
        return self.settings.region

    def _send(self, action: str, params: dict[str, Any], ids: dict[str, str | None]) -> dict[str, Any]:
        request = {"RegionId": self.region, **params}
        try:
            response = self.transport.request(action, request, REQUEST_OPTIONS)
        except Exception as e:
            code = _error_code(e)
            message = getattr(e, "message", None) or str(e)
            error_class = StackConflict if code in CONFLICT_ERROR_CODES else ProviderError
            logger.error("Provider call failed", action=action, code=code, error=message, **ids)
            raise error_class(action, code, message, **ids) from e
        if response is None:
            return {}
        if not isinstance(response, dict):
            logger.error("Unexpected provider response", action=action, response_type=type(response).__name__, **ids)
            raise ProviderError(
                action,
                INVALID_RESPONSE_CODE,
                f"Expected a mapping, got {type(response).__name__}",
                **ids,
            )
        return response

    def _decode(self, action: str, decode: Callable[[], T], **ids: str | None) -> T:
        """Build the result of ``action``; a malformed body becomes a ProviderError"""
        try:
            return decode()
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Unexpected provider response", action=action, error=str(e), **ids)
            raise ProviderError(action, INVALID_RESPONSE_CODE, f"Unexpected response: {e!r}", **ids) from e

    def _read(self, action: str, params: dict[str, Any], **ids: str | None) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.read_retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception(_is_transient),
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(self._send, action, params, ids)

    def _write(self, action: str, params: dict[str, Any], **ids: str | None) -> dict[str, Any]:
        return self._send(action, params, ids)

    def _template_params(self, template: Template, parameters: list[tuple[str, str]]) -> dict[str, Any]:
        return {
            "TemplateBody": json.dumps(template.to_body()),
            "DisableRollback": False,
            "TimeoutInMinutes": self.settings.stack_timeout_minutes,
            **serialize_parameters(parameters),
        }

    def list_stacks(self, stack_name: str) -> list[StackSummary]:
        stacks: list[StackSummary] = []
        page_number = 1
        while True:
            response = self._read(
                "ListStacks",
                {
                    "StackName.1": stack_name,
                    "PageSize": LIST_STACKS_PAGE_SIZE,
                    "PageNumber": page_number,
                    "ShowNestedStack": False,
                },
            )
            page = response.get("Stacks") or []
            stacks.extend(
                self._decode(
                    "ListStacks",
                    lambda: [StackSummary(**s) for s in page if s.get("StackName") == stack_name],
                )
            )

            total = response.get("TotalCount")
            seen = (page_number - 1) * LIST_STACKS_PAGE_SIZE + len(page)
            if stacks or len(page) < LIST_STACKS_PAGE_SIZE or (total is not None and seen >= total):
                return stacks
            page_number += 1

    def get_stack(self, stack_id: str) -> Stack:
        response = self._read("GetStack", {"StackId": stack_id}, stack_id=stack_id)
        return self._decode(
            "GetStack",
            lambda: Stack(**{**response, "StackId": response.get("StackId") or stack_id}),
            stack_id=stack_id,
        )

    def create_stack(self, stack_name: str, template: Template, parameters: list[tuple[str, str]]) -> str:
        response = self._write(
            "CreateStack",
            {"StackName": stack_name, **self._template_params(template, parameters)},
        )
        return self._decode("CreateStack", lambda: response["StackId"])

    def create_change_set(
        self,
        stack_id: str,
        change_set_name: str,
        template: Template,
        parameters: list[tuple[str, str]],
        change_set_type: str = "UPDATE",
    ) -> str:
        response = self._write(
            "CreateChangeSet",
            {
                "ChangeSetName": change_set_name,
                "StackId": stack_id,
                "ChangeSetType": change_set_type,
                "Description": self.settings.change_set_description,
                **self._template_params(template, parameters),
            },
            stack_id=stack_id,
        )
        return self._decode("CreateChangeSet", lambda: response["ChangeSetId"], stack_id=stack_id)

    def get_change_set(self, change_set_id: str) -> ChangeSet:
        response = self._read(
            "GetChangeSet",
            {"ChangeSetId": change_set_id, "ShowTemplate": True},
            change_set_id=change_set_id,
        )
        return self._decode(
            "GetChangeSet",
            lambda: ChangeSet(**{**response, "ChangeSetId": response.get("ChangeSetId") or change_set_id}),
            change_set_id=change_set_id,
        )

    def execute_change_set(self, change_set_id: str) -> None:
        self._write("ExecuteChangeSet", {"ChangeSetId": change_set_id}, change_set_id=change_set_id)

    def delete_change_set(self, change_set_id: str) -> None:
        self._write("DeleteChangeSet", {"ChangeSetId": change_set_id}, change_set_id=change_set_id)

    def delete_stack(self, stack_id: str) -> None:
        self._write("DeleteStack", {"StackId": stack_id}, stack_id=stack_id)

    def list_stack_events(self, stack_id: str, page_number: int = 1, page_size: int = 50) -> EventPage:
        response = self._read(
            "ListStackEvents",
            {"StackId": stack_id, "PageSize": page_size, "PageNumber": page_number},
            stack_id=stack_id,
        )
        return self._decode("ListStackEvents", lambda: EventPage(**response), stack_id=stack_id)

    def get_template(self, stack_id: str) -> dict[str, Any]:
        response = self._read("GetTemplate", {"StackId": stack_id}, stack_id=stack_id)
        return self._decode("GetTemplate", lambda: _template_body(response), stack_id=stack_id)
