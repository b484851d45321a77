"""Data model for the stack reconciliation engine.

Every model accepts both the provider's PascalCase field names (as they appear on
the wire) and the snake_case attribute names.
"""

from typing import Any
import enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

ROOT_STACK_TYPE = "ALIYUN::ROS::Stack"
SERVICE_TYPE = "ALIYUN::FC::Service"
FUNCTION_TYPE = "ALIYUN::FC::Function"
TRIGGER_TYPE = "ALIYUN::FC::Trigger"

PSEUDO_PARAMETER_PREFIX = "ALIYUN::"

STATUS_COMPLETE_SUFFIX = "_COMPLETE"
STATUS_FAILED_SUFFIX = "_FAILED"


class TemplateParameter(BaseModel):
    """A parameter declared by a template"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field("String", alias="Type")
    default: Any = Field(None, alias="Default")
    description: str | None = Field(None, alias="Description")


class TemplateResource(BaseModel):
    """A resource declared by a template"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(..., alias="Type")
    properties: dict[str, Any] = Field(default_factory=dict, alias="Properties")
    depends_on: str | list[str] | None = Field(None, alias="DependsOn")


class Template(BaseModel):
    """Desired-state document.

    Only ``Resources`` and ``Parameters`` are interpreted.  Any other top level key
    (``ROSTemplateFormatVersion``, ``Transform``, ``Outputs``...) is kept so the
    document can be sent back to the provider unchanged.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    resources: dict[str, TemplateResource] = Field(default_factory=dict, alias="Resources")
    parameters: dict[str, TemplateParameter] = Field(default_factory=dict, alias="Parameters")

    def parameter_defaults(self) -> list[tuple[str, str]]:
        """Declared parameters that carry a default, in declaration order"""
        return [
            (name, str(parameter.default))
            for name, parameter in self.parameters.items()
            if parameter.default is not None
        ]

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Parameter(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="ParameterKey")
    value: str = Field("", alias="ParameterValue")


class Output(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., alias="OutputKey")
    value: Any = Field(None, alias="OutputValue")
    description: str | None = Field(None, alias="Description")


class StackSummary(BaseModel):
    """Entry returned by ListStacks"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stack_id: str = Field(..., alias="StackId")
    stack_name: str = Field(..., alias="StackName")
    status: str | None = Field(None, alias="Status")


class Stack(BaseModel):
    """A previously deployed instance of a template"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    stack_id: str = Field(..., alias="StackId")
    stack_name: str = Field("", alias="StackName")
    status: str | None = Field(None, alias="Status")
    parameters: list[Parameter] = Field(default_factory=list, alias="Parameters")
    outputs: list[Output] = Field(default_factory=list, alias="Outputs")


class ChangeSetStatus(enum.Enum):
    CREATING = "CREATING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

    @classmethod
    def from_value(cls, value: str | None) -> "ChangeSetStatus":
        """Normalise the provider's status spelling.

        ``CREATE_PENDING`` and ``CREATE_IN_PROGRESS`` are still creating,
        ``CREATE_COMPLETE`` is complete and anything ending in ``FAILED`` failed.
        """
        if not value:
            return cls.CREATING
        value = value.upper()
        if value.endswith("FAILED") or value == "DELETE_COMPLETE":
            return cls.FAILED
        if value.endswith("COMPLETE"):
            return cls.COMPLETE
        return cls.CREATING


class ChangeAction(enum.Enum):
    ADD = "Add"
    MODIFY = "Modify"
    REMOVE = "Remove"


class ResourceChange(BaseModel):
    """One entry of a change set diff"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    logical_resource_id: str = Field("", alias="LogicalResourceId")
    resource_type: str = Field("", alias="ResourceType")
    action: ChangeAction = Field(ChangeAction.MODIFY, alias="Action")
    target_field_names: list[str] = Field(default_factory=list, alias="Details")

    @model_validator(mode="before")
    @classmethod
    def validate_model_before(cls, values: Any) -> Any:
        # The provider nests the change:  {"ResourceChange": {..., "Details": [{"Target": {"Name": ...}}]}}
        if not isinstance(values, dict):
            return values
        if "ResourceChange" in values:
            values = values["ResourceChange"] or {}
        values = dict(values)

        if "Details" in values:
            names = []
            for detail in values["Details"] or []:
                if isinstance(detail, str):
                    names.append(detail)
                elif isinstance(detail, dict):
                    name = detail.get("TargetFieldName") or (detail.get("Target") or {}).get("Name")
                    if name:
                        names.append(name)
            values["Details"] = names

        if not values.get("Action"):
            values.pop("Action", None)
        return values


class ChangeSet(BaseModel):
    """A proposed, not yet applied, transition of a stack"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    change_set_id: str = Field(..., alias="ChangeSetId")
    stack_id: str | None = Field(None, alias="StackId")
    status: ChangeSetStatus = Field(ChangeSetStatus.CREATING, alias="Status")
    status_reason: str | None = Field(None, alias="StatusReason")
    execution_status: str | None = Field(None, alias="ExecutionStatus")
    changes: list[ResourceChange] = Field(default_factory=list, alias="Changes")

    @model_validator(mode="before")
    @classmethod
    def validate_model_before(cls, values: Any) -> Any:
        if isinstance(values, dict):
            values = dict(values)
            status = values.get("Status", values.get("status"))
            if not isinstance(status, ChangeSetStatus):
                values.pop("status", None)
                values["Status"] = ChangeSetStatus.from_value(status)
            if values.get("Changes") is None:
                values.pop("Changes", None)
        return values


class StackEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_id: str = Field(..., alias="EventId")
    stack_id: str | None = Field(None, alias="StackId")
    stack_name: str | None = Field(None, alias="StackName")
    logical_resource_id: str = Field("", alias="LogicalResourceId")
    physical_resource_id: str | None = Field(None, alias="PhysicalResourceId")
    resource_type: str = Field("", alias="ResourceType")
    status: str = Field("", alias="Status")
    status_reason: str | None = Field(None, alias="StatusReason")
    create_time: str = Field("", alias="CreateTime")

    def is_complete(self) -> bool:
        return self.status.endswith(STATUS_COMPLETE_SUFFIX)

    def is_failed(self) -> bool:
        return self.status.endswith(STATUS_FAILED_SUFFIX)


class EventPage(BaseModel):
    """One page of ListStackEvents"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page_number: int = Field(1, alias="PageNumber")
    page_size: int = Field(50, alias="PageSize")
    total_count: int | None = Field(None, alias="TotalCount")
    events: list[StackEvent] = Field(default_factory=list, alias="Events")


class Trigger(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    service_name: str = Field(..., alias="ServiceName")
    function_name: str = Field(..., alias="FunctionName")
    trigger_name: str = Field(..., alias="TriggerName")
    trigger_type: str = Field(..., alias="TriggerType")
    trigger_config: dict[str, Any] = Field(default_factory=dict, alias="TriggerConfig")


class OutcomeStatus(enum.Enum):
    SUCCEEDED = "Succeeded"
    ABORTED = "Aborted"
    FAILED = "Failed"

    def __str__(self):
        return self.value


class DeployOutcome(BaseModel):
    """Terminal result of one deploy invocation"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: OutcomeStatus
    reason: str | None = None
    stack_id: str | None = None
    change_set_id: str | None = None
    error: Exception | None = None
    triggers: list[Trigger] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list, description="States visited, in order")

    @classmethod
    def succeeded(cls, **kwargs) -> "DeployOutcome":
        return cls(status=OutcomeStatus.SUCCEEDED, **kwargs)

    @classmethod
    def aborted(cls, **kwargs) -> "DeployOutcome":
        return cls(status=OutcomeStatus.ABORTED, **kwargs)

    @classmethod
    def failed(cls, reason: str, **kwargs) -> "DeployOutcome":
        return cls(status=OutcomeStatus.FAILED, reason=reason, **kwargs)

    @property
    def exit_code(self) -> int:
        return 1 if self.status == OutcomeStatus.FAILED else 0
