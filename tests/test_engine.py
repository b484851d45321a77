from unittest.mock import MagicMock

import pytest

from core_deploy.engine import DeployState, ReconciliationEngine
from core_deploy.errors import ProviderError, StackConflict, ValidationError
from core_deploy.models import ChangeSet, OutcomeStatus, StackSummary

from .ros_fixtures import *

OLD_EVENT = make_event("old-1", "UPDATE_COMPLETE", create_time="2019-10-09T12:00:00")


@pytest.fixture
def prompt():
    return MagicMock(return_value=True)


@pytest.fixture
def engine(mock_provider, settings, display, prompt, sleep):
    return ReconciliationEngine(mock_provider, settings, display=display, prompt=prompt, sleep=sleep)


@pytest.fixture
def update_provider(mock_provider, existing_stack):
    """Provider for an update of an existing stack that completes on the first poll"""
    mock_provider.list_stacks.return_value = [StackSummary(StackId=STACK_ID, StackName=STACK_NAME)]
    mock_provider.get_stack.return_value = existing_stack
    mock_provider.create_change_set.return_value = CHANGE_SET_ID
    mock_provider.get_change_set.return_value = ChangeSet(
        ChangeSetId=CHANGE_SET_ID, StackId=STACK_ID, Status="CREATE_COMPLETE", Changes=CHANGES
    )
    mock_provider.list_stack_events.side_effect = [
        as_page(OLD_EVENT),
        as_page(make_event("root-1", "UPDATE_COMPLETE", create_time="2019-10-09T14:00:00"), OLD_EVENT),
    ]
    return mock_provider


def called(provider) -> list[str]:
    return [name for name, _, _ in provider.method_calls]


def test_update_confirmed(engine, update_provider, prompt, console_output):
    outcome = engine.deploy(STACK_NAME, TEMPLATE, parameter_override=PARAMETER_OVERRIDE)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert outcome.exit_code == 0
    assert outcome.stack_id == STACK_ID
    assert outcome.change_set_id == CHANGE_SET_ID
    assert [t.trigger_name for t in outcome.triggers] == ["http-test"]
    assert outcome.states == [
        str(DeployState.START),
        str(DeployState.LOOKED_UP),
        str(DeployState.PARAMS_MERGED),
        str(DeployState.CHANGESET_CREATING),
        str(DeployState.CHANGESET_READY),
        str(DeployState.AWAITING_CONFIRM),
        str(DeployState.EXECUTING),
        str(DeployState.POLLING),
        str(DeployState.SUCCEEDED),
    ]

    args = update_provider.create_change_set.call_args
    assert args.args[0] == STACK_ID
    assert args.args[3] == [("Desc", "ellison"), ("key", "value")]

    prompt.assert_called_once()
    calls = called(update_provider)
    # Event snapshot is taken before the change set is executed
    assert calls.index("list_stack_events") < calls.index("execute_change_set")
    update_provider.execute_change_set.assert_called_once_with(CHANGE_SET_ID)
    update_provider.delete_change_set.assert_not_called()
    update_provider.delete_stack.assert_not_called()

    output = console_output.getvalue()
    assert "RosDemoRosDemo (ALIYUN::FC::Function)" in output
    assert "cdn-trigger-id" in output


def test_assume_yes_skips_prompt(engine, update_provider, prompt):
    outcome = engine.deploy(STACK_NAME, TEMPLATE, assume_yes=True)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    prompt.assert_not_called()
    update_provider.execute_change_set.assert_called_once_with(CHANGE_SET_ID)


def test_update_declined(engine, update_provider, prompt):
    prompt.return_value = False

    outcome = engine.deploy(STACK_NAME, TEMPLATE)

    assert outcome.status == OutcomeStatus.ABORTED
    assert outcome.exit_code == 0
    assert outcome.states[-1] == str(DeployState.ABORTED)
    update_provider.delete_change_set.assert_called_once_with(CHANGE_SET_ID)
    update_provider.delete_stack.assert_not_called()
    update_provider.execute_change_set.assert_not_called()


def test_closed_input_declines(engine, update_provider, prompt):
    prompt.side_effect = EOFError

    outcome = engine.deploy(STACK_NAME, TEMPLATE)

    assert outcome.status == OutcomeStatus.ABORTED
    update_provider.delete_change_set.assert_called_once_with(CHANGE_SET_ID)


def test_create_new_stack(engine, mock_provider, prompt):
    mock_provider.list_stacks.return_value = []
    mock_provider.create_stack.return_value = STACK_ID
    mock_provider.list_stack_events.return_value = as_page(
        make_event("create-2", "CREATE_COMPLETE", create_time="2019-10-09T13:00:30"),
        make_event("create-1", "CREATE_IN_PROGRESS", create_time="2019-10-09T13:00:00"),
    )
    mock_provider.get_stack.return_value = Stack(StackId=STACK_ID, StackName=STACK_NAME, Outputs=STACK_OUTPUTS)

    outcome = engine.deploy(STACK_NAME, TEMPLATE)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert outcome.stack_id == STACK_ID
    assert outcome.change_set_id is None
    assert outcome.states == [
        str(DeployState.START),
        str(DeployState.LOOKED_UP),
        str(DeployState.CREATING_STACK),
        str(DeployState.POLLING),
        str(DeployState.SUCCEEDED),
    ]
    args = mock_provider.create_stack.call_args
    assert args.args[0] == STACK_NAME
    assert args.args[2] == [("Desc", "default"), ("key", "value")]
    mock_provider.create_change_set.assert_not_called()
    prompt.assert_not_called()


def test_change_set_failed(engine, update_provider, prompt):
    update_provider.get_change_set.return_value = ChangeSet(
        ChangeSetId=CHANGE_SET_ID, Status="CREATE_FAILED", StatusReason="Unknown resource type"
    )

    outcome = engine.deploy(STACK_NAME, TEMPLATE)

    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.exit_code == 1
    assert outcome.states[-1] == str(DeployState.CHANGESET_FAILED)
    assert "Unknown resource type" in outcome.reason
    assert outcome.stack_id == STACK_ID
    assert outcome.change_set_id == CHANGE_SET_ID
    prompt.assert_not_called()
    update_provider.execute_change_set.assert_not_called()


def test_no_changes_is_success(engine, update_provider, prompt):
    update_provider.get_change_set.return_value = ChangeSet(
        ChangeSetId=CHANGE_SET_ID, Status="CREATE_COMPLETE", Changes=[]
    )

    outcome = engine.deploy(STACK_NAME, TEMPLATE)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert str(DeployState.AWAITING_CONFIRM) not in outcome.states
    prompt.assert_not_called()
    update_provider.delete_change_set.assert_called_once_with(CHANGE_SET_ID)
    update_provider.execute_change_set.assert_not_called()


def test_conflict_fails_without_retry(engine, update_provider):
    update_provider.execute_change_set.side_effect = StackConflict(
        "ExecuteChangeSet", "StackLocked", "another operation is in progress", change_set_id=CHANGE_SET_ID
    )

    outcome = engine.deploy(STACK_NAME, TEMPLATE, assume_yes=True)

    assert outcome.status == OutcomeStatus.FAILED
    assert isinstance(outcome.error, StackConflict)
    assert outcome.error.stack_id == STACK_ID
    assert "StackLocked" in outcome.reason
    assert update_provider.execute_change_set.call_count == 1


def test_rollback_is_failure(engine, update_provider):
    update_provider.list_stack_events.side_effect = [
        as_page(OLD_EVENT),
        as_page(
            make_event("root-1", "UPDATE_FAILED", create_time="2019-10-09T14:00:00", reason="Function limit exceeded"),
            OLD_EVENT,
        ),
    ]

    outcome = engine.deploy(STACK_NAME, TEMPLATE, assume_yes=True)

    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.reason == "UPDATE_FAILED: Function limit exceeded"
    update_provider.get_template.assert_not_called()


@pytest.mark.parametrize(
    "stack_name,overrides",
    [
        ("1-starts-with-digit", None),
        ("", None),
        ("has space", None),
        (STACK_NAME, {"ALIYUN::Region": "cn-beijing"}),
    ],
)
def test_invalid_input_makes_no_provider_call(engine, mock_provider, stack_name, overrides):
    outcome = engine.deploy(stack_name, TEMPLATE, parameter_override=overrides)

    assert outcome.status == OutcomeStatus.FAILED
    assert mock_provider.method_calls == []


def test_invalid_template_makes_no_provider_call(engine, mock_provider):
    outcome = engine.deploy(STACK_NAME, {"Resources": {"broken": {"Properties": {}}}})

    assert outcome.status == OutcomeStatus.FAILED
    assert "Invalid template" in outcome.reason
    assert mock_provider.method_calls == []


def test_interrupted_while_polling(engine, update_provider, console_output):
    update_provider.list_stack_events.side_effect = [as_page(OLD_EVENT), KeyboardInterrupt]

    with pytest.raises(KeyboardInterrupt):
        engine.deploy(STACK_NAME, TEMPLATE, assume_yes=True)

    update_provider.execute_change_set.assert_called_once_with(CHANGE_SET_ID)
    assert "run deploy again" in console_output.getvalue()


def test_report_failure_keeps_success(engine, update_provider, console_output):
    update_provider.get_template.side_effect = ProviderError("GetTemplate", "InternalError", "try later")

    outcome = engine.deploy(STACK_NAME, TEMPLATE, assume_yes=True)

    assert outcome.status == OutcomeStatus.SUCCEEDED
    assert outcome.triggers == []
    assert "unable to report endpoints" in console_output.getvalue()


def test_abort_without_change_set_id_is_a_failed_deploy(engine, update_provider, prompt):
    prompt.return_value = False
    update_provider.create_change_set.return_value = ""
    update_provider.get_change_set.return_value = ChangeSet(ChangeSetId="", Status="CREATE_COMPLETE", Changes=CHANGES)

    outcome = engine.deploy(STACK_NAME, TEMPLATE)

    assert outcome.status == OutcomeStatus.FAILED
    assert isinstance(outcome.error, ValidationError)
    assert outcome.stack_id == STACK_ID
    update_provider.delete_change_set.assert_not_called()
