import pytest

from core_deploy.errors import PollTimeout
from core_deploy.events import EventPoller
from core_deploy.models import EventPage

from .ros_fixtures import *


class EventFeed:
    """Stack event history served in pages, newest first unless ``ascending``.

    Every call to ``tick`` publishes the next batch of events.
    """

    def __init__(self, history: list[dict], batches: list[list[dict]], ascending: bool = False):
        self.ascending = ascending
        self.events = list(history) if ascending else list(reversed(history))
        self.batches = list(batches)
        self.calls: list[tuple[int, int]] = []

    def tick(self):
        if self.batches:
            for event in self.batches.pop(0):
                if self.ascending:
                    self.events.append(event)
                else:
                    self.events.insert(0, event)

    def list_stack_events(self, stack_id, page_number=1, page_size=50):
        self.calls.append((page_number, page_size))
        start = (page_number - 1) * page_size
        return EventPage(
            PageNumber=page_number,
            PageSize=page_size,
            TotalCount=len(self.events),
            Events=self.events[start : start + page_size],
        )


@pytest.fixture
def history():
    return [
        make_event("old-1", "CREATE_IN_PROGRESS", create_time="2019-10-09T13:00:00"),
        make_event("old-2", "CREATE_COMPLETE", create_time="2019-10-09T13:01:00"),
    ]


def poller_for(feed: EventFeed, mock_provider, settings, display, sleep):
    mock_provider.list_stack_events.side_effect = feed.list_stack_events
    sleep.side_effect = lambda _: feed.tick()
    return EventPoller(mock_provider, settings, display, sleep=sleep)


def test_snapshot(mock_provider, settings, display, sleep, history):
    feed = EventFeed(history, [])
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    assert poller.snapshot(STACK_ID) == {"old-1", "old-2"}
    assert feed.calls == [(1, settings.event_page_size)]


def test_terminates_on_root_event_only(mock_provider, settings, display, console_output, sleep, history):
    feed = EventFeed(
        history,
        [
            [make_event("svc-1", "UPDATE_IN_PROGRESS", "cdn-test-service", SERVICE_TYPE, "2019-10-09T14:00:00")],
            [
                make_event("svc-2", "UPDATE_COMPLETE", "cdn-test-service", SERVICE_TYPE, "2019-10-09T14:00:05"),
                make_event("root-1", "UPDATE_COMPLETE", create_time="2019-10-09T14:00:06"),
            ],
        ],
    )
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    result = poller.wait_for_terminal(STACK_ID, STACK_NAME, known={"old-1", "old-2"})

    assert result.succeeded
    assert result.event.event_id == "root-1"
    assert sleep.call_count == 2

    output = console_output.getvalue()
    assert "old-2" not in output
    # Nested completion is progress, shown before the root event
    assert output.index("cdn-test-service") < output.index(STACK_NAME)


def test_root_failure(mock_provider, settings, display, sleep, history):
    feed = EventFeed(
        history,
        [
            [
                make_event(
                    "fn-1",
                    "UPDATE_FAILED",
                    "cdn-test-function",
                    FUNCTION_TYPE,
                    "2019-10-09T14:00:01",
                    reason="Runtime not supported",
                ),
                make_event(
                    "root-1",
                    "UPDATE_FAILED",
                    create_time="2019-10-09T14:00:02",
                    reason="Resource cdn-test-function failed",
                ),
            ]
        ],
    )
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    result = poller.wait_for_terminal(STACK_ID, STACK_NAME, known={"old-1", "old-2"})

    assert not result.succeeded
    assert result.reason == "Resource cdn-test-function failed"


def test_events_across_pages_are_seen_once_in_order(mock_provider, settings, display, console_output, sleep, history):
    settings.event_page_size = 2
    burst = [
        make_event(f"fn-{i}", "UPDATE_IN_PROGRESS", f"resource-{i}", FUNCTION_TYPE, f"2019-10-09T14:00:0{i}")
        for i in range(1, 6)
    ]
    feed = EventFeed(history, [burst, [make_event("root-1", "UPDATE_COMPLETE", create_time="2019-10-09T14:01:00")]])
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    known = poller.snapshot(STACK_ID)
    feed.tick()
    result = poller.wait_for_terminal(STACK_ID, STACK_NAME, known=known)

    assert result.succeeded
    output = console_output.getvalue()
    for i in range(1, 6):
        assert output.count(f"resource-{i}") == 1
    positions = [output.index(f"resource-{i}") for i in range(1, 6)]
    assert positions == sorted(positions)


def test_ignores_other_stack_names(mock_provider, settings, display, sleep, history):
    feed = EventFeed(
        history,
        [[make_event("nested-1", "UPDATE_COMPLETE", "nested-stack", create_time="2019-10-09T14:00:00")]],
    )
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    with pytest.raises(PollTimeout) as e:
        poller.wait_for_terminal(STACK_ID, STACK_NAME, known={"old-1", "old-2"}, max_attempts=3)

    assert e.value.stack_id == STACK_ID


def test_max_attempts_from_settings(mock_provider, settings, display, sleep, history):
    settings.event_max_attempts = 2
    feed = EventFeed(history, [])
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    with pytest.raises(PollTimeout):
        poller.wait_for_terminal(STACK_ID, STACK_NAME, known={"old-1", "old-2"})

    assert sleep.call_count == 1


def test_first_poll_of_new_stack(mock_provider, settings, display, sleep):
    feed = EventFeed(
        [
            make_event("create-1", "CREATE_IN_PROGRESS", create_time="2019-10-09T13:00:00"),
            make_event("create-2", "CREATE_COMPLETE", create_time="2019-10-09T13:00:30"),
        ],
        [],
    )
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    result = poller.wait_for_terminal(STACK_ID, STACK_NAME)

    assert result.event.event_id == "create-2"
    sleep.assert_not_called()


def test_ascending_page_with_known_event_first(mock_provider, settings, display, sleep, history):
    feed = EventFeed(
        history,
        [
            [
                make_event("fn-1", "UPDATE_COMPLETE", "cdn-test-function", FUNCTION_TYPE, "2019-10-09T14:00:01"),
                make_event("root-1", "UPDATE_COMPLETE", create_time="2019-10-09T14:00:02"),
            ]
        ],
        ascending=True,
    )
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    known = poller.snapshot(STACK_ID)
    feed.tick()
    result = poller.wait_for_terminal(STACK_ID, STACK_NAME, known=known, max_attempts=5)

    assert result.succeeded
    assert result.event.event_id == "root-1"
    sleep.assert_not_called()


def test_ascending_pages_ignore_previous_deploy(mock_provider, settings, display, console_output, sleep):
    settings.event_page_size = 2
    previous = [
        make_event("create-1", "CREATE_IN_PROGRESS", create_time="2019-10-09T13:00:00"),
        make_event("create-2", "CREATE_COMPLETE", create_time="2019-10-09T13:00:30"),
        make_event("update-1", "UPDATE_IN_PROGRESS", create_time="2019-10-09T13:10:00"),
        make_event("update-2", "UPDATE_COMPLETE", create_time="2019-10-09T13:10:30"),
    ]
    feed = EventFeed(
        previous,
        [
            [make_event("fn-1", "UPDATE_IN_PROGRESS", "cdn-test-function", FUNCTION_TYPE, "2019-10-09T14:00:00")],
            [make_event("root-1", "UPDATE_FAILED", create_time="2019-10-09T14:00:10", reason="Quota exceeded")],
        ],
        ascending=True,
    )
    poller = poller_for(feed, mock_provider, settings, display, sleep)

    known = poller.snapshot(STACK_ID)
    assert known == {"create-1", "create-2", "update-1", "update-2"}

    feed.tick()
    result = poller.wait_for_terminal(STACK_ID, STACK_NAME, known=known, max_attempts=5)

    # The completion left by the previous deploy on a later page never ends polling
    assert not result.succeeded
    assert result.reason == "Quota exceeded"
    assert console_output.getvalue().count("cdn-test-function") == 1
