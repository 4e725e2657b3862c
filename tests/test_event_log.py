"""Tests for the bounded event log."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.events.log import EventLog

pytestmark = pytest.mark.unit


def test_publish_assigns_unique_ids_and_keeps_order(event_log):
    first = event_log.publish("task", "created", {"taskId": 1})
    second = event_log.publish("task", "moved", {"taskId": 1})

    assert first.id != second.id
    assert first.name == "task.created"
    assert first.timestamp.endswith("Z")
    assert [e.id for e in event_log.query()] == [first.id, second.id]


def test_publish_without_payload_uses_empty_dict(event_log):
    assert event_log.publish("board", "updated").data == {}


def test_buffer_evicts_oldest_first():
    log = EventLog(capacity=3)
    events = [log.publish("task", "updated", {"n": n}) for n in range(5)]

    retained = log.query()
    assert len(log) == 3
    assert [e.data["n"] for e in retained] == [2, 3, 4]
    assert events[0].id not in {e.id for e in retained}


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        EventLog(capacity=0)


def test_query_after_known_id_returns_strictly_later_events(event_log):
    a = event_log.publish("task", "created")
    b = event_log.publish("task", "updated")
    c = event_log.publish("task", "deleted")

    assert [e.id for e in event_log.query(after_id=a.id)] == [b.id, c.id]
    assert event_log.query(after_id=c.id) == []


def test_query_after_unknown_id_returns_whole_buffer(event_log):
    events = [event_log.publish("task", "created") for _ in range(3)]

    result = event_log.query(after_id="0-deadbeef0000")
    assert [e.id for e in result] == [e.id for e in events]


def test_query_after_evicted_id_returns_whole_buffer():
    log = EventLog(capacity=2)
    evicted = log.publish("task", "created")
    log.publish("task", "updated")
    log.publish("task", "moved")

    assert [e.action for e in log.query(after_id=evicted.id)] == ["updated", "moved"]


def test_after_id_takes_precedence_over_since(event_log):
    a = event_log.publish("task", "created")
    b = event_log.publish("task", "updated")

    future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
    assert [e.id for e in event_log.query(since=future, after_id=a.id)] == [b.id]


def test_query_since_filters_by_timestamp(event_log):
    event_log.publish("task", "created")
    past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
    future = (datetime.now(timezone.utc) + timedelta(minutes=5)).isoformat()

    assert len(event_log.query(since=past)) == 1
    assert event_log.query(since=future) == []


def test_query_since_unparseable_returns_empty_list(event_log):
    event_log.publish("task", "created")

    assert event_log.query(since="not-a-date") == []


@pytest.mark.parametrize("limit, expected", [
    (2, [3, 4]),
    ("2", [3, 4]),
    (0, [0, 1, 2, 3, 4]),
    (-1, [0, 1, 2, 3, 4]),
    ("abc", [0, 1, 2, 3, 4]),
    ("inf", [0, 1, 2, 3, 4]),
    ("1e400", [0, 1, 2, 3, 4]),
    ("nan", [0, 1, 2, 3, 4]),
    (None, [0, 1, 2, 3, 4]),
])
def test_limit_keeps_most_recent(event_log, limit, expected):
    for n in range(5):
        event_log.publish("task", "updated", {"n": n})

    assert [e.data["n"] for e in event_log.query(limit=limit)] == expected


def test_subscribers_receive_events_in_publish_order(event_log):
    received = []
    event_log.subscribe(received.append)

    published = [event_log.publish("task", "updated", {"n": n}) for n in range(3)]

    assert received == published


def test_failing_listener_does_not_block_others(event_log):
    received = []

    def broken(event):
        raise RuntimeError("listener exploded")

    event_log.subscribe(broken)
    event_log.subscribe(received.append)

    event = event_log.publish("task", "created")

    assert received == [event]
    assert len(event_log) == 1


def test_unsubscribe_stops_delivery_and_is_idempotent(event_log):
    received = []
    unsubscribe = event_log.subscribe(received.append)
    assert event_log.subscriber_count == 1

    unsubscribe()
    unsubscribe()
    event_log.publish("task", "created")

    assert received == []
    assert event_log.subscriber_count == 0


def test_subscribe_with_backlog_sees_every_event_once(event_log):
    before = event_log.publish("task", "created")
    received = []

    backlog, unsubscribe = event_log.subscribe_with_backlog(received.append)
    after = event_log.publish("task", "updated")
    unsubscribe()

    assert backlog == [before]
    assert received == [after]


def test_concurrent_publishers_keep_ids_unique():
    log = EventLog(capacity=1000)

    def publish_many():
        for _ in range(100):
            log.publish("task", "updated")

    threads = [threading.Thread(target=publish_many) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = [e.id for e in log.query()]
    assert len(ids) == 400
    assert len(set(ids)) == 400


def test_reset_clears_buffer_but_keeps_subscribers(event_log):
    received = []
    event_log.subscribe(received.append)
    event_log.publish("task", "created")

    event_log.reset()
    event_log.publish("task", "updated")

    assert [e.action for e in event_log.query()] == ["updated"]
    assert len(received) == 2
