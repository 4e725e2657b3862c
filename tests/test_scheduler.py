"""Tests for the due sweep, recurrence sweep and log retention."""

import asyncio
import json
from datetime import date, datetime, timedelta

import pytest

from app.db.automation_service import AutomationService
from app.db.models import AutomationLog
from app.db.task_service import TaskService
from app.triggers.scheduler import seconds_until_midnight, seconds_until_weekday_midnight

NOW = datetime(2024, 5, 1, 12, 0)


# ============================================================================
# Due sweep
# ============================================================================

@pytest.mark.asyncio
async def test_due_sweep_classifies_each_task_once(scheduler, make_task, make_rule, automation_logs, event_log):
    overdue = make_task("Late", due_date=NOW - timedelta(hours=3))
    due = make_task("Now", due_date=NOW)
    soon = make_task("Soon", due_date=NOW + timedelta(minutes=30))
    make_task("Later", due_date=NOW + timedelta(hours=5))
    make_task("Undated")
    rules = {
        trigger: make_rule(trigger, "notification", name=trigger)
        for trigger in ("task_overdue", "task_due", "task_due_soon")
    }
    event_log.reset()

    counts = await scheduler.sweep_due_tasks(NOW)

    assert counts == {"overdue": 1, "due": 1, "due_soon": 1}
    assert [(e.name, e.data["taskId"]) for e in event_log.query()] == [
        ("task.overdue", overdue.id),
        ("task.due", due.id),
        ("task.due_soon", soon.id),
    ]
    for trigger, rule in rules.items():
        assert [status for _, status, _ in automation_logs(rule.id)] == ["success"]


@pytest.mark.asyncio
async def test_due_sweep_sends_matching_notifications(scheduler, make_task, notifier):
    make_task("Late", due_date=NOW - timedelta(hours=2))
    make_task("Now", due_date=NOW)
    make_task("Soon", due_date=NOW + timedelta(minutes=20))

    await scheduler.sweep_due_tasks(NOW)

    messages = [n.message for n in reversed(notifier.recent())]
    assert messages == [
        'Task "Late" was due on 2024-05-01 at 10:00 UTC',
        'Task "Now" is due',
        'Task "Soon" is due in 20 minutes',
    ]


@pytest.mark.asyncio
async def test_due_sweep_continues_after_a_failing_task(scheduler, make_task, monkeypatch):
    make_task("First", due_date=NOW)
    make_task("Second", due_date=NOW)
    calls = []

    async def flaky(trigger_type, data):
        calls.append(data["taskId"])
        if len(calls) == 1:
            raise RuntimeError("automation down")

    monkeypatch.setattr(scheduler.engine, "trigger", flaky)

    counts = await scheduler.sweep_due_tasks(NOW)

    assert len(calls) == 2
    assert counts["due"] == 1


# ============================================================================
# Recurrence sweep
# ============================================================================

@pytest.mark.asyncio
async def test_daily_routine_creates_next_instance(scheduler, make_task, make_rule, session_factory, notifier,
                                                   automation_logs):
    rule = {"frequency": "daily", "interval": 1}
    with session_factory() as db:
        tags = [TaskService(db).create_tag(name) for name in ("daily", "team")]
    original = make_task("Stand-up", column_id=2, due_date=datetime(2024, 3, 10, 9, 0),
                         recurring_rule=rule, priority="high", tag_ids=[tag.id for tag in tags])
    created_rule = make_rule("task_created", "notification")

    created = await scheduler.sweep_recurring_tasks(date(2024, 3, 11))

    assert len(created) == 1
    with session_factory() as db:
        instance = TaskService(db).get_task(created[0])
        assert instance.title == "Stand-up"
        assert instance.column_id == 2
        assert instance.priority == "high"
        assert instance.due_date == datetime(2024, 3, 11, 9, 0)
        assert instance.recurring_rule == json.dumps(rule)
        assert instance.id != original.id
        assert sorted(TaskService(db).tag_ids(instance.id)) == sorted(tag.id for tag in tags)
        assert sorted(tag.name for tag in instance.tags) == ["daily", "team"]
    assert automation_logs(created_rule.id)[0][1] == "success"
    assert any(n.type == "routine" for n in notifier.recent())


@pytest.mark.asyncio
async def test_recurrence_sweep_is_idempotent_for_the_same_day(scheduler, make_task):
    make_task("Stand-up", due_date=datetime(2024, 3, 10, 9, 0), recurring_rule={"frequency": "daily"})

    first = await scheduler.sweep_recurring_tasks(date(2024, 3, 11))
    second = await scheduler.sweep_recurring_tasks(date(2024, 3, 11))

    assert len(first) == 1
    assert second == []


@pytest.mark.asyncio
async def test_recurrence_respects_max_occurrences(scheduler, make_task):
    rule = {"frequency": "daily", "maxOccurrences": 2}
    make_task("Water plants", due_date=datetime(2024, 3, 10, 9, 0), recurring_rule=rule)

    assert len(await scheduler.sweep_recurring_tasks(date(2024, 3, 11))) == 1
    assert await scheduler.sweep_recurring_tasks(date(2024, 3, 12)) == []


@pytest.mark.asyncio
async def test_recurrence_skips_other_days_and_ended_series(scheduler, make_task):
    make_task("Weekly", due_date=datetime(2024, 3, 10, 9, 0), recurring_rule={"frequency": "weekly"})
    make_task("Ended", due_date=datetime(2024, 3, 10, 9, 0),
              recurring_rule={"frequency": "daily", "endDate": "2024-03-10T23:59:00Z"})

    assert await scheduler.sweep_recurring_tasks(date(2024, 3, 11)) == []


@pytest.mark.asyncio
async def test_recurrence_skips_malformed_rule(scheduler, make_task):
    make_task("Broken", due_date=datetime(2024, 3, 10, 9, 0), recurring_rule="{not json")
    make_task("Fine", due_date=datetime(2024, 3, 10, 9, 0), recurring_rule={"frequency": "daily"})

    assert len(await scheduler.sweep_recurring_tasks(date(2024, 3, 11))) == 1


# ============================================================================
# Log retention
# ============================================================================

def test_prune_removes_logs_older_than_retention(scheduler, make_rule, session_factory):
    rule = make_rule("task_created", "notification")
    with session_factory() as db:
        db.add(AutomationLog(rule_id=rule.id, status="success", message="old", created_at=NOW - timedelta(days=8)))
        db.add(AutomationLog(rule_id=rule.id, status="success", message="new", created_at=NOW - timedelta(days=1)))
        db.commit()

    deleted = scheduler.prune_automation_logs(NOW)

    assert deleted == 1
    with session_factory() as db:
        assert [log.message for log in AutomationService(db).list_logs()] == ["new"]


# ============================================================================
# Timing and lifecycle
# ============================================================================

def test_seconds_until_midnight():
    assert seconds_until_midnight(datetime(2024, 5, 1, 23, 0)) == 3600


def test_seconds_until_sunday_midnight():
    # 2024-05-01 is a Wednesday; the next Sunday midnight is 2024-05-05 00:00
    assert seconds_until_weekday_midnight(datetime(2024, 5, 1, 0, 0)) == 4 * 86400
    # From Sunday itself the next run is a week away
    assert seconds_until_weekday_midnight(datetime(2024, 5, 5, 0, 0)) == 7 * 86400


@pytest.mark.asyncio
async def test_start_and_stop(scheduler):
    scheduler.start()
    assert scheduler.running
    scheduler.start()

    await asyncio.sleep(0)
    await scheduler.stop()

    assert not scheduler.running
