"""Tests for action execution, webhook delivery and notification fan-out."""

import httpx
import pytest

from app.automation.webhooks import WebhookDispatcher
from app.db.task_service import TaskService


# ============================================================================
# Task actions
# ============================================================================

@pytest.mark.asyncio
async def test_move_task_action_moves_and_publishes(executor, make_task, session_factory, event_log):
    task = make_task(column_id=1)

    result = await executor.execute("move_task", {"columnId": 3}, {"taskId": task.id})

    assert result.success
    assert result.message == "Task moved successfully"
    with session_factory() as db:
        assert TaskService(db).get_task(task.id).column_id == 3
    last = event_log.query()[-1]
    assert last.name == "task.moved"
    assert last.data["oldColumnId"] == 1
    assert last.data["newColumnId"] == 3


@pytest.mark.asyncio
async def test_move_task_action_requires_task_and_column(executor):
    result = await executor.execute("move_task", {"columnId": 3}, {})
    assert not result.success
    assert result.error == "Task ID and destination column are required to move a task"


@pytest.mark.asyncio
async def test_move_task_action_for_missing_task(executor):
    result = await executor.execute("move_task", {"columnId": 3}, {"taskId": 999})
    assert not result.success
    assert result.error == "Task not found"


@pytest.mark.asyncio
async def test_update_task_action_applies_fields(executor, make_task, session_factory):
    task = make_task()

    result = await executor.execute(
        "update_task",
        {"priority": "high", "dueDate": "2024-06-01T10:00:00Z", "assignedTo": 5},
        {"taskId": task.id},
    )

    assert result.success
    with session_factory() as db:
        updated = TaskService(db).get_task(task.id)
        assert updated.priority == "high"
        assert updated.assigned_to == 5
        assert updated.due_date.isoformat() == "2024-06-01T10:00:00"


@pytest.mark.asyncio
async def test_update_task_action_without_fields_fails(executor, make_task):
    task = make_task()

    result = await executor.execute("update_task", {}, {"taskId": task.id})

    assert not result.success
    assert result.error == "No task fields were provided to update"


@pytest.mark.asyncio
async def test_create_task_action_appends_to_column(executor, make_task, session_factory):
    make_task(column_id=2)

    result = await executor.execute(
        "create_task",
        {"title": "Follow up", "columnId": 2, "priority": "low"},
        {"taskId": 1},
    )

    assert result.success
    assert result.data["position"] == 2
    with session_factory() as db:
        created = TaskService(db).get_task(result.data["taskId"])
        assert created.title == "Follow up"
        assert created.priority == "low"


@pytest.mark.asyncio
async def test_create_task_action_requires_title_and_column(executor):
    result = await executor.execute("create_task", {"columnId": 2}, {})
    assert not result.success
    assert result.error == "Task title and column are required to create a task"


@pytest.mark.asyncio
async def test_unknown_action_type_raises(executor):
    with pytest.raises(ValueError, match="Unknown action type: teleport"):
        await executor.execute("teleport", {}, {})


# ============================================================================
# Webhooks
# ============================================================================

@pytest.mark.asyncio
async def test_webhook_action_posts_event_envelope(executor, make_webhook, recorder):
    hook = make_webhook("hooks.example.com", api_key="secret")

    result = await executor.execute(
        "webhook", {"webhookId": hook.id}, {"taskId": 4}, event_type="task_created",
    )

    assert result.success
    body = recorder.bodies()[0]
    assert body["eventType"] == "task_created"
    assert body["payload"] == {"taskId": 4}
    assert "timestamp" in body
    assert recorder.requests[0].headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_webhook_without_event_type_posts_raw_payload(webhooks, make_webhook, recorder):
    hook = make_webhook("hooks.example.com")

    result = await webhooks.trigger_webhook(hook.id, {"columnId": 3})

    assert result.success
    assert recorder.bodies() == [{"columnId": 3}]
    assert "Authorization" not in recorder.requests[0].headers


@pytest.mark.asyncio
async def test_webhook_action_failures(executor, make_webhook, recorder):
    disabled = make_webhook("off.example.com", enabled=False)
    broken = make_webhook("down.example.com")
    recorder.failing.add("down.example.com")

    missing_id = await executor.execute("webhook", {}, {"taskId": 1})
    not_found = await executor.execute("webhook", {"webhookId": disabled.id}, {"taskId": 1})
    server_error = await executor.execute("webhook", {"webhookId": broken.id}, {"taskId": 1})

    assert missing_id.error == "Webhook ID is required"
    assert not_found.error == "Webhook integration not found or disabled"
    assert not server_error.success
    assert "500" in server_error.error


@pytest.mark.asyncio
async def test_webhook_without_url_fails(webhooks, session_factory):
    from app.db.integration_service import IntegrationService

    with session_factory() as db:
        hook = IntegrationService(db).create_integration(name="empty", config={})

    result = await webhooks.trigger_webhook(hook.id, {})

    assert result.error == "Webhook URL not configured"


@pytest.mark.asyncio
async def test_webhook_timeout_becomes_failed_result(session_factory, make_webhook):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    hook = make_webhook("slow.example.com")
    dispatcher = WebhookDispatcher(session_factory, timeout=10, transport=httpx.MockTransport(slow))

    result = await dispatcher.trigger_webhook(hook.id, {"taskId": 1})

    assert not result.success
    assert "timed out" in result.error


@pytest.mark.asyncio
async def test_broadcast_without_targets(webhooks):
    result = await webhooks.broadcast({"hello": "world"})
    assert not result.success
    assert result.message == "No enabled n8n webhook integrations configured"


@pytest.mark.asyncio
async def test_broadcast_reports_per_target_outcome(webhooks, make_webhook, recorder):
    make_webhook("a.example.com")
    make_webhook("b.example.com")
    recorder.failing.add("b.example.com")

    result = await webhooks.broadcast({"boardId": 1})

    assert result.success
    assert (result.delivered, result.failed) == (1, 1)
    assert [d["name"] for d in result.deliveries] == ["a.example.com"]
    assert result.errors[0]["id"] == 2
    assert recorder.bodies() == [{"boardId": 1}, {"boardId": 1}]


# ============================================================================
# Notifications
# ============================================================================

@pytest.mark.asyncio
async def test_notification_fans_out_and_tolerates_one_failing_webhook(
    executor, make_webhook, recorder, notifier
):
    for host in ("one.example.com", "two.example.com", "three.example.com"):
        make_webhook(host)
    recorder.failing.add("two.example.com")

    result = await executor.execute("notification", {"title": "Heads up", "message": "Card moved"}, {"taskId": 8})

    assert result.success
    assert sorted(recorder.hosts()) == ["one.example.com", "three.example.com", "two.example.com"]
    body = recorder.bodies()[0]
    assert body["type"] == "notification"
    assert body["title"] == "Heads up"
    assert body["message"] == "Card moved"
    assert body["taskId"] == 8
    assert notifier.recent(1)[0].title == "Heads up"


@pytest.mark.asyncio
async def test_notification_succeeds_without_webhooks(notifier, caplog):
    with caplog.at_level("INFO"):
        result = await notifier.send("Title", "Body", type="reminder")

    assert result.success
    assert "NOTIFICATION [REMINDER]: Title - Body" in caplog.text


@pytest.mark.asyncio
async def test_task_due_notification_wording(notifier, make_task):
    task = make_task(title="Ship it")

    await notifier.send_task_due_notification(task, 15)
    await notifier.send_task_due_notification(task, 0)

    overdue, soon = notifier.recent()
    assert soon.message == 'Task "Ship it" is due in 15 minutes'
    assert overdue.message == 'Task "Ship it" is overdue'
    assert overdue.metadata["isOverdue"] is True
