"""
Shared fixtures.

Every test gets its own in-memory SQLite database, event log and automation
stack. Outbound webhook calls go through httpx.MockTransport and are recorded
instead of leaving the process.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.automation.actions import ActionExecutor
from app.automation.engine import AutomationEngine
from app.automation.notifier import Notifier
from app.automation.webhooks import WebhookDispatcher
from app.config import Settings
from app.db.automation_service import AutomationService
from app.db.database import create_db_engine, create_session_factory, init_db
from app.db.integration_service import IntegrationService
from app.db.task_service import TaskService
from app.events.log import EventLog
from app.triggers.scheduler import Scheduler


class WebhookRecorder:
    """MockTransport handler that records requests; hosts in `failing` answer 500."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.failing = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.failing:
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json={"received": True})

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://", scheduler_enabled=False, sync_heartbeat_interval=0.05)


@pytest.fixture
def session_factory():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def event_log() -> EventLog:
    return EventLog(capacity=500)


@pytest.fixture
def recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def webhooks(session_factory, recorder) -> WebhookDispatcher:
    return WebhookDispatcher(session_factory, timeout=10, transport=httpx.MockTransport(recorder))


@pytest.fixture
def notifier(webhooks) -> Notifier:
    return Notifier(webhooks)


@pytest.fixture
def executor(session_factory, webhooks, notifier, event_log) -> ActionExecutor:
    return ActionExecutor(session_factory, webhooks, notifier, event_log=event_log)


@pytest.fixture
def automation_engine(session_factory, executor) -> AutomationEngine:
    return AutomationEngine(session_factory, executor)


@pytest.fixture
def scheduler(session_factory, automation_engine, notifier, event_log, settings) -> Scheduler:
    return Scheduler(session_factory, automation_engine, notifier, event_log=event_log, settings=settings)


@pytest.fixture
def client(settings, recorder):
    from app.main import create_app

    app = create_app(settings, webhook_transport=httpx.MockTransport(recorder))
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Data helpers
# ============================================================================

@pytest.fixture
def make_task(session_factory, event_log):
    def _make(
        title: str = "Write report",
        column_id: int = 1,
        due_date: Optional[datetime] = None,
        recurring_rule: Any = None,
        **kwargs,
    ):
        with session_factory() as db:
            return TaskService(db, event_log).create_task(
                title=title,
                column_id=column_id,
                due_date=due_date,
                recurring_rule=recurring_rule,
                **kwargs,
            )
    return _make


@pytest.fixture
def make_rule(session_factory):
    def _make(
        trigger_type: str,
        action_type: str,
        trigger_config: Any = None,
        action_config: Any = None,
        name: str = "rule",
        enabled: bool = True,
    ):
        with session_factory() as db:
            return AutomationService(db).create_rule(
                name=name,
                trigger_type=trigger_type,
                trigger_config=trigger_config or {},
                action_type=action_type,
                action_config=action_config or {},
                enabled=enabled,
            )
    return _make


@pytest.fixture
def make_webhook(session_factory):
    def _make(host: str, name: Optional[str] = None, enabled: bool = True, api_key: Optional[str] = None):
        config = {"webhookUrl": f"https://{host}/hook"}
        if api_key:
            config["apiKey"] = api_key
        with session_factory() as db:
            return IntegrationService(db).create_integration(name=name or host, config=config, enabled=enabled)
    return _make


@pytest.fixture
def automation_logs(session_factory):
    def _logs(rule_id: Optional[int] = None):
        with session_factory() as db:
            logs = AutomationService(db).list_logs(rule_id=rule_id, limit=1000)
            return [(log.rule_id, log.status, log.message) for log in reversed(logs)]
    return _logs
