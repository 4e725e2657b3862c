"""
Kanban backend - automation, scheduling and sync service.

Run with: uvicorn app.main:app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from app.automation.actions import ActionExecutor
from app.automation.engine import AutomationEngine
from app.automation.notifier import Notifier
from app.automation.webhooks import WebhookDispatcher
from app.config import Settings, get_settings
from app.db.database import create_db_engine, create_session_factory, init_db
from app.events.log import EventLog
from app.events.sync import SyncGateway
from app.routes import (
    automation_router,
    integrations_router,
    notifications_router,
    sync_router,
    tasks_router,
)
from app.triggers.scheduler import Scheduler

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    webhook_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application with its own database engine, event log, automation
    engine and scheduler. Nothing is shared between two apps.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db_engine = create_db_engine(settings.database_url, echo=settings.db_echo)
    session_factory = create_session_factory(db_engine)

    event_log = EventLog(capacity=settings.event_buffer_size)
    webhooks = WebhookDispatcher(session_factory, timeout=settings.webhook_timeout, transport=webhook_transport)
    notifier = Notifier(webhooks)
    executor = ActionExecutor(session_factory, webhooks, notifier, event_log=event_log)
    automation_engine = AutomationEngine(session_factory, executor)
    scheduler = Scheduler(session_factory, automation_engine, notifier, event_log=event_log, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(db_engine)
        if settings.scheduler_enabled:
            scheduler.start()
        else:
            logger.info("Scheduler disabled")
        try:
            yield
        finally:
            await scheduler.stop()
            db_engine.dispose()

    app = FastAPI(
        title="kanban-automation",
        description="Automation rules, due-date scheduling and change sync for a Kanban board",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.session_factory = session_factory
    app.state.event_log = event_log
    app.state.sync_gateway = SyncGateway(event_log, heartbeat_interval=settings.sync_heartbeat_interval)
    app.state.webhooks = webhooks
    app.state.notifier = notifier
    app.state.automation_engine = automation_engine
    app.state.scheduler = scheduler

    @app.get("/")
    async def root():
        """API root - shows available endpoints."""
        return {
            "service": "kanban-automation",
            "version": "0.1.0",
            "docs": "/docs",
            "endpoints": {
                "health": "/health",
                "sync_events": "/api/sync/events",
                "sync_stream": "/api/sync/stream",
                "tasks": "/api/tasks",
                "tags": "/api/tags",
                "routines": "/api/routines",
                "integrations": "/api/integrations",
                "automation": "/api/automation",
                "automation_logs": "/api/automation/logs",
                "notifications": "/api/notifications",
            },
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "kanban-automation",
            "scheduler": scheduler.running,
            "sync_subscribers": event_log.subscriber_count,
        }

    app.include_router(sync_router)
    app.include_router(tasks_router)
    app.include_router(integrations_router)
    app.include_router(automation_router)
    app.include_router(notifications_router)

    return app


app = create_app()
