"""
Request dependencies.

Long-lived collaborators are built once by the application factory and kept on
app.state; handlers receive them through these dependencies.
"""

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from app.automation.engine import AutomationEngine
from app.automation.notifier import Notifier
from app.events.log import EventLog
from app.events.sync import SyncGateway


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def get_sync_gateway(request: Request) -> SyncGateway:
    return request.app.state.sync_gateway


def get_automation_engine(request: Request) -> AutomationEngine:
    return request.app.state.automation_engine


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier
