"""Database package for the Kanban backend."""

from app.db.database import init_db, create_db_engine, create_session_factory
from app.db.models import (
    Base, Task, Tag, TaskTag, TaskHistory,
    Integration, AutomationRule, AutomationLog
)
from app.db.task_service import TaskService
from app.db.automation_service import AutomationService
from app.db.integration_service import IntegrationService

__all__ = [
    "init_db",
    "create_db_engine",
    "create_session_factory",
    "Base",
    "Task",
    "Tag",
    "TaskTag",
    "TaskHistory",
    "Integration",
    "AutomationRule",
    "AutomationLog",
    "TaskService",
    "AutomationService",
    "IntegrationService",
]
