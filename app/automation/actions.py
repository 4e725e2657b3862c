"""
Action executors.

Each rule action resolves to one of five side effects. Executors return an
ActionResult; missing required fields, unknown tasks, delivery failures and
database errors all come back as success=False.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.automation.models import (
    ActionResult, ActionConfig, CreateTaskAction, MoveTaskAction,
    NotificationAction, UpdateTaskAction, WebhookAction, parse_action,
)
from app.automation.notifier import Notifier
from app.automation.webhooks import WebhookDispatcher
from app.clock import parse_datetime, to_naive_utc
from app.db.task_service import TaskService
from app.events.log import EventLog

logger = logging.getLogger(__name__)


class ActionExecutor:
    """Runs rule actions."""

    def __init__(
        self,
        session_factory: sessionmaker,
        webhooks: WebhookDispatcher,
        notifier: Notifier,
        event_log: Optional[EventLog] = None,
    ):
        self.session_factory = session_factory
        self.webhooks = webhooks
        self.notifier = notifier
        # Task mutations are published here. They never re-enter the
        # automation engine, so actions cannot trigger each other.
        self.event_log = event_log

    async def execute(
        self,
        action_type: str,
        action_config: Dict[str, Any],
        event_data: Dict[str, Any],
        event_type: Optional[str] = None,
    ) -> ActionResult:
        """
        Execute one action.

        Raises ValueError for an unknown action type or an invalid config;
        the engine records those as failed executions.
        """
        action = parse_action(action_type, action_config)

        if isinstance(action, WebhookAction):
            return await self.webhooks.trigger_webhook(action.webhook_id, event_data, event_type=event_type)
        elif isinstance(action, NotificationAction):
            return await self._notify(action, event_data)
        elif isinstance(action, MoveTaskAction):
            return self._guarded(self._move_task, action, event_data)
        elif isinstance(action, UpdateTaskAction):
            return self._guarded(self._update_task, action, event_data)
        elif isinstance(action, CreateTaskAction):
            return self._guarded(self._create_task, action, event_data)
        raise ValueError(f"Unknown action type: {action_type}")

    async def _notify(self, action: NotificationAction, event_data: Dict[str, Any]) -> ActionResult:
        title = action.title or "Automation Triggered"
        message = action.message or f"Automation triggered by event: {json.dumps(event_data, default=str)}"
        return await self.notifier.send(title, message, task_id=_as_int(event_data.get("taskId")))

    def _guarded(self, handler, action: ActionConfig, event_data: Dict[str, Any]) -> ActionResult:
        try:
            return handler(action, event_data)
        except SQLAlchemyError as e:
            logger.error(f"Database error running {action.action_type.value}: {e}", exc_info=True)
            return ActionResult(success=False, error=str(e))

    def _move_task(self, action: MoveTaskAction, event_data: Dict[str, Any]) -> ActionResult:
        task_id = _as_int(event_data.get("taskId"))
        if not task_id or action.column_id is None:
            return ActionResult(
                success=False,
                error="Task ID and destination column are required to move a task",
            )

        with self.session_factory() as db:
            task = TaskService(db, self.event_log).move_task(task_id, action.column_id)

        if not task:
            return ActionResult(success=False, error="Task not found")
        return ActionResult(success=True, message="Task moved successfully", data={"taskId": task_id})

    def _update_task(self, action: UpdateTaskAction, event_data: Dict[str, Any]) -> ActionResult:
        task_id = _as_int(event_data.get("taskId"))
        if not task_id:
            return ActionResult(success=False, error="Task ID is required to update a task")

        changes = {}
        if action.priority:
            changes["priority"] = action.priority
        if action.due_date:
            due_date = parse_datetime(action.due_date)
            if due_date is None:
                return ActionResult(success=False, error=f"Invalid due date: {action.due_date}")
            changes["due_date"] = to_naive_utc(due_date)
        if action.assigned_to is not None:
            changes["assigned_to"] = action.assigned_to

        if not changes:
            return ActionResult(success=False, error="No task fields were provided to update")

        with self.session_factory() as db:
            result = TaskService(db, self.event_log).update_task(task_id, changes)

        if not result:
            return ActionResult(success=False, error="Task not found")
        return ActionResult(success=True, message="Task updated successfully", data={"taskId": task_id})

    def _create_task(self, action: CreateTaskAction, event_data: Dict[str, Any]) -> ActionResult:
        if not action.title or action.column_id is None:
            return ActionResult(success=False, error="Task title and column are required to create a task")

        due_date = None
        if action.due_date:
            parsed = parse_datetime(action.due_date)
            if parsed is None:
                return ActionResult(success=False, error=f"Invalid due date: {action.due_date}")
            due_date = to_naive_utc(parsed)

        with self.session_factory() as db:
            task = TaskService(db, self.event_log).create_task(
                title=action.title,
                column_id=action.column_id,
                description=action.description or "",
                priority=action.priority or "medium",
                due_date=due_date,
                created_by=action.created_by,
                assigned_to=action.assigned_to,
            )

        return ActionResult(
            success=True,
            message="Task created successfully",
            data={"taskId": task.id, "position": task.position},
        )


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
