"""
Notification dispatch.

Notifications are logged, kept in a short in-memory history and fanned out to
every enabled webhook integration. Webhook failures never fail the
notification itself.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.automation.models import ActionResult, Notification
from app.automation.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)


class Notifier:
    """Sends notifications to the log and to webhook integrations."""

    def __init__(self, webhooks: WebhookDispatcher, history_size: int = 100):
        self.webhooks = webhooks
        self._history: deque = deque(maxlen=history_size)

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        """Most recent notifications, newest first."""
        items = list(reversed(self._history))
        return items[:limit] if limit else items

    async def send(
        self,
        title: str,
        message: str,
        type: str = "info",
        task_id: Optional[int] = None,
        board_id: Optional[int] = None,
        priority: str = "normal",
        send_to_webhooks: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """Log a notification and broadcast it to all enabled webhooks."""
        try:
            notification = Notification(
                title=title,
                message=message,
                type=type,
                priority=priority or "normal",
                task_id=task_id,
                board_id=board_id,
                metadata=metadata or {},
            )
            logger.info(f"NOTIFICATION [{type.upper()}]: {title} - {message}")
            self._history.append(notification)

            if send_to_webhooks:
                try:
                    result = await self.webhooks.broadcast(notification.webhook_payload())
                    if result.failed:
                        logger.warning(
                            f"Notification '{title}' reached {result.delivered} webhook(s), {result.failed} failed"
                        )
                except Exception as e:
                    logger.error(f"Failed to send notification to webhooks: {e}", exc_info=True)

            return ActionResult(success=True, message="Notification sent successfully")

        except Exception as e:
            logger.error(f"Notification failed: {e}", exc_info=True)
            return ActionResult(success=False, error=str(e))

    async def send_task_reminder(self, task) -> ActionResult:
        return await self.send(
            "Task Reminder",
            f'Task "{task.title}" is due',
            type="reminder",
            task_id=task.id,
            priority=task.priority or "normal",
            metadata={
                "dueDate": _iso(task.due_date),
                "columnId": task.column_id,
            },
        )

    async def send_routine_reminder(self, task) -> ActionResult:
        return await self.send(
            "Routine Reminder",
            f'Routine task "{task.title}" is scheduled',
            type="routine",
            task_id=task.id,
            priority=task.priority or "normal",
            metadata={
                "dueDate": _iso(task.due_date),
                "recurringRule": task.recurring_rule,
            },
        )

    async def send_task_due_notification(self, task, minutes_until_due: int) -> ActionResult:
        if minutes_until_due > 0:
            message = f'Task "{task.title}" is due in {minutes_until_due} minutes'
        else:
            message = f'Task "{task.title}" is overdue'

        return await self.send(
            "Task Due Soon",
            message,
            type="due",
            task_id=task.id,
            priority="high",
            metadata={
                "dueDate": _iso(task.due_date),
                "minutesUntilDue": minutes_until_due,
                "isOverdue": minutes_until_due <= 0,
            },
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
