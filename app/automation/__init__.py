"""Automation engine for the Kanban backend - rule matching and action execution."""

from app.automation.models import ActionResult, ActionType, TriggerType
from app.automation.engine import AutomationEngine
from app.automation.actions import ActionExecutor
from app.automation.webhooks import WebhookDispatcher
from app.automation.notifier import Notifier

__all__ = [
    "ActionResult",
    "ActionType",
    "TriggerType",
    "AutomationEngine",
    "ActionExecutor",
    "WebhookDispatcher",
    "Notifier",
]
