"""Data models for the automation engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class TriggerType(str, Enum):
    """Domain events a rule can react to."""
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_MOVED = "task_moved"
    TASK_DELETED = "task_deleted"
    TASK_DUE = "task_due"
    TASK_OVERDUE = "task_overdue"
    TASK_DUE_SOON = "task_due_soon"


class ActionType(str, Enum):
    """Side effects a rule can perform."""
    WEBHOOK = "webhook"
    NOTIFICATION = "notification"
    MOVE_TASK = "move_task"
    UPDATE_TASK = "update_task"
    CREATE_TASK = "create_task"


class ActionResult(BaseModel):
    """Outcome of one action execution."""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = {}


class BroadcastResult(BaseModel):
    """Per-target outcome of a webhook fan-out."""
    success: bool
    delivered: int = 0
    failed: int = 0
    deliveries: List[Dict[str, Any]] = []
    errors: List[Dict[str, Any]] = []
    message: Optional[str] = None


# =============================================================================
# Action configuration variants
#
# Stored action configs use camelCase keys (webhookId, columnId, ...).
# Required fields are optional here and checked when the action runs, so a
# missing field becomes a failed result instead of a parse error.
# =============================================================================

class _ActionConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WebhookAction(_ActionConfig):
    action_type: Literal[ActionType.WEBHOOK] = ActionType.WEBHOOK
    webhook_id: Optional[int] = Field(default=None, alias="webhookId")


class NotificationAction(_ActionConfig):
    action_type: Literal[ActionType.NOTIFICATION] = ActionType.NOTIFICATION
    title: Optional[str] = None
    message: Optional[str] = None


class MoveTaskAction(_ActionConfig):
    action_type: Literal[ActionType.MOVE_TASK] = ActionType.MOVE_TASK
    column_id: Optional[int] = Field(default=None, alias="columnId")


class UpdateTaskAction(_ActionConfig):
    action_type: Literal[ActionType.UPDATE_TASK] = ActionType.UPDATE_TASK
    priority: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    assigned_to: Optional[int] = Field(default=None, alias="assignedTo")


class CreateTaskAction(_ActionConfig):
    action_type: Literal[ActionType.CREATE_TASK] = ActionType.CREATE_TASK
    title: Optional[str] = None
    column_id: Optional[int] = Field(default=None, alias="columnId")
    description: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    created_by: Optional[int] = Field(default=None, alias="createdBy")
    assigned_to: Optional[int] = Field(default=None, alias="assignedTo")


ActionConfig = Union[WebhookAction, NotificationAction, MoveTaskAction, UpdateTaskAction, CreateTaskAction]

ACTION_MODELS = {
    ActionType.WEBHOOK: WebhookAction,
    ActionType.NOTIFICATION: NotificationAction,
    ActionType.MOVE_TASK: MoveTaskAction,
    ActionType.UPDATE_TASK: UpdateTaskAction,
    ActionType.CREATE_TASK: CreateTaskAction,
}


def parse_action(action_type: str, config: Dict[str, Any]) -> ActionConfig:
    """Build the typed action for a rule. Raises ValueError for unknown types or invalid values."""
    try:
        kind = ActionType(action_type)
    except ValueError:
        raise ValueError(f"Unknown action type: {action_type}")
    return ACTION_MODELS[kind].model_validate(config)


class Notification(BaseModel):
    """A dispatched notification."""
    title: str
    message: str
    type: str = "info"  # "info", "reminder", "routine", "due"
    priority: str = "normal"
    task_id: Optional[int] = None
    board_id: Optional[int] = None
    metadata: Dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def webhook_payload(self) -> Dict[str, Any]:
        """Body posted to webhook integrations."""
        return {
            "type": "notification",
            "title": self.title,
            "message": self.message,
            "notificationType": self.type,
            "priority": self.priority,
            "taskId": self.task_id,
            "boardId": self.board_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }
