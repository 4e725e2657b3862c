"""
Task persistence service.

Owns task, tag and history rows. Every committed mutation is published to the
event log (when one is attached) so sync consumers see it; automation is fired
separately by the caller once the mutation has been committed.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.db.models import Tag, Task, TaskHistory, TaskTag
from app.events.log import EventLog

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "title", "description", "column_id", "position", "priority",
    "due_date", "recurring_rule", "assigned_to",
)

# Field -> task_history action recorded when the value changes
HISTORY_ACTIONS = {
    "title": "title_changed",
    "description": "description_changed",
    "column_id": "column_changed",
    "priority": "priority_changed",
    "due_date": "due_date_changed",
    "assigned_to": "assignment_changed",
}


def serialize_recurring_rule(rule: Any) -> Optional[str]:
    """Store recurring rules as JSON text; strings are kept verbatim."""
    if rule is None or rule == "":
        return None
    if isinstance(rule, str):
        return rule
    return json.dumps(rule)


def task_to_dict(task: Task) -> Dict[str, Any]:
    """JSON-friendly view of a task."""
    recurring_rule = task.recurring_rule
    if recurring_rule:
        try:
            recurring_rule = json.loads(recurring_rule)
        except (TypeError, ValueError):
            pass
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "column_id": task.column_id,
        "position": task.position,
        "priority": task.priority,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "recurring_rule": recurring_rule,
        "created_by": task.created_by,
        "assigned_to": task.assigned_to,
        "created_at": task.created_at.isoformat() if task.created_at else None,
        "updated_at": task.updated_at.isoformat() if task.updated_at else None,
        "tags": sorted(tag.id for tag in task.tags),
    }


class TaskService:
    """Service for task persistence."""

    def __init__(self, db: Session, event_log: Optional[EventLog] = None):
        self.db = db
        self.event_log = event_log

    # =============================================================================
    # Queries
    # =============================================================================

    def get_task(self, task_id: int) -> Optional[Task]:
        return self.db.get(Task, task_id)

    def list_tasks(self, column_id: Optional[int] = None) -> List[Task]:
        query = self.db.query(Task)
        if column_id is not None:
            query = query.filter(Task.column_id == column_id)
        return query.order_by(Task.column_id, Task.position).all()

    def tasks_due_before(self, instant: datetime) -> List[Task]:
        """Tasks with a due date at or before the given instant."""
        return self.db.query(Task).filter(
            Task.due_date.isnot(None),
            Task.due_date <= instant,
        ).order_by(Task.due_date).all()

    def recurring_tasks(self) -> List[Task]:
        return self.db.query(Task).filter(Task.recurring_rule.isnot(None)).order_by(Task.id).all()

    def count_series(self, recurring_rule: str) -> int:
        """Number of tasks whose stored recurring rule text is identical."""
        return self.db.query(func.count(Task.id)).filter(Task.recurring_rule == recurring_rule).scalar() or 0

    def occurrence_exists(self, recurring_rule: str, due_date: datetime) -> bool:
        """Whether the series already has an instance due at exactly this instant."""
        return self.db.query(Task.id).filter(
            Task.recurring_rule == recurring_rule,
            Task.due_date == due_date,
        ).first() is not None

    def next_position(self, column_id: int) -> int:
        max_position = self.db.query(func.max(Task.position)).filter(Task.column_id == column_id).scalar()
        return (max_position or 0) + 1

    def tag_ids(self, task_id: int) -> List[int]:
        rows = self.db.query(TaskTag.tag_id).filter(TaskTag.task_id == task_id).all()
        return [row[0] for row in rows]

    # =============================================================================
    # Mutations
    # =============================================================================

    def create_task(
        self,
        title: str,
        column_id: int,
        description: Optional[str] = "",
        priority: Optional[str] = "medium",
        due_date: Optional[datetime] = None,
        recurring_rule: Any = None,
        created_by: Optional[int] = None,
        assigned_to: Optional[int] = None,
        tag_ids: Optional[Iterable[int]] = None,
    ) -> Task:
        """Insert a task at the end of its column."""
        task = Task(
            title=title,
            description=description or "",
            column_id=column_id,
            position=self.next_position(column_id),
            priority=priority or "medium",
            due_date=due_date,
            recurring_rule=serialize_recurring_rule(recurring_rule),
            created_by=created_by,
            assigned_to=assigned_to,
        )
        self.db.add(task)
        self.db.flush()

        self._record_history(task.id, "created", None, None, created_by)
        for tag_id in tag_ids or []:
            self.db.add(TaskTag(task_id=task.id, tag_id=tag_id))

        self.db.commit()
        self.db.refresh(task)

        self._publish("created", {
            "taskId": task.id,
            "columnId": task.column_id,
            "task": task_to_dict(task),
        })
        return task

    def update_task(
        self,
        task_id: int,
        changes: Dict[str, Any],
        updated_by: Optional[int] = None,
    ) -> Optional[Tuple[Task, int]]:
        """
        Apply field changes, recording history for each changed value.

        Returns (task, previous column id), or None when the task does not exist.
        Raises ValueError when no updatable field is given.
        """
        updates = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if not updates:
            raise ValueError("No valid fields to update")

        task = self.get_task(task_id)
        if not task:
            return None

        old_column_id = task.column_id
        for field, value in updates.items():
            if field == "recurring_rule":
                value = serialize_recurring_rule(value)
            current = getattr(task, field)
            if field in HISTORY_ACTIONS and value != current:
                self._record_history(
                    task.id, HISTORY_ACTIONS[field],
                    _history_value(current), _history_value(value), updated_by,
                )
            setattr(task, field, value)

        task.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(task)

        if task.column_id != old_column_id:
            self._publish("moved", {
                "taskId": task.id,
                "oldColumnId": old_column_id,
                "newColumnId": task.column_id,
                "task": task_to_dict(task),
            })
        else:
            self._publish("updated", {
                "taskId": task.id,
                "columnId": task.column_id,
                "changes": sorted(updates),
                "task": task_to_dict(task),
            })
        return task, old_column_id

    def move_task(self, task_id: int, column_id: int, moved_by: Optional[int] = None) -> Optional[Task]:
        """Move a task to another column. Returns None when the task does not exist."""
        result = self.update_task(task_id, {"column_id": column_id}, updated_by=moved_by)
        return result[0] if result else None

    def create_next_instance(self, original: Task, due_date: datetime) -> Task:
        """Create the next occurrence of a recurring task, copying its template fields and tags."""
        return self.create_task(
            title=original.title,
            column_id=original.column_id,
            description=original.description,
            priority=original.priority,
            due_date=due_date,
            recurring_rule=original.recurring_rule,
            created_by=original.created_by,
            assigned_to=original.assigned_to,
            tag_ids=self.tag_ids(original.id),
        )

    def delete_task(self, task_id: int, deleted_by: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Delete a task. Returns its last state, or None when it does not exist."""
        task = self.get_task(task_id)
        if not task:
            return None

        snapshot = task_to_dict(task)
        self.db.delete(task)
        self.db.commit()
        logger.info(f"Task {task_id} deleted by {deleted_by or 'system'}")

        self._publish("deleted", {
            "taskId": task_id,
            "columnId": snapshot["column_id"],
            "task": snapshot,
        })
        return snapshot

    # =============================================================================
    # Tags
    # =============================================================================

    def list_tags(self) -> List[Tag]:
        return self.db.query(Tag).order_by(Tag.name).all()

    def create_tag(self, name: str, color: Optional[str] = None) -> Tag:
        tag = Tag(name=name, color=color or "#95a5a6")
        self.db.add(tag)
        self.db.commit()
        self.db.refresh(tag)
        return tag

    # =============================================================================
    # Internals
    # =============================================================================

    def _record_history(self, task_id, action, old_value, new_value, user_id) -> None:
        self.db.add(TaskHistory(
            task_id=task_id,
            action=action,
            old_value=old_value,
            new_value=new_value,
            user_id=user_id,
        ))

    def _publish(self, action: str, payload: Dict[str, Any]) -> None:
        if self.event_log is not None:
            self.event_log.publish("task", action, payload)


def _history_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
