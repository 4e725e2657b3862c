"""
Task, tag and routine endpoints.

Each mutation commits first, then schedules the matching automation trigger
as a background task; automation outcomes never change the response.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.automation.engine import AutomationEngine
from app.clock import parse_datetime, to_naive_utc
from app.db.task_service import TaskService, task_to_dict
from app.events.log import EventLog
from app.routes.deps import get_automation_engine, get_db, get_event_log
from app.triggers.models import Frequency, RecurringRule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tasks"])


class TaskCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    column_id: int = Field(alias="columnId")
    description: Optional[str] = ""
    priority: Optional[str] = "medium"
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    recurring_rule: Optional[Dict[str, Any]] = Field(default=None, alias="recurringRule")
    created_by: Optional[int] = Field(default=None, alias="createdBy")
    assigned_to: Optional[int] = Field(default=None, alias="assignedTo")
    tags: List[int] = []


class TaskUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    column_id: Optional[int] = Field(default=None, alias="columnId")
    position: Optional[int] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    recurring_rule: Optional[Dict[str, Any]] = Field(default=None, alias="recurringRule")
    assigned_to: Optional[int] = Field(default=None, alias="assignedTo")
    updated_by: Optional[int] = Field(default=None, alias="updatedBy")


class TagCreate(BaseModel):
    name: str = Field(min_length=1)
    color: Optional[str] = None


class RoutineCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    description: Optional[str] = ""
    column_id: int = Field(alias="columnId")
    start_at: str = Field(alias="startAt")
    frequency: Frequency
    interval: Optional[int] = Field(default=None, ge=1)
    occurrences: Optional[int] = Field(default=None, ge=1)
    end_date: Optional[str] = Field(default=None, alias="endDate")


def _automation_data(task) -> Dict[str, Any]:
    return {
        "taskId": task.id,
        "columnId": task.column_id,
        "priority": task.priority,
        "assignedTo": task.assigned_to,
    }


def _validate_recurring_rule(rule: Optional[Dict[str, Any]]) -> None:
    if rule is None:
        return
    try:
        RecurringRule.model_validate(rule)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid recurring rule: {e.errors()[0]['msg']}")


# =============================================================================
# Tasks
# =============================================================================

@router.get("/tasks")
async def list_tasks(column_id: Optional[int] = None, db: Session = Depends(get_db)):
    """List tasks, optionally for one column."""
    return [task_to_dict(task) for task in TaskService(db).list_tasks(column_id)]


@router.get("/tasks/{task_id}")
async def get_task(task_id: int, db: Session = Depends(get_db)):
    task = TaskService(db).get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task_to_dict(task)


@router.post("/tasks", status_code=201)
async def create_task(
    body: TaskCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    event_log: EventLog = Depends(get_event_log),
    engine: AutomationEngine = Depends(get_automation_engine),
):
    """Create a task at the end of its column."""
    _validate_recurring_rule(body.recurring_rule)
    task = TaskService(db, event_log).create_task(
        title=body.title,
        column_id=body.column_id,
        description=body.description,
        priority=body.priority,
        due_date=to_naive_utc(body.due_date) if body.due_date else None,
        recurring_rule=body.recurring_rule,
        created_by=body.created_by,
        assigned_to=body.assigned_to,
        tag_ids=body.tags,
    )
    background_tasks.add_task(engine.trigger, "task_created", _automation_data(task))
    return task_to_dict(task)


@router.put("/tasks/{task_id}")
async def update_task(
    task_id: int,
    body: TaskUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    event_log: EventLog = Depends(get_event_log),
    engine: AutomationEngine = Depends(get_automation_engine),
):
    """Update task fields. A column change fires task_moved; other changes fire task_updated."""
    changes = body.model_dump(exclude_unset=True, exclude={"updated_by"})
    if changes.get("due_date"):
        changes["due_date"] = to_naive_utc(changes["due_date"])
    _validate_recurring_rule(changes.get("recurring_rule"))

    try:
        result = TaskService(db, event_log).update_task(task_id, changes, updated_by=body.updated_by)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="Task not found")

    task, old_column_id = result
    if task.column_id != old_column_id:
        background_tasks.add_task(engine.trigger, "task_moved", {
            "taskId": task.id,
            "oldColumnId": old_column_id,
            "newColumnId": task.column_id,
        })
    if set(changes) - {"column_id", "position"}:
        background_tasks.add_task(engine.trigger, "task_updated", _automation_data(task))

    return {"message": "Task updated successfully", "task": task_to_dict(task)}


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: int,
    background_tasks: BackgroundTasks,
    deleted_by: Optional[int] = None,
    db: Session = Depends(get_db),
    event_log: EventLog = Depends(get_event_log),
    engine: AutomationEngine = Depends(get_automation_engine),
):
    snapshot = TaskService(db, event_log).delete_task(task_id, deleted_by=deleted_by)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Task not found")

    background_tasks.add_task(engine.trigger, "task_deleted", {
        "taskId": task_id,
        "columnId": snapshot["column_id"],
    })
    return {"message": "Task deleted successfully"}


# =============================================================================
# Tags
# =============================================================================

@router.get("/tags")
async def list_tags(db: Session = Depends(get_db)):
    return [{"id": t.id, "name": t.name, "color": t.color} for t in TaskService(db).list_tags()]


@router.post("/tags", status_code=201)
async def create_tag(body: TagCreate, db: Session = Depends(get_db)):
    try:
        tag = TaskService(db).create_tag(body.name, body.color)
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=f"Tag '{body.name}' already exists")
    return {"id": tag.id, "name": tag.name, "color": tag.color}


# =============================================================================
# Routines
# =============================================================================

@router.post("/routines", status_code=201)
async def create_routine(
    body: RoutineCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    event_log: EventLog = Depends(get_event_log),
    engine: AutomationEngine = Depends(get_automation_engine),
):
    """Create the base task of a recurring series."""
    start = parse_datetime(body.start_at)
    if start is None:
        raise HTTPException(status_code=400, detail="startAt must be a valid date")

    recurring_rule = {
        "frequency": body.frequency.value,
        "interval": body.interval or 1,
        "maxOccurrences": body.occurrences,
        "endDate": body.end_date,
    }
    _validate_recurring_rule(recurring_rule)

    task = TaskService(db, event_log).create_task(
        title=body.title,
        column_id=body.column_id,
        description=body.description,
        due_date=to_naive_utc(start),
        recurring_rule=json.dumps(recurring_rule),
    )
    logger.info(f"Routine task {task.id} created: {body.frequency.value} every {recurring_rule['interval']}")
    background_tasks.add_task(engine.trigger, "task_created", _automation_data(task))

    return {
        "message": "Routine created with recurring tasks",
        "taskId": task.id,
        "recurringRule": recurring_rule,
    }
