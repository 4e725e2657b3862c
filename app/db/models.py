"""
Database models for the Kanban backend.

Only the tables the automation and recurrence subsystems touch are modelled:
tasks (with tags and history), outbound integrations, automation rules and
their execution logs.
"""

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean,
    JSON, ForeignKey
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Task(Base):
    """A card on a board column."""
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True, default="")
    column_id = Column(Integer, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    priority = Column(String(50), nullable=True, default="medium")
    due_date = Column(DateTime, nullable=True, index=True)  # naive UTC
    recurring_rule = Column(Text, nullable=True)  # JSON, copied verbatim onto generated instances
    created_by = Column(Integer, nullable=True)
    assigned_to = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    tags = relationship("Tag", secondary="task_tags", back_populates="tasks")
    history = relationship("TaskHistory", back_populates="task", cascade="all, delete-orphan")


class Tag(Base):
    """Label that can be attached to tasks."""
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    color = Column(String(20), nullable=False, default="#95a5a6")
    created_at = Column(DateTime, default=func.now(), nullable=False)

    tasks = relationship("Task", secondary="task_tags", back_populates="tags")


class TaskTag(Base):
    """Task/tag association."""
    __tablename__ = "task_tags"

    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class TaskHistory(Base):
    """Audit trail of task changes."""
    __tablename__ = "task_history"

    id = Column(Integer, primary_key=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(100), nullable=False)  # 'created', 'column_changed', 'priority_changed', ...
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    task = relationship("Task", back_populates="history")


class Integration(Base):
    """Outbound integration, e.g. an n8n webhook."""
    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False, index=True)  # 'n8n_webhook'
    config = Column(JSON, nullable=False, default=dict)  # {webhookUrl, apiKey}
    enabled = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class AutomationRule(Base):
    """Trigger/condition/action triple evaluated against domain events."""
    __tablename__ = "automation_rules"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    trigger_type = Column(String(100), nullable=False, index=True)
    # Stored as raw JSON text; malformed config is reported per rule at execution time.
    trigger_config = Column(Text, nullable=False, default="{}")
    action_type = Column(String(100), nullable=False)
    action_config = Column(Text, nullable=False, default="{}")
    enabled = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    logs = relationship("AutomationLog", back_populates="rule", cascade="all, delete-orphan")


class AutomationLog(Base):
    """One rule execution attempt."""
    __tablename__ = "automation_logs"

    id = Column(Integer, primary_key=True)
    rule_id = Column(Integer, ForeignKey("automation_rules.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # 'success', 'failed'
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)

    rule = relationship("AutomationRule", back_populates="logs")
