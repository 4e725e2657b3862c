"""Scheduler for the Kanban backend - due-date sweeps and recurring task generation."""

from app.triggers.scheduler import Scheduler
from app.triggers.detector import classify_due
from app.triggers.models import DueStatus, Frequency, RecurringRule
from app.triggers.recurrence import next_occurrence, should_generate_today

__all__ = [
    "Scheduler",
    "classify_due",
    "DueStatus",
    "Frequency",
    "RecurringRule",
    "next_occurrence",
    "should_generate_today",
]
