"""Data models for the scheduler and recurrence calculator."""

import json
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.clock import parse_datetime


class Frequency(str, Enum):
    """Recurrence period."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class DueStatus(str, Enum):
    """Due-date classification produced by one sweep."""
    OVERDUE = "overdue"  # more than the grace period past due
    DUE = "due"  # at or just past the due instant
    DUE_SOON = "due_soon"  # inside the look-ahead window

    @property
    def trigger_type(self) -> str:
        return f"task_{self.value}"


class RecurringRule(BaseModel):
    """Recurrence template stored on a task's recurring_rule field."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    frequency: Frequency
    interval: Optional[int] = 1
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    max_occurrences: Optional[int] = Field(default=None, alias="maxOccurrences")

    @field_validator("end_date", mode="before")
    @classmethod
    def _parse_end_date(cls, value):
        if value is None or value == "":
            return None
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError(f"Invalid endDate: {value}")
        return parsed

    @property
    def step(self) -> int:
        """Interval, defaulting to 1 when missing or not positive."""
        return self.interval if self.interval and self.interval > 0 else 1

    @classmethod
    def from_json(cls, text: str) -> "RecurringRule":
        return cls.model_validate(json.loads(text))
