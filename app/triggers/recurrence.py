"""
Recurring task calculator.

Pure functions projecting the next occurrence of a recurring rule.

Month and year steps use naive calendar-field arithmetic: the month (or year)
field is incremented and an out-of-range day rolls over into the following
month. Jan 31 + 1 month is therefore Mar 2 in a leap year and Mar 3 otherwise,
and Feb 29 + 1 year is Mar 1.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from app.triggers.models import Frequency, RecurringRule


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, letting the day of month overflow into the next month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    first_of_month = value.replace(year=year, month=month, day=1)
    return first_of_month + timedelta(days=value.day - 1)


def _align(end_date: datetime, reference: datetime) -> datetime:
    """Make end_date comparable with reference (naive values are treated as UTC)."""
    if reference.tzinfo is None and end_date.tzinfo is not None:
        return end_date.astimezone(timezone.utc).replace(tzinfo=None)
    if reference.tzinfo is not None and end_date.tzinfo is None:
        return end_date.replace(tzinfo=timezone.utc)
    return end_date


def next_occurrence(last_due_date: datetime, rule: Union[RecurringRule, Dict[str, Any]]) -> Optional[datetime]:
    """
    Next due date after last_due_date, or None once the series has ended.

    Raises TypeError when last_due_date is not a date and ValueError for an
    unknown frequency. maxOccurrences is not considered here; callers count
    existing instances themselves.
    """
    if isinstance(last_due_date, date) and not isinstance(last_due_date, datetime):
        last_due_date = datetime(last_due_date.year, last_due_date.month, last_due_date.day)
    if not isinstance(last_due_date, datetime):
        raise TypeError(f"last_due_date must be a datetime, got {type(last_due_date).__name__}")

    if not isinstance(rule, RecurringRule):
        rule = RecurringRule.model_validate(rule)

    step = rule.step
    if rule.frequency == Frequency.DAILY:
        next_due = last_due_date + timedelta(days=step)
    elif rule.frequency == Frequency.WEEKLY:
        next_due = last_due_date + timedelta(days=step * 7)
    elif rule.frequency == Frequency.MONTHLY:
        next_due = add_months(last_due_date, step)
    elif rule.frequency == Frequency.YEARLY:
        next_due = add_months(last_due_date, step * 12)
    else:
        raise ValueError(f"Unknown frequency: {rule.frequency}")

    if rule.end_date and _align(rule.end_date, next_due) < next_due:
        return None

    return next_due


def should_generate_today(
    last_due_date: datetime,
    rule: Union[RecurringRule, Dict[str, Any]],
    today: date,
) -> bool:
    """True when the next occurrence falls on `today`."""
    next_due = next_occurrence(last_due_date, rule)
    return next_due is not None and next_due.date() == today
