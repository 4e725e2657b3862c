"""
Due-date detector.

Classifies a task's due date relative to the current time. Exactly one
classification applies; the due instant itself counts as "due".
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from app.triggers.models import DueStatus

DEFAULT_OVERDUE_AFTER = timedelta(hours=1)
DEFAULT_DUE_SOON_WITHIN = timedelta(hours=1)


def classify_due(
    due_date: Optional[datetime],
    now: datetime,
    overdue_after: timedelta = DEFAULT_OVERDUE_AFTER,
    due_soon_within: timedelta = DEFAULT_DUE_SOON_WITHIN,
) -> Optional[DueStatus]:
    """
    - now - due_date > overdue_after   -> OVERDUE
    - now >= due_date                  -> DUE
    - due_date - now <= due_soon_within -> DUE_SOON
    - otherwise None
    """
    if due_date is None:
        return None

    if now - due_date > overdue_after:
        return DueStatus.OVERDUE
    if now >= due_date:
        return DueStatus.DUE
    if due_date - now <= due_soon_within:
        return DueStatus.DUE_SOON
    return None


def minutes_until(due_date: datetime, now: datetime) -> int:
    """Whole minutes until due, rounded up."""
    return math.ceil((due_date - now).total_seconds() / 60)
