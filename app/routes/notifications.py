"""Recently dispatched notifications."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.automation.notifier import Notifier
from app.routes.deps import get_notifier

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    limit: Optional[int] = Query(default=None, ge=1),
    notifier: Notifier = Depends(get_notifier),
):
    """Newest first."""
    return [n.model_dump(mode="json") for n in notifier.recent(limit)]
