"""HTTP routers for the Kanban backend."""

from app.routes.automation import router as automation_router
from app.routes.integrations import router as integrations_router
from app.routes.notifications import router as notifications_router
from app.routes.sync import router as sync_router
from app.routes.tasks import router as tasks_router

__all__ = [
    "automation_router",
    "integrations_router",
    "notifications_router",
    "sync_router",
    "tasks_router",
]
