"""
Background scheduler.

Three independent loops share nothing but the database:
- due sweep (every minute): due / overdue / due-soon tasks fire automation
  and a notification
- recurrence sweep (daily at midnight UTC): creates the next instance of
  recurring tasks
- log retention (weekly, Sunday midnight UTC): prunes old automation logs

A failure while handling one task is logged and the sweep moves on.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from app.automation.engine import AutomationEngine
from app.automation.notifier import Notifier
from app.clock import utcnow
from app.config import Settings
from app.db.automation_service import AutomationService
from app.db.models import Task
from app.db.task_service import TaskService
from app.events.log import EventLog
from app.triggers.detector import classify_due, minutes_until
from app.triggers.models import DueStatus, RecurringRule
from app.triggers.recurrence import next_occurrence, should_generate_today

logger = logging.getLogger(__name__)

SUNDAY = 6


def seconds_until_midnight(now: datetime) -> float:
    next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
    return (next_midnight - now).total_seconds()


def seconds_until_weekday_midnight(now: datetime, weekday: int = SUNDAY) -> float:
    days_ahead = (weekday - now.weekday()) % 7 or 7
    target = datetime.combine(now.date() + timedelta(days=days_ahead), datetime.min.time())
    return (target - now).total_seconds()


def _task_event_data(task: Task) -> Dict:
    return {
        "taskId": task.id,
        "columnId": task.column_id,
        "priority": task.priority,
        "assignedTo": task.assigned_to,
        "dueDate": task.due_date.isoformat() if task.due_date else None,
    }


class Scheduler:
    """Runs the periodic sweeps as asyncio tasks."""

    def __init__(
        self,
        session_factory: sessionmaker,
        engine: AutomationEngine,
        notifier: Notifier,
        event_log: Optional[EventLog] = None,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.notifier = notifier
        self.event_log = event_log
        self.settings = settings or Settings()
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._running

    # =============================================================================
    # Sweeps
    # =============================================================================

    async def sweep_due_tasks(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Classify every task due at or before now + the due-soon window."""
        now = now or utcnow()
        due_soon_within = timedelta(minutes=self.settings.due_soon_window_minutes)
        overdue_after = timedelta(minutes=self.settings.overdue_grace_minutes)

        with self.session_factory() as db:
            tasks = TaskService(db).tasks_due_before(now + due_soon_within)

        counts = {status.value: 0 for status in DueStatus}
        for task in tasks:
            try:
                status = classify_due(task.due_date, now, overdue_after, due_soon_within)
                if status is None:
                    continue

                data = _task_event_data(task)
                if self.event_log is not None:
                    self.event_log.publish("task", status.value, data)
                await self.engine.trigger(status.trigger_type, data)
                await self._notify_due(task, status, now)
                counts[status.value] += 1

            except Exception as e:
                logger.error(f"Error checking due task {task.id}: {e}", exc_info=True)

        if any(counts.values()):
            logger.info(f"Due sweep: {counts}")
        return counts

    async def _notify_due(self, task: Task, status: DueStatus, now: datetime) -> None:
        if status == DueStatus.OVERDUE:
            await self.notifier.send(
                f"Overdue Task: {task.title}",
                f'Task "{task.title}" was due on {task.due_date:%Y-%m-%d} at {task.due_date:%H:%M} UTC',
                type="due",
                task_id=task.id,
                priority="high",
                metadata={"dueDate": task.due_date.isoformat(), "columnId": task.column_id},
            )
        elif status == DueStatus.DUE:
            await self.notifier.send_task_reminder(task)
        else:
            await self.notifier.send_task_due_notification(task, minutes_until(task.due_date, now))

    async def sweep_recurring_tasks(self, today: Optional[date] = None) -> List[int]:
        """Create the instances of recurring tasks whose next occurrence is today."""
        today = today or utcnow().date()

        with self.session_factory() as db:
            tasks = TaskService(db).recurring_tasks()

        created = []
        for task in tasks:
            try:
                new_task = await self._generate_next_instance(task, today)
                if new_task is not None:
                    created.append(new_task.id)
            except Exception as e:
                logger.error(f"Error processing recurring task {task.id}: {e}", exc_info=True)

        if created:
            logger.info(f"Recurrence sweep created {len(created)} task(s): {created}")
        return created

    async def _generate_next_instance(self, task: Task, today: date) -> Optional[Task]:
        if task.due_date is None:
            logger.debug(f"Recurring task {task.id} has no due date, skipping")
            return None

        rule = RecurringRule.from_json(task.recurring_rule)
        if not should_generate_today(task.due_date, rule, today):
            return None
        next_due = next_occurrence(task.due_date, rule)

        with self.session_factory() as db:
            service = TaskService(db, self.event_log)

            if rule.max_occurrences and service.count_series(task.recurring_rule) >= rule.max_occurrences:
                logger.info(f"Recurring task {task.id} reached {rule.max_occurrences} occurrence(s)")
                return None
            if service.occurrence_exists(task.recurring_rule, next_due):
                return None

            original = service.get_task(task.id)
            if original is None:
                return None
            new_task = service.create_next_instance(original, next_due)

        await self.engine.trigger("task_created", _task_event_data(new_task))
        await self.notifier.send_routine_reminder(new_task)
        return new_task

    def prune_automation_logs(self, now: Optional[datetime] = None) -> int:
        """Delete automation logs older than the retention period."""
        now = now or utcnow()
        cutoff = now - timedelta(days=self.settings.automation_log_retention_days)
        with self.session_factory() as db:
            deleted = AutomationService(db).prune_logs(cutoff)
        logger.info(f"Cleaned up {deleted} old automation log entries")
        return deleted

    async def _prune_job(self) -> None:
        self.prune_automation_logs()

    # =============================================================================
    # Loops
    # =============================================================================

    async def _run_periodic(
        self,
        name: str,
        job: Callable[[], Awaitable],
        delay: Callable[[], float],
    ) -> None:
        logger.info(f"{name} loop started")
        while self._running:
            try:
                await asyncio.sleep(delay())
                await job()
            except asyncio.CancelledError:
                logger.info(f"{name} loop cancelled")
                break
            except Exception as e:
                logger.error(f"{name} error: {e}", exc_info=True)
        logger.info(f"{name} loop stopped")

    def start(self) -> None:
        """Start the three loops on the running event loop."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._run_periodic(
                "Due sweep", self.sweep_due_tasks, lambda: self.settings.due_sweep_interval,
            )),
            loop.create_task(self._run_periodic(
                "Recurrence sweep", self.sweep_recurring_tasks, lambda: seconds_until_midnight(utcnow()),
            )),
            loop.create_task(self._run_periodic(
                "Log retention", self._prune_job, lambda: seconds_until_weekday_midnight(utcnow()),
            )),
        ]
        logger.info("Scheduler started")

    async def stop(self) -> None:
        """Cancel the loops and wait for them to finish."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Scheduler stopped")
