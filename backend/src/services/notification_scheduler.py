"""
Delivery scheduler for queued notifications.

Runs NotificationDispatcher.deliver_due on a fixed interval so that outbox
rows written by request handlers are eventually sent, with retries, without
blocking any request.
"""

import asyncio
import logging
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from core.config import NOTIFICATION_BATCH_SIZE, NOTIFICATION_DISPATCH_INTERVAL_SECONDS
from core.constants import NOTIFICATION_SCHEDULER_MAX_INSTANCES
from core.database import get_db_context
from services.notification_dispatcher import EmailSender, LoggingEmailSender, NotificationDispatcher

logger = logging.getLogger(__name__)

# Global singleton instance
_notification_scheduler: Optional['NotificationScheduler'] = None


class NotificationScheduler:
    """
    Scheduler for draining the notification outbox.

    Database sessions are created fresh for each run to avoid stale session
    issues.
    """

    def __init__(
        self,
        sender: Optional[EmailSender] = None,
        interval_seconds: int = NOTIFICATION_DISPATCH_INTERVAL_SECONDS,
        batch_size: int = NOTIFICATION_BATCH_SIZE,
    ):
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.sender = sender or LoggingEmailSender()
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._is_started = False

    async def start_scheduler(self) -> None:
        """
        Start the background delivery job.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Notification scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self._run_delivery,
            IntervalTrigger(seconds=self.interval_seconds),
            id="notification_delivery",
            name="Notification outbox delivery",
            replace_existing=True,
            max_instances=NOTIFICATION_SCHEDULER_MAX_INSTANCES,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Notification scheduler started (every {self.interval_seconds}s)")

    async def stop_scheduler(self) -> None:
        """
        Stop the background scheduler.

        This should be called during application shutdown.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Notification scheduler stopped")

    async def _run_delivery(self) -> None:
        # Blocking database work runs in a worker thread so the event loop stays free
        await asyncio.to_thread(self._execute_delivery_logic)

    def _execute_delivery_logic(self) -> int:
        """Deliver one batch of due notifications. Errors are logged, not raised."""
        try:
            with get_db_context() as db:
                return NotificationDispatcher.deliver_due(
                    db, self.sender, batch_size=self.batch_size
                )
        except Exception as e:
            logger.exception(f"Error during notification delivery: {e}")
            return 0


def get_notification_scheduler() -> NotificationScheduler:
    """
    Get the global notification scheduler instance.

    Returns:
        NotificationScheduler: The global scheduler instance
    """
    global _notification_scheduler
    if _notification_scheduler is None:
        _notification_scheduler = NotificationScheduler()
    return _notification_scheduler


async def start_notification_scheduler() -> None:
    """Start the global notification scheduler."""
    scheduler = get_notification_scheduler()
    await scheduler.start_scheduler()


async def stop_notification_scheduler() -> None:
    """Stop the global notification scheduler."""
    global _notification_scheduler
    if _notification_scheduler:
        await _notification_scheduler.stop_scheduler()
