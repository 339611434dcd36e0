"""
Reminder Scheduler
Runs the daily reminder sweep once a day at a fixed wall-clock time.

The scheduler is an asyncio task owned by the application lifespan. The clock
is injectable, and the next-run computation is a plain function of "now", so
the timing can be tested without waiting.
"""

import asyncio
import logging
import os
from contextlib import suppress
from datetime import datetime, time, timedelta
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from smartcare.database import session_scope
from smartcare.services.reminders import send_daily_reminders
from smartcare.utils.notification_service import get_notification_service

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Colombo"
DEFAULT_HOUR = 18


def seconds_until_next_run(now: datetime, hour: int = DEFAULT_HOUR, minute: int = 0) -> float:
    """Seconds from `now` to the next hour:minute in now's timezone.

    Exactly at the run time counts as the next day, so a job that finishes
    instantly is not fired twice.
    """
    target = datetime.combine(now.date(), time(hour, minute), tzinfo=now.tzinfo)
    if target <= now:
        target = target + timedelta(days=1)
    return (target - now).total_seconds()


def run_daily_reminders(today=None):
    with session_scope() as session:
        return send_daily_reminders(session, get_notification_service(), today=today)


class ReminderScheduler:
    def __init__(
        self,
        job: Optional[Callable[..., Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        hour: int = DEFAULT_HOUR,
        minute: int = 0,
        timezone: str = DEFAULT_TIMEZONE,
    ):
        self.tz = ZoneInfo(timezone)
        self.job = job or run_daily_reminders
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.hour = hour
        self.minute = minute
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_delay(self) -> float:
        return seconds_until_next_run(self.clock().astimezone(self.tz), self.hour, self.minute)

    async def run_once(self) -> Any:
        """Run the job now, in a worker thread; failures are logged, not raised."""
        today = self.clock().astimezone(self.tz).date()
        try:
            result = await asyncio.to_thread(self.job, today)
            logger.info(f"Reminder job finished: {result}")
            return result
        except Exception:
            logger.exception("Reminder job failed")
            return None

    async def _loop(self) -> None:
        while True:
            delay = self.next_delay()
            logger.info(f"Next reminder run in {delay:.0f}s")
            await asyncio.sleep(delay)
            await self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Reminder scheduler started ({self.hour:02d}:{self.minute:02d} {self.tz.key})")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Reminder scheduler stopped")


def scheduler_from_env() -> ReminderScheduler:
    return ReminderScheduler(
        hour=int(os.getenv("REMINDER_HOUR", str(DEFAULT_HOUR))),
        timezone=os.getenv("SCHEDULER_TIMEZONE", DEFAULT_TIMEZONE),
    )
