import asyncio
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from smartcare.services.scheduler import ReminderScheduler, seconds_until_next_run

COLOMBO = ZoneInfo("Asia/Colombo")


@pytest.mark.parametrize("now, expected", [
    (datetime(2026, 3, 9, 17, 0, tzinfo=COLOMBO), 3600),
    (datetime(2026, 3, 9, 18, 0, tzinfo=COLOMBO), 86400),
    (datetime(2026, 3, 9, 18, 30, tzinfo=COLOMBO), 84600),
    (datetime(2026, 3, 9, 0, 0, tzinfo=COLOMBO), 64800),
])
def test_seconds_until_next_run(now, expected):
    assert seconds_until_next_run(now) == expected


def test_custom_run_time():
    now = datetime(2026, 3, 9, 7, 45, tzinfo=COLOMBO)

    assert seconds_until_next_run(now, hour=8, minute=15) == 1800


def test_next_delay_uses_scheduler_timezone():
    # 12:00 UTC is 17:30 in Colombo
    clock = lambda: datetime(2026, 3, 9, 12, 0, tzinfo=ZoneInfo("UTC"))
    scheduler = ReminderScheduler(job=lambda today: None, clock=clock)

    assert scheduler.next_delay() == 1800


def test_run_once_passes_local_date():
    seen = []
    # 20:00 UTC is already the next day in Colombo
    clock = lambda: datetime(2026, 3, 9, 20, 0, tzinfo=ZoneInfo("UTC"))
    scheduler = ReminderScheduler(job=lambda today: seen.append(today) or "done", clock=clock)

    result = asyncio.run(scheduler.run_once())

    assert result == "done"
    assert seen == [date(2026, 3, 10)]


def test_failed_run_is_swallowed():
    def job(today):
        raise RuntimeError("database unavailable")

    scheduler = ReminderScheduler(job=job, clock=lambda: datetime(2026, 3, 9, 18, 0, tzinfo=COLOMBO))

    assert asyncio.run(scheduler.run_once()) is None


def test_start_and_stop():
    async def scenario():
        scheduler = ReminderScheduler(job=lambda today: None)
        scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        return scheduler.running

    assert asyncio.run(scenario()) is False
