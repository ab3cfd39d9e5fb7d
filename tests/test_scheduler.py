from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from digestarr.services.cache import ResponseCache
from digestarr.services.pipeline import AllSourcesFailedError
from digestarr.services.scheduler import (
    SWEEP_JOB_ID,
    NewsletterScheduler,
    build_trigger,
    cron_expression,
    next_scheduled_run,
)


def test_cron_expression_weekly(make_settings):
    assert cron_expression(make_settings()) == "0 9 * * 0"
    assert cron_expression(make_settings(schedule_day="Fri", schedule_time="18:45")) == "45 18 * * 5"


def test_cron_expression_monthly(make_settings):
    settings = make_settings(
        schedule_type="monthly", schedule_day_of_month=15, schedule_time="07:30"
    )
    assert cron_expression(settings) == "30 7 15 * *"


def test_next_weekly_run(make_settings):
    settings = make_settings(schedule_day="Mon", schedule_time="09:00", timezone="UTC")
    now = datetime(2025, 11, 19, 12, 0, tzinfo=ZoneInfo("UTC"))  # a Wednesday

    next_run = next_scheduled_run(settings, now)

    assert next_run == datetime(2025, 11, 24, 9, 0, tzinfo=ZoneInfo("UTC"))


def test_next_monthly_run_uses_configured_timezone(make_settings):
    tz = ZoneInfo("America/New_York")
    settings = make_settings(
        schedule_type="monthly",
        schedule_day_of_month=1,
        schedule_time="08:00",
        timezone="America/New_York",
    )
    now = datetime(2025, 11, 19, 12, 0, tzinfo=tz)

    next_run = next_scheduled_run(settings, now)

    assert next_run == datetime(2025, 12, 1, 8, 0, tzinfo=tz)
    assert next_run.utcoffset() == tz.utcoffset(datetime(2025, 12, 1, 8, 0))


def test_trigger_fires_later_the_same_day(make_settings):
    settings = make_settings(schedule_day="Wed", schedule_time="18:00")
    now = datetime(2025, 11, 19, 12, 0, tzinfo=ZoneInfo("UTC"))

    fire = build_trigger(settings).get_next_fire_time(None, now)

    assert fire == datetime(2025, 11, 19, 18, 0, tzinfo=ZoneInfo("UTC"))


@pytest.mark.asyncio
async def test_scheduler_lifecycle(make_settings):
    service = MagicMock()
    service.send = AsyncMock()
    scheduler = NewsletterScheduler(service, ResponseCache())
    settings = make_settings(schedule_day="Mon")

    scheduler.start(settings)
    try:
        assert scheduler.running
        assert scheduler._scheduler.get_job(SWEEP_JOB_ID) is not None
        first = scheduler.next_run()
        assert first is not None
        assert first.strftime("%a") == "Mon"

        scheduler.reschedule(make_settings(schedule_day="Thu"))
        assert scheduler.next_run().strftime("%a") == "Thu"
    finally:
        scheduler.shutdown()

    assert not scheduler.running
    assert scheduler.next_run() is None


@pytest.mark.asyncio
async def test_scheduled_send_logs_failures(caplog):
    service = MagicMock()
    service.send = AsyncMock(side_effect=AllSourcesFailedError("All services failed: Sonarr"))
    scheduler = NewsletterScheduler(service, ResponseCache())

    await scheduler._scheduled_send()

    assert "Scheduled newsletter failed" in caplog.text


def test_reschedule_without_start_is_a_noop(make_settings):
    scheduler = NewsletterScheduler(MagicMock(), ResponseCache())
    scheduler.reschedule(make_settings())
    assert scheduler.next_run() is None
