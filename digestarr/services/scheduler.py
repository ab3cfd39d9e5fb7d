"""Cron scheduling for newsletter sends and cache sweeps."""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from digestarr.core.config import WEEKDAYS, Settings
from digestarr.services.cache import SWEEP_INTERVAL, ResponseCache
from digestarr.services.mailer import MailerError
from digestarr.services.newsletter import NewsletterService, newsletter, response_cache
from digestarr.services.pipeline import AllSourcesFailedError

logger = logging.getLogger(__name__)

NEWSLETTER_JOB_ID = "newsletter"
SWEEP_JOB_ID = "cache_sweep"


def cron_expression(settings: Settings) -> str:
    """Classic five-field cron string, for display."""
    hour, minute = settings.schedule_hour_minute
    if settings.is_monthly:
        return f"{minute} {hour} {settings.schedule_day_of_month} * *"
    return f"{minute} {hour} * * {WEEKDAYS.index(settings.schedule_day)}"


def build_trigger(settings: Settings) -> CronTrigger:
    hour, minute = settings.schedule_hour_minute
    if settings.is_monthly:
        return CronTrigger(
            day=settings.schedule_day_of_month,
            hour=hour,
            minute=minute,
            timezone=settings.tzinfo,
        )
    return CronTrigger(
        day_of_week=settings.schedule_day.lower(),
        hour=hour,
        minute=minute,
        timezone=settings.tzinfo,
    )


def next_scheduled_run(
    settings: Settings, now: Optional[datetime] = None
) -> Optional[datetime]:
    """When the configured schedule fires next."""
    now = now or datetime.now(settings.tzinfo)
    return build_trigger(settings).get_next_fire_time(None, now)


class NewsletterScheduler:
    """Owns the AsyncIOScheduler with the newsletter job and the cache sweep."""

    def __init__(self, service: NewsletterService, cache: ResponseCache) -> None:
        self.service = service
        self.cache = cache
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def _scheduled_send(self) -> None:
        try:
            report = await self.service.send()
        except (AllSourcesFailedError, MailerError) as e:
            logger.error("Scheduled newsletter failed: %s", e)
            return
        logger.info("Scheduled newsletter finished: %s", report.status)

    def start(self, settings: Settings) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone=settings.tzinfo)
        self._scheduler.add_job(
            self.cache.sweep,
            IntervalTrigger(seconds=SWEEP_INTERVAL),
            id=SWEEP_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._scheduled_send,
            build_trigger(settings),
            id=NEWSLETTER_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            "Scheduler started (cron '%s', %s)", cron_expression(settings), settings.timezone
        )

    def reschedule(self, settings: Settings) -> None:
        """Apply a changed schedule without restarting the sweep."""
        if not self.running:
            return
        self._scheduler.reschedule_job(NEWSLETTER_JOB_ID, trigger=build_trigger(settings))
        logger.info("Newsletter rescheduled to '%s'", cron_expression(settings))

    def next_run(self) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(NEWSLETTER_JOB_ID)
        return job.next_run_time if job else None

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None


scheduler = NewsletterScheduler(newsletter, response_cache)
