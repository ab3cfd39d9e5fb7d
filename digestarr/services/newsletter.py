"""One newsletter run end to end: aggregate, render, send, record."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from digestarr.core.config import Settings, get_settings
from digestarr.services.cache import ResponseCache
from digestarr.services.mailer import Mailer
from digestarr.services.pipeline import DigestPipeline
from digestarr.services.renderer import build_subject, render_newsletter
from digestarr.services.stats import Stats, stats

logger = logging.getLogger(__name__)


@dataclass
class SendReport:
    status: str  # 'sent' or 'skipped'
    recipients: int = 0
    subject: str = ""
    sent_at: Optional[str] = None


class NewsletterService:
    """Glue between the pipeline, the renderer and the mailer."""

    def __init__(
        self,
        cache: ResponseCache,
        stats: Stats,
        pipeline_factory: Callable[[Settings, ResponseCache], DigestPipeline] = DigestPipeline,
        mailer_factory: Callable[[Settings], Mailer] = Mailer,
    ) -> None:
        self.cache = cache
        self.stats = stats
        self._pipeline_factory = pipeline_factory
        self._mailer_factory = mailer_factory

    async def preview(self, settings: Optional[Settings] = None) -> str:
        """Render the newsletter with the preview retry budget. Never aborts."""
        settings = settings or get_settings()
        pipeline = self._pipeline_factory(settings, self.cache)
        try:
            result = await pipeline.run(preview=True)
        finally:
            await pipeline.aclose()
        return render_newsletter(result, settings)

    async def send(self, settings: Optional[Settings] = None) -> SendReport:
        """Run the pipeline and mail the result.

        Raises AllSourcesFailedError when nothing could be fetched and
        MailerError when delivery fails; returns a 'skipped' report when
        there is no content.
        """
        settings = settings or get_settings()
        logger.info("Starting newsletter generation (%s)", settings.schedule_type)

        pipeline = self._pipeline_factory(settings, self.cache)
        try:
            result = await pipeline.run()
        finally:
            await pipeline.aclose()

        if result is None:
            return SendReport(status="skipped")

        html = render_newsletter(result, settings)
        subject = build_subject(result, settings)

        logger.info("Sending emails...")
        mailer = self._mailer_factory(settings)
        await mailer.send_async(subject, html, settings.to_emails)

        now = datetime.now(settings.tzinfo)
        self.stats.record_send(len(settings.to_emails), now)
        logger.info("Newsletter sent successfully!")
        return SendReport(
            status="sent",
            recipients=len(settings.to_emails),
            subject=subject,
            sent_at=now.isoformat(timespec="seconds"),
        )


response_cache = ResponseCache()
newsletter = NewsletterService(response_cache, stats)
