import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from digestarr.models.media import AggregateResult, Movie
from digestarr.services.cache import ResponseCache
from digestarr.services.mailer import MailerError
from digestarr.services.newsletter import NewsletterService
from digestarr.services.pipeline import AllSourcesFailedError
from digestarr.services.stats import Stats

RESULT = AggregateResult(
    week_start="November 12, 2025",
    week_end="November 19, 2025",
    upcoming_start="November 19, 2025",
    upcoming_end="November 26, 2025",
    upcoming_movies=[Movie(title="Wicked", release_date="2025-11-22", monitored=True)],
)


@pytest.fixture
def recipients_settings(make_settings):
    return make_settings(
        smtp_host="smtp.example.com",
        from_email="news@example.com",
        to_emails="a@x.com,b@x.com",
    )


def service_with(run_result=None, run_error=None, tmp_path=None):
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=run_result, side_effect=run_error)
    pipeline.aclose = AsyncMock()
    mailer = MagicMock()
    mailer.send_async = AsyncMock()
    stats = Stats(tmp_path / ".stats.json")
    service = NewsletterService(
        ResponseCache(),
        stats,
        pipeline_factory=MagicMock(return_value=pipeline),
        mailer_factory=MagicMock(return_value=mailer),
    )
    return service, pipeline, mailer, stats


@pytest.mark.asyncio
async def test_send_renders_mails_and_records(recipients_settings, tmp_path):
    service, pipeline, mailer, stats = service_with(RESULT, tmp_path=tmp_path)

    report = await service.send(recipients_settings)

    assert report.status == "sent"
    assert report.recipients == 2
    assert report.subject == "Your Weekly Newsletter - November 19, 2025"
    subject, html, to = mailer.send_async.await_args.args
    assert "Wicked" in html
    assert to == ["a@x.com", "b@x.com"]
    pipeline.aclose.assert_awaited_once()

    assert stats.snapshot().total_emails_sent == 2
    saved = json.loads((tmp_path / ".stats.json").read_text())
    assert saved["total_emails_sent"] == 2
    assert saved["last_sent_date"] == report.sent_at


@pytest.mark.asyncio
async def test_send_skips_without_content(recipients_settings, tmp_path):
    service, _, mailer, stats = service_with(None, tmp_path=tmp_path)

    report = await service.send(recipients_settings)

    assert report.status == "skipped"
    mailer.send_async.assert_not_awaited()
    assert stats.snapshot().total_emails_sent == 0


@pytest.mark.asyncio
async def test_total_failure_never_renders_or_mails(recipients_settings, tmp_path):
    service, pipeline, mailer, stats = service_with(
        run_error=AllSourcesFailedError("All services failed: Sonarr, Radarr"),
        tmp_path=tmp_path,
    )

    with patch("digestarr.services.newsletter.render_newsletter") as render:
        with pytest.raises(AllSourcesFailedError):
            await service.send(recipients_settings)

    render.assert_not_called()
    mailer.send_async.assert_not_awaited()
    pipeline.aclose.assert_awaited_once()
    assert not (tmp_path / ".stats.json").exists()


@pytest.mark.asyncio
async def test_mailer_failure_is_not_recorded(recipients_settings, tmp_path):
    service, _, mailer, stats = service_with(RESULT, tmp_path=tmp_path)
    mailer.send_async.side_effect = MailerError("Batch 1 failed")

    with pytest.raises(MailerError):
        await service.send(recipients_settings)

    assert stats.snapshot().total_emails_sent == 0


@pytest.mark.asyncio
async def test_preview_uses_preview_mode(recipients_settings, tmp_path):
    service, pipeline, mailer, _ = service_with(RESULT, tmp_path=tmp_path)

    html = await service.preview(recipients_settings)

    pipeline.run.assert_awaited_once_with(preview=True)
    assert "Wicked" in html
    mailer.send_async.assert_not_awaited()


def test_stats_load_round_trip(tmp_path):
    path = tmp_path / ".stats.json"
    path.write_text(json.dumps({"total_emails_sent": 41, "last_sent_date": "2025-11-12T09:00:00+00:00"}))

    stats = Stats(path)
    stats.load()

    assert stats.snapshot().total_emails_sent == 41


def test_stats_load_ignores_corrupt_file(tmp_path):
    path = tmp_path / ".stats.json"
    path.write_text("{not json")

    stats = Stats(path)
    stats.load()

    assert stats.snapshot().total_emails_sent == 0
