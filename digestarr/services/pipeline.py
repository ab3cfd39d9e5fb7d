"""Concurrent fetch orchestration and aggregation for one newsletter run."""

import asyncio
import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from digestarr.core.config import Settings
from digestarr.models.fetch import FetchOutcome, SourceKey
from digestarr.models.media import AggregateResult
from digestarr.providers.base import SourceError
from digestarr.providers.radarr import RadarrClient
from digestarr.providers.sonarr import SonarrClient
from digestarr.providers.trakt import TraktClient
from digestarr.services import normalize
from digestarr.services.cache import ResponseCache
from digestarr.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PRIMARY_SERVICES = ("sonarr", "radarr")


class AllSourcesFailedError(Exception):
    """Every configured primary source failed, so there is nothing to send."""


def _label(moment: datetime) -> str:
    return f"{moment:%B} {moment.day}, {moment.year}"


def _add_month(moment: datetime) -> datetime:
    if moment.month == 12:
        year, month = moment.year + 1, 1
    else:
        year, month = moment.year, moment.month + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


@dataclass(frozen=True)
class ReportWindow:
    """History and upcoming ranges for one run, plus their display labels."""

    history_start: datetime
    history_end: datetime
    upcoming_start: datetime
    upcoming_end: datetime
    week_start: str
    week_end: str
    upcoming_start_label: str
    upcoming_end_label: str


def build_window(settings: Settings, now: Optional[datetime] = None) -> ReportWindow:
    """Weekly: the last and next seven days. Monthly: since the first of the
    previous month, and the month ahead."""
    now = now or datetime.now(settings.tzinfo)

    if settings.is_monthly:
        first_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        history_start = (first_of_month - timedelta(days=1)).replace(day=1)
        upcoming_end = _add_month(now)
        month = f"{now:%B} {now.year}"
        return ReportWindow(
            history_start=history_start,
            history_end=now,
            upcoming_start=now,
            upcoming_end=upcoming_end,
            week_start=month,
            week_end=month,
            upcoming_start_label=month,
            upcoming_end_label=month,
        )

    history_start = now - timedelta(days=7)
    upcoming_end = now + timedelta(days=7)
    return ReportWindow(
        history_start=history_start,
        history_end=now,
        upcoming_start=now,
        upcoming_end=upcoming_end,
        week_start=_label(history_start),
        week_end=_label(now),
        upcoming_start_label=_label(now),
        upcoming_end_label=_label(upcoming_end),
    )


def enabled_sources(settings: Settings) -> List[SourceKey]:
    """Sources worth launching for this configuration, decided up front."""
    sources = []
    if settings.sonarr_configured:
        sources += [SourceKey.SONARR_HISTORY, SourceKey.SONARR_CALENDAR]
    if settings.radarr_configured:
        sources += [SourceKey.RADARR_HISTORY, SourceKey.RADARR_CALENDAR]
    if settings.trakt_configured:
        toggles = {
            SourceKey.TRAKT_ANTICIPATED_SERIES: settings.show_trakt_anticipated_series,
            SourceKey.TRAKT_WATCHED_SERIES: settings.show_trakt_watched_series,
            SourceKey.TRAKT_ANTICIPATED_MOVIES: settings.show_trakt_anticipated_movies,
            SourceKey.TRAKT_WATCHED_MOVIES: settings.show_trakt_watched_movies,
        }
        sources += [key for key, enabled in toggles.items() if enabled]
    return sources


@dataclass
class PolicyDecision:
    proceed: bool
    failed: List[str] = field(default_factory=list)
    working: List[str] = field(default_factory=list)


def evaluate(outcomes: Dict[SourceKey, FetchOutcome]) -> PolicyDecision:
    """Decide whether a run can go ahead given which fetches failed.

    A primary service failed if either of its fetches failed. Trending
    failures are only logged, unless nothing at all came back.
    """
    failed, working = [], []
    for service in PRIMARY_SERVICES:
        service_outcomes = [o for k, o in outcomes.items() if k.service == service]
        if not service_outcomes:
            continue
        if any(not o.ok for o in service_outcomes):
            failed.append(service.capitalize())
        else:
            working.append(service.capitalize())

    for key, outcome in outcomes.items():
        if key.is_trending and not outcome.ok:
            logger.warning("Trending list %s unavailable: %s", key.value, outcome.error)

    everything_failed = bool(outcomes) and not any(o.ok for o in outcomes.values())
    if (failed and not working) or everything_failed:
        failed = failed or sorted({k.service.capitalize() for k in outcomes})
        logger.error(
            "All services failed (%s), cannot generate newsletter", ", ".join(failed)
        )
        return PolicyDecision(proceed=False, failed=failed)
    if failed:
        logger.warning(
            "Graceful degradation: %s failed, continuing with %s only",
            ", ".join(failed),
            ", ".join(working),
        )
    return PolicyDecision(proceed=True, failed=failed, working=working)


@dataclass
class SourceClients:
    sonarr: SonarrClient
    radarr: RadarrClient
    trakt: TraktClient

    @classmethod
    def from_settings(cls, settings: Settings, cache: ResponseCache) -> "SourceClients":
        timeout = float(settings.api_timeout)
        return cls(
            sonarr=SonarrClient(
                settings.sonarr_url,
                settings.sonarr_api_key.get_secret_value(),
                cache,
                page_size=settings.api_page_size,
                timeout=timeout,
            ),
            radarr=RadarrClient(
                settings.radarr_url,
                settings.radarr_api_key.get_secret_value(),
                cache,
                page_size=settings.api_page_size,
                timeout=timeout,
            ),
            trakt=TraktClient(
                settings.trakt_client_id.get_secret_value(), cache, timeout=timeout
            ),
        )

    async def aclose(self) -> None:
        await asyncio.gather(
            self.sonarr.aclose(), self.radarr.aclose(), self.trakt.aclose()
        )


class DigestPipeline:
    """Fetch, evaluate and normalize everything one newsletter needs.

    Built from a settings snapshot and a cache handle so that concurrent runs
    never see a configuration change halfway through.
    """

    def __init__(
        self,
        settings: Settings,
        cache: ResponseCache,
        clients: Optional[SourceClients] = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.clients = clients or SourceClients.from_settings(settings, cache)

    async def aclose(self) -> None:
        await self.clients.aclose()

    async def _library_ids(self, service: str) -> set[str]:
        """Monitored ids used to flag trending items; failures just mean no flags."""
        client = self.clients.sonarr if service == "sonarr" else self.clients.radarr
        if not client.configured:
            return set()
        try:
            return await client.fetch_library_ids()
        except SourceError as e:
            logger.warning("Could not load %s library: %s", client.name, e)
            return set()

    def _operation(
        self, key: SourceKey, window: ReportWindow
    ) -> Callable[[], Awaitable[Any]]:
        clients = self.clients
        s = self.settings
        now = window.upcoming_start

        async def trending(fetch, limit: int, library_service: str):
            library = await self._library_ids(library_service)
            return await fetch(limit, library, now=now)

        operations: Dict[SourceKey, Callable[[], Awaitable[Any]]] = {
            SourceKey.SONARR_HISTORY: lambda: clients.sonarr.fetch_history(
                window.history_start
            ),
            SourceKey.SONARR_CALENDAR: lambda: clients.sonarr.fetch_calendar(
                window.upcoming_start, window.upcoming_end
            ),
            SourceKey.RADARR_HISTORY: lambda: clients.radarr.fetch_history(
                window.history_start
            ),
            SourceKey.RADARR_CALENDAR: lambda: clients.radarr.fetch_calendar(
                window.upcoming_start, window.upcoming_end
            ),
            SourceKey.TRAKT_ANTICIPATED_SERIES: lambda: trending(
                clients.trakt.fetch_anticipated_series,
                s.trakt_anticipated_series_limit,
                "sonarr",
            ),
            SourceKey.TRAKT_WATCHED_SERIES: lambda: trending(
                clients.trakt.fetch_watched_series,
                s.trakt_watched_series_limit,
                "sonarr",
            ),
            SourceKey.TRAKT_ANTICIPATED_MOVIES: lambda: trending(
                clients.trakt.fetch_anticipated_movies,
                s.trakt_anticipated_movies_limit,
                "radarr",
            ),
            SourceKey.TRAKT_WATCHED_MOVIES: lambda: trending(
                clients.trakt.fetch_watched_movies,
                s.trakt_watched_movies_limit,
                "radarr",
            ),
        }
        return operations[key]

    async def _fetch_source(
        self, key: SourceKey, window: ReportWindow, max_retries: int, deadline: float
    ) -> FetchOutcome:
        """Run one fetch under the shared deadline and capture its outcome."""
        try:
            async with asyncio.timeout_at(deadline):
                value = await retry_with_backoff(
                    self._operation(key, window), key.value, max_retries
                )
        except TimeoutError:
            logger.warning(
                "%s timed out after %ss", key.value, self.settings.api_timeout
            )
            error = TimeoutError(f"{key.value} timed out")
            return FetchOutcome(key, [], error)
        except SourceError as e:
            logger.warning("%s failed: %s", key.value, e)
            return FetchOutcome(key, [], e)
        except Exception as e:
            logger.error("Unexpected error fetching %s: %s", key.value, e, exc_info=True)
            return FetchOutcome(key, [], e)

        logger.info("%s: %d items", key.value, len(value))
        return FetchOutcome(key, value)

    async def fetch_all(
        self, window: ReportWindow, max_retries: int
    ) -> Dict[SourceKey, FetchOutcome]:
        """Launch one task per enabled source and wait for all of them."""
        sources = enabled_sources(self.settings)
        if not sources:
            logger.warning("No sources configured, nothing to fetch")
            return {}

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.api_timeout
        started = loop.time()
        logger.info("Fetching %d sources in parallel...", len(sources))

        tasks = [
            asyncio.create_task(
                self._fetch_source(key, window, max_retries, deadline), name=key.value
            )
            for key in sources
        ]
        outcomes = await asyncio.gather(*tasks)

        logger.info("All data fetched in %.2fs", loop.time() - started)
        return {outcome.source: outcome for outcome in outcomes}

    def aggregate(
        self, outcomes: Dict[SourceKey, FetchOutcome], window: ReportWindow
    ) -> AggregateResult:
        """Apply the normalization steps and freeze the result."""

        def values(key: SourceKey) -> list:
            outcome = outcomes.get(key)
            return list(outcome.value or []) if outcome and outcome.ok else []

        upcoming_episodes = values(SourceKey.SONARR_CALENDAR)
        upcoming_movies = values(SourceKey.RADARR_CALENDAR)
        downloaded_episodes = values(SourceKey.SONARR_HISTORY)
        downloaded_movies = values(SourceKey.RADARR_HISTORY)

        if not self.settings.show_unmonitored:
            upcoming_episodes = normalize.filter_monitored(upcoming_episodes)
            upcoming_movies = normalize.filter_monitored(upcoming_movies)

        if not self.settings.show_upgraded:
            start = window.history_start.date().isoformat()
            end = window.history_end.date().isoformat()
            downloaded_episodes = normalize.filter_upgrades(downloaded_episodes, start, end)
            downloaded_movies = normalize.filter_upgrades(downloaded_movies, start, end)

        upcoming_episodes = normalize.deduplicate(upcoming_episodes)
        downloaded_episodes = normalize.deduplicate(downloaded_episodes)
        upcoming_movies = normalize.sort_movies(normalize.deduplicate(upcoming_movies))
        downloaded_movies = normalize.sort_movies(normalize.deduplicate(downloaded_movies))

        return AggregateResult(
            week_start=window.week_start,
            week_end=window.week_end,
            upcoming_start=window.upcoming_start_label,
            upcoming_end=window.upcoming_end_label,
            upcoming_series=normalize.group_episodes_by_series(upcoming_episodes),
            upcoming_movies=upcoming_movies,
            downloaded_series=normalize.group_episodes_by_series(downloaded_episodes),
            downloaded_movies=downloaded_movies,
            trakt_anticipated_series=values(SourceKey.TRAKT_ANTICIPATED_SERIES),
            trakt_watched_series=values(SourceKey.TRAKT_WATCHED_SERIES),
            trakt_anticipated_movies=values(SourceKey.TRAKT_ANTICIPATED_MOVIES),
            trakt_watched_movies=values(SourceKey.TRAKT_WATCHED_MOVIES),
        )

    def has_content(self, result: AggregateResult) -> bool:
        """Upcoming items always count; downloads only when they are shown."""
        return result.has_upcoming or (
            self.settings.show_downloaded and result.has_downloaded
        )

    async def run(
        self, preview: bool = False, now: Optional[datetime] = None
    ) -> Optional[AggregateResult]:
        """Produce the aggregate for one run.

        Scheduled runs raise ``AllSourcesFailedError`` when every configured
        primary failed and return None when there is nothing worth sending.
        Previews always return an aggregate, with failed sections left empty.
        """
        window = build_window(self.settings, now)
        logger.info("Report window: %s to %s", window.history_start, window.upcoming_end)

        retries = self.settings.preview_retries if preview else self.settings.max_retries
        outcomes = await self.fetch_all(window, retries)
        decision = evaluate(outcomes)

        if not decision.proceed and not preview:
            raise AllSourcesFailedError(
                f"All services failed: {', '.join(decision.failed)}"
            )

        result = self.aggregate(outcomes, window)
        if preview:
            return result

        if not self.has_content(result):
            logger.info("No new content to report, skipping email")
            return None
        return result
