"""Trakt client for anticipated and most-watched lists."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional

from digestarr.core.config import MAX_TRENDING_ITEMS
from digestarr.models.media import TrendingItem
from digestarr.providers.base import DecodeError, NotConfiguredError, SourceClient
from digestarr.services.cache import ResponseCache, cache_key

logger = logging.getLogger(__name__)

BASE_URL = "https://api.trakt.tv"
DEFAULT_LIMIT = 5
ANTICIPATION_WINDOW = timedelta(days=7)


def clamp_limit(limit: int | None) -> int:
    if not limit or limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_TRENDING_ITEMS)


def _parse_premiere(value: str) -> Optional[datetime]:
    """Parse a Trakt date (RFC 3339 for shows, YYYY-MM-DD for movies)."""
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def premieres_soon(value: str, now: datetime) -> bool:
    """True unless the date parses and falls outside the next seven days.

    Date-only values are compared by calendar day so that a movie released
    today still counts.
    """
    if not value:
        return True
    premiere = _parse_premiere(value)
    if premiere is None:
        return True
    if len(value) == 10:
        today = now.astimezone(timezone.utc).date()
        return today <= premiere.date() <= today + ANTICIPATION_WINDOW
    return now <= premiere <= now + ANTICIPATION_WINDOW


def _show_item(show: dict, library: set[str]) -> TrendingItem:
    ids = show.get("ids") or {}
    imdb_id = ids.get("imdb") or None
    tvdb_id = ids.get("tvdb")
    return TrendingItem(
        title=show.get("title") or "Unknown",
        year=show.get("year"),
        overview=show.get("overview") or "",
        rating=show.get("rating"),
        release_date=show.get("first_aired") or "",
        network=show.get("network") or "",
        imdb_id=imdb_id,
        in_library=bool(
            (imdb_id and f"imdb:{imdb_id}" in library)
            or (tvdb_id and f"tvdb:{tvdb_id}" in library)
        ),
    )


def _movie_item(movie: dict, library: set[str]) -> TrendingItem:
    ids = movie.get("ids") or {}
    imdb_id = ids.get("imdb") or None
    tmdb_id = ids.get("tmdb")
    return TrendingItem(
        title=movie.get("title") or "Unknown",
        year=movie.get("year"),
        overview=movie.get("overview") or "",
        rating=movie.get("rating"),
        release_date=movie.get("released") or "",
        imdb_id=imdb_id,
        in_library=bool(
            (imdb_id and f"imdb:{imdb_id}" in library)
            or (tmdb_id and f"tmdb:{tmdb_id}" in library)
        ),
    )


class TraktClient(SourceClient):
    """Reads the public Trakt lists with a client id (no OAuth needed)."""

    name = "Trakt"

    def __init__(
        self,
        client_id: str,
        cache: ResponseCache,
        timeout: float = 30.0,
        base_url: str = BASE_URL,
    ) -> None:
        self.client_id = client_id
        headers = {
            "Content-Type": "application/json",
            "trakt-api-version": "2",
            "trakt-api-key": client_id,
        }
        super().__init__(base_url, cache, headers=headers, timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.client_id)

    async def _fetch_list(self, path: str) -> list[dict]:
        if not self.configured:
            raise NotConfiguredError("Trakt not configured")

        async def load() -> list[dict]:
            entries = await self._get_json(path, params={"extended": "full"})
            if not isinstance(entries, list):
                raise DecodeError(f"Trakt {path} is not a list")
            return entries

        key = cache_key(f"trakt{path}", self.client_id)
        return await self._cached(key, f"Trakt {path}", load)

    async def _trending(
        self,
        path: str,
        field: str,
        to_item: Callable[[dict, set[str]], TrendingItem],
        limit: int,
        library: set[str] | None,
        anticipated: bool,
        now: datetime | None,
    ) -> List[TrendingItem]:
        entries = await self._fetch_list(path)
        now = now or datetime.now(timezone.utc)
        limit = clamp_limit(limit)
        date_field = "first_aired" if field == "show" else "released"

        items: List[TrendingItem] = []
        for entry in entries:
            if len(items) >= limit:
                break
            media = entry.get(field) or {}
            if anticipated and not premieres_soon(media.get(date_field) or "", now):
                continue
            items.append(to_item(media, library or set()))

        logger.info("Fetched %d items from Trakt %s", len(items), path)
        return items

    async def fetch_anticipated_series(
        self, limit: int, library: set[str] | None = None, now: datetime | None = None
    ) -> List[TrendingItem]:
        """Most anticipated shows premiering in the next seven days."""
        return await self._trending(
            "/shows/anticipated", "show", _show_item, limit, library, True, now
        )

    async def fetch_watched_series(
        self, limit: int, library: set[str] | None = None, now: datetime | None = None
    ) -> List[TrendingItem]:
        return await self._trending(
            "/shows/watched/weekly", "show", _show_item, limit, library, False, now
        )

    async def fetch_anticipated_movies(
        self, limit: int, library: set[str] | None = None, now: datetime | None = None
    ) -> List[TrendingItem]:
        """Most anticipated movies releasing in the next seven days."""
        return await self._trending(
            "/movies/anticipated", "movie", _movie_item, limit, library, True, now
        )

    async def fetch_watched_movies(
        self, limit: int, library: set[str] | None = None, now: datetime | None = None
    ) -> List[TrendingItem]:
        return await self._trending(
            "/movies/watched/weekly", "movie", _movie_item, limit, library, False, now
        )

    async def test_connection(self) -> str:
        """Fetch one trending show to prove the client id works."""
        if not self.configured:
            raise NotConfiguredError("Trakt not configured")
        entries = await self._get_json("/shows/trending", params={"limit": 1})
        if not isinstance(entries, list):
            raise DecodeError("Trakt trending is not a list")
        return "ok"
