"""Source client base class and error types."""

import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from digestarr.services.cache import ResponseCache

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class SourceError(Exception):
    """Base error for anything that goes wrong talking to a source."""

    def __init__(self, message: str, original_exception: Exception | None = None):
        super().__init__(message)
        self.original_exception = original_exception


class NotConfiguredError(SourceError):
    """Credentials for the source are missing."""


class UpstreamError(SourceError):
    """Network failure or non-2xx response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(message, original_exception)
        self.status_code = status_code


class DecodeError(SourceError):
    """Response body was not the JSON we expected."""


class SourceClient:
    """Base class for the Sonarr, Radarr and Trakt clients.

    Owns one ``httpx.AsyncClient`` and reads through the shared
    ``ResponseCache``. Subclasses set ``name`` and build their own headers.
    """

    name: str = "source"

    def __init__(
        self,
        base_url: str,
        cache: ResponseCache,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.session = httpx.AsyncClient(headers=headers or {}, timeout=timeout)

    async def aclose(self) -> None:
        """Properly close the internal HTTP session."""
        if hasattr(self, "session") and self.session:
            await self.session.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` relative to the base URL and decode the JSON body."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            response = await self.session.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{self.name} request failed: {e}", original_exception=e)

        if response.status_code != 200:
            raise UpstreamError(
                f"{self.name} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"{self.name} sent malformed JSON", e)

    async def _cached(
        self, key: str, label: str, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Return the cached value for ``key`` or load and store it."""
        value, found = self.cache.get(key)
        if found:
            logger.info("Using cached %s", label)
            return value
        value = await loader()
        self.cache.set(key, value)
        return value


def find_poster(images: list[dict] | None, prefer_local: bool = False) -> str | None:
    """Pick the poster URL out of a Sonarr/Radarr ``images`` array."""
    for image in images or []:
        if image.get("coverType") == "poster":
            if prefer_local and image.get("url"):
                return image["url"]
            return image.get("remoteUrl") or None
    return None


def iso_date(value: str | None) -> str:
    """Trim an ISO timestamp down to YYYY-MM-DD, keeping odd values as-is."""
    if not value:
        return ""
    try:
        return date.fromisoformat(value[:10]).isoformat()
    except ValueError:
        return value


def parse_timestamp(value: str | None, source: str) -> datetime:
    """Parse an RFC 3339 history timestamp into an aware datetime."""
    try:
        parsed = datetime.fromisoformat(value or "")
    except ValueError as e:
        raise DecodeError(f"{source} sent an invalid date: {value!r}", e)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
