"""Shared history/calendar/library plumbing for Sonarr and Radarr (v3 API)."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List

from digestarr.providers.base import (
    DecodeError,
    NotConfiguredError,
    SourceClient,
    parse_timestamp,
)
from digestarr.services.cache import ResponseCache, cache_key

logger = logging.getLogger(__name__)

IMPORT_EVENTS = frozenset({"downloadFolderImported", "downloadImported"})
DEFAULT_PAGE_SIZE = 1000


def is_upgrade(record: dict) -> bool:
    """Import reasons look like "Upgrade" or "Upgraded from ..."."""
    reason = (record.get("data") or {}).get("reason") or ""
    return "upgrade" in reason.lower()


class ArrClient(SourceClient, ABC):
    """Base for the *arr clients. Subclasses map raw records to media models."""

    library_path: str = ""
    library_id_fields: tuple[tuple[str, str], ...] = ()
    history_params: dict[str, str] = {}
    calendar_params: dict[str, str] = {}

    def __init__(
        self,
        url: str,
        api_key: str,
        cache: ResponseCache,
        page_size: int = DEFAULT_PAGE_SIZE,
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.page_size = page_size
        super().__init__(url, cache, headers={"X-Api-Key": api_key}, timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.url and self.api_key)

    def _require_config(self) -> None:
        if not self.configured:
            raise NotConfiguredError(f"{self.name} not configured")

    @abstractmethod
    def map_history_record(self, record: dict) -> Any:
        """Turn one history record into a media model."""

    @abstractmethod
    def map_calendar_entry(self, entry: dict) -> Any:
        """Turn one calendar entry into a media model."""

    async def fetch_history(self, since: datetime) -> List[Any]:
        """Import events newer than ``since``, newest first.

        Pages are walked until one comes back empty, the reported total is
        exhausted, or a page contains a record older than ``since``. Results
        are cached per day of ``since`` so back-to-back runs share them.
        """
        self._require_config()
        key = cache_key(
            f"{self.name.lower()}_history", self.url, since.date().isoformat()
        )
        return await self._cached(
            key, f"{self.name} history", lambda: self._walk_history(since)
        )

    async def _walk_history(self, since: datetime) -> List[Any]:
        items: List[Any] = []
        page = 1
        while True:
            params = {
                "page": page,
                "pageSize": self.page_size,
                "sortKey": "date",
                "sortDirection": "descending",
                **self.history_params,
            }
            result = await self._get_json("/api/v3/history", params=params)
            if not isinstance(result, dict):
                raise DecodeError(f"{self.name} history is not an object")

            records = result.get("records") or []
            found_old = False
            for record in records:
                if record.get("eventType") not in IMPORT_EVENTS:
                    continue
                if parse_timestamp(record.get("date"), self.name) < since:
                    # Keep scanning, the rest of this page may still be in range
                    found_old = True
                    continue
                items.append(self.map_history_record(record))

            page_size = result.get("pageSize") or self.page_size
            total = result.get("totalRecords") or 0
            if not records or page * page_size >= total or found_old:
                break
            page += 1
            logger.info("Fetching %s history page %d...", self.name, page)

        logger.info("Fetched %d %s history items", len(items), self.name)
        return items

    async def fetch_calendar(self, start: datetime, end: datetime) -> List[Any]:
        """Every calendar entry between ``start`` and ``end``, monitored or not."""
        self._require_config()
        key = cache_key(
            f"{self.name.lower()}_calendar",
            self.url,
            start.strftime("%Y-%m-%d"),
            end.strftime("%Y-%m-%d"),
        )
        return await self._cached(
            key, f"{self.name} calendar", lambda: self._load_calendar(start, end)
        )

    async def _load_calendar(self, start: datetime, end: datetime) -> List[Any]:
        params = {
            "unmonitored": "true",
            **self.calendar_params,
            "start": start.strftime("%Y-%m-%d"),
            "end": end.strftime("%Y-%m-%d"),
        }
        entries = await self._get_json("/api/v3/calendar", params=params)
        if not isinstance(entries, list):
            raise DecodeError(f"{self.name} calendar is not a list")
        items = [self.map_calendar_entry(entry) for entry in entries]
        logger.info("Fetched %d %s calendar items", len(items), self.name)
        return items

    async def fetch_library_ids(self) -> set[str]:
        """Lookup keys ("imdb:tt123", "tvdb:42", ...) for monitored titles."""
        self._require_config()
        key = cache_key(f"{self.name.lower()}_library", self.url)
        return await self._cached(key, f"{self.name} library", self._load_library)

    async def _load_library(self) -> set[str]:
        entries = await self._get_json(self.library_path)
        if not isinstance(entries, list):
            raise DecodeError(f"{self.name} library is not a list")
        return library_keys(entries, self.library_id_fields)

    async def test_connection(self) -> str:
        """Hit the system status endpoint and return the reported version."""
        self._require_config()
        status = await self._get_json("/api/v3/system/status")
        if not isinstance(status, dict):
            raise DecodeError(f"{self.name} status is not an object")
        return status.get("version", "unknown")


def library_keys(
    entries: list[dict], id_fields: tuple[tuple[str, str], ...]
) -> set[str]:
    """Build ``prefix:id`` keys from monitored library entries."""
    keys: set[str] = set()
    for entry in entries:
        if not entry.get("monitored"):
            continue
        for field, prefix in id_fields:
            value = entry.get(field)
            if value:
                keys.add(f"{prefix}:{value}")
    return keys


def pick(mapping: dict | None, *path: str, default: Any = None) -> Any:
    """Follow ``path`` through nested dicts, returning ``default`` on a miss."""
    current: Any = mapping
    for part in path:
        if not isinstance(current, dict) or current.get(part) is None:
            return default
        current = current[part]
    return current
