"""Per-source bookkeeping for one pipeline run."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class SourceKey(str, Enum):
    """Every fetch the pipeline can launch."""

    SONARR_HISTORY = "sonarr_history"
    SONARR_CALENDAR = "sonarr_calendar"
    RADARR_HISTORY = "radarr_history"
    RADARR_CALENDAR = "radarr_calendar"
    TRAKT_ANTICIPATED_SERIES = "trakt_anticipated_series"
    TRAKT_WATCHED_SERIES = "trakt_watched_series"
    TRAKT_ANTICIPATED_MOVIES = "trakt_anticipated_movies"
    TRAKT_WATCHED_MOVIES = "trakt_watched_movies"

    @property
    def service(self) -> str:
        """The upstream service behind this fetch (sonarr, radarr or trakt)."""
        return self.value.split("_", 1)[0]

    @property
    def is_trending(self) -> bool:
        return self.service == "trakt"


@dataclass
class FetchOutcome:
    """Value and error of one launched fetch. ``error`` is None on success."""

    source: SourceKey
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None
