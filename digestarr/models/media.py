"""Media models shared by the source clients, the pipeline and the renderer."""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ReleaseItem(BaseModel, ABC):
    """A TV episode or movie appearance reported by a library manager."""

    title: str
    release_date: str = ""  # ISO date, may be empty or partial
    downloaded: bool = False
    is_upgrade: bool = False
    monitored: bool = False
    poster_url: Optional[str] = None
    overview: str = ""
    imdb_id: Optional[str] = None
    rating: float = 0.0

    @property
    @abstractmethod
    def dedup_key(self) -> tuple:
        """Natural key used for deduplication."""


class Episode(ReleaseItem):
    """An episode from Sonarr history or calendar.

    ``title`` is the episode title; ``rating`` is whatever Sonarr reports,
    which is the series rating.
    """

    series_title: str
    season: int = 0
    episode: int = 0
    series_overview: str = ""
    tvdb_id: Optional[int] = None

    @property
    def air_date(self) -> str:
        return self.release_date

    @property
    def dedup_key(self) -> tuple[str, int, int]:
        return (self.series_title, self.season, self.episode)


class Movie(ReleaseItem):
    """A movie from Radarr history or calendar."""

    year: int = 0
    tmdb_id: Optional[int] = None

    @property
    def dedup_key(self) -> tuple[str, int]:
        return (self.title, self.year)


class SeriesGroup(BaseModel):
    """One series with its episodes folded together."""

    series_title: str
    poster_url: Optional[str] = None
    episodes: List[Episode] = []
    imdb_id: Optional[str] = None
    tvdb_id: Optional[int] = None
    overview: str = ""
    rating: float = 0.0


class TrendingItem(BaseModel):
    """A show or movie from a Trakt list."""

    title: str
    year: Optional[int] = None
    overview: str = ""
    poster_url: Optional[str] = None  # Trakt does not serve images
    rating: Optional[float] = None
    release_date: str = ""
    network: str = ""
    imdb_id: Optional[str] = None
    in_library: bool = False


class AggregateResult(BaseModel):
    """Everything one newsletter run produced, handed to the renderer once."""

    model_config = ConfigDict(frozen=True)

    week_start: str
    week_end: str
    upcoming_start: str
    upcoming_end: str
    upcoming_series: List[SeriesGroup] = []
    upcoming_movies: List[Movie] = []
    downloaded_series: List[SeriesGroup] = []
    downloaded_movies: List[Movie] = []
    trakt_anticipated_series: List[TrendingItem] = []
    trakt_watched_series: List[TrendingItem] = []
    trakt_anticipated_movies: List[TrendingItem] = []
    trakt_watched_movies: List[TrendingItem] = []

    @property
    def has_upcoming(self) -> bool:
        return bool(self.upcoming_series or self.upcoming_movies)

    @property
    def has_downloaded(self) -> bool:
        return bool(self.downloaded_series or self.downloaded_movies)
