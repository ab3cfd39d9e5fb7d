"""Radarr client: downloaded and upcoming movies."""

from digestarr.models.media import Movie
from digestarr.providers.arr import ArrClient, is_upgrade, pick
from digestarr.providers.base import find_poster, iso_date


def movie_rating(movie: dict) -> float:
    """IMDB rating, falling back to TMDB when IMDB has none."""
    return pick(movie, "ratings", "imdb", "value", default=0.0) or pick(
        movie, "ratings", "tmdb", "value", default=0.0
    )


def _movie(movie: dict, **fields) -> Movie:
    return Movie(
        title=movie.get("title") or "Unknown",
        year=movie.get("year") or 0,
        imdb_id=movie.get("imdbId") or None,
        tmdb_id=movie.get("tmdbId") or None,
        overview=movie.get("overview") or "",
        monitored=bool(movie.get("monitored")),
        rating=movie_rating(movie),
        **fields,
    )


class RadarrClient(ArrClient):
    name = "Radarr"
    library_path = "/api/v3/movie"
    library_id_fields = (("imdbId", "imdb"), ("tmdbId", "tmdb"))
    history_params = {"includeMovie": "true"}
    calendar_params = {"includeMovie": "true"}

    def map_history_record(self, record: dict) -> Movie:
        movie = record.get("movie") or {}
        return _movie(
            movie,
            release_date=iso_date(movie.get("inCinemas")),
            poster_url=find_poster(movie.get("images")),
            downloaded=True,
            is_upgrade=is_upgrade(record),
        )

    def map_calendar_entry(self, entry: dict) -> Movie:
        return _movie(
            entry,
            release_date=iso_date(entry.get("physicalRelease")),
            poster_url=find_poster(entry.get("images"), prefer_local=True),
        )
