"""Sonarr client: downloaded and upcoming episodes."""

from digestarr.models.media import Episode
from digestarr.providers.arr import ArrClient, is_upgrade, pick
from digestarr.providers.base import find_poster, iso_date


def _episode(series: dict, **fields) -> Episode:
    return Episode(
        series_title=series.get("title") or "Unknown",
        imdb_id=series.get("imdbId") or None,
        tvdb_id=series.get("tvdbId") or None,
        series_overview=series.get("overview") or "",
        monitored=bool(series.get("monitored")),
        rating=pick(series, "ratings", "value", default=0.0),
        **fields,
    )


class SonarrClient(ArrClient):
    name = "Sonarr"
    library_path = "/api/v3/series"
    library_id_fields = (("imdbId", "imdb"), ("tvdbId", "tvdb"))
    history_params = {"includeEpisode": "true", "includeSeries": "true"}
    calendar_params = {"includeSeries": "true", "includeEpisodeImages": "true"}

    def map_history_record(self, record: dict) -> Episode:
        series = record.get("series") or {}
        episode = record.get("episode") or {}
        return _episode(
            series,
            title=episode.get("title") or "",
            season=episode.get("seasonNumber") or 0,
            episode=episode.get("episodeNumber") or 0,
            release_date=iso_date(episode.get("airDate")),
            overview=episode.get("overview") or "",
            poster_url=find_poster(series.get("images")),
            downloaded=True,
            is_upgrade=is_upgrade(record),
        )

    def map_calendar_entry(self, entry: dict) -> Episode:
        series = entry.get("series") or {}
        return _episode(
            series,
            title=entry.get("title") or "",
            season=entry.get("seasonNumber") or 0,
            episode=entry.get("episodeNumber") or 0,
            release_date=iso_date(entry.get("airDate")),
            overview=entry.get("overview") or "",
            poster_url=find_poster(series.get("images"), prefer_local=True),
        )
