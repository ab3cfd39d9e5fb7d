"""Post-fetch normalization: filtering, deduplication and series grouping.

Every function returns a new list and leaves its input untouched.
"""

from typing import List, Sequence, TypeVar

from digestarr.models.media import Episode, Movie, ReleaseItem, SeriesGroup

ItemT = TypeVar("ItemT", bound=ReleaseItem)


def filter_monitored(items: Sequence[ItemT]) -> List[ItemT]:
    """Drop unmonitored items. Applied to the upcoming buckets only."""
    return [item for item in items if item.monitored]


def filter_upgrades(
    items: Sequence[ItemT], window_start: str, window_end: str
) -> List[ItemT]:
    """Keep non-upgrades, and upgrades whose release date is in the window.

    Dates are compared as ISO ``YYYY-MM-DD`` strings; an upgrade with no date
    is dropped.
    """
    kept = []
    for item in items:
        if not item.is_upgrade:
            kept.append(item)
        elif item.release_date and window_start <= item.release_date[:10] <= window_end:
            kept.append(item)
    return kept


def deduplicate(items: Sequence[ItemT]) -> List[ItemT]:
    """Keep the first occurrence of each natural key."""
    seen = set()
    unique = []
    for item in items:
        key = item.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def sort_movies(movies: Sequence[Movie]) -> List[Movie]:
    return sorted(movies, key=lambda m: m.release_date)


def group_episodes_by_series(episodes: Sequence[Episode]) -> List[SeriesGroup]:
    """Fold episodes into one group per series title.

    Series metadata comes from the earliest-airing episode. Episode copies
    get ``rating=0`` since Sonarr only reports the series rating.
    """
    groups: dict[str, SeriesGroup] = {}
    seen: set[tuple[str, int, int]] = set()

    for ep in sorted(episodes, key=lambda e: e.air_date):
        group = groups.get(ep.series_title)
        if group is None:
            group = SeriesGroup(
                series_title=ep.series_title,
                poster_url=ep.poster_url,
                imdb_id=ep.imdb_id,
                tvdb_id=ep.tvdb_id,
                overview=ep.series_overview,
                rating=ep.rating,
            )
            groups[ep.series_title] = group

        if ep.dedup_key in seen:
            continue
        seen.add(ep.dedup_key)
        group.episodes.append(ep.model_copy(update={"rating": 0.0}))

    for group in groups.values():
        group.episodes.sort(key=lambda e: (e.season, e.episode))

    return sorted(groups.values(), key=lambda g: g.series_title)
