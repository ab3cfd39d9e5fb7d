import pytest

from digestarr.models.media import Episode, Movie, ReleaseItem
from digestarr.services import normalize


def ep(series, season, number, air_date="2025-11-20", **kwargs):
    return Episode(
        title=f"{series} {season}x{number}",
        series_title=series,
        season=season,
        episode=number,
        release_date=air_date,
        **kwargs,
    )


def test_filter_monitored():
    items = [
        Movie(title="A", monitored=True),
        Movie(title="B", monitored=False),
        ep("Show", 1, 1, monitored=True),
    ]
    kept = normalize.filter_monitored(items)
    assert [item.title for item in kept] == ["A", "Show 1x1"]


def test_filter_upgrades_keeps_upgrades_released_in_window():
    items = [
        Movie(title="Fresh", release_date="2025-11-10", downloaded=True),
        Movie(title="New Upgrade", release_date="2025-11-14", is_upgrade=True),
        Movie(title="Old Upgrade", release_date="2019-05-01", is_upgrade=True),
        Movie(title="Undated Upgrade", release_date="", is_upgrade=True),
        Movie(title="Window Edge", release_date="2025-11-19T00:00:00Z", is_upgrade=True),
    ]
    kept = normalize.filter_upgrades(items, "2025-11-12", "2025-11-19")
    assert [m.title for m in kept] == ["Fresh", "New Upgrade", "Window Edge"]


def test_deduplicate_keeps_first_occurrence():
    first = ep("Show", 1, 1, overview="first")
    items = [first, ep("Show", 1, 1, overview="second"), ep("Show", 1, 2)]
    unique = normalize.deduplicate(items)
    assert len(unique) == 2
    assert unique[0].overview == "first"


def test_deduplicate_is_idempotent():
    items = [
        Movie(title="Dune", year=2021),
        Movie(title="Dune", year=1984),
        Movie(title="Dune", year=2021),
    ]
    once = normalize.deduplicate(items)
    assert normalize.deduplicate(once) == once
    assert [(m.title, m.year) for m in once] == [("Dune", 2021), ("Dune", 1984)]


def test_sort_movies_by_release_date():
    movies = [
        Movie(title="C", release_date="2025-11-21"),
        Movie(title="A", release_date="2025-11-19"),
        Movie(title="B", release_date="2025-11-20"),
    ]
    assert [m.title for m in normalize.sort_movies(movies)] == ["A", "B", "C"]


def test_group_episodes_by_series():
    episodes = [
        ep("The Bear", 4, 2, "2025-11-21", rating=8.6, poster_url="bear.jpg"),
        ep("Andor", 2, 3, "2025-11-20"),
        ep("The Bear", 4, 1, "2025-11-20", rating=8.6, series_overview="Kitchen"),
        ep("Andor", 2, 1, "2025-11-19", poster_url="andor.jpg"),
        ep("Andor", 2, 1, "2025-11-19"),
        ep("Andor", 1, 12, "2025-11-22"),
    ]

    groups = normalize.group_episodes_by_series(episodes)

    assert [g.series_title for g in groups] == ["Andor", "The Bear"]

    andor, bear = groups
    assert [(e.season, e.episode) for e in andor.episodes] == [(1, 12), (2, 1), (2, 3)]
    assert [(e.season, e.episode) for e in bear.episodes] == [(4, 1), (4, 2)]

    # Group metadata comes from the earliest-airing episode
    assert andor.poster_url == "andor.jpg"
    assert bear.overview == "Kitchen"
    assert bear.rating == 8.6
    assert bear.poster_url is None

    assert all(e.rating == 0.0 for g in groups for e in g.episodes)


def test_grouping_preserves_distinct_triples():
    episodes = [
        ep("Show A", 1, 1),
        ep("Show A", 1, 1),
        ep("Show A", 1, 2),
        ep("Show B", 3, 1),
    ]
    groups = normalize.group_episodes_by_series(episodes)

    distinct = {e.dedup_key for e in episodes}
    grouped = [(g.series_title, e.season, e.episode) for g in groups for e in g.episodes]
    assert len(grouped) == len(distinct)
    assert set(grouped) == distinct


def test_grouping_does_not_mutate_input():
    episodes = [ep("Show", 1, 1, rating=9.0)]
    normalize.group_episodes_by_series(episodes)
    assert episodes[0].rating == 9.0


def test_group_empty():
    assert normalize.group_episodes_by_series([]) == []


def test_release_item_is_abstract():
    with pytest.raises(TypeError):
        ReleaseItem(title="Neither a movie nor an episode")
