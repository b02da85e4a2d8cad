from cleaner.matching import match_seasons
from conftest import make_records, make_season, make_series, make_show


def _keys(matched):
    return sorted((m.series.title, m.season.season_number) for m in matched)


def test_unique_title_matches_shared_seasons():
    series = make_series(seasons=[make_season(1), make_season(2)])
    show = make_show(series.title, make_records(series.title, 1), make_records(series.title, 2))

    matched = match_seasons([series], [show])

    assert _keys(matched) == [("Piracy On The High Seas", 1), ("Piracy On The High Seas", 2)]
    assert all(len(m.watch_records) == 9 for m in matched)


def test_titles_match_ignoring_case_and_surrounding_whitespace():
    series = make_series(title="Piracy On The High Seas", seasons=[make_season(1)])
    show = make_show("  piracy on the HIGH seas ", make_records("piracy on the HIGH seas", 1))

    assert len(match_seasons([series], [show])) == 1


def test_title_missing_from_watch_source_is_excluded():
    series = make_series(seasons=[make_season(1)])
    show = make_show("Some Other Show", make_records("Some Other Show", 1))

    assert match_seasons([series], [show]) == []


def test_duplicate_title_in_catalog_produces_nothing():
    first = make_series(series_id=1, seasons=[make_season(1)])
    second = make_series(series_id=2, title="piracy on the high seas", seasons=[make_season(1)])
    show = make_show(first.title, make_records(first.title, 1))

    assert match_seasons([first, second], [show]) == []


def test_duplicate_title_in_watch_source_produces_nothing():
    series = make_series(seasons=[make_season(1)])
    shows = [
        make_show(series.title, make_records(series.title, 1)),
        make_show(series.title, make_records(series.title, 1)),
    ]

    assert match_seasons([series], shows) == []


def test_duplicate_does_not_affect_other_titles():
    dupes = [make_series(series_id=i, title="Twin", seasons=[make_season(1)]) for i in (1, 2)]
    other = make_series(series_id=3, title="Solo", seasons=[make_season(1)])
    shows = [make_show("Twin", make_records("Twin", 1)), make_show("Solo", make_records("Solo", 1))]

    assert _keys(match_seasons(dupes + [other], shows)) == [("Solo", 1)]


def test_season_only_in_one_source_is_excluded():
    series = make_series(seasons=[make_season(1), make_season(2)])
    show = make_show(series.title, make_records(series.title, 1), make_records(series.title, 3))

    assert _keys(match_seasons([series], [show])) == [("Piracy On The High Seas", 1)]


def test_episode_sets_need_not_match():
    series = make_series(seasons=[make_season(1, episodes=10)])
    show = make_show(series.title, make_records(series.title, 1, episodes=4))

    matched = match_seasons([series], [show])

    assert len(matched) == 1
    assert len(matched[0].season.episodes) == 10
    assert len(matched[0].watch_records) == 4


def test_empty_inputs_give_empty_result():
    assert match_seasons([], []) == []
