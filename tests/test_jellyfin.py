from datetime import datetime, timezone

import pytest

from conftest import FakeSession, make_response
from models.config import ApiKey, JellyfinConfig
from services.config import ConfigError
from services.jellyfin import JellyfinWatchSource

USERS = [{"Name": "admin", "Id": "u-admin"}, {"Name": "alice", "Id": "u-alice"}]

SERIES = {
    "Items": [
        {"Name": "Piracy On The High Seas", "Id": "s1"},
        {"Name": "Other Show", "Id": "s2"},
        {"Name": "", "Id": "s3"},
    ]
}

EPISODES = {
    "Items": [
        {
            "ParentIndexNumber": 1,
            "IndexNumber": 1,
            "UserData": {"Played": True, "LastPlayedDate": "2024-02-01T20:00:00.0000000Z"},
        },
        {"ParentIndexNumber": 1, "IndexNumber": 2, "UserData": {"Played": False}},
        {"ParentIndexNumber": 2, "IndexNumber": 1},
        {"IndexNumber": 3, "UserData": {"Played": True}},
    ]
}


def _jellyfin(retry_policy, user="alice", routes=None):
    session = FakeSession(
        routes
        or {
            ("GET", "/Users"): make_response(200, USERS),
            ("GET", "/Users/u-alice/Items"): make_response(200, SERIES),
            ("GET", "/Shows/s1/Episodes"): make_response(200, EPISODES),
        }
    )
    config = JellyfinConfig(url="http://jellyfin.local:8096", api_key=ApiKey("jf-key"), user=user)
    return JellyfinWatchSource(config, retry_policy=retry_policy, session=session), session


def test_resolves_user_id_by_name(retry_policy):
    jellyfin, session = _jellyfin(retry_policy)

    assert jellyfin.user_id == "u-alice"
    assert session.calls[0].headers == {"X-Emby-Token": "jf-key"}


def test_unknown_user_is_a_config_error(retry_policy):
    with pytest.raises(ConfigError, match="bob"):
        _jellyfin(retry_policy, user="bob")


def test_list_titles_skips_nameless_items(retry_policy):
    jellyfin, session = _jellyfin(retry_policy)

    assert jellyfin.list_titles() == ["Piracy On The High Seas", "Other Show"]
    (call,) = session.calls_to("GET", "/Users/u-alice/Items")
    assert call.params == {"Recursive": "true", "IncludeItemTypes": "Series"}


def test_series_index_is_fetched_once(retry_policy):
    jellyfin, session = _jellyfin(retry_policy)

    jellyfin.list_titles()
    jellyfin.list_watch_state("Piracy On The High Seas")

    assert len(session.calls_to("GET", "/Users/u-alice/Items")) == 1


def test_list_watch_state_reads_played_flags(retry_policy):
    jellyfin, session = _jellyfin(retry_policy)

    records = jellyfin.list_watch_state("piracy on the high seas")

    assert [(r.season_number, r.episode_number, r.watched) for r in records] == [
        (1, 1, True),
        (1, 2, False),
        (2, 1, False),
    ]
    assert records[0].series_title == "Piracy On The High Seas"
    assert records[0].watched_at == datetime(2024, 2, 1, 20, 0, tzinfo=timezone.utc)
    (call,) = session.calls_to("GET", "/Shows/s1/Episodes")
    assert call.params == {"UserId": "u-alice", "Fields": "UserData"}


def test_unknown_title_has_no_records(retry_policy):
    jellyfin, _ = _jellyfin(retry_policy)

    assert jellyfin.list_watch_state("Never Heard Of It") == []
