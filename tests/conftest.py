"""Shared fixtures and builders for the cleaner tests."""

import json
import signal
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from urllib.parse import urlsplit

import pytest
import requests

from models.config import RetentionPolicy
from models.plan import MatchedSeason
from models.series_info import EpisodeInfo, SeasonInfo, SeriesInfo
from models.watch_record import WatchedShow, WatchRecord
from services.base import RetryPolicy

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

_file_ids = iter(range(1000, 10**6))


def make_season(
    number,
    episodes=9,
    downloaded=None,
    size=1_150_000_000,
    aired_days_ago=60,
    last_air_date="auto",
):
    """A season with ``episodes`` episodes, the first ``downloaded`` of them on disk."""
    downloaded = episodes if downloaded is None else downloaded
    if last_air_date == "auto":
        last_air_date = NOW - timedelta(days=aired_days_ago)
    eps = []
    for i in range(1, episodes + 1):
        on_disk = i <= downloaded
        eps.append(
            EpisodeInfo(
                episode_number=i,
                downloaded=on_disk,
                file_size=size if on_disk else 0,
                file_id=next(_file_ids) if on_disk else None,
            )
        )
    return SeasonInfo(season_number=number, episodes=tuple(eps), last_air_date=last_air_date)


def make_series(title="Piracy On The High Seas", series_id=1, tags=(), seasons=()):
    return SeriesInfo(id=series_id, title=title, tags=frozenset(tags), seasons=tuple(seasons))


def make_records(title, season_number, episodes=9, watched=True):
    if isinstance(watched, bool):
        watched = [watched] * episodes
    return tuple(
        WatchRecord(title, season_number, i, flag)
        for i, flag in zip(range(1, episodes + 1), watched)
    )


def make_show(title, *record_groups):
    return WatchedShow(title, tuple(r for group in record_groups for r in group))


def season_of(series, season_number):
    return next(s for s in series.seasons if s.season_number == season_number)


def make_matched(series, season_number, records=None):
    season = season_of(series, season_number)
    if records is None:
        records = make_records(series.title, season_number, len(season.episodes))
    return MatchedSeason(series=series, season=season, watch_records=tuple(records))


def make_response(status=200, body=None):
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    response._content = b"" if body is None else json.dumps(body).encode()
    return response


class FakeSession:
    """Stands in for requests.Session; routes (method, path) to canned outcomes.

    An outcome is a Response, an exception to raise, a callable taking
    ``params`` and ``json``, or a list of those consumed one per call (the last
    one repeats).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.verify = True
        self.auth = None

    def request(self, method, url, headers=None, timeout=None, params=None, json=None):
        path = urlsplit(url).path
        self.calls.append(
            SimpleNamespace(method=method, path=path, params=params, json=json, headers=headers)
        )
        outcome = self.routes[(method, path)]
        if isinstance(outcome, list):
            outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(params=params, json=json)
        return outcome

    def calls_to(self, method, path):
        return [c for c in self.calls if c.method == method and c.path == path]


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def policy():
    return RetentionPolicy(retain_tag="retain", retain_duration=timedelta(days=14))


@pytest.fixture()
def sleeps():
    return []


@pytest.fixture()
def retry_policy(sleeps):
    return RetryPolicy(max_attempts=3, backoff=0.5, sleep=sleeps.append)


@pytest.fixture()
def default_sigint():
    """Run with Python's own Ctrl-C handler installed, whatever the test runner set."""
    original = signal.signal(signal.SIGINT, signal.default_int_handler)
    yield signal.default_int_handler
    signal.signal(signal.SIGINT, original if original is not None else signal.default_int_handler)
