import logging
import re
import threading
from typing import Callable, Dict, List, Optional, Tuple

import requests
import urllib3
from plexapi.exceptions import BadRequest, NotFound, Unauthorized
from plexapi.server import PlexServer

from models.config import PlexConfig
from models.series_info import normalize_title
from models.watch_record import WatchRecord

from .base import (
    APIError,
    AuthenticationError,
    RequestRejectedError,
    RetryPolicy,
    TransientAPIError,
)

logger = logging.getLogger(__name__)

# plexapi puts the HTTP status at the start of the message: "(502) bad_gateway; ..."
_STATUS = re.compile(r"^\((\d{3})\)")


def classify_plex_error(error: Exception, description: str) -> APIError:
    match = _STATUS.match(str(error))
    message = f"{description}: {error}"
    if not match:
        return APIError(message)
    status = int(match.group(1))
    if status == 429 or status >= 500:
        return TransientAPIError(message, status)
    return RequestRejectedError(message, status)


class PlexWatchSource:
    """Watch state from a Plex Media Server.

    An episode counts as watched if the token's account has played it, or if it
    shows up anywhere in the server-wide viewing history (any account).
    """

    def __init__(
        self,
        config: PlexConfig,
        retry_policy: Optional[RetryPolicy] = None,
        server_factory: Callable[..., PlexServer] = PlexServer,
    ):
        self.retry_policy = retry_policy or RetryPolicy()

        session = requests.Session()
        session.verify = config.verify_ssl
        if not config.verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.plex = self._call(
            lambda: server_factory(config.url, config.api_key.expose(), session=session),
            "connect to Plex",
        )
        self._shows: Optional[Dict[str, list]] = None
        self._history: Optional[Dict[Tuple[str, int, int], object]] = None
        self._history_lock = threading.Lock()

    def _call(self, func: Callable, description: str):
        def attempt(_number: int):
            try:
                return func()
            except Unauthorized as e:
                raise AuthenticationError(f"{description}: unauthorized (check the Plex token)", 401) from e
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                raise TransientAPIError(f"{description}: {type(e).__name__}") from e
            except (BadRequest, NotFound) as e:
                raise classify_plex_error(e, description) from e

        return self.retry_policy.call(attempt, description)

    def _show_index(self) -> Dict[str, list]:
        if self._shows is None:
            shows: Dict[str, list] = {}
            sections = self._call(self.plex.library.sections, "list Plex libraries")
            for section in sections:
                if section.type != "show":
                    continue
                for show in self._call(section.all, f"list Plex library {section.title!r}"):
                    shows.setdefault(normalize_title(show.title), []).append(show)
            self._shows = shows
        return self._shows

    def _history_index(self) -> Dict[Tuple[str, int, int], object]:
        with self._history_lock:
            if self._history is None:
                self._history = self._fetch_history()
        return self._history

    def _fetch_history(self) -> Dict[Tuple[str, int, int], object]:
        history = {}
        for item in self._call(self.plex.history, "fetch Plex watch history"):
            if getattr(item, "type", None) != "episode":
                continue
            try:
                key = (
                    normalize_title(item.grandparentTitle),
                    int(item.parentIndex),
                    int(item.index),
                )
            except (AttributeError, TypeError, ValueError):
                logger.warning(f"Skipping malformed Plex history entry: {item!r}")
                continue
            viewed_at = getattr(item, "viewedAt", None)
            if key not in history or (
                viewed_at and (history[key] is None or viewed_at > history[key])
            ):
                history[key] = viewed_at
        return history

    def list_titles(self) -> List[str]:
        return [show.title for shows in self._show_index().values() for show in shows]

    def list_watch_state(self, series_title: str) -> List[WatchRecord]:
        key = normalize_title(series_title)
        history = self._history_index()
        records = []
        for show in self._show_index().get(key, []):
            for episode in self._call(show.episodes, f"list episodes of {show.title!r}"):
                try:
                    season_number = int(episode.seasonNumber)
                    episode_number = int(episode.index)
                except (AttributeError, TypeError, ValueError):
                    logger.warning(f"Skipping malformed Plex episode in {show.title!r}: {episode!r}")
                    continue

                history_key = (key, season_number, episode_number)
                played = bool(episode.isPlayed) or history_key in history
                records.append(
                    WatchRecord(
                        series_title=show.title,
                        season_number=season_number,
                        episode_number=episode_number,
                        watched=played,
                        watched_at=episode.lastViewedAt or history.get(history_key),
                    )
                )
        return records
