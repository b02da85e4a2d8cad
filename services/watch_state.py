import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Protocol

from tqdm import tqdm

from models.config import Config
from models.series_info import normalize_title
from models.watch_record import WatchedShow, WatchRecord

from .base import RetryPolicy

logger = logging.getLogger(__name__)


class WatchStateSource(Protocol):
    """Anything that can tell us which episodes of a show have been watched."""

    def list_titles(self) -> List[str]:
        ...

    def list_watch_state(self, series_title: str) -> List[WatchRecord]:
        ...


def create_watch_source(config: Config, retry_policy: Optional[RetryPolicy] = None) -> WatchStateSource:
    """Connect to whichever media server the configuration names."""
    if config.plex is not None:
        from .plex import PlexWatchSource

        return PlexWatchSource(config.plex, retry_policy=retry_policy)

    from .jellyfin import JellyfinWatchSource

    return JellyfinWatchSource(config.jellyfin, retry_policy=retry_policy)


def fetch_watched_shows(
    source: WatchStateSource,
    wanted_titles: Optional[Iterable[str]] = None,
    max_workers: int = 8,
) -> List[WatchedShow]:
    """Build the watch-state snapshot: one WatchedShow per show on the media server.

    Records are only fetched for titles in ``wanted_titles`` (all titles when
    None) that occur exactly once on the server. Titles that occur more than
    once still get one (empty) WatchedShow per occurrence so the duplicate
    stays visible to matching.
    """
    occurrences: Dict[str, List[str]] = {}
    for title in source.list_titles():
        occurrences.setdefault(normalize_title(title), []).append(title)

    wanted = None if wanted_titles is None else {normalize_title(t) for t in wanted_titles}
    unique = [
        titles[0]
        for key, titles in occurrences.items()
        if len(titles) == 1 and (wanted is None or key in wanted)
    ]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        fetched = list(
            tqdm(
                executor.map(source.list_watch_state, unique),
                total=len(unique),
                desc="Fetching watch state",
                unit="shows",
                leave=False,
            )
        )

    shows = [WatchedShow(title, tuple(records)) for title, records in zip(unique, fetched)]
    for key, titles in occurrences.items():
        if len(titles) > 1 and (wanted is None or key in wanted):
            logger.debug(f"{titles[0]!r} appears {len(titles)} times on the media server")
            shows.extend(WatchedShow(title) for title in titles)
    return shows
