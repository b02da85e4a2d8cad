from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class WatchRecord:
    """Played state of one episode on the media server."""

    series_title: str
    season_number: int
    episode_number: int
    watched: bool
    watched_at: Optional[datetime] = None


@dataclass(frozen=True)
class WatchedShow:
    """One show occurrence on the media server and the records fetched for it."""

    title: str
    records: Tuple[WatchRecord, ...] = ()
