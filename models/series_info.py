from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class EpisodeInfo:
    """Information about a TV episode as the download manager sees it."""

    episode_number: int
    downloaded: bool
    file_size: int = 0
    file_id: Optional[int] = None
    air_date: Optional[datetime] = None


@dataclass(frozen=True)
class SeasonInfo:
    """Information about a single season of a series."""

    season_number: int
    episodes: Tuple[EpisodeInfo, ...] = ()
    last_air_date: Optional[datetime] = None


@dataclass(frozen=True)
class SeriesInfo:
    """Information about a TV series."""

    id: int
    title: str
    tags: FrozenSet[str] = field(default_factory=frozenset)
    seasons: Tuple[SeasonInfo, ...] = ()


def normalize_title(title: str) -> str:
    """Comparison key for series titles across systems."""
    return title.strip().casefold()
