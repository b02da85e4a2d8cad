import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional

from tqdm import tqdm

from models.config import SonarrConfig
from models.series_info import EpisodeInfo, SeasonInfo, SeriesInfo

from .base import BaseService, RetryPolicy, parse_datetime

logger = logging.getLogger(__name__)


class SonarrService(BaseService):
    """Sonarr API v3: the record of what is on disk, and the only thing we mutate."""

    auth_header = "X-Api-Key"

    def __init__(
        self,
        config: SonarrConfig,
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: int = 8,
        **kwargs,
    ):
        super().__init__(
            config.url,
            config.api_key,
            retry_policy=retry_policy,
            verify_ssl=config.verify_ssl,
            **kwargs,
        )
        self.max_workers = max_workers

    def get_series(self) -> List[dict]:
        return self._request("GET", "/api/v3/series")

    def get_series_by_id(self, series_id: int) -> dict:
        return self._request("GET", f"/api/v3/series/{series_id}")

    def get_tags(self) -> Dict[int, str]:
        tags = {}
        for tag in self._request("GET", "/api/v3/tag"):
            valid = isinstance(tag, dict) and isinstance(tag.get("id"), int)
            if not valid or not isinstance(tag.get("label"), str):
                logger.warning(f"Skipping malformed Sonarr tag: {tag!r}")
                continue
            tags[tag["id"]] = tag["label"]
        return tags

    def get_episodes(self, series_id: int) -> List[dict]:
        return self._request("GET", "/api/v3/episode", params={"seriesId": series_id})

    def get_episode_files(self, series_id: int) -> List[dict]:
        return self._request("GET", "/api/v3/episodefile", params={"seriesId": series_id})

    def list_series(self) -> List[SeriesInfo]:
        """Fetch every series with its per-season, per-episode download state.

        Series whose records can't be parsed are skipped with a warning; any
        API error aborts the listing since a partial catalog can't be trusted.
        """
        raw_series = self.get_series()
        tags = self.get_tags()
        now = datetime.now(timezone.utc)

        def fetch(series: dict) -> Optional[SeriesInfo]:
            series_id = series.get("id")
            if series_id is None:
                logger.warning(f"Skipping series record without an id: {series.get('title')!r}")
                return None
            episodes = self.get_episodes(series_id)
            episode_files = self.get_episode_files(series_id)
            try:
                return build_series(series, tags, episodes, episode_files, now)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping series {series.get('title')!r}: malformed record ({e!r})")
                return None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            results = list(
                tqdm(
                    executor.map(fetch, raw_series),
                    total=len(raw_series),
                    desc="Fetching Sonarr series",
                    unit="series",
                    leave=False,
                )
            )

        return [series for series in results if series]

    def unmonitor_season(self, series_id: int, season_number: int) -> None:
        """Stop Sonarr from fetching more (or upgraded) episodes for a season."""
        series = self.get_series_by_id(series_id)
        for season in series.get("seasons", []):
            if season.get("seasonNumber") == season_number:
                season["monitored"] = False
                break
        else:
            logger.warning(f"Series {series_id} has no season {season_number} to unmonitor")
            return

        self._request("PUT", f"/api/v3/series/{series_id}", json=series)

    def delete_episode_file(self, episode_file_id: int) -> None:
        self._request(
            "DELETE", f"/api/v3/episodefile/{episode_file_id}", missing_ok_on_retry=True
        )


def build_series(
    series: dict,
    tags: Dict[int, str],
    episodes: List[dict],
    episode_files: List[dict],
    now: datetime,
) -> SeriesInfo:
    """Assemble a SeriesInfo from the raw Sonarr series, episode and episode file records.

    Raises KeyError/TypeError/ValueError on malformed records. The whole series is
    dropped in that case: skipping a single episode could make an incomplete
    season look complete.
    """
    file_sizes = {int(f["id"]): int(f.get("size") or 0) for f in episode_files}

    by_season: Dict[int, List[EpisodeInfo]] = {}
    for episode in episodes:
        file_id = episode.get("episodeFileId") or None
        downloaded = bool(episode.get("hasFile")) and file_id is not None
        by_season.setdefault(int(episode["seasonNumber"]), []).append(
            EpisodeInfo(
                episode_number=int(episode["episodeNumber"]),
                downloaded=downloaded,
                file_size=file_sizes.get(int(file_id), 0) if downloaded else 0,
                file_id=int(file_id) if downloaded else None,
                air_date=parse_datetime(episode.get("airDateUtc")),
            )
        )

    season_meta = {int(s["seasonNumber"]): s for s in series.get("seasons") or []}

    seasons = []
    for number in sorted(set(season_meta) | set(by_season)):
        season_episodes = sorted(by_season.get(number, []), key=lambda e: e.episode_number)
        meta = season_meta.get(number, {})
        seasons.append(
            SeasonInfo(
                season_number=number,
                episodes=tuple(season_episodes),
                last_air_date=_last_air_date(season_episodes, meta, now),
            )
        )

    return SeriesInfo(
        id=int(series["id"]),
        title=series["title"],
        tags=frozenset(tags[t] for t in series.get("tags") or [] if t in tags),
        seasons=tuple(seasons),
    )


def _last_air_date(episodes: List[EpisodeInfo], season_meta: dict, now: datetime) -> Optional[datetime]:
    aired = [e.air_date for e in episodes if e.air_date and e.air_date <= now]
    if aired:
        return max(aired)
    return parse_datetime((season_meta.get("statistics") or {}).get("previousAiring"))
