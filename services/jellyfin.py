import logging
from typing import Dict, List, Optional

from models.config import JellyfinConfig
from models.series_info import normalize_title
from models.watch_record import WatchRecord

from .base import BaseService, RetryPolicy, parse_datetime
from .config import ConfigError

logger = logging.getLogger(__name__)


class JellyfinWatchSource(BaseService):
    """Per-user played state from a Jellyfin (or Emby) server.

    Note: Jellyfin uses X-Emby-Token instead of X-Api-Key.
    """

    auth_header = "X-Emby-Token"

    def __init__(self, config: JellyfinConfig, retry_policy: Optional[RetryPolicy] = None, **kwargs):
        super().__init__(
            config.url,
            config.api_key,
            retry_policy=retry_policy,
            verify_ssl=config.verify_ssl,
            **kwargs,
        )
        self.user_id = self._get_user_id(config.user)
        self._series: Optional[Dict[str, List[dict]]] = None

    def _get_user_id(self, name: str) -> str:
        for user in self._request("GET", "/Users"):
            if user.get("Name") == name:
                return user["Id"]
        raise ConfigError(f"Jellyfin user {name!r} not found")

    def _series_index(self) -> Dict[str, List[dict]]:
        if self._series is None:
            response = self._request(
                "GET",
                f"/Users/{self.user_id}/Items",
                params={"Recursive": "true", "IncludeItemTypes": "Series"},
            )
            series: Dict[str, List[dict]] = {}
            for item in response.get("Items", []):
                if not item.get("Name") or not item.get("Id"):
                    logger.warning(f"Skipping malformed Jellyfin series: {item!r}")
                    continue
                series.setdefault(normalize_title(item["Name"]), []).append(item)
            self._series = series
        return self._series

    def list_titles(self) -> List[str]:
        return [item["Name"] for items in self._series_index().values() for item in items]

    def list_watch_state(self, series_title: str) -> List[WatchRecord]:
        records = []
        for item in self._series_index().get(normalize_title(series_title), []):
            response = self._request(
                "GET",
                f"/Shows/{item['Id']}/Episodes",
                params={"UserId": self.user_id, "Fields": "UserData"},
            )
            for episode in response.get("Items", []):
                try:
                    user_data = episode.get("UserData") or {}
                    records.append(
                        WatchRecord(
                            series_title=item["Name"],
                            season_number=int(episode["ParentIndexNumber"]),
                            episode_number=int(episode["IndexNumber"]),
                            watched=bool(user_data.get("Played", False)),
                            watched_at=parse_datetime(user_data.get("LastPlayedDate")),
                        )
                    )
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Skipping malformed Jellyfin episode in {item['Name']!r}: {e!r}")
        return records
