import logging
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv

from models.config import (
    ApiKey,
    Config,
    JellyfinConfig,
    PlexConfig,
    RetentionPolicy,
    RetryConfig,
    SonarrConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = (
    Path("config.yaml"),
    Path.home() / ".config" / "tv-cleaner-3k" / "config.yaml",
)

# Sections and fields that can be set (or overridden) through SECTION_FIELD env vars.
ENV_FIELDS = {
    "tv": ["url", "api_key"],
    "plex": ["url", "api_key"],
    "jellyfin": ["url", "api_key", "user"],
    "retention": ["retain_tag", "retain_duration"],
}

_SECOND = 1
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR

DURATION_UNITS = {
    "s": _SECOND, "sec": _SECOND, "secs": _SECOND, "second": _SECOND, "seconds": _SECOND,
    "m": _MINUTE, "min": _MINUTE, "mins": _MINUTE, "minute": _MINUTE, "minutes": _MINUTE,
    "h": _HOUR, "hr": _HOUR, "hrs": _HOUR, "hour": _HOUR, "hours": _HOUR,
    "d": _DAY, "day": _DAY, "days": _DAY,
    "w": 7 * _DAY, "week": 7 * _DAY, "weeks": 7 * _DAY,
    "M": 30.44 * _DAY, "month": 30.44 * _DAY, "months": 30.44 * _DAY,
    "y": 365.25 * _DAY, "year": 365.25 * _DAY, "years": 365.25 * _DAY,
}

_DURATION = re.compile(r"^\s*(\d+\s*[a-zA-Z]+[\s,]*)+$")
_DURATION_PART = re.compile(r"(\d+)\s*([a-zA-Z]+)")


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""


def parse_duration(value: Union[str, int, timedelta]) -> timedelta:
    """Parse a human duration such as ``14d``, ``12 days`` or ``1w 2d 12h``.

    A bare ``0`` is accepted and means no grace period at all.

    Raises:
        ValueError: If the duration can't be parsed
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int) and not isinstance(value, bool) and value == 0:
        return timedelta()
    if not isinstance(value, str):
        raise ValueError(f"duration must be a string like '14d', got {value!r}")

    text = value.strip()
    if text == "0":
        return timedelta()
    if not _DURATION.match(text):
        raise ValueError(f"can't parse duration {value!r}")

    seconds = 0.0
    for amount, unit in _DURATION_PART.findall(text):
        factor = DURATION_UNITS.get(unit, DURATION_UNITS.get(unit.lower()))
        if factor is None:
            raise ValueError(f"unknown unit {unit!r} in duration {value!r}")
        seconds += int(amount) * factor
    return timedelta(seconds=seconds)


class ConfigManager:
    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        retain_for: Optional[timedelta] = None,
    ):
        # Load .env
        load_dotenv()

        self.config_path = self._find_config_file(config_path)
        self.retain_for = retain_for

        # Load config.yaml
        self.config = self._load_config()

    def _find_config_file(self, config_path: Optional[Union[str, Path]]) -> Optional[Path]:
        if config_path is not None:
            path = Path(config_path).expanduser()
            if not path.exists():
                raise ConfigError(f"Configuration file not found: {path}")
            return path

        return next((path for path in DEFAULT_CONFIG_PATHS if path.exists()), None)

    def _read_file(self) -> Dict[str, Any]:
        if self.config_path is None:
            logger.debug("No config file found, using environment variables only")
            return {}

        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse {self.config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {self.config_path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_path} must contain a mapping at the top level")
        return data

    def _apply_environment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Environment variables (e.g. TV_API_KEY, JELLYFIN_USER) take precedence over the file."""
        for key, fields in ENV_FIELDS.items():
            for field in fields:
                if var := os.environ.get(f"{key.upper()}_{field.upper()}"):
                    section = data.setdefault(key, {})
                    if not isinstance(section, dict):
                        raise ConfigError(f"'{key}' must be a mapping")
                    section[field] = var
        return data

    def _load_config(self) -> Config:
        """
        Load and validate the configuration.

        Recognized settings:
        - tv: Sonarr URL and API key
        - exactly one of plex (URL and token) or jellyfin (URL, API key and user)
        - retention: retain tag (default "retain") and retain duration (default none)
        - fetch.max_workers and retry.{max_attempts,backoff} for tuning the API clients

        Raises:
            ConfigError: If a required setting is missing or a value can't be parsed
        """
        data = self._apply_environment(self._read_file())

        tv = self._section(data, "tv", required=True)
        plex = self._section(data, "plex")
        jellyfin = self._section(data, "jellyfin")

        if plex and jellyfin:
            raise ConfigError("Configure either 'plex' or 'jellyfin', not both")
        if not plex and not jellyfin:
            raise ConfigError("A 'plex' or 'jellyfin' section is required")

        if plex:
            viewer = PlexConfig(
                url=self._require(plex, "plex", "url"),
                api_key=ApiKey(self._require(plex, "plex", "api_key")),
                verify_ssl=bool(plex.get("verify_ssl", True)),
            )
        else:
            viewer = JellyfinConfig(
                url=self._require(jellyfin, "jellyfin", "url"),
                api_key=ApiKey(self._require(jellyfin, "jellyfin", "api_key")),
                user=self._require(jellyfin, "jellyfin", "user"),
                verify_ssl=bool(jellyfin.get("verify_ssl", True)),
            )

        return Config(
            tv=SonarrConfig(
                url=self._require(tv, "tv", "url"),
                api_key=ApiKey(self._require(tv, "tv", "api_key")),
                verify_ssl=bool(tv.get("verify_ssl", True)),
            ),
            viewer=viewer,
            retention=self._retention(self._section(data, "retention")),
            retry=self._retry(self._section(data, "retry")),
            max_workers=self._positive_int(self._section(data, "fetch"), "fetch", "max_workers", 8),
        )

    def _retention(self, section: Dict[str, Any]) -> RetentionPolicy:
        retain_tag = section.get("retain_tag", "retain")
        if not isinstance(retain_tag, str) or not retain_tag:
            raise ConfigError("retention.retain_tag must be a non-empty string")

        if self.retain_for is not None:
            retain_duration = self.retain_for
        else:
            try:
                retain_duration = parse_duration(section.get("retain_duration", 0))
            except ValueError as e:
                raise ConfigError(f"retention.retain_duration: {e}") from e

        return RetentionPolicy(retain_tag=retain_tag, retain_duration=retain_duration)

    def _retry(self, section: Dict[str, Any]) -> RetryConfig:
        backoff = section.get("backoff", 0.5)
        if isinstance(backoff, bool) or not isinstance(backoff, (int, float)) or backoff < 0:
            raise ConfigError("retry.backoff must be a non-negative number of seconds")
        return RetryConfig(
            max_attempts=self._positive_int(section, "retry", "max_attempts", 3),
            backoff=float(backoff),
        )

    @staticmethod
    def _section(data: Dict[str, Any], name: str, required: bool = False) -> Dict[str, Any]:
        section = data.get(name)
        if section is None:
            if required:
                raise ConfigError(f"Missing required configuration section: {name}")
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{name}' must be a mapping")
        return section

    @staticmethod
    def _require(section: Dict[str, Any], name: str, field: str) -> str:
        value = section.get(field)
        if value is None or value == "":
            raise ConfigError(f"{name}.{field} is required")
        return str(value)

    @staticmethod
    def _positive_int(section: Dict[str, Any], name: str, field: str, default: int) -> int:
        value = section.get(field, default)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigError(f"{name}.{field} must be a positive integer")
        return value
