from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Union


class ApiKey:
    """An API key that never shows up in reprs, logs or error messages."""

    def __init__(self, value: str):
        self._secret = bytearray(value.encode("utf-8"))

    def expose(self) -> str:
        return self._secret.decode("utf-8")

    def clear(self) -> None:
        """Overwrite the key material in place."""
        for i in range(len(self._secret)):
            self._secret[i] = 0
        self._secret = bytearray()

    def __bool__(self) -> bool:
        return bool(self._secret)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ApiKey):
            return NotImplemented
        return self._secret == other._secret

    def __repr__(self) -> str:
        return "*****[API KEY]*****"

    __str__ = __repr__


@dataclass
class SonarrConfig:
    url: str
    api_key: ApiKey
    verify_ssl: bool = True


@dataclass
class PlexConfig:
    url: str
    api_key: ApiKey
    verify_ssl: bool = True


@dataclass
class JellyfinConfig:
    url: str
    api_key: ApiKey
    user: str
    verify_ssl: bool = True


@dataclass
class RetentionPolicy:
    retain_tag: str = "retain"
    retain_duration: timedelta = field(default_factory=timedelta)


@dataclass
class RetryConfig:
    max_attempts: int = 3
    backoff: float = 0.5


@dataclass
class Config:
    tv: SonarrConfig
    viewer: Union[PlexConfig, JellyfinConfig]
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    retry: RetryConfig = field(default_factory=RetryConfig)
    max_workers: int = 8

    @property
    def plex(self) -> Optional[PlexConfig]:
        return self.viewer if isinstance(self.viewer, PlexConfig) else None

    @property
    def jellyfin(self) -> Optional[JellyfinConfig]:
        return self.viewer if isinstance(self.viewer, JellyfinConfig) else None

    def clear_secrets(self) -> None:
        self.tv.api_key.clear()
        self.viewer.api_key.clear()
