"""Runtime configuration for the server monitor."""

import dataclasses
import os
from typing import Mapping, Optional

from .errors import ConfigurationError
from .types import AttributeRefresh

DEFAULT_PLACE_ID = "14289997240"
DEFAULT_API_BASE_URL = "https://games.roblox.com"
DEFAULT_POLL_INTERVAL_S = 45.0 # avoids Roblox rate-limiting
DEFAULT_MISSED_CYCLES_THRESHOLD = 10
DEFAULT_DELETION_DELAY_S = 24 * 60 * 60.0
DEFAULT_IO_TIMEOUT_S = 20.0
DEFAULT_PAGE_LIMIT = 100
DEFAULT_HEALTH_PORT = 10000
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclasses.dataclass(frozen=True)
class MonitorConfig:
    """
    Immutable configuration for a monitor process.

    Parameters
    ----------
    place_id : str
        Roblox place whose public servers are tracked.
    poll_interval : float
        Seconds between cycle starts.
    missed_cycles_threshold : int
        Consecutive absent cycles after which an active server is closed.
    deletion_delay : float
        Seconds a closed record is retained before it is deleted.
    io_timeout : float
        Upper bound in seconds for each fetch, scan and commit.
    max_pages : int
        Number of API pages (``limit`` servers each) read per snapshot.
    """
    place_id: str = DEFAULT_PLACE_ID
    api_base_url: str = DEFAULT_API_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL_S
    missed_cycles_threshold: int = DEFAULT_MISSED_CYCLES_THRESHOLD
    deletion_delay: float = DEFAULT_DELETION_DELAY_S
    io_timeout: float = DEFAULT_IO_TIMEOUT_S
    page_limit: int = DEFAULT_PAGE_LIMIT
    max_pages: int = 1
    attribute_refresh: AttributeRefresh = AttributeRefresh.ALWAYS
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "servers"
    health_port: int = DEFAULT_HEALTH_PORT
    journal_path: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MonitorConfig":
        """
        Builds a config from MONITOR_* environment variables (and PORT).
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def _get(name: str) -> Optional[str]:
            value = env.get(name)
            if value is None or not value.strip():
                return None
            return value.strip()

        def _number(name: str, default, kind):
            raw = _get(name)
            if raw is None:
                return default
            try:
                return kind(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{name} must be a {kind.__name__}, got {raw!r}") from exc

        refresh_raw = _get("MONITOR_ATTRIBUTE_REFRESH")
        try:
            refresh = AttributeRefresh(refresh_raw.lower()) if refresh_raw else defaults.attribute_refresh
        except ValueError as exc:
            raise ConfigurationError(f"MONITOR_ATTRIBUTE_REFRESH has unknown value {refresh_raw!r}") from exc

        config = cls(
            place_id=_get("MONITOR_PLACE_ID") or defaults.place_id,
            api_base_url=_get("MONITOR_API_BASE_URL") or defaults.api_base_url,
            poll_interval=_number("MONITOR_POLL_INTERVAL", defaults.poll_interval, float),
            missed_cycles_threshold=_number("MONITOR_MISSED_CYCLES_THRESHOLD", defaults.missed_cycles_threshold, int),
            deletion_delay=_number("MONITOR_DELETION_DELAY", defaults.deletion_delay, float),
            io_timeout=_number("MONITOR_IO_TIMEOUT", defaults.io_timeout, float),
            page_limit=_number("MONITOR_PAGE_LIMIT", defaults.page_limit, int),
            max_pages=_number("MONITOR_MAX_PAGES", defaults.max_pages, int),
            attribute_refresh=refresh,
            redis_url=_get("MONITOR_REDIS_URL") or defaults.redis_url,
            key_prefix=_get("MONITOR_KEY_PREFIX") or defaults.key_prefix,
            health_port=_number("PORT", defaults.health_port, int),
            journal_path=_get("MONITOR_JOURNAL_PATH"),
            log_level=_get("MONITOR_LOG_LEVEL") or defaults.log_level,
        )
        config.validate()
        return config

    def validate(self) -> "MonitorConfig":
        """
        Raises ConfigurationError if any scheduling parameter is not positive.
        """
        positive = {
            "poll_interval": self.poll_interval,
            "missed_cycles_threshold": self.missed_cycles_threshold,
            "deletion_delay": self.deletion_delay,
            "io_timeout": self.io_timeout,
            "page_limit": self.page_limit,
            "max_pages": self.max_pages,
        }
        bad = sorted(name for name, value in positive.items() if value <= 0)
        if bad:
            raise ConfigurationError(f"Must be positive: {', '.join(bad)}")
        if not self.place_id.isdigit():
            raise ConfigurationError(f"place_id must be numeric, got {self.place_id!r}")
        if not 0 < self.health_port < 65536:
            raise ConfigurationError(f"health_port out of range: {self.health_port}")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level {self.log_level!r}")
        return self

    @property
    def servers_url(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/v1/games/{self.place_id}/servers/0"
