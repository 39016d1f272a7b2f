"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def split_feed_urls(value: str) -> List[str]:
    """Comma-separated URL list with blank entries removed."""
    return [url.strip() for url in value.split(',') if url.strip()]


@dataclass
class PipelineConfig:
    """Settings for one import run."""
    feed_urls: List[str] = field(default_factory=list)
    timezone: str = 'America/Vancouver'
    city: str = 'Vancouver, BC'
    past_grace_hours: int = 24
    table_name: str = 'community-events'
    timeout_seconds: int = 30
    log_level: str = 'INFO'

    @property
    def past_grace(self) -> timedelta:
        return timedelta(hours=self.past_grace_hours)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'PipelineConfig':
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``

        Returns:
            PipelineConfig

        Raises:
            ValueError: If a numeric setting or the timezone is invalid
        """
        env = os.environ if environ is None else environ

        timezone = env.get('CITY_TZ', 'America/Vancouver')
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"CITY_TZ is not a known timezone: {timezone}") from e

        past_grace_hours = int(env.get('PAST_GRACE_HOURS', '24'))
        timeout_seconds = int(env.get('TIMEOUT_SECONDS', '30'))
        if past_grace_hours < 0 or timeout_seconds <= 0:
            raise ValueError('PAST_GRACE_HOURS must be >= 0 and TIMEOUT_SECONDS > 0')

        return cls(
            feed_urls=split_feed_urls(env.get('ICS_FEED_URLS', '')),
            timezone=timezone,
            city=env.get('CITY_NAME', 'Vancouver, BC'),
            past_grace_hours=past_grace_hours,
            table_name=env.get('TABLE_NAME', 'community-events'),
            timeout_seconds=timeout_seconds,
            log_level=env.get('LOG_LEVEL', 'INFO')
        )
