"""
Ingestion Configuration Module
==============================

Loads ingestion settings from a YAML file: fetch behaviour, per-host
rate limits, queue limits and merge follow-up rules.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from jovie_ingest.core.schema import MAX_JOB_DEPTH

DEFAULT_USER_AGENT = "jovie-link-ingestion/1.0 (+https://jov.ie)"
DEFAULT_FOLLOW_UP_PLATFORMS = ["spotify", "youtube", "linktree", "beacons", "laylo"]


@dataclass
class RateLimitConfig:
    """Token bucket settings for one host."""

    requests_per_second: float = 1.0
    burst_limit: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RateLimitConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            requests_per_second=float(data.get("requests_per_second", 1.0)),
            burst_limit=int(data.get("burst_limit", 5)),
        )


@dataclass
class GlobalConfig:
    """Global fetch and queue settings."""

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 10.0
    max_retries: int = 2
    retry_backoff_seconds: float = 1.0
    max_depth: int = MAX_JOB_DEPTH
    stale_after_minutes: int = 10
    max_concurrent_jobs_per_host: int = 2
    worker_concurrency: int = 4
    poll_interval_seconds: float = 2.0
    default_rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        max_depth = int(data.get("max_depth", MAX_JOB_DEPTH))
        if not 0 <= max_depth <= MAX_JOB_DEPTH:
            raise ValueError(f"max_depth must be between 0 and {MAX_JOB_DEPTH}, got {max_depth}")
        return cls(
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            request_timeout=float(data.get("request_timeout", 10.0)),
            max_retries=int(data.get("max_retries", 2)),
            retry_backoff_seconds=float(data.get("retry_backoff_seconds", 1.0)),
            max_depth=max_depth,
            stale_after_minutes=int(data.get("stale_after_minutes", 10)),
            max_concurrent_jobs_per_host=int(data.get("max_concurrent_jobs_per_host", 2)),
            worker_concurrency=int(data.get("worker_concurrency", 4)),
            poll_interval_seconds=float(data.get("poll_interval_seconds", 2.0)),
            default_rate_limit=RateLimitConfig.from_dict(data.get("default_rate_limit")),
        )


@dataclass
class MergeConfig:
    """Merge engine settings."""

    follow_up_platforms: list[str] = field(
        default_factory=lambda: list(DEFAULT_FOLLOW_UP_PLATFORMS)
    )
    follow_up_priority: int = -1

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MergeConfig:
        """Create from dictionary."""
        if data is None:
            return cls()
        return cls(
            follow_up_platforms=list(
                data.get("follow_up_platforms", DEFAULT_FOLLOW_UP_PLATFORMS)
            ),
            follow_up_priority=int(data.get("follow_up_priority", -1)),
        )


class IngestionConfig:
    """
    Ingestion settings loaded from YAML.

    A missing file leaves every setting at its default.
    """

    def __init__(self) -> None:
        self._global_config: GlobalConfig = GlobalConfig()
        self._merge: MergeConfig = MergeConfig()
        self._rate_limits: dict[str, RateLimitConfig] = {}
        self._config_path: Path | None = None

    @property
    def global_config(self) -> GlobalConfig:
        """Get global configuration."""
        return self._global_config

    @property
    def merge(self) -> MergeConfig:
        """Get merge configuration."""
        return self._merge

    @property
    def config_path(self) -> Path | None:
        return self._config_path

    def load_config(self, config_path: Path | str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the ingestion.yaml file
        """
        config_path = Path(config_path).expanduser().resolve()
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._config_path = config_path
        self._global_config = GlobalConfig.from_dict(data.get("global"))
        self._merge = MergeConfig.from_dict(data.get("merge"))

        self._rate_limits.clear()
        for host, limit_data in (data.get("rate_limits") or {}).items():
            self._rate_limits[host.lower()] = RateLimitConfig.from_dict(limit_data)

    def rate_limit_for(self, host: str) -> RateLimitConfig:
        """
        Get the rate limit for a host.

        Subdomains inherit their parent's limit (``www.youtube.com`` uses
        ``youtube.com``); unknown hosts use the default.
        """
        host = host.lower()
        while host:
            if host in self._rate_limits:
                return self._rate_limits[host]
            if "." not in host:
                break
            host = host.split(".", 1)[1]
        return self._global_config.default_rate_limit

    def list_rate_limits(self) -> dict[str, RateLimitConfig]:
        return dict(self._rate_limits)


# Global config instance
_default_config: IngestionConfig | None = None


def get_default_config() -> IngestionConfig:
    """
    Get the default ingestion config instance.

    Loads configuration from the path specified in INGESTION_CONFIG_PATH
    environment variable, or falls back to config/ingestion.yaml.

    Returns:
        The global IngestionConfig instance
    """
    global _default_config

    if _default_config is None:
        _default_config = IngestionConfig()

        config_path = os.environ.get("INGESTION_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            # Default to config/ingestion.yaml relative to project root
            module_dir = Path(__file__).parent
            project_root = module_dir.parent.parent
            path = project_root / "config" / "ingestion.yaml"

        if path.exists():
            _default_config.load_config(path)

    return _default_config


def reset_default_config() -> None:
    """Reset the default config (useful for testing)."""
    global _default_config
    _default_config = None
