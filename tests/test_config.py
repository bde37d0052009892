"""Tests for ingestion configuration loading."""

from pathlib import Path

import pytest

from jovie_ingest.ingestion.config import (
    GlobalConfig,
    IngestionConfig,
    MergeConfig,
    RateLimitConfig,
    get_default_config,
    reset_default_config,
)

PROJECT_CONFIG = Path(__file__).parent.parent / "config" / "ingestion.yaml"


class TestGlobalConfig:
    """Tests for GlobalConfig."""

    def test_defaults(self) -> None:
        """Test default values."""
        config = GlobalConfig()
        assert config.max_retries == 2
        assert config.retry_backoff_seconds == 1.0
        assert config.max_depth == 3
        assert config.stale_after_minutes == 10

    def test_from_dict_partial(self) -> None:
        """Test that missing keys fall back to defaults."""
        config = GlobalConfig.from_dict({"request_timeout": 5, "max_retries": 0})
        assert config.request_timeout == 5.0
        assert config.max_retries == 0
        assert config.worker_concurrency == 4

    def test_from_dict_none(self) -> None:
        """Test None gives defaults."""
        assert GlobalConfig.from_dict(None) == GlobalConfig()

    def test_max_depth_bounded(self) -> None:
        """Test that max_depth above the hard cap is rejected."""
        with pytest.raises(ValueError):
            GlobalConfig.from_dict({"max_depth": 4})


class TestMergeConfig:
    """Tests for MergeConfig."""

    def test_default_follow_ups_exclude_instagram(self) -> None:
        """Test the default follow-up platform list."""
        config = MergeConfig()
        assert "spotify" in config.follow_up_platforms
        assert "instagram" not in config.follow_up_platforms
        assert config.follow_up_priority == -1

    def test_from_dict(self) -> None:
        """Test overriding follow-up rules."""
        config = MergeConfig.from_dict({"follow_up_platforms": ["youtube"], "follow_up_priority": 2})
        assert config.follow_up_platforms == ["youtube"]
        assert config.follow_up_priority == 2


class TestIngestionConfig:
    """Tests for IngestionConfig."""

    def test_load_project_config(self) -> None:
        """Test loading the shipped config file."""
        config = IngestionConfig()
        config.load_config(PROJECT_CONFIG)

        assert config.config_path == PROJECT_CONFIG.resolve()
        assert config.global_config.max_concurrent_jobs_per_host == 2
        assert config.rate_limit_for("linktr.ee").requests_per_second == 2.0

    def test_rate_limit_subdomain_inherits(self, tmp_path) -> None:
        """Test that subdomains use their parent's rate limit."""
        path = tmp_path / "ingestion.yaml"
        path.write_text(
            "rate_limits:\n"
            "  youtube.com:\n"
            "    requests_per_second: 0.25\n"
            "    burst_limit: 1\n"
        )
        config = IngestionConfig()
        config.load_config(path)

        assert config.rate_limit_for("www.youtube.com") == RateLimitConfig(0.25, 1)
        assert config.rate_limit_for("example.com") == config.global_config.default_rate_limit

    def test_missing_file_raises(self, tmp_path) -> None:
        """Test that load_config requires the file to exist."""
        with pytest.raises(FileNotFoundError):
            IngestionConfig().load_config(tmp_path / "missing.yaml")

    def test_empty_file_uses_defaults(self, tmp_path) -> None:
        """Test that an empty YAML file loads defaults."""
        path = tmp_path / "ingestion.yaml"
        path.write_text("")
        config = IngestionConfig()
        config.load_config(path)
        assert config.global_config == GlobalConfig()
        assert config.list_rate_limits() == {}


class TestDefaultConfig:
    """Tests for the process-wide default config."""

    def test_env_path(self, tmp_path, monkeypatch) -> None:
        """Test INGESTION_CONFIG_PATH."""
        path = tmp_path / "ingestion.yaml"
        path.write_text("global:\n  stale_after_minutes: 3\n")
        monkeypatch.setenv("INGESTION_CONFIG_PATH", str(path))
        reset_default_config()
        try:
            config = get_default_config()
            assert config.global_config.stale_after_minutes == 3
            assert get_default_config() is config
        finally:
            reset_default_config()

    def test_missing_env_path_uses_defaults(self, tmp_path, monkeypatch) -> None:
        """Test that a missing file leaves defaults in place."""
        monkeypatch.setenv("INGESTION_CONFIG_PATH", str(tmp_path / "nope.yaml"))
        reset_default_config()
        try:
            assert get_default_config().global_config == GlobalConfig()
        finally:
            reset_default_config()
