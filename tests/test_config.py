"""Tests for the configuration module."""

import tempfile
from pathlib import Path

import pytest
import yaml

from oshirase.core.enums import ExtraKind
from oshirase.core.errors import ConfigError
from oshirase.ingestion.config import (
    AggregatorConfig,
    AniListConfig,
    MangaDexConfig,
    RateLimitConfig,
    RedisConfig,
    TransformConfig,
    WorkerConfig,
    get_default_config,
    load_config,
    reset_default_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the environment from leaking into config values."""
    for name in (
        "ANILIST_ACCESS_TOKEN",
        "DATABASE_URL",
        "REDIS_HOST",
        "REDIS_PORT",
        "REDIS_DB",
        "OSHIRASE_CONFIG_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_default_config()
    yield
    reset_default_config()


def write_yaml(data) -> Path:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        if isinstance(data, str):
            f.write(data)
        else:
            yaml.dump(data, f)
        return Path(f.name)


class TestSectionConfigs:
    """Tests for the per-section dataclasses."""

    def test_defaults(self) -> None:
        config = AggregatorConfig()
        assert config.pipeline.ttl == 600
        assert config.transform.similarity_threshold == 0.8
        assert config.worker.retry_timeout == 10
        assert config.worker.jobs_key == "aggregator:worker:jobs"
        assert config.worker.failed_key == "aggregator:worker:failed"
        assert config.redis.ttl_fallback == 86400

    def test_rate_limit_from_none(self) -> None:
        config = RateLimitConfig.from_dict(None)
        assert config.requests_per_second == 5.0
        assert config.burst_limit == 5

    def test_anilist_token_from_file(self) -> None:
        config = AniListConfig.from_dict({"auth": {"access_token": "file-token"}})
        assert config.access_token == "file-token"

    def test_anilist_token_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("ANILIST_ACCESS_TOKEN", "env-token")
        config = AniListConfig.from_dict({"auth": {"access_token": "file-token"}})
        assert config.access_token == "env-token"

    def test_redis_env_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("REDIS_HOST", "cache.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        config = RedisConfig.from_dict({"host": "localhost", "port": 6379})
        assert config.host == "cache.internal"
        assert config.port == 6380

    def test_mangadex_enabled_by_list_url(self) -> None:
        config = MangaDexConfig.from_dict({"list_url": "https://api.mangadex.org/list/x"})
        assert config.enabled is True
        assert MangaDexConfig.from_dict({}).enabled is False

    def test_transform_thresholds(self) -> None:
        config = TransformConfig.from_dict(
            {"similarity_threshold": 0.7, "thresholds": {"latest": 0.9}}
        )
        assert config.threshold_for(ExtraKind.LATEST) == 0.9
        assert config.threshold_for(ExtraKind.SCHEDULE) == 0.7

    def test_transform_unknown_kind(self) -> None:
        with pytest.raises(ConfigError):
            TransformConfig.from_dict({"thresholds": {"subtitles": 0.5}})

    def test_worker_from_dict(self) -> None:
        config = WorkerConfig.from_dict({"retry_timeout": 3})
        assert config.retry_timeout == 3
        assert config.jobs_key == "aggregator:worker:jobs"


class TestLoadConfig:
    """Tests for load_config."""

    def test_load(self) -> None:
        path = write_yaml(
            {
                "pipeline": {"ttl": 30},
                "redis": {"host": "redis", "ttl_fallback": 100},
                "worker": {"retry_timeout": 2},
            }
        )
        try:
            config = load_config(path)
            assert config.pipeline.ttl == 30
            assert config.redis.host == "redis"
            assert config.redis.ttl_fallback == 100
            assert config.worker.retry_timeout == 2
            assert config.config_path == path.resolve()
        finally:
            path.unlink()

    def test_empty_file(self) -> None:
        path = write_yaml("")
        try:
            assert load_config(path).pipeline.ttl == 600
        finally:
            path.unlink()

    def test_missing_file(self) -> None:
        with pytest.raises(ConfigError):
            load_config("/nonexistent/config.yaml")

    def test_invalid_yaml(self) -> None:
        path = write_yaml("pipeline: [unclosed")
        try:
            with pytest.raises(ConfigError):
                load_config(path)
        finally:
            path.unlink()

    def test_non_mapping_root(self) -> None:
        path = write_yaml("- just\n- a list\n")
        try:
            with pytest.raises(ConfigError):
                load_config(path)
        finally:
            path.unlink()

    def test_bad_value(self) -> None:
        path = write_yaml({"pipeline": {"ttl": "soon"}})
        try:
            with pytest.raises(ConfigError):
                load_config(path)
        finally:
            path.unlink()

    def test_project_config_file(self) -> None:
        config = load_config(Path(__file__).parent.parent / "config" / "config.yaml")
        assert config.subsplease.resolution == "720"
        assert config.transform.threshold_for(ExtraKind.SCHEDULE) == 0.8


class TestDefaultConfig:
    """Tests for the global default config."""

    def test_env_path(self, monkeypatch) -> None:
        path = write_yaml({"pipeline": {"ttl": 42}})
        try:
            monkeypatch.setenv("OSHIRASE_CONFIG_PATH", str(path))
            assert get_default_config().pipeline.ttl == 42
            assert get_default_config() is get_default_config()
        finally:
            path.unlink()

    def test_reset(self, monkeypatch) -> None:
        first = get_default_config()
        reset_default_config()
        assert get_default_config() is not first

    def test_missing_file_still_reads_environment(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("OSHIRASE_CONFIG_PATH", str(tmp_path / "absent.yaml"))
        monkeypatch.setenv("ANILIST_ACCESS_TOKEN", "secret-token")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        monkeypatch.setenv("REDIS_HOST", "cache.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_DB", "2")

        config = get_default_config()

        assert config.config_path is None
        assert config.anilist_api.access_token == "secret-token"
        assert config.database.path == "sqlite:///:memory:"
        assert config.redis.host == "cache.internal"
        assert config.redis.port == 6380
        assert config.redis.database == 2
