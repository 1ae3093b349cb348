"""
Configuration Module
====================

Loads aggregator settings from a YAML file. Each section maps to a small
dataclass; missing keys fall back to defaults and secrets can be supplied
through environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from oshirase.core.enums import ExtraKind
from oshirase.core.errors import ConfigError
from oshirase.db.cache import DEFAULT_TTL_FALLBACK


@dataclass
class PipelineConfig:
    """Whole-pipeline settings."""

    ttl: int = 600  # Seconds a pipeline result stays cached

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(ttl=int(data.get("ttl", 600)))


@dataclass
class HttpConfig:
    """Settings shared by every HTTP source."""

    user_agent: str = "Oshirase/0.1"
    request_timeout: float = 30.0
    max_retries: int = 3

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HttpConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            user_agent=data.get("user_agent", "Oshirase/0.1"),
            request_timeout=float(data.get("request_timeout", 30.0)),
            max_retries=int(data.get("max_retries", 3)),
        )


@dataclass
class AniListConfig:
    """AniList GraphQL API settings."""

    url: str = "https://graphql.anilist.co"
    access_token: str = ""
    ttl: int = 600

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AniListConfig:
        """Create from dictionary. ANILIST_ACCESS_TOKEN overrides the file."""
        data = data or {}
        auth = data.get("auth") or {}
        return cls(
            url=data.get("url", "https://graphql.anilist.co"),
            access_token=os.environ.get("ANILIST_ACCESS_TOKEN", auth.get("access_token", "")),
            ttl=int(data.get("ttl", 600)),
        )


@dataclass
class SubsPleaseConfig:
    """SubsPlease schedule page and release feed settings."""

    schedule_url: str = "https://subsplease.org/schedule/"
    rss_url: str = "https://subsplease.org/rss/?r=720"
    resolution: str = "720"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SubsPleaseConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            schedule_url=data.get("schedule_url", "https://subsplease.org/schedule/"),
            rss_url=data.get("rss_url", "https://subsplease.org/rss/?r=720"),
            resolution=str(data.get("resolution", "720")),
        )


@dataclass
class RateLimitConfig:
    """Rate limiting configuration for a source."""

    requests_per_second: float = 5.0
    burst_limit: int = 5

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RateLimitConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            requests_per_second=float(data.get("requests_per_second", 5.0)),
            burst_limit=int(data.get("burst_limit", 5)),
        )


@dataclass
class MangaDexConfig:
    """MangaDex API settings."""

    enabled: bool = False
    list_url: str = ""
    manga_agg_url: str = "https://api.mangadex.org/manga/{id}/aggregate"
    chapter_url: str = "https://mangadex.org/chapter/{id}"
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MangaDexConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            enabled=bool(data.get("enabled", bool(data.get("list_url")))),
            list_url=data.get("list_url", ""),
            manga_agg_url=data.get(
                "manga_agg_url", "https://api.mangadex.org/manga/{id}/aggregate"
            ),
            chapter_url=data.get("chapter_url", "https://mangadex.org/chapter/{id}"),
            rate_limit=RateLimitConfig.from_dict(data.get("rate_limit")),
        )


@dataclass
class DatabaseConfig:
    """Document store settings."""

    path: str = "~/.oshirase/oshirase.db"
    max_concurrency: int = 8

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DatabaseConfig:
        """Create from dictionary. DATABASE_URL overrides the file path."""
        data = data or {}
        return cls(
            path=os.environ.get("DATABASE_URL", data.get("path", "~/.oshirase/oshirase.db")),
            max_concurrency=int(data.get("max_concurrency", 8)),
        )


@dataclass
class RedisConfig:
    """Redis connection and cache settings."""

    host: str = "localhost"
    port: int = 6379
    database: int = 0
    ttl_fallback: int = DEFAULT_TTL_FALLBACK

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> RedisConfig:
        """Create from dictionary. REDIS_HOST, REDIS_PORT and REDIS_DB override the file."""
        data = data or {}
        return cls(
            host=os.environ.get("REDIS_HOST", data.get("host", "localhost")),
            port=int(os.environ.get("REDIS_PORT", data.get("port", 6379))),
            database=int(os.environ.get("REDIS_DB", data.get("database", 0))),
            ttl_fallback=int(data.get("ttl_fallback", DEFAULT_TTL_FALLBACK)),
        )


@dataclass
class TransformConfig:
    """Matching thresholds for the transform stage."""

    similarity_threshold: float = 0.8
    thresholds: dict[str, float] = field(default_factory=dict)
    max_workers: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TransformConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        thresholds = {k: float(v) for k, v in (data.get("thresholds") or {}).items()}
        unknown = set(thresholds) - {kind.value for kind in ExtraKind}
        if unknown:
            raise ConfigError(f"Unknown extra kinds in transform.thresholds: {sorted(unknown)}")
        max_workers = data.get("max_workers")
        return cls(
            similarity_threshold=float(data.get("similarity_threshold", 0.8)),
            thresholds=thresholds,
            max_workers=int(max_workers) if max_workers is not None else None,
        )

    def threshold_for(self, kind: ExtraKind) -> float:
        """Similarity threshold for one extra kind."""
        return self.thresholds.get(kind.value, self.similarity_threshold)


@dataclass
class WorkerConfig:
    """Job loop settings."""

    retry_timeout: int = 10
    jobs_key: str = "aggregator:worker:jobs"
    failed_key: str = "aggregator:worker:failed"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> WorkerConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            return cls()
        return cls(
            retry_timeout=int(data.get("retry_timeout", 10)),
            jobs_key=data.get("jobs_key", "aggregator:worker:jobs"),
            failed_key=data.get("failed_key", "aggregator:worker:failed"),
        )


@dataclass
class AggregatorConfig:
    """Complete aggregator configuration."""

    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    anilist_api: AniListConfig = field(default_factory=AniListConfig)
    subsplease: SubsPleaseConfig = field(default_factory=SubsPleaseConfig)
    mangadex_api: MangaDexConfig = field(default_factory=MangaDexConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AggregatorConfig:
        """Create from dictionary."""
        data = data or {}
        return cls(
            pipeline=PipelineConfig.from_dict(data.get("pipeline")),
            http=HttpConfig.from_dict(data.get("http")),
            anilist_api=AniListConfig.from_dict(data.get("anilist_api")),
            subsplease=SubsPleaseConfig.from_dict(data.get("subsplease")),
            mangadex_api=MangaDexConfig.from_dict(data.get("mangadex_api")),
            database=DatabaseConfig.from_dict(data.get("database")),
            redis=RedisConfig.from_dict(data.get("redis")),
            transform=TransformConfig.from_dict(data.get("transform")),
            worker=WorkerConfig.from_dict(data.get("worker")),
        )


def load_config(config_path: Path | str) -> AggregatorConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the config.yaml file

    Returns:
        Parsed configuration

    Raises:
        ConfigError: If the file is missing or malformed
    """
    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {config_path}")

    try:
        config = AggregatorConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
    config.config_path = config_path
    return config


# Global config instance
_default_config: AggregatorConfig | None = None


def get_default_config() -> AggregatorConfig:
    """
    Get the default configuration instance.

    Loads configuration from the path specified in OSHIRASE_CONFIG_PATH
    environment variable, or falls back to config/config.yaml. Uses
    built-in defaults when neither exists.

    Returns:
        The global AggregatorConfig instance
    """
    global _default_config

    if _default_config is None:
        config_path = os.environ.get("OSHIRASE_CONFIG_PATH")
        if config_path:
            path = Path(config_path)
        else:
            project_root = Path(__file__).parent.parent.parent
            path = project_root / "config" / "config.yaml"

        if path.exists():
            _default_config = load_config(path)
        else:
            _default_config = AggregatorConfig.from_dict({})

    return _default_config


def reset_default_config() -> None:
    """Reset the default configuration (useful for testing)."""
    global _default_config
    _default_config = None
