"""Redis connection management for the cache and the job queue."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

if TYPE_CHECKING:
    from oshirase.ingestion.config import RedisConfig

logger = logging.getLogger(__name__)


def get_redis_settings(config: RedisConfig, conn_timeout: int = 1, conn_retries: int = 5) -> RedisSettings:
    """Build Redis connection settings from configuration."""
    return RedisSettings(
        host=config.host,
        port=config.port,
        database=config.database,
        conn_timeout=conn_timeout,
        conn_retries=conn_retries,
    )


async def connect(config: RedisConfig, timeout: int = 1, retries: int = 5) -> ArqRedis:
    """
    Open a pooled Redis connection.

    The returned client manages its own connection pool and is safe to share
    between concurrent tasks.

    Args:
        config: Redis configuration
        timeout: Seconds to wait for each connection attempt
        retries: Connection attempts before giving up

    Returns:
        Connected client

    Raises:
        redis.exceptions.ConnectionError: If Redis cannot be reached
    """
    settings = get_redis_settings(config, conn_timeout=timeout, conn_retries=retries)
    redis = await create_pool(settings)
    logger.debug(f"Connected to Redis at {config.host}:{config.port}/{config.database}")
    return redis
