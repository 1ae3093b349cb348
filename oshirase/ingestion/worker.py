"""
Worker Module
=============

Long-running job loop. Producers push job tokens onto a Redis list; the
worker claims one at a time by moving it onto a failed list, runs it, then
clears the failed list.

    wait for connection -> claim job -> run (or idle timeout) -> clear failed

A job that crashes the process before the failed list is cleared stays there
for inspection. Delivery is at least once: nothing re-queues failed jobs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from oshirase.db.redis_client import connect
from oshirase.ingestion.config import AggregatorConfig
from oshirase.ingestion.pipeline import Aggregator, create_aggregator

logger = logging.getLogger(__name__)

RUN_ALL = "run:all"


async def enqueue_job(redis: Redis, token: str = RUN_ALL, key: str = "aggregator:worker:jobs") -> int:
    """
    Push a job token for the worker.

    Args:
        redis: Connected Redis client
        token: Job token
        key: Jobs list

    Returns:
        Length of the jobs list after the push
    """
    length = await redis.lpush(key, token)
    logger.info(f"Enqueued job '{token}' on {key} ({length} pending)")
    return length


class Worker:
    """
    Blocking dequeue loop that runs the aggregator on demand.

    Connection and pipeline failures are logged and the loop carries on.
    """

    def __init__(
        self,
        config: AggregatorConfig,
        connect_redis: Callable[[], Awaitable[Redis]] | None = None,
        aggregator_factory: Callable[[Redis], Aggregator] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the worker.

        Args:
            config: Aggregator configuration
            connect_redis: Opens a Redis connection (defaults to the configured server)
            aggregator_factory: Builds an aggregator around a connection
            sleep: Awaitable sleep, replaced in tests
        """
        self.config = config
        self.retry_timeout = config.worker.retry_timeout
        self.jobs_key = config.worker.jobs_key
        self.failed_key = config.worker.failed_key
        self._connect_redis = connect_redis or self._default_connect
        self._aggregator_factory = aggregator_factory or (
            lambda redis: create_aggregator(config, redis)
        )
        self._sleep = sleep
        self.redis: Redis | None = None
        self.aggregator: Aggregator | None = None
        self.jobs_run = 0

    async def _default_connect(self) -> Redis:
        return await connect(self.config.redis, timeout=self.retry_timeout)

    async def _ensure_connection(self) -> bool:
        """Connect if needed. Returns False after a failed attempt and a pause."""
        if self.redis is not None:
            return True

        try:
            self.redis = await asyncio.wait_for(self._connect_redis(), timeout=self.retry_timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Could not connect to Redis: {e}")
            await self._sleep(self.retry_timeout)
            return False

        self.aggregator = self._aggregator_factory(self.redis)
        logger.info("Worker connected, waiting for jobs")
        return True

    async def _drop_connection(self) -> None:
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except (RedisError, OSError) as e:
                logger.debug(f"Error closing Redis connection: {e}")
        self.redis = None
        self.aggregator = None

    async def _claim(self) -> str | None:
        job = await self.redis.blmove(
            self.jobs_key, self.failed_key, self.retry_timeout, "RIGHT", "LEFT"
        )
        if job is None:
            return None
        return job.decode() if isinstance(job, bytes) else str(job)

    async def _run_job(self, job: str) -> None:
        if job != RUN_ALL:
            logger.warning(f"Ignoring unknown job '{job}'")
            return

        logger.info("Running aggregator")
        try:
            await self.aggregator.run()
            self.jobs_run += 1
            logger.info("Aggregator run finished")
        except Exception as e:
            logger.exception(f"Aggregator run failed: {e}")

    async def _clear_failed(self) -> None:
        try:
            await self.redis.delete(self.failed_key)
        except (RedisError, OSError) as e:
            logger.warning(f"Could not clear {self.failed_key}: {e}")

    async def run_once(self) -> str | None:
        """
        One pass of the loop: connect, claim, run, clear.

        Returns:
            The claimed job token, or None on timeout or connection failure
        """
        if not await self._ensure_connection():
            return None

        try:
            job = await self._claim()
        except (RedisError, OSError) as e:
            logger.error(f"Could not dequeue from {self.jobs_key}: {e}")
            await self._drop_connection()
            await self._sleep(self.retry_timeout)
            return None

        if job is not None:
            await self._run_job(job)

        await self._clear_failed()
        return job

    async def run(self, max_iterations: int | None = None) -> None:
        """
        Loop forever, or for `max_iterations` passes when given.

        Args:
            max_iterations: Number of passes before returning (None for no limit)
        """
        logger.info(f"Worker started on {self.jobs_key}")
        iterations = 0
        try:
            while max_iterations is None or iterations < max_iterations:
                await self.run_once()
                iterations += 1
        finally:
            await self._drop_connection()
