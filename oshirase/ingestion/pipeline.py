"""
Pipeline Module
===============

Runs one aggregation: extract from every source concurrently, enrich the
media lists with the extras, persist them, and cache the whole result.

    extract (concurrent) -> transform (parallel per entry) -> load (concurrent)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from oshirase.core.enums import ExtraKind
from oshirase.core.schema import (
    AggregateData,
    AltTitlesEntry,
    ExtraSet,
    LatestEntry,
    Media,
    MediaLists,
    ScheduleEntry,
)
from oshirase.db.cache import Cache, get_cache_key
from oshirase.db.engine import create_db_engine
from oshirase.db.store import DocumentStore, UpsertStrategy
from oshirase.ingestion.config import AggregatorConfig
from oshirase.ingestion.sources import (
    AltTitlesSource,
    AniListData,
    AniListSource,
    BaseSource,
    ExtractOptions,
    MangaDexSource,
    SubsPleaseRssSource,
    SubsPleaseScheduleSource,
)
from oshirase.ingestion.transform import build_stages, transform_all

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass
class Sources:
    """The sources one aggregator run reads from."""

    anilist: BaseSource[AniListData]
    schedule: BaseSource[dict[str, ScheduleEntry]]
    anime_latest: BaseSource[dict[str, LatestEntry]]
    manga_latest: BaseSource[dict[str, LatestEntry]]
    alt_titles: BaseSource[list[AltTitlesEntry]]

    @classmethod
    def from_config(
        cls,
        config: AggregatorConfig,
        cache: Cache | None = None,
        store: DocumentStore | None = None,
    ) -> Sources:
        """Create the default sources."""
        return cls(
            anilist=AniListSource(config, cache),
            schedule=SubsPleaseScheduleSource(config, cache),
            anime_latest=SubsPleaseRssSource(config, cache),
            manga_latest=MangaDexSource(config, cache),
            alt_titles=AltTitlesSource(config, cache, store=store),
        )


@dataclass
class ExtractedData:
    """Raw output of every source for one run."""

    anilist: AniListData
    schedule: dict[str, ScheduleEntry] = field(default_factory=dict)
    anime_latest: dict[str, LatestEntry] = field(default_factory=dict)
    manga_latest: dict[str, LatestEntry] = field(default_factory=dict)
    alt_titles: list[AltTitlesEntry] = field(default_factory=list)


class Aggregator:
    """
    Coordinates extract, transform and load.

    The store and the cache are shared, pooled handles; concurrent stages use
    them without any extra locking.
    """

    def __init__(
        self,
        config: AggregatorConfig,
        store: DocumentStore,
        cache: Cache | None = None,
        sources: Sources | None = None,
        upsert_strategy: UpsertStrategy = UpsertStrategy.UNCONDITIONAL,
    ) -> None:
        """
        Initialize the aggregator.

        Args:
            config: Aggregator configuration
            store: Document store the results are written to
            cache: Optional cache for whole-run results
            sources: Sources to read from (defaults built from config)
            upsert_strategy: How media lists are written
        """
        self.config = config
        self.store = store
        self.cache = cache
        self.sources = sources or Sources.from_config(config, cache, store)
        self.upsert_strategy = upsert_strategy

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def extract(self, options: ExtractOptions | None = None) -> ExtractedData:
        """
        Read every source concurrently.

        Raises:
            SourceError: If any source fails
        """
        options = options or ExtractOptions()
        if options.store is None:
            options = replace(options, store=self.store)

        anilist, schedule, anime_latest, manga_latest, alt_titles = await asyncio.gather(
            self.sources.anilist.extract(options),
            self.sources.schedule.extract(options),
            self.sources.anime_latest.extract(options),
            self.sources.manga_latest.extract(options),
            self.sources.alt_titles.extract(options),
        )
        return ExtractedData(
            anilist=anilist,
            schedule=schedule,
            anime_latest=anime_latest,
            manga_latest=manga_latest,
            alt_titles=alt_titles,
        )

    def _thresholds(self) -> dict[ExtraKind, float]:
        transform = self.config.transform
        return {kind: transform.threshold_for(kind) for kind in ExtraKind}

    def _transform_list(
        self,
        records: list[Media],
        alt_titles: ExtraSet,
        latest: ExtraSet,
        schedule: ExtraSet | None = None,
    ) -> list[Media]:
        stages = build_stages(
            alt_titles=alt_titles,
            schedule=schedule,
            latest=latest,
            thresholds=self._thresholds(),
            default_threshold=self.config.transform.similarity_threshold,
        )
        return transform_all(records, stages, max_workers=self.config.transform.max_workers)

    def transform(self, extracted: ExtractedData) -> AggregateData:
        """
        Enrich the media lists with alternate titles, schedule and latest releases.

        Anime get the broadcast schedule and the latest episode; manga get the
        latest chapter. Alternate titles are resolved first for both.
        """
        alt_titles = ExtraSet.alt_titles(extracted.alt_titles)
        lists = extracted.anilist.lists

        anime = self._transform_list(
            lists.anime,
            alt_titles=alt_titles,
            schedule=ExtraSet.schedule(extracted.schedule),
            latest=ExtraSet.latest(extracted.anime_latest),
        )
        manga = self._transform_list(
            lists.manga,
            alt_titles=alt_titles,
            latest=ExtraSet.latest(extracted.manga_latest),
        )

        return AggregateData(
            user=extracted.anilist.user,
            lists=MediaLists(anime=anime, manga=manga),
            schedule=extracted.schedule,
        )

    async def load(self, data: AggregateData) -> None:
        """
        Persist the media lists and the user.

        Raises:
            PersistenceError: If any write fails
        """
        writes = [
            self.store.upsert_documents(
                "anime", "media_id", data.lists.anime, self.upsert_strategy
            ),
            self.store.upsert_documents(
                "manga", "media_id", data.lists.manga, self.upsert_strategy
            ),
        ]
        if data.user is not None:
            writes.append(self.store.upsert_documents("users", "id", [data.user]))
        await asyncio.gather(*writes)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, skip_cache: bool = False, user_id: int | None = None) -> AggregateData:
        """
        Run the full pipeline, or return the cached result of a recent run.

        Args:
            skip_cache: Ignore every cached value and do not cache the result
            user_id: AniList user to aggregate (None for the token's viewer)

        Returns:
            The aggregated lists

        Raises:
            SourceError: If a source fails
            PersistenceError: If the results cannot be written
        """
        cache_key = get_cache_key("aggregator", "run", user_id)

        if self.cache is not None:
            cached = await self.cache.get_cached(cache_key, AggregateData, bypass=skip_cache)
            if cached is not None:
                return cached

        extracted = await self.extract(ExtractOptions(skip_cache=skip_cache, user_id=user_id))
        data = await asyncio.to_thread(self.transform, extracted)
        await self.load(data)

        logger.info(
            f"Aggregated {len(data.lists.anime)} anime and {len(data.lists.manga)} manga"
            + (f" for {data.user.name}" if data.user else "")
        )

        if self.cache is not None:
            await self.cache.cache_value_expire(
                cache_key, data, self.config.pipeline.ttl, bypass=skip_cache
            )
        return data


def create_aggregator(config: AggregatorConfig, redis: Redis | None = None) -> Aggregator:
    """
    Create an aggregator wired to the configured database.

    Args:
        config: Aggregator configuration
        redis: Connected Redis client, or None to run without a cache

    Returns:
        Ready-to-run aggregator
    """
    engine = create_db_engine(config.database.path)
    store = DocumentStore(engine, max_concurrency=config.database.max_concurrency)
    store.ensure_indexes()
    cache = Cache(redis, ttl_fallback=config.redis.ttl_fallback) if redis is not None else None
    return Aggregator(config, store, cache)
