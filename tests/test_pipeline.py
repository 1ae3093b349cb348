"""Tests for the pipeline coordinator."""

import pytest

from oshirase.core.enums import Day, MediaStatus, MediaType
from oshirase.core.errors import PersistenceError, SourceError
from oshirase.core.schema import (
    AggregateData,
    AltTitlesEntry,
    LatestEntry,
    Media,
    MediaLists,
    ScheduleEntry,
    User,
)
from oshirase.db.cache import Cache
from oshirase.db.store import DocumentStore
from oshirase.ingestion.config import AggregatorConfig
from oshirase.ingestion.pipeline import Aggregator, Sources, create_aggregator
from oshirase.ingestion.sources import AltTitlesSource, AniListData, BaseSource, ExtractOptions


class StaticSource(BaseSource):
    """Source that returns a fixed value and records its calls."""

    SOURCE_NAME = "static"

    def __init__(self, value=None, error: Exception | None = None) -> None:
        super().__init__(AggregatorConfig())
        self.value = value
        self.error = error
        self.calls: list[ExtractOptions] = []

    async def extract(self, options: ExtractOptions | None = None):
        self.calls.append(options)
        if self.error:
            raise self.error
        return self.value


def make_anilist() -> AniListData:
    return AniListData(
        user=User(id=7, name="gintoki"),
        lists=MediaLists(
            anime=[
                Media(
                    media_id=918,
                    media_type=MediaType.ANIME,
                    status=MediaStatus.CURRENT,
                    title="Gintama",
                    english_title="Gin Tama",
                ),
                Media(
                    media_id=1,
                    media_type=MediaType.ANIME,
                    status=MediaStatus.CURRENT,
                    title="Cowboy Bebop",
                ),
            ],
            manga=[
                Media(
                    media_id=30044,
                    media_type=MediaType.MANGA,
                    status=MediaStatus.CURRENT,
                    title="Gintama",
                )
            ],
        ),
    )


@pytest.fixture
def config() -> AggregatorConfig:
    return AggregatorConfig()


@pytest.fixture
def sources(config) -> Sources:
    return Sources(
        anilist=StaticSource(make_anilist()),
        schedule=StaticSource(
            {"gintama": ScheduleEntry(title="gintama", day=Day.SATURDAY, time="00:00")}
        ),
        anime_latest=StaticSource(
            {"Gintama": LatestEntry(title="Gintama", episode=12, url="https://example.com/12")}
        ),
        manga_latest=StaticSource(
            {"gintama": LatestEntry(title="gintama", episode=704, url="https://example.com/704")}
        ),
        alt_titles=AltTitlesSource(config),
    )


@pytest.fixture
def aggregator(config, store, fake_redis, sources) -> Aggregator:
    return Aggregator(config, store, Cache(fake_redis), sources=sources)


class TestRun:
    """Tests for a full pipeline run."""

    @pytest.mark.asyncio
    async def test_enriches_and_persists(self, aggregator: Aggregator, store: DocumentStore) -> None:
        data = await aggregator.run()

        gintama = next(m for m in data.lists.anime if m.media_id == 918)
        assert gintama.schedule.day == Day.SATURDAY
        assert gintama.latest.episode == 12
        assert data.lists.manga[0].latest.episode == 704
        assert data.lists.manga[0].schedule is None
        assert "gintama" in data.schedule

        assert store.count_documents("anime") == 2
        assert store.count_documents("manga") == 1
        assert store.get_document("anime", 918)["schedule"]["day"] == "Saturday"
        assert store.get_document("users", 7)["name"] == "gintoki"

    @pytest.mark.asyncio
    async def test_alt_titles_from_store(self, aggregator: Aggregator, store: DocumentStore) -> None:
        await store.upsert_documents(
            "alt_titles", "media_id", [AltTitlesEntry(media_id=1, alt_titles=["Gintama"])]
        )

        data = await aggregator.run()

        bebop = next(m for m in data.lists.anime if m.media_id == 1)
        assert bebop.alt_titles.alt_titles == ["Gintama"]
        assert bebop.latest.episode == 12  # Matched through the alias

    @pytest.mark.asyncio
    async def test_result_is_cached(self, aggregator: Aggregator, sources, fake_redis) -> None:
        first = await aggregator.run()
        second = await aggregator.run()

        assert len(sources.anilist.calls) == 1
        assert second.model_dump() == first.model_dump()
        assert await fake_redis.ttl("aggregator:run") == 600

    @pytest.mark.asyncio
    async def test_cache_key_per_user(self, aggregator: Aggregator, fake_redis) -> None:
        await aggregator.run(user_id=7)
        assert "aggregator:run:7" in fake_redis.values

    @pytest.mark.asyncio
    async def test_skip_cache(self, aggregator: Aggregator, sources, fake_redis) -> None:
        await aggregator.run()
        await aggregator.run(skip_cache=True)

        assert len(sources.anilist.calls) == 2
        assert sources.anilist.calls[1].skip_cache is True

    @pytest.mark.asyncio
    async def test_run_is_idempotent(self, aggregator: Aggregator, store: DocumentStore) -> None:
        await aggregator.run(skip_cache=True)
        first = store.get_document("anime", 918)["hash"]
        await aggregator.run(skip_cache=True)

        assert store.count_documents("anime") == 2
        assert store.get_document("anime", 918)["hash"] == first

    @pytest.mark.asyncio
    async def test_source_failure_fails_run(self, aggregator: Aggregator, sources, store) -> None:
        sources.schedule = StaticSource(error=SourceError("subsplease_scraper", "down"))

        with pytest.raises(SourceError):
            await aggregator.run()
        assert store.count_documents("anime") == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_is_not_cached(
        self, aggregator: Aggregator, fake_redis, monkeypatch
    ) -> None:
        async def failing_upsert(*args, **kwargs):
            raise PersistenceError("disk full")

        monkeypatch.setattr(aggregator.store, "upsert_documents", failing_upsert)

        with pytest.raises(PersistenceError):
            await aggregator.run()
        assert "aggregator:run" not in fake_redis.values

    @pytest.mark.asyncio
    async def test_without_cache(self, config, store, sources) -> None:
        aggregator = Aggregator(config, store, sources=sources)
        data = await aggregator.run()
        assert isinstance(data, AggregateData)

    @pytest.mark.asyncio
    async def test_extract_passes_store(self, aggregator: Aggregator, sources, store) -> None:
        await aggregator.extract()
        assert sources.schedule.calls[0].store is store


class TestCreateAggregator:
    """Tests for create_aggregator."""

    def test_wires_database(self, temp_db_path, fake_redis) -> None:
        config = AggregatorConfig()
        config.database.path = str(temp_db_path)

        aggregator = create_aggregator(config, fake_redis)

        assert aggregator.cache is not None
        assert aggregator.store.count_documents("anime") == 0
        aggregator.store.engine.dispose()

    def test_without_redis(self, temp_db_path) -> None:
        config = AggregatorConfig()
        config.database.path = str(temp_db_path)

        aggregator = create_aggregator(config)

        assert aggregator.cache is None
        aggregator.store.engine.dispose()
