"""
MangaDex Source
===============

Finds the latest chapter of every manga in a MangaDex custom list.

The list is fetched once, then each manga's chapter aggregate is requested in
batches of `rate_limit.burst_limit`, pausing between batches to stay within
the API rate limit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from oshirase.core.errors import SourceError
from oshirase.core.schema import LatestEntry
from oshirase.ingestion.http import HttpClient, TokenBucket
from oshirase.ingestion.sources.base import BaseSource, ExtractOptions

logger = logging.getLogger(__name__)

Latest = dict[str, LatestEntry]

# Title languages in order of preference
TITLE_LANGUAGES = ("ja-ro", "en")


def parse_manga_list(data: dict[str, Any]) -> list[tuple[str, str]]:
    """
    Get (title, manga id) pairs from a custom list response.

    Manga without a romaji or english title are skipped.
    """
    if data.get("result") != "ok":
        raise ValueError("Could not fetch manga list.")

    pairs = []
    for relationship in (data.get("data") or {}).get("relationships") or []:
        if relationship.get("type") != "manga":
            continue
        titles = (relationship.get("attributes") or {}).get("title") or {}
        title = next((titles[lang] for lang in TITLE_LANGUAGES if titles.get(lang)), "")
        if title:
            pairs.append((title, relationship["id"]))
    return pairs


def find_latest_chapter(data: dict[str, Any]) -> tuple[int, str | None]:
    """
    Find the highest numbered chapter in an aggregate response.

    Chapter numbers can be fractional ("10.5"); they are compared by their
    integer part and the later chapter wins a tie. Unnumbered chapters are
    ignored.

    Returns:
        (chapter number, chapter id), or (0, None) when nothing is numbered
    """
    latest: tuple[int, str | None] = (0, None)
    if data.get("result") != "ok":
        return latest

    volumes = data.get("volumes") or {}
    if isinstance(volumes, list):
        volumes = dict(enumerate(volumes))

    for volume in volumes.values():
        chapters = (volume or {}).get("chapters") or {}
        if isinstance(chapters, list):
            chapters = {c.get("chapter"): c for c in chapters}
        for number, chapter in chapters.items():
            try:
                value = int(float(number))
            except (TypeError, ValueError):
                logger.debug(f"Could not parse chapter '{number}'")
                continue
            if value >= latest[0]:
                latest = (value, chapter.get("id"))
    return latest


class MangaDexSource(BaseSource[Latest]):
    """MangaDex latest chapters."""

    SOURCE_NAME = "mangadex_api"

    batch_pause: float = 1.0

    def _batches(self, pairs: list[tuple[str, str]]) -> list[list[tuple[str, str]]]:
        size = max(1, self.config.mangadex_api.rate_limit.burst_limit)
        return [pairs[i : i + size] for i in range(0, len(pairs), size)]

    async def _fetch_latest(self, client: HttpClient, title: str, manga_id: str) -> LatestEntry:
        api = self.config.mangadex_api
        data = await client.get_json(api.manga_agg_url.replace("{id}", manga_id))
        if not isinstance(data, dict):
            raise SourceError(self.SOURCE_NAME, f"Unexpected aggregate for {manga_id}")

        chapter, chapter_id = find_latest_chapter(data)
        url = api.chapter_url.replace("{id}", chapter_id) if chapter_id else ""
        return LatestEntry(title=title, episode=chapter, url=url)

    async def extract(self, options: ExtractOptions | None = None) -> Latest:
        api = self.config.mangadex_api
        if not api.enabled or not api.list_url:
            logger.debug("MangaDex source is disabled")
            return {}

        rate_limiter = TokenBucket(
            requests_per_second=api.rate_limit.requests_per_second,
            burst_limit=api.rate_limit.burst_limit,
        )

        latest: Latest = {}
        async with self.create_client(rate_limiter=rate_limiter) as client:
            data = await client.get_json(api.list_url)
            try:
                pairs = parse_manga_list(data if isinstance(data, dict) else {})
            except (KeyError, ValueError) as e:
                raise SourceError(self.SOURCE_NAME, str(e)) from e

            batches = self._batches(pairs)
            for index, batch in enumerate(batches):
                results = await asyncio.gather(
                    *(self._fetch_latest(client, title, manga_id) for title, manga_id in batch)
                )
                for entry in results:
                    latest[entry.title] = entry

                if index < len(batches) - 1:
                    await asyncio.sleep(self.batch_pause)

        logger.info(f"Found latest chapters for {len(latest)} manga")
        return latest
