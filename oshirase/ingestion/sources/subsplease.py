"""
SubsPlease Sources
==================

Two sources backed by subsplease.org:
- The weekly broadcast schedule, scraped from the schedule page table
- The latest released episode per show, read from the release RSS feed
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET

from bs4 import BeautifulSoup, Tag

from oshirase.core.enums import Day
from oshirase.core.errors import SourceError
from oshirase.core.schema import LatestEntry, ScheduleEntry
from oshirase.db.cache import get_cache_key
from oshirase.ingestion.sources.base import BaseSource, ExtractOptions

logger = logging.getLogger(__name__)

Schedule = dict[str, ScheduleEntry]
Latest = dict[str, LatestEntry]


# ============================================================================
# Schedule
# ============================================================================


def _inner_text(element: Tag, selector: str) -> str:
    found = element.select_one(selector)
    if found is None:
        return ""
    return found.get_text(strip=True)


def parse_schedule(html: str) -> Schedule:
    """
    Parse the schedule table into entries keyed by show title.

    The table alternates day header rows (`tr.day-of-week` with the day in an
    h2) and show rows (`tr.all-schedule-item` with the title in a link and
    the time in `.all-schedule-time`). Show rows before any recognised day
    header are skipped.

    Args:
        html: Schedule page or table fragment

    Returns:
        Schedule entries keyed by title
    """
    soup = BeautifulSoup(html, "html.parser")
    table = soup.find(id="full-schedule-table") or soup

    schedule: Schedule = {}
    current_day: Day | None = None

    for row in table.find_all("tr"):
        classes = row.get("class") or []
        if "day-of-week" in classes:
            day = _inner_text(row, "h2")
            try:
                current_day = Day(day)
            except ValueError:
                logger.debug(f"Skipping unknown schedule day '{day}'")
                current_day = None
        elif "all-schedule-item" in classes:
            title = _inner_text(row, "a")
            time = _inner_text(row, ".all-schedule-time")
            if title and time and current_day is not None:
                schedule[title] = ScheduleEntry(title=title, day=current_day, time=time)

    return schedule


class SubsPleaseScheduleSource(BaseSource[Schedule]):
    """
    SubsPlease weekly schedule.

    The schedule changes at most once a day, so results are cached until the
    next midnight.
    """

    SOURCE_NAME = "subsplease_scraper"

    async def extract(self, options: ExtractOptions | None = None) -> Schedule:
        options = options or ExtractOptions()
        cache_key = get_cache_key(self.SOURCE_NAME, "extract")

        if self.cache is not None:
            cached = await self.cache.get_cached(cache_key, Schedule, bypass=options.skip_cache)
            if cached is not None:
                return cached

        async with self.create_client() as client:
            html = await client.get_text(self.config.subsplease.schedule_url)

        schedule = parse_schedule(html)
        if not schedule:
            raise SourceError(self.SOURCE_NAME, "Schedule table is empty or missing")
        logger.info(f"Scraped {len(schedule)} schedule entries")

        if self.cache is not None:
            await self.cache.cache_value_expire_tomorrow(cache_key, schedule)
        return schedule


# ============================================================================
# Latest episodes
# ============================================================================


def parse_latest(xml: str, resolution: str = "720") -> Latest:
    """
    Parse the release feed into the latest episode per show.

    Each item's category is "<show> - <resolution>" and its title ends with
    "<episode> (<resolution>p)". Items without an episode number count as
    episode 0.

    Args:
        xml: RSS document
        resolution: Resolution suffix used by the feed

    Returns:
        Latest release keyed by show title

    Raises:
        ET.ParseError: If the document is not well-formed XML
    """
    root = ET.fromstring(xml)
    episode_pattern = re.compile(rf"(?P<episode>\d+) \({re.escape(resolution)}p\)")
    suffix = f" - {resolution}"

    latest: Latest = {}
    for item in root.iter("item"):
        category = item.findtext("category") or ""
        title = category.replace(suffix, "").strip()
        if not title:
            continue

        match = episode_pattern.search(item.findtext("title") or "")
        episode = int(match.group("episode")) if match else 0

        current = latest.get(title)
        if current is None or current.episode < episode:
            latest[title] = LatestEntry(
                title=title,
                episode=episode,
                url=(item.findtext("link") or "").strip(),
            )

    return latest


class SubsPleaseRssSource(BaseSource[Latest]):
    """SubsPlease release feed."""

    SOURCE_NAME = "subsplease_rss"

    async def extract(self, options: ExtractOptions | None = None) -> Latest:
        async with self.create_client() as client:
            xml = await client.get_text(self.config.subsplease.rss_url)

        try:
            latest = parse_latest(xml, self.config.subsplease.resolution)
        except ET.ParseError as e:
            raise SourceError(self.SOURCE_NAME, f"Could not parse RSS feed: {e}") from e

        logger.info(f"Read latest releases for {len(latest)} shows")
        return latest
