"""
Transform Module
================

Enriches media entries with extras. Each stage pairs one extra set with a
matcher and writes the matched extra into the entry's field of the same
kind. Entries are processed in parallel; stages for one entry run in order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from oshirase.core.enums import ExtraKind
from oshirase.core.errors import MatchError
from oshirase.core.schema import Extra, ExtraSet, Media
from oshirase.ingestion.matcher import Matcher

logger = logging.getLogger(__name__)

FieldSetter = Callable[[Media, Extra], Media]


def set_alt_titles(media: Media, extra: Extra) -> Media:
    return media.model_copy(update={"alt_titles": extra})


def set_schedule(media: Media, extra: Extra) -> Media:
    return media.model_copy(update={"schedule": extra})


def set_latest(media: Media, extra: Extra) -> Media:
    return media.model_copy(update={"latest": extra})


FIELD_SETTERS: dict[ExtraKind, FieldSetter] = {
    ExtraKind.ALT_TITLES: set_alt_titles,
    ExtraKind.SCHEDULE: set_schedule,
    ExtraKind.LATEST: set_latest,
}


@dataclass
class Stage:
    """One enrichment step: an extra set, how to match it, where to put it."""

    extras: ExtraSet
    matcher: Matcher
    setter: FieldSetter

    @classmethod
    def for_extras(cls, extras: ExtraSet, threshold: float = 0.8) -> Stage:
        """Create a stage that writes into the field named after the extra kind."""
        # Id-keyed sets only ever match exactly
        if extras.kind == ExtraKind.ALT_TITLES:
            threshold = 1.0
        return cls(extras=extras, matcher=Matcher(threshold), setter=FIELD_SETTERS[extras.kind])

    @property
    def name(self) -> str:
        return self.extras.kind.value

    def apply(self, media: Media) -> Media:
        """
        Run this stage on one entry.

        Raises:
            MatchError: If matching or setting the field fails
        """
        try:
            extra = self.matcher.resolve(media, self.extras)
            if extra is None:
                return media
            return self.setter(media, extra)
        except Exception as e:
            raise MatchError(f"Stage '{self.name}' failed for media {media.media_id}: {e}") from e


def transform_one(media: Media, stages: Iterable[Stage]) -> Media:
    """
    Run every stage on one entry, in order.

    A failing stage leaves the entry as it was before that stage.
    """
    for stage in stages:
        try:
            media = stage.apply(media)
        except MatchError as e:
            logger.warning(str(e))
    return media


def transform_all(
    records: list[Media],
    stages: list[Stage],
    max_workers: int | None = None,
) -> list[Media]:
    """
    Enrich a batch of media entries.

    Args:
        records: Entries to enrich (not modified)
        stages: Stages to apply to each entry, in order
        max_workers: Thread pool size (None uses the executor default)

    Returns:
        Enriched entries, in input order
    """
    if not records or not stages:
        return list(records)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        transformed = list(executor.map(lambda media: transform_one(media, stages), records))

    enriched = sum(1 for before, after in zip(records, transformed) if before is not after)
    logger.info(
        f"Transformed {len(records)} entries with stages "
        f"{[stage.name for stage in stages]}: {enriched} enriched"
    )
    return transformed


def build_stages(
    alt_titles: ExtraSet | None = None,
    schedule: ExtraSet | None = None,
    latest: ExtraSet | None = None,
    thresholds: dict[ExtraKind, float] | None = None,
    default_threshold: float = 0.8,
) -> list[Stage]:
    """
    Build the stage list in the order extras must be applied.

    Alternate titles come first so later title-keyed stages can use them.

    Args:
        alt_titles: Alternate-title set keyed by media id
        schedule: Schedule set keyed by title
        latest: Latest-release set keyed by title
        thresholds: Per-kind fuzzy thresholds
        default_threshold: Threshold for kinds missing from `thresholds`

    Returns:
        Ordered stages, skipping extra sets that are missing or empty
    """
    thresholds = thresholds or {}
    stages = []
    for extras in (alt_titles, schedule, latest):
        if extras is None or not len(extras):
            continue
        threshold = thresholds.get(extras.kind, default_threshold)
        stages.append(Stage.for_extras(extras, threshold))
    return stages
