"""Pydantic v2 models for media lists and their secondary-source extras.

These models define:
- Media (a tracked anime/manga list entry, the canonical record)
- ScheduleEntry, LatestEntry, AltTitlesEntry (extras linked to media)
- ExtraSet (uniform keyed container for one kind of extra)
- User, MediaLists, AggregateData (pipeline inputs and outputs)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Union

from pydantic import BaseModel, Field, field_validator

from oshirase.core.enums import Day, ExtraKind, KeySpace, MediaStatus, MediaType


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


# ============================================================================
# Extras
# ============================================================================


class ScheduleEntry(BaseModel):
    """Weekly broadcast slot scraped from the SubsPlease schedule."""

    title: str
    day: Day
    time: str


class LatestEntry(BaseModel):
    """Most recent released episode (anime) or chapter (manga)."""

    title: str
    episode: int = 0
    url: str = ""


class AltTitlesEntry(BaseModel):
    """Alternate titles registered for a media id.

    Alias order is significant: the first alias that matches wins.
    """

    media_id: int
    alt_titles: list[str] = Field(default_factory=list)


Extra = Union[ScheduleEntry, LatestEntry, AltTitlesEntry]


class ExtraSet(BaseModel):
    """
    One keyed collection of extras of a single kind.

    Schedule and latest sets are keyed by title; the alt-titles set is keyed
    by the string form of the media id.
    """

    kind: ExtraKind
    key_space: KeySpace
    entries: dict[str, Extra] = Field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, key: str | None) -> Extra | None:
        """Exact key lookup."""
        if key is None:
            return None
        return self.entries.get(key)

    @classmethod
    def schedule(cls, entries: dict[str, ScheduleEntry]) -> ExtraSet:
        return cls(kind=ExtraKind.SCHEDULE, key_space=KeySpace.TITLE, entries=dict(entries))

    @classmethod
    def latest(cls, entries: dict[str, LatestEntry]) -> ExtraSet:
        return cls(kind=ExtraKind.LATEST, key_space=KeySpace.TITLE, entries=dict(entries))

    @classmethod
    def alt_titles(cls, entries: list[AltTitlesEntry]) -> ExtraSet:
        return cls(
            kind=ExtraKind.ALT_TITLES,
            key_space=KeySpace.MEDIA_ID,
            entries={str(entry.media_id): entry for entry in entries},
        )


# ============================================================================
# Canonical record
# ============================================================================


class Media(BaseModel):
    """
    A tracked anime or manga entry from the user's AniList lists.

    `media_id` is stable across runs and is the identity used for upserts.
    `alt_titles`, `schedule` and `latest` are filled in by the transform stage.
    """

    media_id: int
    media_type: MediaType | None = None
    status: MediaStatus | None = None
    format: str | None = None
    season: str | None = None
    season_year: int | None = None
    title: str | None = None
    english_title: str | None = None
    image: str | None = None
    episodes: int | None = None
    score: float | None = None
    progress: int | None = None
    alt_titles: AltTitlesEntry | None = None
    schedule: ScheduleEntry | None = None
    latest: LatestEntry | None = None

    @property
    def is_current(self) -> bool:
        """Only entries the user is currently watching/reading get enriched."""
        return self.status == MediaStatus.CURRENT

    @property
    def aliases(self) -> list[str]:
        """Ordered alternate titles, empty when none were resolved."""
        if self.alt_titles is None:
            return []
        return self.alt_titles.alt_titles


class User(BaseModel):
    """AniList viewer."""

    id: int
    name: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class MediaLists(BaseModel):
    """The user's current anime and manga lists."""

    anime: list[Media] = Field(default_factory=list)
    manga: list[Media] = Field(default_factory=list)


class AggregateData(BaseModel):
    """Result of one pipeline run. Cached as a whole."""

    user: User | None = None
    lists: MediaLists = Field(default_factory=MediaLists)
    schedule: dict[str, ScheduleEntry] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=_utc_now)
