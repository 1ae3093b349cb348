"""Enums for media list fields."""

from enum import Enum


class MediaType(str, Enum):
    """AniList media type."""

    ANIME = "ANIME"
    MANGA = "MANGA"


class MediaStatus(str, Enum):
    """List entry status as reported by AniList."""

    CURRENT = "CURRENT"
    PLANNING = "PLANNING"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"
    PAUSED = "PAUSED"
    REPEATING = "REPEATING"


class Day(str, Enum):
    """Broadcast day of week."""

    SUNDAY = "Sunday"
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"


class ExtraKind(str, Enum):
    """Kinds of secondary-source records that can enrich a media entry."""

    ALT_TITLES = "alt_titles"
    SCHEDULE = "schedule"
    LATEST = "latest"


class KeySpace(str, Enum):
    """What the keys of an extra set refer to."""

    MEDIA_ID = "media_id"
    TITLE = "title"
