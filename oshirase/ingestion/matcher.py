"""
Matcher Module
==============

Resolves one media entry against one keyed set of extras (schedule slots,
latest releases, alternate titles) using exact lookups first and a fuzzy
title comparison as the last resort.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from oshirase.core.enums import KeySpace
from oshirase.core.schema import Extra, ExtraSet, Media

logger = logging.getLogger(__name__)


class MatchStrategy(str, Enum):
    """Which rule produced a match."""

    MEDIA_ID = "media_id"  # Extra set keyed by media id
    TITLE = "title"  # Exact romaji title
    ENGLISH_TITLE = "english_title"  # Exact english title
    ALIAS = "alias"  # Exact alternate title
    FUZZY = "fuzzy"  # Best similarity above threshold


@dataclass
class MatchCandidate:
    """A resolved extra for a media entry."""

    key: str  # Key of the extra in its set
    extra: Extra
    strategy: MatchStrategy
    confidence: float  # 0.0 - 1.0
    matched_value: str  # The media value that was matched against


class Matcher:
    """
    Links media entries to extras.

    Precedence, first hit wins:
    media id (id-keyed sets only), title, english title, each alias in
    order, then the best fuzzy score over title and english title. A fuzzy
    score must be strictly greater than the threshold; equal best scores go
    to the lexicographically smallest key.
    """

    def __init__(self, threshold: float = 0.8) -> None:
        """
        Initialize the matcher.

        Args:
            threshold: Fuzzy similarity must be greater than this to match
        """
        self.threshold = threshold

    def resolve(self, media: Media, extras: ExtraSet) -> Extra | None:
        """
        Find the extra that belongs to a media entry.

        Args:
            media: Media entry to enrich
            extras: Keyed set of candidate extras

        Returns:
            The matched extra, or None
        """
        candidate = self.match(media, extras)
        return candidate.extra if candidate else None

    def match(self, media: Media, extras: ExtraSet) -> MatchCandidate | None:
        """
        Like resolve, but also reports how the extra was found.

        Args:
            media: Media entry to enrich
            extras: Keyed set of candidate extras

        Returns:
            Match details, or None
        """
        if not media.is_current or not extras.entries:
            return None

        if extras.key_space == KeySpace.MEDIA_ID:
            return self._exact(extras, str(media.media_id), MatchStrategy.MEDIA_ID)

        candidate = self._exact(extras, media.title, MatchStrategy.TITLE)
        if candidate:
            return candidate

        candidate = self._exact(extras, media.english_title, MatchStrategy.ENGLISH_TITLE)
        if candidate:
            return candidate

        for alias in media.aliases:
            candidate = self._exact(extras, alias, MatchStrategy.ALIAS)
            if candidate:
                return candidate

        return self._fuzzy(media, extras)

    @staticmethod
    def _exact(
        extras: ExtraSet, value: str | None, strategy: MatchStrategy
    ) -> MatchCandidate | None:
        extra = extras.get(value)
        if extra is None:
            return None
        return MatchCandidate(
            key=value,
            extra=extra,
            strategy=strategy,
            confidence=1.0,
            matched_value=value,
        )

    def _fuzzy(self, media: Media, extras: ExtraSet) -> MatchCandidate | None:
        """
        Find the best scoring key across title and english title.

        Returns:
            Best match if above threshold, None otherwise
        """
        values = [value for value in (media.title, media.english_title) if value]
        if not values:
            return None

        best_match: MatchCandidate | None = None

        # Sorted keys make the first best score the smallest key
        for key in sorted(extras.entries):
            for value in values:
                confidence = self._string_similarity(value, key)
                if confidence <= self.threshold:
                    continue
                if best_match is None or confidence > best_match.confidence:
                    best_match = MatchCandidate(
                        key=key,
                        extra=extras.entries[key],
                        strategy=MatchStrategy.FUZZY,
                        confidence=confidence,
                        matched_value=value,
                    )

        if best_match:
            logger.debug(
                f"Fuzzy matched '{best_match.matched_value}' to '{best_match.key}' "
                f"({best_match.confidence:.0%} confidence)"
            )
        return best_match

    @staticmethod
    def _string_similarity(s1: str, s2: str) -> float:
        """
        Calculate string similarity using Levenshtein distance.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Similarity score between 0.0 and 1.0
        """
        s1 = s1.lower().strip()
        s2 = s2.lower().strip()

        if s1 == s2:
            return 1.0

        if not s1 or not s2:
            return 0.0

        distance = Matcher._levenshtein_distance(s1, s2)
        max_len = max(len(s1), len(s2))

        return 1.0 - (distance / max_len)

    @staticmethod
    def _levenshtein_distance(s1: str, s2: str) -> int:
        """
        Calculate the Levenshtein distance between two strings.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Edit distance
        """
        if len(s1) < len(s2):
            s1, s2 = s2, s1

        if len(s2) == 0:
            return len(s1)

        previous_row = list(range(len(s2) + 1))
        for i, c1 in enumerate(s1):
            current_row = [i + 1]
            for j, c2 in enumerate(s2):
                insertions = previous_row[j + 1] + 1
                deletions = current_row[j] + 1
                substitutions = previous_row[j] + (c1 != c2)
                current_row.append(min(insertions, deletions, substitutions))
            previous_row = current_row

        return previous_row[-1]


def string_similarity(s1: str, s2: str) -> float:
    """Normalized Levenshtein similarity, case-insensitive and trimmed."""
    return Matcher._string_similarity(s1, s2)
