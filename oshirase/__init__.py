"""Oshirase - aggregates an AniList tracking list with schedule and release data."""

__version__ = "0.1.0"
