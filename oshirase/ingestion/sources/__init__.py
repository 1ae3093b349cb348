"""
Source Registry Module
======================

Central registry for data sources.
Provides factory functions for creating sources by name.
"""

from __future__ import annotations

from typing import Any

from oshirase.ingestion.sources.alt_titles import AltTitlesSource
from oshirase.ingestion.sources.anilist import AniListData, AniListSource
from oshirase.ingestion.sources.base import BaseSource, ExtractOptions
from oshirase.ingestion.sources.mangadex import MangaDexSource
from oshirase.ingestion.sources.subsplease import SubsPleaseRssSource, SubsPleaseScheduleSource

# Registry mapping source names to their classes
SOURCE_REGISTRY: dict[str, type[BaseSource[Any]]] = {
    AniListSource.SOURCE_NAME: AniListSource,
    SubsPleaseScheduleSource.SOURCE_NAME: SubsPleaseScheduleSource,
    SubsPleaseRssSource.SOURCE_NAME: SubsPleaseRssSource,
    MangaDexSource.SOURCE_NAME: MangaDexSource,
    AltTitlesSource.SOURCE_NAME: AltTitlesSource,
}


def get_source(name: str, *args: Any, **kwargs: Any) -> BaseSource[Any] | None:
    """
    Get a source instance by name.

    Args:
        name: Name of the source (e.g., "anilist_api")
        *args, **kwargs: Passed to the source constructor

    Returns:
        Source instance, or None if name not found
    """
    source_class = SOURCE_REGISTRY.get(name)
    if source_class is None:
        return None
    return source_class(*args, **kwargs)


def list_sources() -> list[str]:
    """List all registered source names."""
    return list(SOURCE_REGISTRY.keys())


__all__ = [
    "AltTitlesSource",
    "AniListData",
    "AniListSource",
    "BaseSource",
    "ExtractOptions",
    "MangaDexSource",
    "SOURCE_REGISTRY",
    "SubsPleaseRssSource",
    "SubsPleaseScheduleSource",
    "get_source",
    "list_sources",
]
