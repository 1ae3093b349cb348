"""
Alternate Titles Source
=======================

Reads the alternate-title registry from the document store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from oshirase.core.schema import AltTitlesEntry
from oshirase.ingestion.sources.base import BaseSource, ExtractOptions

if TYPE_CHECKING:
    from oshirase.db.cache import Cache
    from oshirase.db.store import DocumentStore
    from oshirase.ingestion.config import AggregatorConfig

logger = logging.getLogger(__name__)

COLLECTION = "alt_titles"


class AltTitlesSource(BaseSource[list[AltTitlesEntry]]):
    """
    Alternate titles keyed by media id.

    Invalid documents are logged and skipped.
    """

    SOURCE_NAME = "alt_titles_db"

    def __init__(
        self,
        config: AggregatorConfig,
        cache: Cache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        store: DocumentStore | None = None,
    ) -> None:
        super().__init__(config, cache, transport)
        self.store = store

    async def extract(self, options: ExtractOptions | None = None) -> list[AltTitlesEntry]:
        options = options or ExtractOptions()
        store = options.store or self.store
        if store is None:
            logger.debug("No document store, skipping alternate titles")
            return []

        documents = await asyncio.to_thread(store.find_documents, COLLECTION)

        entries = []
        for document in documents:
            try:
                entries.append(AltTitlesEntry.model_validate(document))
            except ValidationError as e:
                logger.warning(f"Could not get alt title entry: {e}")

        logger.info(f"Loaded {len(entries)} alternate title entries")
        return entries
