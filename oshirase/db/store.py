"""
Document Store Module
=====================

Idempotent, change-aware persistence of records into document collections.

Every write is an insert-or-update keyed on the collection's identity field.
The stored document carries a content hash and a modified timestamp, so
re-running a batch with identical input rewrites the same fields and leaves
exactly one document per identity.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from oshirase.core.errors import PersistenceError
from oshirase.core.hashing import hash_document
from oshirase.db.models import AltTitlesDB, AnimeDB, Base, DocumentMixin, MangaDB, UserDB

logger = logging.getLogger(__name__)


class UpsertStrategy(str, Enum):
    """How a batch of records is written."""

    UNCONDITIONAL = "unconditional"  # Always insert-or-update by identity
    HASH_PRECHECK = "hash_precheck"  # Skip records whose hash is already stored


@dataclass(frozen=True)
class Collection:
    """A document collection and its identity field."""

    name: str
    model: type[DocumentMixin]
    id_key: str


COLLECTIONS: dict[str, Collection] = {
    "anime": Collection("anime", AnimeDB, "media_id"),
    "manga": Collection("manga", MangaDB, "media_id"),
    "users": Collection("users", UserDB, "id"),
    "alt_titles": Collection("alt_titles", AltTitlesDB, "media_id"),
}


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _to_document(record: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return dict(record)


class DocumentStore:
    """
    Document collections backed by SQLAlchemy.

    The engine is pooled and thread-safe; each write runs in its own session
    on a worker thread so a batch can be written concurrently.
    """

    def __init__(self, engine: Engine, max_concurrency: int = 8) -> None:
        """
        Initialize the store.

        Args:
            engine: SQLAlchemy engine
            max_concurrency: Maximum number of writes in flight per batch
        """
        self.engine = engine
        self.max_concurrency = max_concurrency
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        self._indexes_ready = False

    def ensure_indexes(self) -> None:
        """Create every collection with its unique identity and hash indexes."""
        if self._indexes_ready:
            return
        Base.metadata.create_all(bind=self.engine)
        self._indexes_ready = True
        logger.debug("Document collections and unique indexes are in place")

    def _get_collection(self, name: str) -> Collection:
        collection = COLLECTIONS.get(name)
        if collection is None:
            raise PersistenceError(f"Unknown collection '{name}'")
        return collection

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_documents(
        self,
        collection: str,
        id_key: str,
        records: list[BaseModel] | list[dict[str, Any]],
        strategy: UpsertStrategy = UpsertStrategy.UNCONDITIONAL,
    ) -> None:
        """
        Insert-or-update a batch of records.

        Writes are issued concurrently and joined. The first failure fails
        the whole call; writes that already committed stay committed.

        Args:
            collection: Collection name
            id_key: Identity field of each record
            records: Records to write
            strategy: Write strategy (see UpsertStrategy)

        Raises:
            PersistenceError: If any record cannot be written
        """
        target = self._get_collection(collection)
        if id_key != target.id_key:
            raise PersistenceError(
                f"Collection '{collection}' is keyed by {target.id_key}, not {id_key}"
            )
        self.ensure_indexes()

        documents = [_to_document(record) for record in records]
        hashes = [hash_document(record) for record in records]

        for document in documents:
            if document.get(id_key) is None:
                raise PersistenceError(f"Could not find {id_key} in {collection} document")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def write_with_semaphore(document: dict[str, Any], content_hash: str) -> bool:
            async with semaphore:
                return await asyncio.to_thread(
                    self._write_one, target, id_key, document, content_hash, strategy
                )

        tasks = [
            write_with_semaphore(document, content_hash)
            for document, content_hash in zip(documents, hashes)
        ]
        try:
            written = await asyncio.gather(*tasks)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not upsert into {collection}: {e}") from e

        logger.info(
            f"Upserted {sum(written)}/{len(documents)} documents into '{collection}' "
            f"({strategy.value})"
        )

    def _write_one(
        self,
        target: Collection,
        id_key: str,
        document: dict[str, Any],
        content_hash: str,
        strategy: UpsertStrategy,
    ) -> bool:
        """Write one document in its own transaction. Returns False if skipped."""
        model = target.model
        key = str(document[id_key])

        with self._session_factory() as session:
            if strategy == UpsertStrategy.HASH_PRECHECK and self._hash_exists(
                session, model, content_hash
            ):
                return False

            now = _utc_now()
            stored = {**document, "hash": content_hash, "modified": now.isoformat()}
            stmt = insert(model).values(
                key=key,
                hash=content_hash,
                modified=now,
                document_json=json.dumps(stored, sort_keys=True),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[model.key],
                set_={
                    "hash": stmt.excluded.hash,
                    "modified": stmt.excluded.modified,
                    "document_json": stmt.excluded.document_json,
                },
            )
            session.execute(stmt)
            session.commit()
        return True

    @staticmethod
    def _hash_exists(session: Session, model: type[DocumentMixin], content_hash: str) -> bool:
        stmt = select(model.id).where(model.hash == content_hash).limit(1)
        return session.execute(stmt).first() is not None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_document(self, collection: str, key: Any) -> dict[str, Any] | None:
        """
        Get one document by identity.

        Args:
            collection: Collection name
            key: Identity value

        Returns:
            The stored document (with hash and modified), or None
        """
        model = self._get_collection(collection).model
        self.ensure_indexes()
        with self._session_factory() as session:
            stmt = select(model.document_json).where(model.key == str(key))
            row = session.execute(stmt).scalar_one_or_none()
        return json.loads(row) if row is not None else None

    def find_documents(self, collection: str) -> list[dict[str, Any]]:
        """Get every document in a collection, ordered by identity."""
        model = self._get_collection(collection).model
        self.ensure_indexes()
        with self._session_factory() as session:
            rows = session.execute(select(model.document_json).order_by(model.key)).scalars()
            return [json.loads(row) for row in rows]

    def count_documents(self, collection: str) -> int:
        """Count documents in a collection."""
        model = self._get_collection(collection).model
        self.ensure_indexes()
        with self._session_factory() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()
