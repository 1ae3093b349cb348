"""SQLAlchemy ORM models for the Oshirase document store.

Each collection is a table of JSON documents with:
- key: the value of the collection's identity field (unique)
- hash: content hash of the document (unique)
- modified: time of the last write
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class DocumentMixin:
    """Columns shared by every document collection."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    modified: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)
    document_json: Mapped[str] = mapped_column(Text, nullable=False)  # JSON object

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(key={self.key}, hash={self.hash[:8]})>"


class AnimeDB(DocumentMixin, Base):
    """Anime list entries, keyed by media_id."""

    __tablename__ = "anime"


class MangaDB(DocumentMixin, Base):
    """Manga list entries, keyed by media_id."""

    __tablename__ = "manga"


class UserDB(DocumentMixin, Base):
    """AniList users, keyed by id."""

    __tablename__ = "users"


class AltTitlesDB(DocumentMixin, Base):
    """Alternate title registry, keyed by media_id."""

    __tablename__ = "alt_titles"
