"""Database initialization and persistence layer."""

from oshirase.db.cache import Cache, get_cache_key, next_midnight_timestamp
from oshirase.db.engine import create_db_engine, get_database_url
from oshirase.db.models import AltTitlesDB, AnimeDB, Base, MangaDB, UserDB
from oshirase.db.store import COLLECTIONS, Collection, DocumentStore, UpsertStrategy

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    # Models
    "Base",
    "AnimeDB",
    "MangaDB",
    "UserDB",
    "AltTitlesDB",
    # Store
    "COLLECTIONS",
    "Collection",
    "DocumentStore",
    "UpsertStrategy",
    # Cache
    "Cache",
    "get_cache_key",
    "next_midnight_timestamp",
]
