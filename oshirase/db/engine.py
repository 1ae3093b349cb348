"""
Engine Module
=============

Builds the SQLAlchemy engine behind the document store. The database is a
single SQLite file shared by the CLI, the worker and every pipeline writer.
"""

import logging
import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path.home() / ".oshirase" / "oshirase.db"

# Seconds a writer waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30


def get_database_url(database: Path | str | None = None) -> str:
    """
    Resolve where the document store lives.

    `database` may be a full sqlite URL, which is used as is, or a file
    path. Without one, DATABASE_URL is consulted before the per-user
    default. The parent directory of a file path is created on demand.

    Args:
        database: sqlite URL or database file path

    Returns:
        sqlite URL for create_engine
    """
    if database is None:
        database = os.environ.get("DATABASE_URL") or DEFAULT_DB_PATH

    if isinstance(database, str) and database.startswith("sqlite"):
        return database

    path = Path(database).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def create_db_engine(database: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create the pooled engine the document store writes through.

    Writes arrive from worker threads, so connections are not pinned to the
    thread that opened them.

    Args:
        database: sqlite URL or database file path
        echo: Log every SQL statement

    Returns:
        SQLAlchemy engine
    """
    url = get_database_url(database)
    logger.debug(f"Opening document store at {url}")
    return create_engine(
        url,
        echo=echo,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
    )
