"""Content hashing for change detection on upsert.

Each record kind hashes an explicit list of fields. Adding a field to a model
does not change existing hashes until it is added here and the version is
bumped, so hashes never drift silently.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pydantic import BaseModel

from oshirase.core.schema import AltTitlesEntry, Media, User

HASH_VERSION = 1

HASH_FIELDS: dict[type[BaseModel], tuple[str, ...]] = {
    Media: (
        "media_id",
        "media_type",
        "status",
        "format",
        "season",
        "season_year",
        "title",
        "english_title",
        "image",
        "episodes",
        "score",
        "progress",
        "alt_titles",
        "schedule",
        "latest",
    ),
    User: ("id", "name"),
    AltTitlesEntry: ("media_id", "alt_titles"),
}

# Bookkeeping fields added by the store, never part of a hash.
VOLATILE_FIELDS = frozenset({"hash", "modified"})


def hash_fields_for(record: BaseModel | dict[str, Any]) -> tuple[str, ...] | None:
    """Get the hashed field list for a record, None for unregistered types."""
    if isinstance(record, dict):
        return None
    for model, fields in HASH_FIELDS.items():
        if isinstance(record, model):
            return fields
    return None


def hash_document(record: BaseModel | dict[str, Any]) -> str:
    """
    Compute the content hash of a record.

    Registered models hash only their declared fields. Plain dicts and
    unregistered models hash every field except the volatile bookkeeping ones.

    Args:
        record: Pydantic model or plain document

    Returns:
        Hex-encoded SHA-256 digest
    """
    if isinstance(record, BaseModel):
        data = record.model_dump(mode="json")
    else:
        data = dict(record)

    fields = hash_fields_for(record)
    if fields is None:
        payload = {k: v for k, v in data.items() if k not in VOLATILE_FIELDS}
    else:
        payload = {name: data.get(name) for name in fields}

    canonical = json.dumps(
        {"v": HASH_VERSION, "kind": type(record).__name__, "fields": payload},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
