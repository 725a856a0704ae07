"""Document store SPI and implementations."""

from __future__ import annotations

from pathlib import Path

from ..config import StorageSettings
from .base import BILLS, COLLECTION_KEYS, DICTUMS, PEOPLE, PROCEDURES, DocumentStore, matches
from .sqlite_store import SQLiteStore


def build_store(settings: StorageSettings, home: Path) -> DocumentStore:
    """Instantiate the configured backend."""

    if settings.backend == "mongodb":
        from .mongo_store import MongoStore

        store: DocumentStore = MongoStore(settings.uri, settings.database)
    elif settings.backend == "sqlite":
        path = settings.sqlite_path
        if not path.is_absolute():
            path = (home / path).resolve()
        store = SQLiteStore(path)
    else:
        raise ValueError(f"Unsupported storage backend: {settings.backend}")
    store.ensure_indexes()
    return store


__all__ = [
    "BILLS",
    "COLLECTION_KEYS",
    "DICTUMS",
    "DocumentStore",
    "PEOPLE",
    "PROCEDURES",
    "SQLiteStore",
    "build_store",
    "matches",
]
