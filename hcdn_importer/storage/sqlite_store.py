"""Persist documents as JSON payloads in SQLite tables."""

from __future__ import annotations

import json
import sqlite3
import uuid
from datetime import date, datetime
from pathlib import Path
from threading import Lock
from typing import Any, Iterator, Mapping

from ..engine.errors import PersistenceError
from .base import COLLECTION_KEYS, DocumentStore, matches


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _doc_key(key: Mapping[str, Any]) -> str:
    return json.dumps(dict(sorted(key.items())), default=_json_default, ensure_ascii=False)


class SQLiteStore(DocumentStore):
    """Document store backed by one SQLite table per collection."""

    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = Lock()
        self.ensure_indexes()

    def ensure_indexes(self) -> None:
        with self._lock:
            for collection in COLLECTION_KEYS:
                self.conn.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {collection} (
                        id TEXT PRIMARY KEY,
                        doc_key TEXT NOT NULL UNIQUE,
                        payload TEXT NOT NULL
                    )
                    """
                )
            self.conn.commit()

    def upsert(self, collection: str, key: Mapping[str, Any], fields: Mapping[str, Any]) -> str:
        self._check_collection(collection)
        doc_key = _doc_key(key)
        try:
            with self._lock:
                row = self.conn.execute(
                    f"SELECT id, payload FROM {collection} WHERE doc_key = ?", (doc_key,)
                ).fetchone()
                if row is None:
                    doc_id = uuid.uuid4().hex
                    document: dict[str, Any] = {}
                else:
                    doc_id = row[0]
                    document = json.loads(row[1])
                document.update(key)
                document.update(fields)
                document["_id"] = doc_id
                payload = json.dumps(document, default=_json_default, ensure_ascii=False)
                self.conn.execute(
                    f"""
                    INSERT INTO {collection}(id, doc_key, payload) VALUES (?, ?, ?)
                    ON CONFLICT(doc_key) DO UPDATE SET payload = excluded.payload
                    """,
                    (doc_id, doc_key, payload),
                )
                self.conn.commit()
        except (sqlite3.Error, TypeError) as exc:
            raise PersistenceError(f"Upsert into {collection} failed: {exc}") from exc
        return doc_id

    def find(self, collection: str, filter: Mapping[str, Any] | None = None) -> Iterator[dict]:
        self._check_collection(collection)
        with self._lock:
            rows = self.conn.execute(f"SELECT payload FROM {collection} ORDER BY rowid").fetchall()
        for (payload,) in rows:
            document = json.loads(payload)
            if matches(document, filter):
                yield document

    def close(self) -> None:
        with self._lock:
            self.conn.commit()
            self.conn.close()

    @staticmethod
    def _check_collection(collection: str) -> None:
        if collection not in COLLECTION_KEYS:
            raise ValueError(f"Unknown collection: {collection}")


__all__ = ["SQLiteStore"]
