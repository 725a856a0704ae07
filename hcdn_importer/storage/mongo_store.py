"""MongoDB document store."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterator, Mapping

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from ..engine.errors import PersistenceError
from .base import COLLECTION_KEYS, DocumentStore


def _to_bson(value: Any) -> Any:
    # BSON has no calendar-date type; dates are stored as midnight datetimes.
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, list):
        return [_to_bson(item) for item in value]
    if isinstance(value, dict):
        return {name: _to_bson(item) for name, item in value.items()}
    return value


class MongoStore(DocumentStore):
    """Write documents into MongoDB collections with atomic upserts."""

    def __init__(self, uri: str, database: str, client: MongoClient | None = None) -> None:
        self.client = client or MongoClient(uri)
        self.db = self.client[database]

    def ensure_indexes(self) -> None:
        for collection, key_fields in COLLECTION_KEYS.items():
            self.db[collection].create_index(
                [(name, ASCENDING) for name in key_fields], unique=True
            )

    def upsert(self, collection: str, key: Mapping[str, Any], fields: Mapping[str, Any]) -> str:
        try:
            document = self.db[collection].find_one_and_update(
                _to_bson(dict(key)),
                {"$set": _to_bson(dict(fields))},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Upsert into {collection} failed: {exc}") from exc
        return str(document["_id"])

    def find(self, collection: str, filter: Mapping[str, Any] | None = None) -> Iterator[dict]:
        yield from self.db[collection].find(_to_bson(dict(filter or {})))

    def close(self) -> None:
        self.client.close()


__all__ = ["MongoStore"]
