"""Document store Service Provider Interface."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Iterator, Mapping

BILLS = "bills"
PEOPLE = "people"
DICTUMS = "dictums"
PROCEDURES = "procedures"

# Fields identifying a document in each collection; upserts are keyed on them.
COLLECTION_KEYS: dict[str, tuple[str, ...]] = {
    BILLS: ("file",),
    PEOPLE: ("name",),
    DICTUMS: ("file", "source", "order_paper"),
    PROCEDURES: ("file", "source", "topic"),
}


class DocumentStore(ABC):
    """Uniform storage contract shared by the importer and read-side consumers."""

    @abstractmethod
    def upsert(self, collection: str, key: Mapping[str, Any], fields: Mapping[str, Any]) -> str:
        """Update the document matching ``key`` or insert it; return its id."""

    @abstractmethod
    def find(self, collection: str, filter: Mapping[str, Any] | None = None) -> Iterator[dict]:
        """Yield documents matching a Mongo-style filter."""

    def find_one(self, collection: str, filter: Mapping[str, Any] | None = None) -> dict | None:
        return next(iter(self.find(collection, filter)), None)

    def count(self, collection: str, filter: Mapping[str, Any] | None = None) -> int:
        return sum(1 for _ in self.find(collection, filter))

    def ensure_indexes(self) -> None:
        """Create backend indexes backing atomic per-key upserts."""

    @abstractmethod
    def close(self) -> None:
        """Release underlying resources."""


def _comparable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _match_operator(value: Any, operator: str, expected: Any) -> bool:
    if operator == "$in":
        candidates = [_comparable(item) for item in expected]
        if isinstance(value, list):
            return any(_comparable(item) in candidates for item in value)
        return _comparable(value) in candidates
    if operator == "$regex":
        return isinstance(value, str) and re.search(expected, value) is not None
    if value is None:
        return False
    left, right = _comparable(value), _comparable(expected)
    if operator == "$gte":
        return left >= right
    if operator == "$lte":
        return left <= right
    if operator == "$gt":
        return left > right
    if operator == "$lt":
        return left < right
    if operator == "$eq":
        return left == right
    raise ValueError(f"Unsupported filter operator: {operator}")


def matches(document: Mapping[str, Any], filter: Mapping[str, Any] | None) -> bool:
    """Evaluate the subset of Mongo filters the importer's consumers rely on.

    Supports equality (a list field matches when it contains the value),
    ``$gte``/``$lte``/``$gt``/``$lt``/``$eq``, ``$in`` and ``$regex``.
    """

    if not filter:
        return True
    for field_name, condition in filter.items():
        value = document.get(field_name)
        if isinstance(condition, Mapping) and condition and all(
            str(op).startswith("$") for op in condition
        ):
            if not all(_match_operator(value, op, arg) for op, arg in condition.items()):
                return False
        elif isinstance(value, list) and not isinstance(condition, list):
            if _comparable(condition) not in [_comparable(item) for item in value]:
                return False
        elif _comparable(value) != _comparable(condition):
            return False
    return True


__all__ = [
    "BILLS",
    "COLLECTION_KEYS",
    "DICTUMS",
    "DocumentStore",
    "PEOPLE",
    "PROCEDURES",
    "matches",
]
