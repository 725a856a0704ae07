"""Infra layer utilities (SQLite bookkeeping, checkpoint)."""

from .checkpoint import CheckpointStore
from .storage import SQLiteManager

__all__ = ["CheckpointStore", "SQLiteManager"]
