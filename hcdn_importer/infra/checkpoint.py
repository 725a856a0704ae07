"""Durable last-committed-page marker."""

from __future__ import annotations

from pathlib import Path
from threading import Lock

from .storage import SQLiteManager


class CheckpointStore:
    """Persist the highest contiguously committed page number.

    :meth:`set` is a high-water-mark write: it never lowers the stored value,
    so concurrent or stale writers cannot make the checkpoint regress. Only
    :meth:`reset` can move it backwards.
    """

    def __init__(self, manager: SQLiteManager, path: Path, default_page: int = 0) -> None:
        self.manager = manager
        self.path = path
        self.default_page = default_page
        self._lock = Lock()
        self._conn = self.manager.connect(path)

    def get(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT page FROM page_checkpoint WHERE id = 1").fetchone()
        return int(row["page"]) if row is not None else self.default_page

    def set(self, page_number: int) -> int:
        """Advance the checkpoint to ``page_number`` unless it is already higher."""

        with self._lock:
            self._conn.execute(
                """
                INSERT INTO page_checkpoint(id, page, updated_at) VALUES (1, ?, datetime('now'))
                ON CONFLICT(id) DO UPDATE SET page = excluded.page, updated_at = excluded.updated_at
                WHERE excluded.page > page_checkpoint.page
                """,
                (page_number,),
            )
            self._conn.commit()
        return self.get()

    def reset(self, page_number: int | None = None) -> int:
        """Force the checkpoint to ``page_number`` (the default page when omitted)."""

        value = self.default_page if page_number is None else page_number
        if value < 0:
            raise ValueError("Checkpoint cannot be negative")
        with self._lock:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO page_checkpoint(id, page, updated_at)
                VALUES (1, ?, datetime('now'))
                """,
                (value,),
            )
            self._conn.commit()
        return value

    def record_page(
        self, run_id: str, page_number: int, succeeded: int, failed: int, error: str | None = None
    ) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO page_history(run_id, page, succeeded, failed, error, timestamp)
                VALUES (?, ?, ?, ?, ?, datetime('now'))
                """,
                (run_id, page_number, succeeded, failed, error),
            )
            self._conn.commit()

    def history(self, limit: int = 20) -> list[dict]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT run_id, page, succeeded, failed, error, timestamp
                FROM page_history ORDER BY id DESC LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [dict(row) for row in rows]


__all__ = ["CheckpointStore"]
