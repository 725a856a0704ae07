"""Run-scoped state shared by the import job and its page scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Event, Lock

from ..config import EmptyPagePolicy
from .errors import EmptyResultError, PageError


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    HALTED = "halted"
    EXHAUSTED = "exhausted"
    STOPPED = "stopped"
    FINISHED = "finished"


@dataclass(slots=True)
class PageStats:
    """Per-page progress signal reported to operators."""

    page_number: int
    succeeded: int = 0
    failed: int = 0
    error: str | None = None


@dataclass
class RunState:
    """Mutable state of one import run.

    The first terminal transition sticks, except that a hard error still
    turns an exhausted run into a halted one. Pages that were in flight when
    an empty page ended the run can fail afterwards.
    """

    run_id: str
    start_page: int
    checkpoint: int
    empty_page_policy: EmptyPagePolicy = EmptyPagePolicy.FINISH
    status: RunStatus = RunStatus.IDLE
    error: PageError | None = None
    highest_enqueued: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    pages: list[PageStats] = field(default_factory=list)
    _halt: Event = field(default_factory=Event, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    @property
    def halted(self) -> bool:
        return self._halt.is_set()

    def start(self) -> None:
        with self._lock:
            self.status = RunStatus.RUNNING
            self.started_at = datetime.now(timezone.utc)

    def fail(self, error: PageError) -> RunStatus:
        """Stop scheduling because of a page-level error."""

        if isinstance(error, EmptyResultError) and self.empty_page_policy is EmptyPagePolicy.FINISH:
            return self._terminate(RunStatus.EXHAUSTED, error)
        return self._terminate(RunStatus.HALTED, error)

    def stop(self) -> RunStatus:
        return self._terminate(RunStatus.STOPPED, None)

    def finish(self) -> RunStatus:
        return self._terminate(RunStatus.FINISHED, None)

    def _terminate(self, status: RunStatus, error: PageError | None) -> RunStatus:
        with self._lock:
            escalates = (
                status is RunStatus.HALTED
                and error is not None
                and self.status is RunStatus.EXHAUSTED
            )
            if not self._halt.is_set() or escalates:
                self.status = status
                self.error = error
                self.finished_at = datetime.now(timezone.utc)
                self._halt.set()
            return self.status

    def record(self, stats: PageStats) -> None:
        with self._lock:
            self.pages.append(stats)

    def summary(self) -> dict[str, object]:
        with self._lock:
            return {
                "run_id": self.run_id,
                "status": self.status.value,
                "pages": len(self.pages),
                "succeeded": sum(page.succeeded for page in self.pages),
                "failed": sum(page.failed for page in self.pages),
                "checkpoint": self.checkpoint,
                "error": str(self.error) if self.error else None,
            }


__all__ = ["PageStats", "RunState", "RunStatus"]
