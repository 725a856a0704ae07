"""Import job wiring fetching, extraction, scheduling and checkpointing."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from threading import Lock
from typing import Callable

import structlog

from .config import EmptyPagePolicy, ImporterConfig, ScheduleConfig, ScheduleType
from .engine import (
    EmptyResultError,
    JobAlreadyRunningError,
    PageFetcher,
    PageOutcome,
    PageResult,
    PageScheduler,
    PageStats,
    RecordExtractor,
    RunState,
    RunStatus,
    ThreadPoolManager,
)
from .infra import CheckpointStore, SQLiteManager
from .logging_conf import close_run_logger, configure_logging, run_logger
from .scheduler import APSchedulerAdapter
from .storage import DocumentStore, build_store

PageCallback = Callable[[PageStats], None]


class CompletionCoordinator:
    """Track the highest page below which every page has been committed.

    Pages finish out of order; the checkpoint may only move to page ``n`` once
    every page up to ``n`` has completed.
    """

    def __init__(self, committed: int) -> None:
        self.committed = committed
        self._completed: set[int] = set()

    def complete(self, page_number: int) -> int | None:
        """Register a committed page; return the new high-water mark if it moved."""

        if page_number <= self.committed:
            return None
        self._completed.add(page_number)
        advanced = False
        while self.committed + 1 in self._completed:
            self.committed += 1
            self._completed.remove(self.committed)
            advanced = True
        return self.committed if advanced else None

    @property
    def waiting(self) -> list[int]:
        """Completed pages still blocked behind an unfinished lower page."""

        return sorted(self._completed)


def _new_run_id() -> str:
    return f"{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6]}"


class ImportJob:
    """Run the bill import from the last checkpoint, manually or periodically."""

    def __init__(
        self,
        config: ImporterConfig,
        fetcher: PageFetcher,
        store: DocumentStore,
        checkpoint: CheckpointStore,
        pools: ThreadPoolManager | None = None,
        scheduler: APSchedulerAdapter | None = None,
        logger_factory: Callable[[str], structlog.BoundLogger] = run_logger,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.checkpoint = checkpoint
        self.pools = pools or ThreadPoolManager(
            page_workers=config.pool.pool_size, fragment_workers=config.pool.fragment_workers
        )
        self.scheduler = scheduler
        self.extractor = RecordExtractor(store)
        self.logger = configure_logging().bind(component="import_job")
        self._logger_factory = logger_factory
        self._run_lock = Lock()
        self.state: RunState | None = None

    @classmethod
    def from_config(cls, config: ImporterConfig, home: Path) -> "ImportJob":
        checkpoint_path = config.checkpoint.path
        if not checkpoint_path.is_absolute():
            checkpoint_path = (home / checkpoint_path).resolve()
        checkpoint = CheckpointStore(
            SQLiteManager(), checkpoint_path, default_page=config.checkpoint.default_page
        )
        return cls(
            config=config,
            fetcher=PageFetcher(config.source),
            store=build_store(config.storage, home),
            checkpoint=checkpoint,
        )

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run(self, max_pages: int | None = None, on_page: PageCallback | None = None) -> RunState:
        """Import pages from ``checkpoint + 1`` until the run halts or is stopped."""

        if not self._run_lock.acquire(blocking=False):
            raise JobAlreadyRunningError("An import run is already in progress")
        run_id = _new_run_id()
        try:
            log = self._logger_factory(run_id).bind(component="import_job")
            committed = self.checkpoint.get()
            state = RunState(
                run_id=run_id,
                start_page=committed + 1,
                checkpoint=committed,
                empty_page_policy=self.config.empty_page_policy,
            )
            self.state = state
            coordinator = CompletionCoordinator(committed)
            page_scheduler = PageScheduler(
                self.pools.pages,
                pool_size=self.config.pool.pool_size,
                frame_size=self.config.pool.frame_size,
                logger=log.bind(component="page_scheduler"),
            )
            state.start()
            log.info("import_started", start_page=state.start_page, max_pages=max_pages)
            page_scheduler.run(
                state,
                self.process_page,
                partial(self._on_complete, state, coordinator, log, on_page),
                max_pages=max_pages,
            )
            log.info("import_finished", **state.summary())
            return state
        finally:
            close_run_logger(run_id)
            self._run_lock.release()

    def process_page(self, page_number: int) -> PageResult:
        page = self.fetcher.fetch(page_number)
        return self.extractor.extract_page(page, self.pools.fragments)

    def stop(self) -> None:
        """Cooperatively stop the current run; in-flight pages still finish."""

        if self.state is not None and self.state.status is RunStatus.RUNNING:
            self.state.stop()
            self.logger.info("import_stop_requested", run_id=self.state.run_id)

    def schedule(self, schedule: ScheduleConfig | str | None = None) -> None:
        """Register :meth:`run` on a recurring schedule (cron string or config)."""

        if isinstance(schedule, str):
            schedule = ScheduleConfig(type=ScheduleType.CRON, value=schedule)
        if self.scheduler is None:
            self.scheduler = APSchedulerAdapter()
        self.scheduler.schedule(schedule or self.config.schedule, self.scheduled_run)
        self.scheduler.start()

    def scheduled_run(self) -> RunState | None:
        try:
            return self.run()
        except JobAlreadyRunningError:
            self.logger.warning("run_skipped", reason="already_running")
            return None

    def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()
        self.pools.shutdown()
        self.fetcher.close()
        self.store.close()

    def _on_complete(
        self,
        state: RunState,
        coordinator: CompletionCoordinator,
        log: structlog.BoundLogger,
        on_page: PageCallback | None,
        outcome: PageOutcome,
    ) -> None:
        if outcome.aborted:
            return
        if outcome.result is not None:
            stats = PageStats(
                page_number=outcome.page_number,
                succeeded=outcome.result.succeeded,
                failed=outcome.result.failed_count,
            )
        else:
            stats = PageStats(page_number=outcome.page_number, error=str(outcome.error))
        state.record(stats)
        self.checkpoint.record_page(
            state.run_id, stats.page_number, stats.succeeded, stats.failed, stats.error
        )

        if outcome.committed:
            advanced = coordinator.complete(outcome.page_number)
            if advanced is not None:
                state.checkpoint = self.checkpoint.set(advanced)
                log.info("checkpoint_advanced", checkpoint=state.checkpoint)
            elif coordinator.waiting:
                log.debug("checkpoint_waiting", pages=coordinator.waiting)
        elif (
            isinstance(outcome.error, EmptyResultError)
            and self.config.empty_page_policy is EmptyPagePolicy.FINISH
        ):
            log.info("import_exhausted", page=outcome.page_number)
        else:
            log.error("import_halted", page=outcome.page_number, error=stats.error)

        if on_page is not None:
            on_page(stats)


__all__ = ["CompletionCoordinator", "ImportJob"]
