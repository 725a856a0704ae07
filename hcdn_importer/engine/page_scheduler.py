"""Bounded worker pool draining a self-refilling queue of page numbers."""

from __future__ import annotations

from collections import deque
from concurrent.futures import FIRST_COMPLETED, Executor, Future, wait
from dataclasses import dataclass
from typing import Callable

import structlog

from .errors import PageError
from .extractor import PageResult
from .run_state import RunState


@dataclass(slots=True)
class PageOutcome:
    """What happened to one dispatched page."""

    page_number: int
    result: PageResult | None = None
    error: PageError | None = None
    aborted: bool = False

    @property
    def committed(self) -> bool:
        return self.result is not None


ProcessPage = Callable[[int], PageResult]
CompletionHandler = Callable[[PageOutcome], None]


class PageScheduler:
    """Dispatch pages in increasing order to at most ``pool_size`` workers.

    When the pending queue drains and the run is not halted, the next frame of
    ``frame_size`` pages is enqueued, continuing from the highest page ever
    enqueued. Completion handlers run on the thread calling :meth:`run`, one
    at a time, in the order the pages finish.
    """

    def __init__(
        self,
        executor: Executor,
        pool_size: int = 4,
        frame_size: int = 15,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.executor = executor
        self.pool_size = pool_size
        self.frame_size = frame_size
        self.logger = logger or structlog.get_logger("hcdn_importer").bind(
            component="page_scheduler"
        )

    def run(
        self,
        state: RunState,
        process_page: ProcessPage,
        on_complete: CompletionHandler,
        max_pages: int | None = None,
    ) -> None:
        last_page = None if max_pages is None else state.start_page + max_pages - 1
        next_page = state.start_page
        pending: deque[int] = deque()
        in_flight: dict[Future[PageOutcome], int] = {}
        current = state.start_page

        try:
            while True:
                if not pending and not state.halted:
                    frame = self._next_frame(next_page, last_page)
                    if frame:
                        pending.extend(frame)
                        next_page = frame[-1] + 1
                        state.highest_enqueued = frame[-1]
                        self.logger.info("frame_enqueued", first=frame[0], last=frame[-1])
                if state.halted and pending:
                    for page_number in pending:
                        self.logger.info("page_import_aborted", page=page_number)
                    pending.clear()
                while pending and len(in_flight) < self.pool_size and not state.halted:
                    page_number = pending.popleft()
                    future = self.executor.submit(self._work, state, page_number, process_page)
                    in_flight[future] = page_number
                if not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=in_flight.__getitem__):
                    current = in_flight.pop(future)
                    on_complete(future.result())
        except BaseException as exc:
            self._fail_closed(state, in_flight, current, exc)
            raise

        if last_page is not None:
            state.finish()

    def _fail_closed(
        self,
        state: RunState,
        in_flight: dict[Future[PageOutcome], int],
        page_number: int,
        exc: BaseException,
    ) -> None:
        """Halt the run and let in-flight pages settle before ``run`` re-raises."""

        error = PageError(f"Import aborted on page {page_number}: {exc!r}", page_number)
        error.__cause__ = exc
        state.fail(error)
        self.logger.error(
            "scheduler_crashed",
            page=page_number,
            in_flight=sorted(in_flight.values()),
            error=repr(exc),
        )
        wait(in_flight)

    def _next_frame(self, next_page: int, last_page: int | None) -> list[int]:
        end = next_page + self.frame_size - 1
        if last_page is not None:
            end = min(end, last_page)
        return list(range(next_page, end + 1))

    def _work(self, state: RunState, page_number: int, process_page: ProcessPage) -> PageOutcome:
        if state.halted:
            self.logger.info("page_import_aborted", page=page_number)
            return PageOutcome(page_number=page_number, aborted=True)
        try:
            result = process_page(page_number)
        except PageError as exc:
            status = state.fail(exc)
            self.logger.info("page_failed", page=page_number, status=status.value, error=str(exc))
            return PageOutcome(page_number=page_number, error=exc)
        except Exception as exc:  # noqa: BLE001
            error = PageError(f"Unexpected error on page {page_number}: {exc}", page_number)
            error.__cause__ = exc
            state.fail(error)
            self.logger.exception("page_crashed", page=page_number)
            return PageOutcome(page_number=page_number, error=error)
        return PageOutcome(page_number=page_number, result=result)


__all__ = ["CompletionHandler", "PageOutcome", "PageScheduler", "ProcessPage"]
