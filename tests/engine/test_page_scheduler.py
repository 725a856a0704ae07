from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from hcdn_importer.config import EmptyPagePolicy
from hcdn_importer.engine.errors import EmptyResultError, FetchError
from hcdn_importer.engine.extractor import PageResult
from hcdn_importer.engine.page_scheduler import PageOutcome, PageScheduler
from hcdn_importer.engine.run_state import RunState, RunStatus


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


def _state(start_page: int = 1, **kwargs) -> RunState:
    state = RunState(run_id="test", start_page=start_page, checkpoint=start_page - 1, **kwargs)
    state.start()
    return state


def test_pages_dispatched_in_order_across_frames(executor) -> None:
    processed: list[int] = []
    outcomes: list[PageOutcome] = []
    scheduler = PageScheduler(executor, pool_size=1, frame_size=3)
    state = _state(start_page=10)

    def process(page_number: int) -> PageResult:
        processed.append(page_number)
        return PageResult(page_number=page_number)

    scheduler.run(state, process, outcomes.append, max_pages=7)

    assert processed == list(range(10, 17))
    assert [outcome.page_number for outcome in outcomes] == list(range(10, 17))
    assert all(outcome.committed for outcome in outcomes)
    assert state.highest_enqueued == 16
    assert state.status is RunStatus.FINISHED


def test_in_flight_pages_never_exceed_pool_size(executor) -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def process(page_number: int) -> PageResult:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return PageResult(page_number=page_number)

    scheduler = PageScheduler(executor, pool_size=2, frame_size=5)
    scheduler.run(_state(), process, lambda outcome: None, max_pages=12)
    assert 1 <= peak <= 2


def test_failure_halts_and_aborts_pending_pages(executor) -> None:
    processed: list[int] = []
    outcomes: list[PageOutcome] = []
    state = _state()

    def process(page_number: int) -> PageResult:
        processed.append(page_number)
        if page_number == 3:
            raise FetchError("connection reset", page_number)
        return PageResult(page_number=page_number)

    PageScheduler(executor, pool_size=1, frame_size=5).run(state, process, outcomes.append)

    assert processed == [1, 2, 3]
    assert [outcome.page_number for outcome in outcomes] == [1, 2, 3]
    assert isinstance(outcomes[-1].error, FetchError)
    assert not outcomes[-1].committed
    assert state.status is RunStatus.HALTED
    assert state.highest_enqueued == 5


def test_empty_page_exhausts_run(executor) -> None:
    state = _state()

    def process(page_number: int) -> PageResult:
        if page_number == 2:
            raise EmptyResultError("no results", page_number)
        return PageResult(page_number=page_number)

    PageScheduler(executor, pool_size=1, frame_size=4).run(state, process, lambda outcome: None)
    assert state.status is RunStatus.EXHAUSTED
    assert isinstance(state.error, EmptyResultError)


def test_empty_page_halts_under_halt_policy(executor) -> None:
    state = _state(empty_page_policy=EmptyPagePolicy.HALT)

    def process(page_number: int) -> PageResult:
        raise EmptyResultError("no results", page_number)

    PageScheduler(executor, pool_size=1, frame_size=4).run(state, process, lambda outcome: None)
    assert state.status is RunStatus.HALTED


def test_unexpected_error_is_wrapped_as_page_error(executor) -> None:
    outcomes: list[PageOutcome] = []
    state = _state()

    def process(page_number: int) -> PageResult:
        raise RuntimeError("bug")

    PageScheduler(executor, pool_size=1, frame_size=2).run(state, process, outcomes.append)
    assert outcomes[0].error.page_number == 1
    assert isinstance(outcomes[0].error.__cause__, RuntimeError)
    assert state.status is RunStatus.HALTED


def test_stop_from_completion_handler_ends_run(executor) -> None:
    state = _state()
    seen: list[int] = []

    def on_complete(outcome: PageOutcome) -> None:
        seen.append(outcome.page_number)
        if outcome.page_number == 2:
            state.stop()

    PageScheduler(executor, pool_size=1, frame_size=10).run(
        state, lambda page: PageResult(page_number=page), on_complete
    )
    assert seen == [1, 2]
    assert state.status is RunStatus.STOPPED


def test_only_first_terminal_status_sticks() -> None:
    state = _state()
    state.fail(FetchError("boom", 4))
    state.stop()
    state.finish()
    assert state.status is RunStatus.HALTED
    assert state.summary()["error"] == "boom"


def test_exhausted_run_escalates_to_halted_on_hard_error() -> None:
    state = _state()
    assert state.fail(EmptyResultError("no results", 3)) is RunStatus.EXHAUSTED
    assert state.stop() is RunStatus.EXHAUSTED
    assert state.fail(FetchError("timed out", 2)) is RunStatus.HALTED
    assert state.fail(EmptyResultError("no results", 4)) is RunStatus.HALTED
    assert isinstance(state.error, FetchError)
    assert state.summary()["error"] == "timed out"


def test_fetch_error_after_empty_page_halts_run(executor) -> None:
    page_one_started = threading.Event()
    outcomes: list[PageOutcome] = []
    state = _state()

    def process(page_number: int) -> PageResult:
        if page_number == 1:
            page_one_started.set()
            time.sleep(0.1)
            raise FetchError("timed out", page_number)
        page_one_started.wait(timeout=1)
        raise EmptyResultError("no results", page_number)

    PageScheduler(executor, pool_size=2, frame_size=2).run(state, process, outcomes.append)

    assert state.status is RunStatus.HALTED
    assert isinstance(state.error, FetchError)
    assert state.error.page_number == 1
    assert sorted(outcome.page_number for outcome in outcomes) == [1, 2]
    assert not any(outcome.committed for outcome in outcomes)


def test_completion_handler_error_halts_and_waits_for_workers(executor) -> None:
    lock = threading.Lock()
    started: set[int] = set()
    finished: set[int] = set()
    state = _state()

    def process(page_number: int) -> PageResult:
        with lock:
            started.add(page_number)
        if page_number > 1:
            time.sleep(0.1)
        with lock:
            finished.add(page_number)
        return PageResult(page_number=page_number)

    def on_complete(outcome: PageOutcome) -> None:
        if outcome.page_number == 1:
            raise OSError("disk full")

    with pytest.raises(OSError, match="disk full"):
        PageScheduler(executor, pool_size=2, frame_size=4).run(state, process, on_complete)

    assert state.halted
    assert state.status is RunStatus.HALTED
    assert isinstance(state.error.__cause__, OSError)
    assert 2 in started
    assert finished == started
    assert not started & {3, 4}
