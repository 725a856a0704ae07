"""Engine components orchestrating fetch → extract → persist."""

from .errors import (
    EmptyElementError,
    EmptyResultError,
    ExtractionError,
    FetchError,
    FragmentError,
    ImporterError,
    JobAlreadyRunningError,
    PageError,
    PersistenceError,
)
from .extractor import BillRecord, ExtractedBill, FailedBill, PageResult, RecordExtractor
from .fetcher import FetchedPage, PageFetcher, PageRequest
from .page_scheduler import PageOutcome, PageScheduler
from .run_state import PageStats, RunState, RunStatus
from .thread_pool import ThreadPoolManager

__all__ = [
    "BillRecord",
    "EmptyElementError",
    "EmptyResultError",
    "ExtractedBill",
    "ExtractionError",
    "FailedBill",
    "FetchError",
    "FetchedPage",
    "FragmentError",
    "ImporterError",
    "JobAlreadyRunningError",
    "PageError",
    "PageFetcher",
    "PageOutcome",
    "PageRequest",
    "PageResult",
    "PageScheduler",
    "PageStats",
    "PersistenceError",
    "RecordExtractor",
    "RunState",
    "RunStatus",
    "ThreadPoolManager",
]
