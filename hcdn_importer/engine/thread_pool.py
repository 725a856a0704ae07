"""Named thread pools for page workers and fragment extraction."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from threading import Lock
from typing import Dict

PAGES = "pages"
FRAGMENTS = "fragments"


class ThreadPoolManager:
    """Lazily create one executor per role and shut them down together.

    Page workers and fragment workers live in separate executors so that a
    page waiting on its fragments can never starve the pool it runs in.
    """

    def __init__(self, page_workers: int = 4, fragment_workers: int = 10) -> None:
        self._sizes = {PAGES: page_workers, FRAGMENTS: fragment_workers}
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()

    def get(self, role: str) -> ThreadPoolExecutor:
        if role not in self._sizes:
            raise KeyError(f"Unknown pool role: {role}")
        with self._lock:
            if role not in self._executors:
                self._executors[role] = ThreadPoolExecutor(
                    max_workers=self._sizes[role], thread_name_prefix=f"importer-{role}"
                )
            return self._executors[role]

    @property
    def pages(self) -> ThreadPoolExecutor:
        return self.get(PAGES)

    @property
    def fragments(self) -> ThreadPoolExecutor:
        return self.get(FRAGMENTS)

    def size(self, role: str) -> int:
        return self._sizes[role]

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            for executor in self._executors.values():
                executor.shutdown(wait=wait)
            self._executors.clear()


__all__ = ["FRAGMENTS", "PAGES", "ThreadPoolManager"]
