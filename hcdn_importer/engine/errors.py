"""Importer exception hierarchy.

Page-level errors (:class:`PageError`) halt the running import. Fragment-level
errors (:class:`FragmentError`) only fail the bill they were raised for.
"""

from __future__ import annotations


class ImporterError(Exception):
    """Base class for every importer failure."""


class PageError(ImporterError):
    """A whole results page could not be processed."""

    def __init__(self, message: str, page_number: int) -> None:
        super().__init__(message)
        self.page_number = page_number


class FetchError(PageError):
    """Transport failure, timeout or unexpected HTTP status."""


class EmptyResultError(PageError):
    """The page was retrieved but contains no bill fragments."""


class FragmentError(ImporterError):
    """A single bill fragment could not be imported."""

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class ExtractionError(FragmentError):
    """The fragment content is malformed or incomplete."""


class EmptyElementError(ExtractionError):
    """Required text content is missing from the fragment."""


class PersistenceError(FragmentError):
    """The document store rejected an upsert."""


class JobAlreadyRunningError(ImporterError):
    """An import run was requested while another one is in progress."""


__all__ = [
    "EmptyElementError",
    "EmptyResultError",
    "ExtractionError",
    "FetchError",
    "FragmentError",
    "ImporterError",
    "JobAlreadyRunningError",
    "PageError",
    "PersistenceError",
]
