"""HTTP fetching of one search results page."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

import httpx
import structlog
from selectolax.parser import Node

from ..config import SourceSettings
from .errors import EmptyResultError, FetchError
from .parser import format_date, parse_document

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


@dataclass(slots=True)
class PageRequest:
    """Input for the fetcher."""

    page_number: int
    page_size: int
    start_date: date
    end_date: date

    def params(self, extra: dict[str, str]) -> dict[str, Any]:
        params: dict[str, Any] = dict(extra)
        params.update(
            {
                "fecha_inicio": format_date(self.start_date),
                "fecha_fin": format_date(self.end_date),
                "whichpage": self.page_number,
                "pagesize": self.page_size,
            }
        )
        return params


@dataclass(slots=True)
class FetchedPage:
    """Parsed results page with its bill fragments."""

    page_number: int
    url: str
    fragments: list[Node] = field(repr=False, default_factory=list)


class PageFetcher:
    """Retrieve and parse one page of raw search results.

    The fetch has no side effects besides the network call and is never
    retried here; the unit of retry is a new import run.
    """

    def __init__(
        self,
        settings: SourceSettings,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.logger = logger or structlog.get_logger("hcdn_importer").bind(component="fetcher")
        self._today = today
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=settings.timeout,
            headers={"User-Agent": settings.user_agent or DEFAULT_USER_AGENT},
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def build_request(self, page_number: int, end_date: date | None = None) -> PageRequest:
        if page_number < 1:
            raise ValueError(f"Page numbers start at 1, got {page_number}")
        return PageRequest(
            page_number=page_number,
            page_size=self.settings.page_size,
            start_date=self.settings.start_date,
            end_date=end_date or self._today(),
        )

    def fetch(self, page_number: int, end_date: date | None = None) -> FetchedPage:
        request = self.build_request(page_number, end_date)
        self.logger.info("page_fetch_started", page=page_number)
        try:
            response = self._client.request(
                method="GET",
                url=self.settings.endpoint,
                params=request.params(self.settings.extra_params),
                timeout=self.settings.timeout,
            )
        except httpx.HTTPError as exc:
            self.logger.warning("page_fetch_failed", page=page_number, error=str(exc))
            raise FetchError(f"Error fetching page {page_number}: {exc}", page_number) from exc

        if self._is_failure(response):
            self.logger.warning(
                "page_fetch_failed", page=page_number, status=response.status_code
            )
            raise FetchError(
                f"Unexpected status {response.status_code} fetching page {page_number}",
                page_number,
            )

        fragments = self.parse_fragments(response.text)
        if not fragments:
            raise EmptyResultError(f"Page {page_number} has no results", page_number)
        return FetchedPage(page_number=page_number, url=str(response.url), fragments=fragments)

    def parse_fragments(self, html: str) -> list[Node]:
        document = parse_document(html)
        return list(document.css(self.settings.fragment_selector))

    @staticmethod
    def _is_failure(response: Any) -> bool:
        status_code = getattr(response, "status_code", 0)
        return status_code >= 400


__all__ = ["DEFAULT_USER_AGENT", "FetchedPage", "PageFetcher", "PageRequest"]
