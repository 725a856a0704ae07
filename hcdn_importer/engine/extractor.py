"""Staged extraction of bill fragments into persisted documents.

Each stage is a function ``(context, record) -> record`` that returns an
updated copy of the accumulator or raises a :class:`FragmentError`. Stages run
strictly in order for one fragment; the first failure stops the remaining
stages for that fragment only, and the partial record is kept alongside the
error.
"""

from __future__ import annotations

from concurrent.futures import Executor
from dataclasses import asdict, dataclass, field, replace
from datetime import date
from typing import Any, Callable, Union

import structlog
from selectolax.parser import Node

from ..storage.base import BILLS, DICTUMS, PEOPLE, PROCEDURES, DocumentStore
from .errors import EmptyElementError, ExtractionError, FragmentError
from .fetcher import FetchedPage
from .parser import (
    cell_at,
    labelled_entries,
    optional_text,
    optional_value,
    parse_date,
    required_text,
    required_value,
    table_rows,
)

# Entries in the standard general-information block; revision bills print fewer.
STANDARD_ENTRIES = 5

GENERAL_INFO_SELECTOR = "div.item1 > div"
TYPE_SELECTOR = "div.item1 > b"
REVISION_SELECTOR = "div.item1 > div.revision"
ALT_SUMMARY_SELECTOR = "div.item1 > p.sumario"
SUBSCRIBERS_SELECTOR = "div.firmantes table tr"
COMMITTEES_SELECTOR = "div.comisiones table tr"
DICTUMS_SELECTOR = "div.dictamenes table tr"
PROCEDURES_SELECTOR = "div.tramites table tr"

NO_PARTY = "NONE"


@dataclass(slots=True)
class BillRecord:
    """Bill accumulator filled in stage by stage."""

    type: str | None = None
    source: str | None = None
    file: str | None = None
    published_on: str | None = None
    creation_time: date | None = None
    summary: str | None = None
    revision_chamber: str | None = None
    revision_file: str | None = None
    subscribers: list[str] = field(default_factory=list)
    committees: list[str] = field(default_factory=list)
    dictums: list[str] = field(default_factory=list)
    procedures: list[str] = field(default_factory=list)

    REQUIRED = ("source", "file", "published_on", "creation_time")

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED if getattr(self, name) in (None, "")]

    def to_document(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class StageContext:
    fragment: Node
    store: DocumentStore


Stage = Callable[[StageContext, BillRecord], BillRecord]


def _require_file(record: BillRecord, stage: str) -> str:
    if not record.file:
        raise ExtractionError("Bill file is required before extracting " + stage, stage)
    return record.file


def _general_block(fragment: Node) -> Node | None:
    # The general information block is the first unclassed div of the item.
    for node in fragment.css(GENERAL_INFO_SELECTOR):
        if not (node.attributes.get("class") or "").strip():
            return node
    return None


def _optional_date(node: Node | None) -> date | None:
    text = optional_text(node)
    return parse_date(text) if text else None


def extract_bill(context: StageContext, record: BillRecord) -> BillRecord:
    """General information: chamber, file, publication, date and summary."""

    fragment = context.fragment
    block = _general_block(fragment)
    if block is None:
        raise EmptyElementError("Missing general information block")
    entries = labelled_entries(block)
    updated = replace(
        record,
        type=optional_text(fragment.css_first(TYPE_SELECTOR)),
        source=required_value(entries, 0, "Missing source chamber"),
        file=required_value(entries, 1, "Missing bill file"),
        published_on=required_value(entries, 2, "Missing publication reference"),
        creation_time=parse_date(required_value(entries, 3, "Missing creation date")),
    )
    if len(entries) < STANDARD_ENTRIES:
        revision = labelled_entries(fragment.css_first(REVISION_SELECTOR))
        return replace(
            updated,
            revision_chamber=optional_value(revision, 0),
            revision_file=optional_value(revision, 1),
            summary=optional_text(fragment.css_first(ALT_SUMMARY_SELECTOR)),
        )
    return replace(updated, summary=optional_value(entries, 4))


def extract_subscribers(context: StageContext, record: BillRecord) -> BillRecord:
    subscribers: list[str] = []
    for cells in table_rows(context.fragment, SUBSCRIBERS_SELECTOR, columns=3):
        name = required_text(cell_at(cells, 0), "Missing subscriber name")
        person = {
            "party": optional_text(cell_at(cells, 1), NO_PARTY),
            "province": required_text(cell_at(cells, 2), f"Missing province for {name}"),
        }
        subscribers.append(context.store.upsert(PEOPLE, {"name": name}, person))
    return replace(record, subscribers=subscribers)


def extract_committees(context: StageContext, record: BillRecord) -> BillRecord:
    committees = [
        required_text(cells[0], "Missing committee name")
        for cells in table_rows(context.fragment, COMMITTEES_SELECTOR, columns=1)
    ]
    return replace(record, committees=committees)


def extract_dictums(context: StageContext, record: BillRecord) -> BillRecord:
    file = _require_file(record, "dictums")
    dictums: list[str] = []
    for cells in table_rows(context.fragment, DICTUMS_SELECTOR, columns=4):
        key = {
            "file": file,
            "source": required_text(cell_at(cells, 0), "Missing dictum source"),
            "order_paper": optional_text(cell_at(cells, 1)),
        }
        fields = {
            "date": _optional_date(cell_at(cells, 2)),
            "result": optional_text(cell_at(cells, 3)),
        }
        dictums.append(context.store.upsert(DICTUMS, key, fields))
    return replace(record, dictums=dictums)


def extract_procedures(context: StageContext, record: BillRecord) -> BillRecord:
    file = _require_file(record, "procedures")
    procedures: list[str] = []
    for cells in table_rows(context.fragment, PROCEDURES_SELECTOR, columns=4):
        key = {
            "file": file,
            "source": required_text(cell_at(cells, 0), "Missing procedure source"),
            "topic": required_text(cell_at(cells, 1), "Missing procedure topic"),
        }
        fields = {
            "date": _optional_date(cell_at(cells, 2)),
            "result": optional_text(cell_at(cells, 3)),
        }
        procedures.append(context.store.upsert(PROCEDURES, key, fields))
    return replace(record, procedures=procedures)


def finalize(context: StageContext, record: BillRecord) -> BillRecord:
    missing = record.missing_fields()
    if missing:
        raise ExtractionError("Incomplete bill, missing: " + ", ".join(missing))
    context.store.upsert(BILLS, {"file": record.file}, record.to_document())
    return record


STAGES: tuple[tuple[str, Stage], ...] = (
    ("bill", extract_bill),
    ("subscribers", extract_subscribers),
    ("committees", extract_committees),
    ("dictums", extract_dictums),
    ("procedures", extract_procedures),
    ("finalize", finalize),
)


@dataclass(slots=True)
class ExtractedBill:
    index: int
    record: BillRecord


@dataclass(slots=True)
class FailedBill:
    index: int
    record: BillRecord
    error: FragmentError
    stage: str


ExtractionOutcome = Union[ExtractedBill, FailedBill]


@dataclass(slots=True)
class PageResult:
    """Outcome of extracting every fragment of one page."""

    page_number: int
    bills: list[ExtractedBill] = field(default_factory=list)
    failed: list[FailedBill] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.bills)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


class RecordExtractor:
    """Run the ordered stage pipeline over bill fragments."""

    def __init__(
        self,
        store: DocumentStore,
        stages: tuple[tuple[str, Stage], ...] = STAGES,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.stages = stages
        self.logger = logger or structlog.get_logger("hcdn_importer").bind(component="extractor")

    def extract(self, fragment: Node, index: int = 0) -> ExtractionOutcome:
        context = StageContext(fragment=fragment, store=self.store)
        record = BillRecord()
        for name, stage in self.stages:
            try:
                record = stage(context, record)
            except FragmentError as exc:
                if exc.stage is None:
                    exc.stage = name
                return FailedBill(index=index, record=record, error=exc, stage=name)
            except Exception as exc:  # noqa: BLE001
                error = ExtractionError(f"Unexpected {type(exc).__name__}: {exc}", name)
                error.__cause__ = exc
                return FailedBill(index=index, record=record, error=error, stage=name)
        return ExtractedBill(index=index, record=record)

    def extract_page(self, page: FetchedPage, executor: Executor | None = None) -> PageResult:
        """Extract every fragment of ``page``; siblings never affect each other."""

        indexed = list(enumerate(page.fragments))
        if executor is None:
            outcomes = [self.extract(fragment, index) for index, fragment in indexed]
        else:
            outcomes = list(executor.map(lambda item: self.extract(item[1], item[0]), indexed))

        result = PageResult(page_number=page.page_number)
        for outcome in outcomes:
            if isinstance(outcome, ExtractedBill):
                result.bills.append(outcome)
                continue
            result.failed.append(outcome)
            self.logger.warning(
                "fragment_failed",
                page=page.page_number,
                fragment=outcome.index,
                file=outcome.record.file,
                stage=outcome.stage,
                error=str(outcome.error),
            )
        self.logger.info(
            "page_parsed",
            page=page.page_number,
            succeeded=result.succeeded,
            failed=result.failed_count,
        )
        return result


__all__ = [
    "BillRecord",
    "ExtractedBill",
    "ExtractionOutcome",
    "FailedBill",
    "PageResult",
    "RecordExtractor",
    "STAGES",
    "StageContext",
    "extract_bill",
    "extract_committees",
    "extract_dictums",
    "extract_procedures",
    "extract_subscribers",
    "finalize",
]
