from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from hcdn_importer.engine.errors import EmptyElementError, ExtractionError, PersistenceError
from hcdn_importer.engine.extractor import (
    BillRecord,
    ExtractedBill,
    FailedBill,
    RecordExtractor,
    StageContext,
    extract_bill,
    extract_dictums,
)
from hcdn_importer.engine.fetcher import FetchedPage
from hcdn_importer.storage import BILLS, DICTUMS, PEOPLE, PROCEDURES


def _single(parse_fragments, make_page, html: str):
    return parse_fragments(make_page(html))[0]


def test_extract_standard_bill(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(
        parse_fragments,
        make_page,
        make_fragment(
            dictums=[("Diputados", "OD 12", "10/05/2010", "APROBADO")],
            procedures=[("Diputados", "MOCION DE PREFERENCIA", "", "")],
        ),
    )
    outcome = RecordExtractor(sqlite_store).extract(fragment)

    assert isinstance(outcome, ExtractedBill)
    record = outcome.record
    assert record.type == "PROYECTO DE LEY"
    assert record.source == "Diputados"
    assert record.file == "1234-D-2010"
    assert record.creation_time == date(2010, 3, 5)
    assert record.summary == "REGIMEN DE PROMOCION DE LA ECONOMIA SOCIAL"
    assert record.revision_chamber is None
    assert record.committees == ["LEGISLACION GENERAL"]
    assert len(record.subscribers) == 1
    assert len(record.dictums) == 1 and len(record.procedures) == 1

    person = sqlite_store.find_one(PEOPLE, {"name": "PEREZ, JUAN"})
    assert person == {
        "name": "PEREZ, JUAN",
        "party": "UCR",
        "province": "CORDOBA",
        "_id": record.subscribers[0],
    }
    dictum = sqlite_store.find_one(DICTUMS, {"file": "1234-D-2010"})
    assert dictum["order_paper"] == "OD 12"
    assert dictum["date"] == "2010-05-10"
    procedure = sqlite_store.find_one(PROCEDURES, {"file": "1234-D-2010"})
    assert procedure["date"] is None
    assert procedure["topic"] == "MOCION DE PREFERENCIA"
    bill = sqlite_store.find_one(BILLS, {"file": "1234-D-2010"})
    assert bill["creation_time"] == "2010-03-05"
    assert bill["subscribers"] == record.subscribers


def test_extract_revision_layout(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(
        parse_fragments,
        make_page,
        make_fragment(
            file="0045-S-2010",
            source="Senado",
            revision=("Diputados", "2210-D-2010", "MODIFICACION DE LA LEY 24.240"),
        ),
    )
    outcome = RecordExtractor(sqlite_store).extract(fragment)

    assert isinstance(outcome, ExtractedBill)
    assert outcome.record.revision_chamber == "Diputados"
    assert outcome.record.revision_file == "2210-D-2010"
    assert outcome.record.summary == "MODIFICACION DE LA LEY 24.240"


def test_missing_party_defaults_to_none(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(
        parse_fragments, make_page, make_fragment(subscribers=[("GOMEZ, ANA", "", "SALTA")])
    )
    RecordExtractor(sqlite_store).extract(fragment)
    assert sqlite_store.find_one(PEOPLE, {"name": "GOMEZ, ANA"})["party"] == "NONE"


def test_missing_file_fails_in_bill_stage(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(parse_fragments, make_page, make_fragment(file=""))
    outcome = RecordExtractor(sqlite_store).extract(fragment, index=7)

    assert isinstance(outcome, FailedBill)
    assert outcome.index == 7
    assert outcome.stage == "bill"
    assert isinstance(outcome.error, EmptyElementError)
    assert outcome.error.stage == "bill"
    assert outcome.record == BillRecord()
    assert sqlite_store.count(BILLS) == 0


def test_missing_province_keeps_partial_record(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(
        parse_fragments, make_page, make_fragment(subscribers=[("PEREZ, JUAN", "UCR", "")])
    )
    outcome = RecordExtractor(sqlite_store).extract(fragment)

    assert isinstance(outcome, FailedBill)
    assert outcome.stage == "subscribers"
    assert outcome.record.file == "1234-D-2010"
    assert outcome.record.subscribers == []
    assert sqlite_store.count(BILLS) == 0


def test_invalid_creation_date_is_extraction_error(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(parse_fragments, make_page, make_fragment(created="2010-03-05"))
    outcome = RecordExtractor(sqlite_store).extract(fragment)
    assert isinstance(outcome, FailedBill)
    assert isinstance(outcome.error, ExtractionError)


def test_dictums_require_file(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    fragment = _single(parse_fragments, make_page, make_fragment())
    with pytest.raises(ExtractionError):
        extract_dictums(StageContext(fragment=fragment, store=sqlite_store), BillRecord())


def test_extract_bill_without_general_block(sqlite_store, parse_fragments) -> None:
    fragment = parse_fragments('<div class="toc"><div class="item1"><b>LEY</b></div></div>')[0]
    with pytest.raises(EmptyElementError):
        extract_bill(StageContext(fragment=fragment, store=sqlite_store), BillRecord())


def test_store_failure_is_reported_as_persistence_error(parse_fragments, make_page, make_fragment) -> None:
    class BrokenStore:
        def upsert(self, collection, key, fields):
            raise PersistenceError("connection lost")

    fragment = _single(parse_fragments, make_page, make_fragment())
    outcome = RecordExtractor(BrokenStore()).extract(fragment)
    assert isinstance(outcome, FailedBill)
    assert outcome.stage == "subscribers"
    assert isinstance(outcome.error, PersistenceError)


def test_unexpected_stage_error_is_wrapped(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    def explode(context, record):
        raise RuntimeError("bug")

    fragment = _single(parse_fragments, make_page, make_fragment())
    outcome = RecordExtractor(sqlite_store, stages=(("explode", explode),)).extract(fragment)
    assert isinstance(outcome, FailedBill)
    assert isinstance(outcome.error, ExtractionError)
    assert isinstance(outcome.error.__cause__, RuntimeError)


def test_page_with_one_bad_fragment_is_partial_success(
    sqlite_store, parse_fragments, make_page, make_fragment
) -> None:
    html = make_page(
        make_fragment(file="1-D-2010"),
        make_fragment(file=""),
        make_fragment(file="3-D-2010"),
    )
    page = FetchedPage(page_number=4, url="http://test", fragments=parse_fragments(html))
    with ThreadPoolExecutor(max_workers=3) as executor:
        result = RecordExtractor(sqlite_store).extract_page(page, executor)

    assert result.page_number == 4
    assert result.succeeded == 2
    assert result.failed_count == 1
    assert [bill.index for bill in result.bills] == [0, 2]
    assert result.failed[0].index == 1
    assert sorted(doc["file"] for doc in sqlite_store.find(BILLS)) == ["1-D-2010", "3-D-2010"]


def test_same_subscriber_on_two_bills_is_one_person(
    sqlite_store, parse_fragments, make_page, make_fragment
) -> None:
    html = make_page(
        make_fragment(file="1-D-2010", subscribers=[("Juan Perez", "UCR", "CORDOBA")]),
        make_fragment(file="2-D-2011", subscribers=[("Juan Perez", "UCR", "SANTA FE")]),
    )
    page = FetchedPage(page_number=1, url="http://test", fragments=parse_fragments(html))
    result = RecordExtractor(sqlite_store).extract_page(page)

    people = list(sqlite_store.find(PEOPLE, {"name": "Juan Perez"}))
    assert len(people) == 1
    assert people[0]["province"] == "SANTA FE"
    first, second = (bill.record for bill in result.bills)
    assert first.subscribers == second.subscribers


def test_reimporting_a_page_is_idempotent(sqlite_store, parse_fragments, make_page, make_fragment) -> None:
    html = make_page(
        make_fragment(dictums=[("Diputados", "OD 12", "10/05/2010", "APROBADO")]),
    )
    extractor = RecordExtractor(sqlite_store)
    for _ in range(2):
        page = FetchedPage(page_number=1, url="http://test", fragments=parse_fragments(html))
        extractor.extract_page(page)

    assert sqlite_store.count(BILLS) == 1
    assert sqlite_store.count(PEOPLE) == 1
    assert sqlite_store.count(DICTUMS) == 1
