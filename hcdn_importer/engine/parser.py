"""DOM helpers shared by the fetcher and the extraction stages."""

from __future__ import annotations

from datetime import date, datetime

from selectolax.parser import HTMLParser, Node

from .errors import EmptyElementError, ExtractionError

DATE_FORMAT = "%d/%m/%Y"
CELL_TAGS = ("td", "th")


def normalise(text: str | None) -> str:
    if not text:
        return ""
    return " ".join(text.split())


def required_text(node: Node | None, message: str | None = None) -> str:
    """Return the trimmed node text or raise :class:`EmptyElementError`."""

    text = normalise(node.text(separator=" ")) if node is not None else ""
    if not text:
        raise EmptyElementError(message or "Empty element found")
    return text


def optional_text(node: Node | None, default: str = "") -> str:
    """Return the trimmed node text, falling back to ``default``."""

    text = normalise(node.text(separator=" ")) if node is not None else ""
    return text or normalise(default)


def required_value(values: list[str], index: int, message: str) -> str:
    if index >= len(values) or not values[index]:
        raise EmptyElementError(message)
    return values[index]


def optional_value(values: list[str], index: int, default: str = "") -> str:
    if index >= len(values):
        return default
    return values[index] or default


def parse_date(text: str) -> date:
    """Convert a ``dd/mm/YYYY`` string into a calendar date.

    The search results always print day first; ``05/03/2010`` is the 5th of
    March.
    """

    value = normalise(text)
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise ExtractionError(f"Invalid date '{value}', expected dd/mm/YYYY") from exc


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def labelled_entries(block: Node | None) -> list[str]:
    """Split a general-information block into entry values.

    Every ``<span>`` opens an entry whose value is the text that follows it up
    to the next ``<span>``. Entries keep their position even when the value
    is blank, so callers can address them by index.
    """

    if block is None:
        return []
    entries: list[str] = []
    for child in block.iter(include_text=True):
        if child.tag == "span":
            entries.append("")
            continue
        if not entries or child.tag == "br":
            continue
        entries[-1] += " " + (child.text(separator=" ") or "")
    return [normalise(entry) for entry in entries]


def row_cells(row: Node) -> list[Node]:
    return [child for child in row.iter() if child.tag in CELL_TAGS]


def is_title_row(cells: list[Node], columns: int) -> bool:
    """Section titles are header-only rows, or single-cell rows in wider tables."""

    if not cells:
        return True
    if all(cell.tag == "th" for cell in cells):
        return True
    return columns > 1 and len(cells) == 1


def table_rows(fragment: Node, selector: str, columns: int) -> list[list[Node]]:
    """Return the data rows under ``selector``, skipping section titles."""

    rows: list[list[Node]] = []
    for row in fragment.css(selector):
        cells = row_cells(row)
        if is_title_row(cells, columns):
            continue
        rows.append(cells)
    return rows


def parse_document(html: str) -> HTMLParser:
    return HTMLParser(html)


def cell_at(cells: list[Node], index: int) -> Node | None:
    return cells[index] if index < len(cells) else None


__all__ = [
    "DATE_FORMAT",
    "cell_at",
    "format_date",
    "is_title_row",
    "labelled_entries",
    "normalise",
    "optional_text",
    "optional_value",
    "parse_date",
    "parse_document",
    "required_text",
    "required_value",
    "row_cells",
    "table_rows",
]
