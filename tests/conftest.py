"""Shared fixtures: importer home, config builders, HTML fragments and stores."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

import pytest
from selectolax.parser import HTMLParser

from hcdn_importer.config import (
    CheckpointSettings,
    ConfigLocator,
    ConfigRepository,
    ImporterConfig,
    PoolSettings,
    StorageSettings,
)
from hcdn_importer.engine import EmptyResultError, FetchedPage
from hcdn_importer.infra import CheckpointStore, SQLiteManager
from hcdn_importer.storage import SQLiteStore

Row = Sequence[str]


@pytest.fixture(autouse=True)
def importer_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("HCDN_IMPORTER_HOME", str(tmp_path))
    return tmp_path


def _table(css_class: str, header: Row, rows: Iterable[Row]) -> str:
    head = "".join(f"<th>{cell}</th>" for cell in header)
    body = "".join(
        "<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows
    )
    return f'<div class="{css_class}"><table><tr>{head}</tr>{body}</table></div>'


def _entries(pairs: Iterable[tuple[str, str]]) -> str:
    return "".join(f"<span>{label}</span> {value}<br/>" for label, value in pairs)


def build_fragment(
    *,
    file: str = "1234-D-2010",
    source: str = "Diputados",
    published_on: str = "Tramite Parlamentario n 12",
    created: str = "05/03/2010",
    summary: str = "REGIMEN DE PROMOCION DE LA ECONOMIA SOCIAL",
    bill_type: str = "PROYECTO DE LEY",
    subscribers: Iterable[Row] = (("PEREZ, JUAN", "UCR", "CORDOBA"),),
    committees: Iterable[str] = ("LEGISLACION GENERAL",),
    dictums: Iterable[Row] = (),
    procedures: Iterable[Row] = (),
    revision: tuple[str, str, str] | None = None,
) -> str:
    general = [
        ("Iniciado en:", source),
        ("Expediente:", file),
        ("Publicado en:", published_on),
        ("Fecha:", created),
    ]
    extra = ""
    if revision is None:
        general.append(("Sumario:", summary))
    else:
        chamber, revision_file, revision_summary = revision
        extra = (
            '<div class="revision">'
            + _entries([("Camara revisora:", chamber), ("Expediente revision:", revision_file)])
            + f'</div><p class="sumario">{revision_summary}</p>'
        )
    return (
        '<div class="toc"><div class="item1">'
        f"<b>{bill_type}</b>"
        f"<div>{_entries(general)}</div>"
        f"{extra}"
        + _table("firmantes", ("Firmante", "Bloque", "Distrito"), subscribers)
        + _table("comisiones", ("Giro a comisiones",), ((name,) for name in committees))
        + _table("dictamenes", ("Camara", "OD", "Fecha", "Resultado"), dictums)
        + _table("tramites", ("Camara", "Movimiento", "Fecha", "Resultado"), procedures)
        + "</div></div>"
    )


def build_page(*fragments: str) -> str:
    return "<html><body><div id='resultados'>" + "".join(fragments) + "</div></body></html>"


@pytest.fixture
def make_fragment() -> Callable[..., str]:
    return build_fragment


@pytest.fixture
def make_page() -> Callable[..., str]:
    return build_page


@pytest.fixture
def parse_fragments() -> Callable[[str], list]:
    def _parse(html: str) -> list:
        return list(HTMLParser(html).css("div.toc"))

    return _parse


@pytest.fixture
def importer_config(tmp_path: Path) -> Callable[..., ImporterConfig]:
    def _builder(**overrides: Any) -> ImporterConfig:
        pool = overrides.pop("pool", None) or PoolSettings(pool_size=1, frame_size=15, fragment_workers=2)
        base: dict[str, Any] = {
            "pool": pool,
            "storage": StorageSettings(backend="sqlite", sqlite_path=tmp_path / "documents.db"),
            "checkpoint": CheckpointSettings(path=tmp_path / "history" / "checkpoint.db"),
        }
        base.update(overrides)
        return ImporterConfig(**base)

    return _builder


@pytest.fixture
def sqlite_store(tmp_path: Path) -> Iterable[SQLiteStore]:
    store = SQLiteStore(tmp_path / "documents.db")
    yield store
    store.conn.close()


@pytest.fixture
def checkpoint_store(tmp_path: Path) -> Iterable[CheckpointStore]:
    manager = SQLiteManager()
    yield CheckpointStore(manager, tmp_path / "history" / "checkpoint.db")
    manager.close_all()


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    return ConfigRepository(ConfigLocator(project_root=tmp_path))


class FakeFetcher:
    """Serve canned pages; pages without content raise :class:`EmptyResultError`."""

    def __init__(
        self,
        pages: dict[int, str] | None = None,
        errors: dict[int, Exception] | None = None,
        default: str | None = None,
        delays: dict[int, float] | None = None,
    ) -> None:
        self.pages = pages or {}
        self.errors = errors or {}
        self.default = default
        self.delays = delays or {}
        self.calls: list[int] = []
        self.closed = False

    def fetch(self, page_number: int) -> FetchedPage:
        self.calls.append(page_number)
        if page_number in self.delays:
            time.sleep(self.delays[page_number])
        if page_number in self.errors:
            raise self.errors[page_number]
        html = self.pages.get(page_number, self.default)
        fragments = list(HTMLParser(html).css("div.toc")) if html else []
        if not fragments:
            raise EmptyResultError(f"Page {page_number} has no results", page_number)
        return FetchedPage(page_number=page_number, url=f"http://test/{page_number}", fragments=fragments)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_fetcher() -> Callable[..., FakeFetcher]:
    return FakeFetcher
