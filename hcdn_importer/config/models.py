"""Pydantic models describing importer configuration."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_ENDPOINT = "http://www1.hcdn.gov.ar/proyectos_search/resultado.asp"

# Boilerplate query parameters the search form always submits.
DEFAULT_EXTRA_PARAMS: dict[str, str] = {
    "giro_giradoA": "",
    "odanno": "",
    "pageorig": "1",
    "fromForm": "1",
    "ordenar": "3",
    "tipo_de_proy": "ley",
    "chkFirmantes": "on",
}


class ScheduleType(str, Enum):
    """Scheduler modes supported by the periodic trigger."""

    CRON = "cron"
    INTERVAL = "interval"
    ONCE = "once"


class EmptyPagePolicy(str, Enum):
    """What a page without fragments means for the running import."""

    FINISH = "finish"
    HALT = "halt"


class ScheduleConfig(BaseModel):
    """Configuration describing when the import job should run."""

    type: ScheduleType = Field(default=ScheduleType.CRON)
    value: Any = Field(
        default="1 7 * * *",
        description="Cron expression, interval seconds or ISO datetime, depending on type.",
    )

    @model_validator(mode="after")
    def _validate_value(self) -> "ScheduleConfig":
        if self.type is ScheduleType.CRON and not isinstance(self.value, str):
            raise ValueError("Cron schedule requires string expression")
        if self.type is ScheduleType.INTERVAL and not isinstance(self.value, (int, float, dict)):
            raise ValueError("Interval schedule requires seconds (int/float) or kwargs dict")
        if (
            self.type is ScheduleType.ONCE
            and self.value is not None
            and not isinstance(self.value, str)
        ):
            raise ValueError("Once schedule expects ISO datetime string or null")
        return self


class SourceSettings(BaseModel):
    """Search endpoint and request shape."""

    endpoint: str = DEFAULT_ENDPOINT
    start_date: date = date(1999, 1, 1)
    page_size: int = 250
    timeout: float = 30.0
    fragment_selector: str = "div.toc"
    user_agent: str | None = None
    extra_params: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_EXTRA_PARAMS))

    @field_validator("start_date", mode="before")
    @classmethod
    def _coerce_start_date(cls, value: Any) -> Any:
        # Accept the dd/mm/YYYY format used on the wire as well as ISO dates.
        if isinstance(value, str) and "/" in value:
            return datetime.strptime(value.strip(), "%d/%m/%Y").date()
        return value

    @model_validator(mode="after")
    def _validate_bounds(self) -> "SourceSettings":
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if not self.fragment_selector.strip():
            raise ValueError("fragment_selector cannot be empty")
        return self


class PoolSettings(BaseModel):
    """Concurrency knobs for page workers and fragment extraction."""

    pool_size: int = 4
    frame_size: int = 15
    fragment_workers: int = 10

    @model_validator(mode="after")
    def _validate_sizes(self) -> "PoolSettings":
        if not 1 <= self.pool_size <= 32:
            raise ValueError("pool_size must be between 1 and 32")
        if self.frame_size < 1:
            raise ValueError("frame_size must be >= 1")
        if self.fragment_workers < 1:
            raise ValueError("fragment_workers must be >= 1")
        return self


class StorageSettings(BaseModel):
    """Document store selection."""

    backend: Literal["mongodb", "sqlite"] = "mongodb"
    uri: str = "mongodb://localhost:27017"
    database: str = "hcdn"
    sqlite_path: Path = Field(default=Path("data/documents.db"))

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)


class CheckpointSettings(BaseModel):
    """Location of the durable page checkpoint."""

    path: Path = Field(default=Path("data/history/checkpoint.db"))
    default_page: int = 0

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_default(self) -> "CheckpointSettings":
        if self.default_page < 0:
            raise ValueError("default_page must be >= 0")
        return self


class ImporterConfig(BaseModel):
    """Full importer configuration."""

    source: SourceSettings = Field(default_factory=SourceSettings)
    pool: PoolSettings = Field(default_factory=PoolSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    checkpoint: CheckpointSettings = Field(default_factory=CheckpointSettings)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    empty_page_policy: EmptyPagePolicy = EmptyPagePolicy.FINISH


__all__ = [
    "CheckpointSettings",
    "DEFAULT_ENDPOINT",
    "DEFAULT_EXTRA_PARAMS",
    "EmptyPagePolicy",
    "ImporterConfig",
    "PoolSettings",
    "ScheduleConfig",
    "ScheduleType",
    "SourceSettings",
    "StorageSettings",
]
