"""structlog over stdlib logging, rendered as JSON lines.

Every process writes to the console, ``logs/importer.log`` and
``logs/error.log``; each import run additionally gets ``logs/runs/<run_id>.log``.
"""

from __future__ import annotations

import logging
import logging.config
import os
from collections import deque
from pathlib import Path
from typing import Any

import structlog

LOGGER_NAME = "hcdn_importer"
IMPORTER_LOG = "importer.log"
ERROR_LOG = "error.log"
RUNS_DIR = "runs"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_LOGGING_INITIALISED = False


def log_dir() -> Path:
    home = os.environ.get("HCDN_IMPORTER_HOME")
    root = Path(home).expanduser().resolve() if home else Path(__file__).resolve().parents[1]
    return root / "logs"


def _dict_config(directory: Path, level: str) -> dict[str, Any]:
    def file_handler(name: str, handler_level: str) -> dict[str, Any]:
        return {
            "class": "logging.FileHandler",
            "level": handler_level,
            "filename": str(directory / name),
            "encoding": "utf-8",
            "formatter": "json",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pythonjsonlogger.json.JsonFormatter", "fmt": JSON_FORMAT}
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "importer_file": file_handler(IMPORTER_LOG, "INFO"),
            "error_file": file_handler(ERROR_LOG, "ERROR"),
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["console", "importer_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the application logger."""

    global _LOGGING_INITIALISED
    directory = log_dir()
    (directory / RUNS_DIR).mkdir(parents=True, exist_ok=True)

    if not _LOGGING_INITIALISED:
        logging.config.dictConfig(_dict_config(directory, "DEBUG" if verbose else "INFO"))
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger(LOGGER_NAME)


def _attach_file(logger_name: str, path: Path) -> None:
    py_logger = logging.getLogger(logger_name)
    target = str(path)
    for handler in py_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.INFO)
    parent = logging.getLogger(LOGGER_NAME)
    if parent.handlers:
        handler.setFormatter(parent.handlers[0].formatter)
    py_logger.addHandler(handler)


def run_logger(run_id: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to ``run_id`` whose records are also kept in the run's own file.

    The run logger is a child of ``hcdn_importer``, so records still reach the
    shared handlers.
    """

    configure_logging(verbose)
    logger_name = f"{LOGGER_NAME}.run.{run_id}"
    _attach_file(logger_name, log_dir() / RUNS_DIR / f"{run_id}.log")
    return structlog.get_logger(logger_name).bind(run_id=run_id)


def close_run_logger(run_id: str) -> None:
    """Close the run's file handler and forget its logger once the run is over."""

    logger_name = f"{LOGGER_NAME}.run.{run_id}"
    py_logger = logging.getLogger(logger_name)
    for handler in list(py_logger.handlers):
        py_logger.removeHandler(handler)
        handler.close()
    logging.Logger.manager.loggerDict.pop(logger_name, None)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=line_count))


def available_run_logs() -> list[Path]:
    """Per-run log files, oldest run first (run ids start with a timestamp)."""

    runs = log_dir() / RUNS_DIR
    return sorted(runs.glob("*.log")) if runs.exists() else []


__all__ = [
    "available_run_logs",
    "close_run_logger",
    "configure_logging",
    "log_dir",
    "run_logger",
    "tail_log",
]
