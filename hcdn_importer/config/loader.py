"""Configuration loading helpers for the HCDN importer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import ImporterConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
CONFIG_FILENAME = "importer.yaml"
HOME_ENV_VAR = "HCDN_IMPORTER_HOME"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from the importer home."""

    project_root: Path | None = None
    data_dir: Path | None = None
    history_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV_VAR)
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.history_dir = (self.data_dir / "history").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.history_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: ImporterConfig | None = None

    @property
    def home(self) -> Path:
        assert self.locator.project_root is not None
        return self.locator.project_root

    def load(self, path: Path | None = None) -> ImporterConfig:
        if path is None and self._cache is not None:
            return self._cache
        target = path or self.locator.config_path()
        if target.exists():
            config = ImporterConfig.model_validate(_read_file(target))
        elif path is not None:
            raise FileNotFoundError(f"Importer configuration not found: {path}")
        else:
            config = ImporterConfig()
            self.save(config)
        if path is None:
            self._cache = config
        return config

    def save(self, config: ImporterConfig, path: Path | None = None) -> Path:
        target = path or self.locator.config_path()
        if target.suffix not in CONFIG_EXTENSIONS:
            raise ValueError(f"Unsupported configuration format: {target.suffix}")
        _write_file(target, config.model_dump(mode="json"))
        if path is None:
            self._cache = config
        return target

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the importer home."""

        if path.is_absolute():
            return path
        return (self.home / path).resolve()


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository", "HOME_ENV_VAR"]
