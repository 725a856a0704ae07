"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    CheckpointSettings,
    EmptyPagePolicy,
    ImporterConfig,
    PoolSettings,
    ScheduleConfig,
    ScheduleType,
    SourceSettings,
    StorageSettings,
)

__all__ = [
    "CheckpointSettings",
    "ConfigLocator",
    "ConfigRepository",
    "EmptyPagePolicy",
    "ImporterConfig",
    "PoolSettings",
    "ScheduleConfig",
    "ScheduleType",
    "SourceSettings",
    "StorageSettings",
]
