from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_GRANULARITY_ENV = "STATS_GRANULARITY"
_ZONE_ENV = "STATS_REFERENCE_ZONE"
_TABLE_NAME_ENV = "STATS_TABLE_NAME"
_TABLE_PATH_ENV = "STATS_TABLE_PERSISTENCE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    granularity: str
    reference_zone: str
    table_name: str
    table_persistence_path: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    # granularity and zone are validated where the table is built
    return Settings(
        granularity=_read_str_env(_GRANULARITY_ENV, "day").lower(),
        reference_zone=_read_str_env(_ZONE_ENV, "UTC"),
        table_name=_read_str_env(_TABLE_NAME_ENV, "account_statistics"),
        table_persistence_path=_read_optional_env(_TABLE_PATH_ENV, "./tmp/statistics.json"),
        log_level=_read_log_level("INFO"),
    )
