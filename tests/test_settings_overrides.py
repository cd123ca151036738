from __future__ import annotations

from typing import Iterable

import pytest

from datastore.timeseries_table import build_default_table
from models.identity import Granularity, UnsupportedGranularity
from services.ingestion import build_default_ingestion
from settings import get_settings

_CACHES = (get_settings, build_default_table, build_default_ingestion)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


@pytest.fixture(autouse=True)
def _isolated_caches() -> Iterable[None]:
    _clear_caches(_CACHES)
    yield
    _clear_caches(_CACHES)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    table_path = tmp_path / "statistics.json"

    monkeypatch.setenv("STATS_GRANULARITY", "Month")
    monkeypatch.setenv("STATS_REFERENCE_ZONE", "Europe/Berlin")
    monkeypatch.setenv("STATS_TABLE_NAME", "custom-table")
    monkeypatch.setenv("STATS_TABLE_PERSISTENCE_PATH", str(table_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")

    table = build_default_table()
    ingestion = build_default_ingestion()

    assert table.name == "custom-table"
    assert table.granularity is Granularity.month
    assert table.zone == "Europe/Berlin"
    assert table.persistence_path == table_path
    assert ingestion.table is table
    assert get_settings().log_level == "DEBUG"


def test_blank_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("STATS_GRANULARITY", "  ")
    monkeypatch.setenv("STATS_REFERENCE_ZONE", "")
    monkeypatch.setenv("STATS_TABLE_PERSISTENCE_PATH", " ")

    settings = get_settings()

    assert settings.granularity == "day"
    assert settings.reference_zone == "UTC"
    assert settings.table_persistence_path is None


def test_unsupported_granularity_is_reported(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("STATS_GRANULARITY", "fortnight")
    monkeypatch.setenv("STATS_TABLE_PERSISTENCE_PATH", str(tmp_path / "statistics.json"))

    with pytest.raises(UnsupportedGranularity):
        build_default_table()
