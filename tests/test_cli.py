from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from cli.app import app
from datastore.timeseries_table import TimeSeriesTable
from models.identity import Granularity
from services.ingestion import IngestionService
from settings import get_settings


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def service(monkeypatch, tmp_path) -> IngestionService:
    table = TimeSeriesTable(
        name="cli-table",
        granularity=Granularity.day,
        persistence_path=tmp_path / "statistics.json",
    )
    ingestion = IngestionService(table=table)
    monkeypatch.setattr("cli.app.build_default_ingestion", lambda: ingestion)
    monkeypatch.setattr("cli.app.configure_logging", lambda *args, **kwargs: None)
    return ingestion


def test_key_command_prints_encoded_key(runner: CliRunner, service: IngestionService) -> None:
    result = runner.invoke(
        app, ["key", "acct-42", "2024-03-15T23:59:00Z", "--granularity", "month"]
    )

    assert result.exit_code == 0
    assert result.stdout.strip() == "v1|acct-42|month|UTC|2024-03-01T00:00:00Z"


def test_key_command_rejects_unknown_granularity(runner: CliRunner, service: IngestionService) -> None:
    result = runner.invoke(app, ["key", "acct-42", "2024-03-15", "-g", "fortnight"])

    assert result.exit_code == 1
    assert "Unsupported granularity" in result.output


def test_decode_command(runner: CliRunner, service: IngestionService) -> None:
    result = runner.invoke(app, ["decode", "v1|acct-42|month|UTC|2024-03-01T00:00:00Z"])

    assert result.exit_code == 0
    assert "account: acct-42" in result.stdout
    assert "period: 2024-03" in result.stdout


def test_decode_command_rejects_malformed_key(runner: CliRunner, service: IngestionService) -> None:
    result = runner.invoke(app, ["decode", "not-a-key"])

    assert result.exit_code == 1
    assert "Malformed key" in result.output


def test_ingest_then_series(runner: CliRunner, service: IngestionService, tmp_path: Path) -> None:
    csv_path = tmp_path / "observations.csv"
    csv_path.write_text(
        "account,timestamp,income\n"
        "acct-1,2024-03-15T10:00:00Z,100\n"
        "acct-1,2024-03-16T10:00:00Z,50\n"
        "acct-1,bad,1\n"
    )

    ingested = runner.invoke(app, ["ingest", str(csv_path)])

    assert ingested.exit_code == 0
    assert "status: partial" in ingested.stdout
    assert "row 4: invalid timestamp" in ingested.stdout

    series = runner.invoke(app, ["series", "acct-1", "--start", "2024-03-16"])

    assert series.exit_code == 0
    assert "2024-03-16: income=50.0" in series.stdout
    assert "2024-03-15" not in series.stdout
    assert "point_count: 1" in series.stdout


def test_ingest_failure_exits_non_zero(runner: CliRunner, service: IngestionService, tmp_path: Path) -> None:
    csv_path = tmp_path / "broken.csv"
    csv_path.write_text("who,when\nacct-1,2024-03-15\n")

    result = runner.invoke(app, ["ingest", str(csv_path)])

    assert result.exit_code == 1
    assert "status: failed" in result.stdout


def test_series_for_unknown_account(runner: CliRunner, service: IngestionService) -> None:
    result = runner.invoke(app, ["series", "acct-404"])

    assert result.exit_code == 0
    assert "No data points stored." in result.stdout


def test_key_command_defaults_to_configured_schema(
    runner: CliRunner, service: IngestionService, monkeypatch
) -> None:
    monkeypatch.setenv("STATS_GRANULARITY", "month")
    monkeypatch.setenv("STATS_REFERENCE_ZONE", "Europe/Berlin")
    get_settings.cache_clear()
    try:
        configured = runner.invoke(app, ["key", "acct-42", "2024-03-15T10:00:00Z"])
        overridden = runner.invoke(
            app, ["key", "acct-42", "2024-03-15T10:00:00Z", "-g", "day", "-z", "UTC"]
        )
    finally:
        get_settings.cache_clear()

    assert configured.exit_code == 0
    assert configured.stdout.strip() == "v1|acct-42|month|Europe/Berlin|2024-02-29T23:00:00Z"
    assert overridden.stdout.strip() == "v1|acct-42|day|UTC|2024-03-15T00:00:00Z"
