from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

import typer

from models.identity import DataPointIdentity
from models.records import DataPoint
from models.schemas import IngestionResult
from services.aggregator import AccountSummary


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_identity(identity: DataPointIdentity) -> None:
    echo_heading("Data Point")
    echo_key_values(
        [
            ("account", identity.account),
            ("granularity", identity.granularity.value),
            ("zone", identity.zone),
            ("timestamp", identity.timestamp.isoformat()),
            ("period", identity.period_label()),
        ]
    )


def render_ingestion(result: IngestionResult) -> None:
    echo_heading("Ingestion Result")
    echo_key_values(
        [
            ("status", result.status.value),
            ("row_count", result.row_count),
            ("stored_count", result.stored_count),
            ("deduplicated", result.deduplicated),
            ("processing_ms", result.processing_ms),
        ]
    )

    typer.echo()
    echo_heading("Errors")
    if result.errors:
        for error in result.errors:
            typer.echo(f"  - row {error.row_number}: {error.reason}")
    else:
        typer.echo("No errors recorded.")


def render_series(
    account: str,
    points: Sequence[DataPoint],
    summary: Optional[AccountSummary],
) -> None:
    echo_heading(f"Series for {account}")
    if not points:
        typer.echo("No data points stored.")
        return

    for point in points:
        metrics = ", ".join(
            f"{name}={value}" for name, value in sorted(point.statistics.items())
        )
        typer.echo(f"  - {point.identity.period_label()}: {metrics or '-'}")

    if summary is not None:
        typer.echo()
        echo_heading("Totals")
        echo_key_values(
            [
                ("point_count", summary.point_count),
                ("first_period", summary.first_period),
                ("last_period", summary.last_period),
            ]
        )
        for name, total in sorted(summary.totals.items()):
            typer.echo(f"  - {name}: {total}")
