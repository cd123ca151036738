from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer

from cli.render import render_identity, render_ingestion, render_series
from logging_config import configure_logging
from models.identity import DataPointIdentity, IdentityError
from models.schemas import IngestionStatus
from services.aggregator import Aggregator
from services.ingestion import build_default_ingestion
from settings import get_settings


app = typer.Typer(
    help="Utilities for building data point keys and inspecting account statistics.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _fail(exc: Exception) -> NoReturn:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Override LOG_LEVEL for this invocation.",
    ),
) -> None:
    """Entry point for the CLI."""
    if log_level is not None:
        configure_logging(log_level.upper(), force=True)
    else:
        configure_logging()


@app.command("key")
def key_command(
    account: str = typer.Argument(..., help="Account the data point belongs to."),
    timestamp: str = typer.Argument(..., help="ISO-8601 timestamp of the observation."),
    granularity: Optional[str] = typer.Option(
        None, "--granularity", "-g", help="Bucket width (defaults to STATS_GRANULARITY)."
    ),
    zone: Optional[str] = typer.Option(
        None, "--zone", "-z", help="Reference time zone (defaults to STATS_REFERENCE_ZONE)."
    ),
) -> None:
    """Print the storage key addressing an observation."""
    settings = get_settings()
    try:
        identity = DataPointIdentity.create(
            account,
            timestamp,
            granularity if granularity is not None else settings.granularity,
            zone if zone is not None else settings.reference_zone,
        )
    except IdentityError as exc:
        _fail(exc)
    typer.echo(identity.encode())


@app.command("decode")
def decode_command(
    key: str = typer.Argument(..., help="Key produced by the key command."),
) -> None:
    """Show the parts of a storage key."""
    try:
        identity = DataPointIdentity.decode(key)
    except IdentityError as exc:
        _fail(exc)
    render_identity(identity)


@app.command("ingest")
def ingest_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
) -> None:
    """Ingest a CSV of account observations into the statistics table."""
    service = build_default_ingestion()
    typer.echo(f"Ingesting {file} into table {service.table.name} ...")
    result = service.ingest_file(file)
    render_ingestion(result)
    if result.status is IngestionStatus.failed:
        raise typer.Exit(code=1)


@app.command("series")
def series_command(
    account: str = typer.Argument(..., help="Account to list."),
    start: Optional[str] = typer.Option(None, "--start", help="First period (inclusive)."),
    end: Optional[str] = typer.Option(None, "--end", help="Last period (inclusive)."),
) -> None:
    """List an account's data points in chronological order."""
    table = build_default_ingestion().table
    try:
        points = table.query(account, start=start, end=end)
    except IdentityError as exc:
        _fail(exc)
    summary = Aggregator().summarize(points).get(account)
    render_series(account, points, summary)
