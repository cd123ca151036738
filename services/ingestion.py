"""Ingestion of raw account observations into the statistics table."""

from __future__ import annotations

import csv
import io
import logging
import math
import time
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Mapping, Optional, TextIO

from datastore.timeseries_table import TimeSeriesTable, build_default_table
from models.identity import DataPointIdentity, IdentityError, RawTimestamp
from models.records import DataPoint
from models.schemas import IngestionError, IngestionResult, IngestionStatus

logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = ("account", "timestamp")


def _coerce_metric(name: str, value: object) -> float:
    if isinstance(value, bool):
        raise ValueError(f"invalid numeric value for {name}")
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid numeric value for {name}") from exc
    if not math.isfinite(parsed):
        raise ValueError(f"invalid numeric value for {name}")
    return parsed


class IngestionService:
    """Turns observations into identities and stores them.

    Observations are addressed with the table's granularity and zone. An
    observation whose identity cannot be built is rejected: ``record`` raises,
    and CSV ingestion reports the row and logs it.
    """

    def __init__(self, table: TimeSeriesTable) -> None:
        self.table = table

    def record(
        self,
        account: str,
        raw_timestamp: RawTimestamp,
        statistics: Optional[Mapping[str, object]] = None,
    ) -> DataPoint:
        """Store one observation, replacing any snapshot for the same period."""
        identity = self.table.identity(account, raw_timestamp)
        values = {
            name: _coerce_metric(name, value) for name, value in (statistics or {}).items()
        }
        point = DataPoint(identity=identity, statistics=values)
        self.table.put_point(point)
        logger.debug("Recorded data point", extra={"account": account, "key": identity.encode()})
        return point

    def ingest_file(self, path: Path) -> IngestionResult:
        with path.open("r", encoding="utf-8", newline="") as handle:
            return self._ingest_stream(handle, source=str(path))

    def ingest_text(self, contents: str) -> IngestionResult:
        return self._ingest_stream(io.StringIO(contents), source="<text>")

    def _ingest_stream(self, stream: TextIO, source: str) -> IngestionResult:
        start_time = time.perf_counter()
        started_at = datetime.now(timezone.utc)

        errors: list[IngestionError] = []
        pending: Dict[DataPointIdentity, DataPoint] = {}
        row_count = 0
        deduplicated = 0
        status = IngestionStatus.processed

        try:
            reader = csv.DictReader(stream)

            if not reader.fieldnames:
                raise ValueError("CSV file is missing a header row.")

            normalized = {name.lower().strip(): name for name in reader.fieldnames if name}
            missing = sorted(set(_REQUIRED_COLUMNS) - normalized.keys())
            if missing:
                raise ValueError(f"CSV missing required columns: {', '.join(missing)}")

            account_col = normalized["account"]
            timestamp_col = normalized["timestamp"]
            metric_cols = [
                (key, original)
                for key, original in normalized.items()
                if key not in _REQUIRED_COLUMNS
            ]

            for row_number, row in enumerate(reader, start=2):
                row_count += 1
                account_raw = (row.get(account_col) or "").strip()
                timestamp_raw = (row.get(timestamp_col) or "").strip()

                if not account_raw:
                    self._reject(errors, source, row_number, "missing account")
                    continue
                if not timestamp_raw:
                    self._reject(errors, source, row_number, "missing timestamp", account_raw)
                    continue

                try:
                    identity = self.table.identity(account_raw, timestamp_raw)
                except IdentityError:
                    self._reject(errors, source, row_number, "invalid timestamp", account_raw)
                    continue

                statistics: Dict[str, float] = {}
                row_error: Optional[str] = None
                for metric, column in metric_cols:
                    cell = (row.get(column) or "").strip()
                    if not cell:
                        continue
                    try:
                        statistics[metric] = _coerce_metric(metric, cell)
                    except ValueError as exc:
                        row_error = str(exc)
                        break
                if row_error is not None:
                    self._reject(errors, source, row_number, row_error, account_raw)
                    continue

                if identity in pending:
                    deduplicated += 1
                pending[identity] = DataPoint(identity=identity, statistics=statistics)

            self.table.put_points(pending.values())

            if not pending and errors:
                status = IngestionStatus.failed
            elif errors:
                status = IngestionStatus.partial
        except (OSError, UnicodeDecodeError, csv.Error, ValueError) as exc:
            status = IngestionStatus.failed
            errors.append(IngestionError(row_number=1, reason=str(exc)))
            pending = {}
            logger.error(
                "Ingestion of %s failed: %s", source, exc,
                extra={"status": status.value, "reason": str(exc)},
            )

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        result = IngestionResult(
            status=status,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            processing_ms=processing_ms,
            row_count=row_count,
            stored_count=len(pending),
            deduplicated=deduplicated,
            keys=[identity.encode() for identity in sorted(pending)],
            errors=errors,
        )
        logger.info(
            "Ingested %s",
            source,
            extra={
                "status": status.value,
                "row_count": row_count,
                "point_count": result.stored_count,
                "deduplicated": deduplicated,
                "error_count": len(errors),
                "processing_ms": processing_ms,
            },
        )
        return result

    @staticmethod
    def _reject(
        errors: List[IngestionError],
        source: str,
        row_number: int,
        reason: str,
        account: Optional[str] = None,
    ) -> None:
        errors.append(IngestionError(row_number=row_number, reason=reason))
        logger.warning(
            "Skipping row %s of %s: %s", row_number, source, reason,
            extra={"row_number": row_number, "reason": reason, "account": account},
        )


@lru_cache
def build_default_ingestion() -> IngestionService:
    """Factory that wires ingestion with the default table."""
    return IngestionService(table=build_default_table())
