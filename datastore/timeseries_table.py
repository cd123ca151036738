from __future__ import annotations
import json
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional, Union

from models.identity import (
    DEFAULT_ZONE,
    DataPointIdentity,
    Granularity,
    KeySchemaMismatch,
    RawTimestamp,
    normalize_timestamp,
    resolve_zone,
)
from models.records import DataPoint
from models.schemas import StoredStatistics
from settings import get_settings

logger = logging.getLogger(__name__)


class TimeSeriesTable:
    """In-memory statistics table keyed by :class:`DataPointIdentity`.

    Every identity stored here shares the table's granularity and reference
    zone. When ``persistence_path`` is set the table is mirrored to a JSON file
    keyed by the encoded identity.
    """

    def __init__(
        self,
        name: str,
        granularity: Union[Granularity, str] = Granularity.day,
        zone: str = DEFAULT_ZONE,
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.name = name
        self.granularity = Granularity.parse(granularity)
        resolve_zone(zone)
        self.zone = zone.strip()
        self._items: Dict[DataPointIdentity, DataPoint] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def identity(self, account: str, raw_timestamp: RawTimestamp) -> DataPointIdentity:
        """Build an identity under this table's granularity and zone."""
        return DataPointIdentity.create(account, raw_timestamp, self.granularity, self.zone)

    def put_point(self, point: DataPoint) -> None:
        self._check_schema(point.identity)
        with self._lock:
            self._items[point.identity] = point.copy()
            self._persist()

    def put_points(self, points: Iterable[DataPoint]) -> int:
        """Store several points with a single write to disk."""
        batch = list(points)
        for point in batch:
            self._check_schema(point.identity)
        with self._lock:
            for point in batch:
                self._items[point.identity] = point.copy()
            if batch:
                self._persist()
        return len(batch)

    def get_point(self, identity: DataPointIdentity) -> Optional[DataPoint]:
        with self._lock:
            point = self._items.get(identity)
            if point is None:
                return None
            return point.copy()

    def delete_point(self, identity: DataPointIdentity) -> bool:
        with self._lock:
            removed = self._items.pop(identity, None)
            if removed is None:
                return False
            self._persist()
            return True

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def scan(self) -> List[DataPoint]:
        """Return copies of all points, ordered by account then period."""

        with self._lock:
            return [self._items[identity].copy() for identity in sorted(self._items)]

    def query(
        self,
        account: str,
        start: Optional[RawTimestamp] = None,
        end: Optional[RawTimestamp] = None,
    ) -> List[DataPoint]:
        """Return one account's points in chronological order.

        Both bounds are normalized to their bucket and are inclusive.
        """
        lower = self._bound(start)
        upper = self._bound(end)
        with self._lock:
            identities = sorted(
                identity for identity in self._items if identity.account == account
            )
            return [
                self._items[identity].copy()
                for identity in identities
                if (lower is None or identity.timestamp >= lower)
                and (upper is None or identity.timestamp <= upper)
            ]

    def accounts(self) -> List[str]:
        with self._lock:
            return sorted({identity.account for identity in self._items})

    def _bound(self, value: Optional[RawTimestamp]) -> Optional[datetime]:
        if value is None:
            return None
        return normalize_timestamp(value, self.granularity, self.zone)

    def _check_schema(self, identity: DataPointIdentity) -> None:
        if not identity.same_schema(self.granularity, self.zone):
            raise KeySchemaMismatch(
                f"Identity {identity.encode()!r} does not match table {self.name!r} "
                f"({self.granularity.value}, {self.zone})."
            )

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            identity.encode(): StoredStatistics(statistics=point.statistics).model_dump(mode="json")
            for identity, point in self._items.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("table file is not a JSON object")
        except (OSError, ValueError):
            logger.warning(
                "Ignoring unreadable table file %s", self.persistence_path,
                extra={"reason": "unreadable"},
            )
            data = {}

        for key, payload in data.items():
            identity = DataPointIdentity.decode(key)
            self._check_schema(identity)
            stored = StoredStatistics.model_validate(payload)
            self._items[identity] = DataPoint(identity=identity, statistics=stored.statistics)

        logger.debug(
            "Loaded table %s",
            self.name,
            extra={
                "point_count": len(self._items),
                "granularity": self.granularity.value,
                "zone": self.zone,
            },
        )


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> TimeSeriesTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return TimeSeriesTable(
        name=table_name,
        granularity=settings.granularity,
        zone=settings.reference_zone,
        persistence_path=persistence,
    )
