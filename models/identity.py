"""Identity of a single per-account statistics data point.

A :class:`DataPointIdentity` addresses "the statistics snapshot for account A
in period P". Raw timestamps are normalized once, at construction, to the
start of their granularity bucket computed in a reference time zone, and the
result is stored as an aware UTC ``datetime``. Equality, hashing and ordering
only look at ``(account, timestamp)``; the granularity and zone travel along
as metadata so that the encoded key is self-describing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

KEY_VERSION = "v1"
KEY_SEPARATOR = "|"
DEFAULT_ZONE = "UTC"

RawTimestamp = Union[datetime, date, str, int, float]


class IdentityError(ValueError):
    """Base class for data point identity failures."""


class InvalidIdentity(IdentityError):
    """Raised for an empty account or an invalid timestamp."""


class UnsupportedGranularity(IdentityError):
    """Raised when a granularity or reference zone is not recognized."""


class KeySchemaMismatch(IdentityError):
    """Raised when a key was produced under a different granularity or zone."""


class Granularity(str, Enum):
    """Bucket widths a statistics store can be configured with."""

    hour = "hour"
    day = "day"
    week = "week"
    month = "month"
    year = "year"

    @classmethod
    def parse(cls, value: Union["Granularity", str]) -> "Granularity":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            candidate = value.strip().lower()
            for member in cls:
                if member.value == candidate:
                    return member
        raise UnsupportedGranularity(f"Unsupported granularity {value!r}.")


def resolve_zone(zone: str) -> ZoneInfo:
    """Return the ``ZoneInfo`` for an IANA zone name."""
    if not isinstance(zone, str) or not zone.strip():
        raise UnsupportedGranularity(f"Unsupported reference zone {zone!r}.")
    try:
        return ZoneInfo(zone.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise UnsupportedGranularity(f"Unsupported reference zone {zone!r}.") from exc


def parse_timestamp(value: RawTimestamp, zone: str = DEFAULT_ZONE) -> datetime:
    """Turn a raw timestamp into an aware ``datetime``.

    Naive values are read as wall-clock time in ``zone``. Integers and floats
    are epoch seconds.
    """
    tzinfo = resolve_zone(zone)

    if isinstance(value, bool):
        raise InvalidIdentity(f"Invalid timestamp {value!r}.")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidIdentity(f"Invalid epoch timestamp {value!r}.") from exc
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            raise InvalidIdentity("Timestamp is empty.")
        if candidate.endswith(("Z", "z")):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise InvalidIdentity(f"Invalid timestamp format {value!r}.") from exc
    else:
        raise InvalidIdentity(f"Invalid timestamp {value!r}.")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        parsed = parsed.replace(tzinfo=tzinfo)
    return parsed


def _bucket_start(local: datetime, granularity: Granularity) -> datetime:
    if granularity is Granularity.hour:
        return datetime(
            local.year, local.month, local.day, local.hour,
            tzinfo=local.tzinfo, fold=local.fold,
        )
    if granularity is Granularity.day:
        start = local.date()
    elif granularity is Granularity.week:
        start = local.date() - timedelta(days=local.weekday())
    elif granularity is Granularity.month:
        start = date(local.year, local.month, 1)
    else:
        start = date(local.year, 1, 1)
    return datetime(start.year, start.month, start.day, tzinfo=local.tzinfo)


def normalize_timestamp(
    value: RawTimestamp,
    granularity: Union[Granularity, str],
    zone: str = DEFAULT_ZONE,
) -> datetime:
    """Map ``value`` to the UTC instant its granularity bucket starts at."""
    bucket = Granularity.parse(granularity)
    tzinfo = resolve_zone(zone)
    parsed = parse_timestamp(value, zone)
    try:
        local = parsed.astimezone(tzinfo)
        return _bucket_start(local, bucket).astimezone(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise InvalidIdentity(f"Timestamp {value!r} is out of range.") from exc


def _format_instant(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


@dataclass(frozen=True, order=True, slots=True)
class DataPointIdentity:
    """Immutable (account, period) key of a statistics snapshot."""

    account: str
    timestamp: datetime
    granularity: Granularity = field(default=Granularity.day, compare=False)
    zone: str = field(default=DEFAULT_ZONE, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.account, str) or not self.account.strip():
            raise InvalidIdentity("Account must be a non-empty string.")
        if not isinstance(self.granularity, Granularity):
            raise UnsupportedGranularity(f"Unsupported granularity {self.granularity!r}.")
        resolve_zone(self.zone)
        if self.zone != self.zone.strip():
            raise InvalidIdentity(f"Zone {self.zone!r} must not carry surrounding whitespace.")
        if not isinstance(self.timestamp, datetime) or self.timestamp.tzinfo is None:
            raise InvalidIdentity("Timestamp must be a timezone-aware datetime.")
        if self.timestamp.utcoffset() != timedelta(0):
            raise InvalidIdentity("Timestamp must be expressed in UTC.")
        expected = normalize_timestamp(self.timestamp, self.granularity, self.zone)
        if expected != self.timestamp:
            raise InvalidIdentity(
                f"Timestamp {_format_instant(self.timestamp)} is not the start of a "
                f"{self.granularity.value} bucket in {self.zone}."
            )

    @classmethod
    def create(
        cls,
        account: str,
        raw_timestamp: RawTimestamp,
        granularity: Union[Granularity, str],
        zone: str = DEFAULT_ZONE,
    ) -> "DataPointIdentity":
        """Validate the inputs and build the identity of the containing bucket."""
        if not isinstance(account, str) or not account.strip():
            raise InvalidIdentity("Account must be a non-empty string.")
        bucket = Granularity.parse(granularity)
        normalized = normalize_timestamp(raw_timestamp, bucket, zone)
        return cls(account=account, timestamp=normalized, granularity=bucket, zone=zone.strip())

    def encode(self) -> str:
        """Return the versioned storage key for this identity."""
        return KEY_SEPARATOR.join(
            (
                KEY_VERSION,
                self.account,
                self.granularity.value,
                self.zone,
                _format_instant(self.timestamp),
            )
        )

    @classmethod
    def decode(cls, key: str) -> "DataPointIdentity":
        """Rebuild an identity from a key produced by :meth:`encode`."""
        if not isinstance(key, str):
            raise InvalidIdentity(f"Invalid key {key!r}.")
        version, sep, remainder = key.partition(KEY_SEPARATOR)
        if not sep:
            raise InvalidIdentity(f"Malformed key {key!r}.")
        if version != KEY_VERSION:
            raise InvalidIdentity(f"Unsupported key version {version!r}.")

        parts = remainder.rsplit(KEY_SEPARATOR, 3)
        if len(parts) != 4:
            raise InvalidIdentity(f"Malformed key {key!r}.")
        account, granularity, zone, instant = parts
        if not instant.endswith("Z"):
            raise InvalidIdentity(f"Key timestamp {instant!r} is not in UTC.")

        timestamp = parse_timestamp(instant, DEFAULT_ZONE).astimezone(timezone.utc)
        identity = cls(
            account=account,
            timestamp=timestamp,
            granularity=Granularity.parse(granularity),
            zone=zone,
        )
        # only the canonical spelling is a key; aliases would collide in storage
        if identity.encode() != key:
            raise InvalidIdentity(f"Non-canonical key {key!r}.")
        return identity

    def local_start(self) -> datetime:
        """Bucket start expressed in the reference zone."""
        return self.timestamp.astimezone(resolve_zone(self.zone))

    def period_label(self) -> str:
        local = self.local_start()
        if self.granularity is Granularity.hour:
            return f"{local.year:04d}-{local.month:02d}-{local.day:02d}T{local.hour:02d}"
        if self.granularity is Granularity.day:
            return local.date().isoformat()
        if self.granularity is Granularity.week:
            iso_year, iso_week, _ = local.isocalendar()
            return f"{iso_year:04d}-W{iso_week:02d}"
        if self.granularity is Granularity.month:
            return f"{local.year:04d}-{local.month:02d}"
        return f"{local.year:04d}"

    def same_schema(self, granularity: Granularity, zone: str) -> bool:
        return self.granularity is granularity and self.zone == zone

    def __str__(self) -> str:
        return self.encode()
