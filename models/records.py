"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from models.identity import DataPointIdentity


@dataclass(slots=True)
class DataPoint:
    """Statistics snapshot of one account for one period."""

    identity: DataPointIdentity
    statistics: Dict[str, float] = field(default_factory=dict)

    @property
    def account(self) -> str:
        return self.identity.account

    def copy(self) -> "DataPoint":
        # identities are immutable and shared; only the metric mapping is copied
        return DataPoint(identity=self.identity, statistics=dict(self.statistics))
