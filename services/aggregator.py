"""Grouping and summary logic for statistics data points."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from models.records import DataPoint


@dataclass
class AccountSummary:
    """Computed totals for one account's data points."""

    point_count: int = 0
    first_period: str | None = None
    last_period: str | None = None
    totals: Dict[str, float] = field(default_factory=dict)


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation.

    Grouping relies only on ``identity.account`` and chronological order only
    on the identity ordering, so any store that hands back data points can be
    aggregated without knowing its granularity.
    """

    def group_by_account(self, points: Iterable[DataPoint]) -> Dict[str, List[DataPoint]]:
        groups: Dict[str, List[DataPoint]] = {}
        for point in sorted(points, key=lambda item: item.identity):
            groups.setdefault(point.identity.account, []).append(point)
        return groups

    def series(
        self,
        points: Iterable[DataPoint],
        account: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[DataPoint]:
        """Chronological points of ``account`` with ``start <= timestamp <= end``.

        Bounds are compared against normalized timestamps as given; pass bucket
        starts (for example from ``TimeSeriesTable.identity``) to select whole
        periods.
        """
        selected = [
            point
            for point in points
            if point.identity.account == account
            and (start is None or point.identity.timestamp >= start)
            and (end is None or point.identity.timestamp <= end)
        ]
        return sorted(selected, key=lambda item: item.identity)

    def summarize(self, points: Iterable[DataPoint]) -> Dict[str, AccountSummary]:
        summaries: Dict[str, AccountSummary] = {}

        for account, group in self.group_by_account(points).items():
            summary = AccountSummary()
            for point in group:
                summary.point_count += 1
                for metric, value in point.statistics.items():
                    summary.totals[metric] = summary.totals.get(metric, 0.0) + value
            summary.first_period = group[0].identity.period_label()
            summary.last_period = group[-1].identity.period_label()
            summaries[account] = summary

        return summaries
