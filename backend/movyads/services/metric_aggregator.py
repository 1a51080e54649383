"""Metric aggregation helpers.

WHAT:
    Pure functions that turn raw per-day records into per-entity totals
    (account, campaign, day) and derive CTR, CPC and CPM.

WHY:
    - Fact rows store base measures only; every read path derives ratios
      with the same formulas
    - Upstream values often arrive as text; a single malformed value must
      not break an aggregate, so it counts as 0

FORMULAS:
    CTR = clicks / impressions * 100
    CPC = spend / clicks
    CPM = spend / impressions * 1000
    Each is 0 when its denominator is 0.

REFERENCES:
    - movyads/services/reporting_service.py (read-side consumer)
    - movyads/services/meta_ads_client.py (uses safe_num/safe_int on fetch)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping


def safe_num(value: Any) -> float:
    """Coerce a measure to float; non-numeric, non-finite or missing -> 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return 0.0
    return number if math.isfinite(number) else 0.0


def safe_int(value: Any) -> int:
    """Coerce a count measure to a non-negative int (malformed -> 0)."""
    number = safe_num(value)
    return int(number) if number > 0 else 0


def derive_ratios(spend: float, impressions: float, clicks: float) -> Dict[str, float]:
    """Compute CTR/CPC/CPM with zero-denominator safety."""
    spend = safe_num(spend)
    impressions = safe_num(impressions)
    clicks = safe_num(clicks)
    return {
        "ctr": (clicks / impressions) * 100 if impressions > 0 else 0.0,
        "cpc": spend / clicks if clicks > 0 else 0.0,
        "cpm": (spend / impressions) * 1000 if impressions > 0 else 0.0,
    }


@dataclass
class MetricTotals:
    """Running sum of base measures for one entity."""

    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0

    def add(self, row: Mapping[str, Any]) -> None:
        self.spend += safe_num(row.get("spend"))
        self.impressions += safe_int(row.get("impressions"))
        self.clicks += safe_int(row.get("clicks"))

    def ratios(self) -> Dict[str, float]:
        return derive_ratios(self.spend, self.impressions, self.clicks)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            **self.ratios(),
        }


def aggregate_by(
    rows: Iterable[Mapping[str, Any]],
    key: Callable[[Mapping[str, Any]], Hashable],
) -> Dict[Hashable, MetricTotals]:
    """Group rows by ``key(row)`` and sum their measures.

    Rows whose key is falsy (missing entity/date) are skipped.
    """
    totals: Dict[Hashable, MetricTotals] = {}
    for row in rows:
        group = key(row)
        if not group:
            continue
        totals.setdefault(group, MetricTotals()).add(row)
    return totals


def sum_totals(rows: Iterable[Mapping[str, Any]]) -> MetricTotals:
    """Sum every row into a single MetricTotals."""
    totals = MetricTotals()
    for row in rows:
        totals.add(row)
    return totals


def daily_series(
    totals_by_day: Mapping[date, MetricTotals],
    start: date,
    days: int,
) -> List[Dict[str, Any]]:
    """One point per calendar day from ``start``, zero-filled when missing."""
    series = []
    for offset in range(days):
        current = start + timedelta(days=offset)
        point = totals_by_day.get(current) or MetricTotals()
        series.append({
            "date": current,
            "spend": point.spend,
            "impressions": point.impressions,
            "clicks": point.clicks,
        })
    return series
