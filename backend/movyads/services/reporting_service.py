"""Read-side reporting over the daily fact table.

WHAT:
    Tenant-scoped aggregates for the dashboard endpoints:
    - ``daily_metrics``: totals + one zero-filled chart point per day
    - ``account_summary``: per ad account totals, spend descending
    - ``campaign_summary``: per campaign totals for one account
    - ``top_campaigns``: top N campaigns by spend, optionally per account

WHY:
    Facts store base measures only. Every report sums them here and derives
    CTR/CPC/CPM through ``metric_aggregator`` so all endpoints agree.

REFERENCES:
    - movyads/services/metric_aggregator.py
    - movyads/routers/reports.py
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from movyads.models import AdAccount, Campaign, CampaignInsightDaily
from movyads.services.metric_aggregator import (
    MetricTotals,
    aggregate_by,
    daily_series,
    safe_num,
    sum_totals,
)
from movyads.services.sync_service import AccountNotFoundError, compute_lookback_window

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 7
MAX_DAYS = 90
TOP_CAMPAIGNS_LIMIT = 10


def parse_days(value: Any) -> int:
    """Clamp a ``days`` query value: invalid or <= 0 -> 7, > 90 -> 90."""
    if value is None or value == "":
        return DEFAULT_DAYS
    days = safe_num(value)
    if days <= 0:
        return DEFAULT_DAYS
    if days > MAX_DAYS:
        return MAX_DAYS
    return max(int(days), 1)


def _fact_rows(
    db: Session,
    tenant_id: UUID,
    start: date,
    end: date,
    ad_account_id: Optional[UUID] = None,
) -> List[Dict[str, Any]]:
    stmt = select(
        CampaignInsightDaily.day,
        CampaignInsightDaily.ad_account_id,
        CampaignInsightDaily.campaign_id,
        CampaignInsightDaily.spend,
        CampaignInsightDaily.impressions,
        CampaignInsightDaily.clicks,
    ).where(
        CampaignInsightDaily.tenant_id == tenant_id,
        CampaignInsightDaily.day >= start,
        CampaignInsightDaily.day <= end,
    )
    if ad_account_id is not None:
        stmt = stmt.where(CampaignInsightDaily.ad_account_id == ad_account_id)
    return [dict(row._mapping) for row in db.execute(stmt)]


def _window(days: int, today: Optional[date]) -> Tuple[date, date]:
    return compute_lookback_window(days, today=today)


def daily_metrics(
    db: Session,
    tenant_id: UUID,
    days: int = DEFAULT_DAYS,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    start, end = _window(days, today)
    rows = _fact_rows(db, tenant_id, start, end)
    by_day = aggregate_by(rows, key=lambda row: row.get("day"))
    chart = daily_series(by_day, start, days)

    # Totals come from the chart so they match the plotted points exactly.
    totals = sum_totals(chart)
    logger.info("[REPORTS] Daily metrics for tenant %s: %s rows over %s days", tenant_id, len(rows), days)
    return {"start": start, "end": end, "totals": totals.as_dict(), "chart": chart}


def account_summary(
    db: Session,
    tenant_id: UUID,
    days: int = DEFAULT_DAYS,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Every ad account of the tenant, including those with no data."""
    start, end = _window(days, today)
    accounts = db.execute(
        select(AdAccount).where(AdAccount.tenant_id == tenant_id)
    ).scalars().all()
    by_account = aggregate_by(
        _fact_rows(db, tenant_id, start, end),
        key=lambda row: row.get("ad_account_id"),
    )

    rows = []
    for account in accounts:
        totals = by_account.get(account.id) or MetricTotals()
        rows.append({
            "id": account.id,
            "external_id": account.external_id,
            "name": account.name,
            "status": account.status,
            "platform": account.platform,
            **totals.as_dict(),
        })
    rows.sort(key=lambda row: row["spend"], reverse=True)
    return {"start": start, "end": end, "rows": rows}


def _campaign_rows(
    db: Session,
    tenant_id: UUID,
    by_campaign: Dict[Any, MetricTotals],
) -> List[Dict[str, Any]]:
    if not by_campaign:
        return []
    campaigns = {
        campaign.id: campaign
        for campaign in db.execute(
            select(Campaign).where(
                Campaign.tenant_id == tenant_id,
                Campaign.id.in_(list(by_campaign)),
            )
        ).scalars()
    }

    rows = []
    for campaign_id, totals in by_campaign.items():
        campaign = campaigns.get(campaign_id)
        external_id = campaign.external_id if campaign else None
        name = (campaign.name if campaign else None) or external_id or str(campaign_id)
        rows.append({
            "campaign_id": campaign_id,
            "external_id": external_id,
            "campaign_name": name,
            **totals.as_dict(),
        })
    rows.sort(key=lambda row: row["spend"], reverse=True)
    return rows


def _require_account(db: Session, tenant_id: UUID, account_id: UUID) -> AdAccount:
    account = db.get(AdAccount, account_id)
    if account is None or account.tenant_id != tenant_id:
        raise AccountNotFoundError(f"Ad account {account_id} not found")
    return account


def campaign_summary(
    db: Session,
    tenant_id: UUID,
    account_id: UUID,
    days: int = DEFAULT_DAYS,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    _require_account(db, tenant_id, account_id)
    start, end = _window(days, today)
    by_campaign = aggregate_by(
        _fact_rows(db, tenant_id, start, end, ad_account_id=account_id),
        key=lambda row: row.get("campaign_id"),
    )
    return {"start": start, "end": end, "rows": _campaign_rows(db, tenant_id, by_campaign)}


def top_campaigns(
    db: Session,
    tenant_id: UUID,
    days: int = DEFAULT_DAYS,
    account_id: Optional[UUID] = None,
    limit: int = TOP_CAMPAIGNS_LIMIT,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Top campaigns by spend; ``account_id=None`` covers every account."""
    if account_id is not None:
        _require_account(db, tenant_id, account_id)
    start, end = _window(days, today)
    by_campaign = aggregate_by(
        _fact_rows(db, tenant_id, start, end, ad_account_id=account_id),
        key=lambda row: row.get("campaign_id"),
    )
    rows = _campaign_rows(db, tenant_id, by_campaign)[:limit]
    return {"days": days, "account_id": account_id, "rows": rows}
