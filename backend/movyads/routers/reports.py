"""Reporting endpoints over the daily fact table.

All routes are tenant-scoped and accept ``days`` (clamped: invalid or <= 0
means 7, more than 90 means 90).
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import require_service_token
from ..models import Tenant
from ..services import reporting_service
from ..services.sync_service import AccountNotFoundError

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/tenants/{tenant_id}/reports",
    tags=["Reports"],
    dependencies=[Depends(require_service_token)],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Not Found"},
    }
)

# Raw string so a non-numeric value clamps to the default instead of 422.
DaysQuery = Query(None, description="Lookback days (1-90, default 7)")


def _require_tenant(db: Session, tenant_id: UUID) -> None:
    if db.get(Tenant, tenant_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")


def _parse_account_id(raw: Optional[str]) -> Optional[UUID]:
    if not raw or raw == "all":
        return None
    try:
        return UUID(raw)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid account_id")


@router.get("/daily", response_model=schemas.DailyMetricsResponse, summary="Daily totals and chart")
def daily(tenant_id: UUID, days: Optional[str] = DaysQuery, db: Session = Depends(get_db)):
    _require_tenant(db, tenant_id)
    report = reporting_service.daily_metrics(db, tenant_id, reporting_service.parse_days(days))
    return schemas.DailyMetricsResponse(**report)


@router.get("/accounts", response_model=schemas.AccountSummaryResponse, summary="Per-account totals")
def accounts(tenant_id: UUID, days: Optional[str] = DaysQuery, db: Session = Depends(get_db)):
    _require_tenant(db, tenant_id)
    report = reporting_service.account_summary(db, tenant_id, reporting_service.parse_days(days))
    return schemas.AccountSummaryResponse(**report)


@router.get(
    "/accounts/{account_id}/campaigns",
    response_model=schemas.CampaignSummaryResponse,
    summary="Per-campaign totals for one account",
)
def account_campaigns(
    tenant_id: UUID,
    account_id: UUID,
    days: Optional[str] = DaysQuery,
    db: Session = Depends(get_db),
):
    _require_tenant(db, tenant_id)
    try:
        report = reporting_service.campaign_summary(
            db, tenant_id, account_id, reporting_service.parse_days(days)
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ad account not found")
    return schemas.CampaignSummaryResponse(**report)


@router.get("/campaigns/top", response_model=schemas.TopCampaignsResponse, summary="Top campaigns by spend")
def top_campaigns(
    tenant_id: UUID,
    days: Optional[str] = DaysQuery,
    account_id: Optional[str] = Query(None, description="Ad account id, or 'all'"),
    db: Session = Depends(get_db),
):
    _require_tenant(db, tenant_id)
    try:
        report = reporting_service.top_campaigns(
            db,
            tenant_id,
            reporting_service.parse_days(days),
            account_id=_parse_account_id(account_id),
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ad account not found")
    return schemas.TopCampaignsResponse(**report)
