"""Pydantic schemas for job payloads and request/response bodies."""

from datetime import datetime, date
from uuid import UUID
from typing import Optional, List, Any, Dict

from pydantic import BaseModel, Field


# =============================================================================
# JOB PAYLOADS
# =============================================================================

class SyncAccountPayload(BaseModel):
    """Request fields of a ``sync_account`` job.

    WHAT: Target ad account (internal id) and lookback window length
    WHY: Validated when the worker dispatches the job, so a malformed row
         fails that job instead of the loop
    """

    target_account_id: UUID = Field(
        description="movyads ad_accounts.id to sync"
    )
    lookback_days: int = Field(
        default=7,
        ge=1,
        le=90,
        description="Number of calendar days to fetch, ending today (inclusive)"
    )

    # Completed payloads also carry result/error keys; ignore them here.
    model_config = {"extra": "ignore"}


class SyncResult(BaseModel):
    """Counts produced by one account sync.

    Merged into the job payload under ``result`` on completion.
    """

    campaigns_touched: int = Field(
        default=0,
        description="Distinct campaigns upserted from the fetched batch"
    )
    facts_written: int = Field(
        default=0,
        description="Daily fact rows upserted"
    )


# =============================================================================
# QUEUE API
# =============================================================================

class EnqueueSyncRequest(BaseModel):
    """Body of ``POST /sync/enqueue``."""

    target_account_id: UUID = Field(
        description="movyads ad_accounts.id to sync"
    )
    lookback_days: Optional[int] = Field(
        default=None,
        ge=1,
        le=90,
        description="Days to fetch (default: MOVYADS_SYNC_DAYS_DEFAULT)"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "target_account_id": "123e4567-e89b-12d3-a456-426614174000",
                "lookback_days": 7,
            }
        }
    }


class EnqueueResponse(BaseModel):
    ok: bool = True
    job_id: UUID


class JobOut(BaseModel):
    """Public representation of a queue row."""

    id: UUID
    status: str
    job_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# =============================================================================
# TENANTS / CONNECTIONS
# =============================================================================

class TenantCreate(BaseModel):
    name: str = Field(min_length=1, description="Workspace display name")


class TenantCreateResponse(BaseModel):
    ok: bool = True
    tenant_id: UUID


class MetaConnectRequest(BaseModel):
    """Long-lived Meta token obtained by the (external) OAuth flow."""

    access_token: str = Field(min_length=1)
    meta_user_id: str = Field(min_length=1)
    expires_in: int = Field(
        default=0,
        ge=0,
        description="Token lifetime in seconds (0 = no expiry reported)"
    )


class MetaConnectResponse(BaseModel):
    ok: bool = True
    imported: int = Field(description="Ad accounts upserted from me/adaccounts")


# =============================================================================
# REPORTING
# =============================================================================

class MetricTotalsOut(BaseModel):
    """Summed base measures plus derived ratios."""

    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    ctr: float = Field(default=0.0, description="clicks / impressions * 100")
    cpc: float = Field(default=0.0, description="spend / clicks")
    cpm: float = Field(default=0.0, description="spend / impressions * 1000")


class DailyPoint(BaseModel):
    date: date
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0


class DailyMetricsResponse(BaseModel):
    ok: bool = True
    start: date
    end: date
    totals: MetricTotalsOut
    chart: List[DailyPoint]


class AccountSummaryRow(MetricTotalsOut):
    id: UUID
    external_id: str
    name: Optional[str] = None
    status: Optional[str] = None
    platform: str


class AccountSummaryResponse(BaseModel):
    ok: bool = True
    start: date
    end: date
    rows: List[AccountSummaryRow]


class CampaignSummaryRow(MetricTotalsOut):
    campaign_id: UUID
    external_id: Optional[str] = None
    campaign_name: Optional[str] = None


class CampaignSummaryResponse(BaseModel):
    ok: bool = True
    start: date
    end: date
    rows: List[CampaignSummaryRow]


class TopCampaignsResponse(BaseModel):
    ok: bool = True
    days: int
    account_id: Optional[UUID] = None
    rows: List[CampaignSummaryRow]


# =============================================================================
# COMMON
# =============================================================================

class ErrorResponse(BaseModel):
    detail: str


class HealthResponse(BaseModel):
    status: str = "ok"


class JobListResponse(BaseModel):
    ok: bool = True
    jobs: List[JobOut]
