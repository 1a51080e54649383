"""Meta insights sync service.

WHAT:
    Handler for ``sync_account`` jobs: resolves the ad account and its
    tenant credential, computes the lookback window, fetches campaign-day
    insights from Meta and upserts them.

WHY:
    - Strictly linear: any failure propagates to the worker, which marks the
      job ``error``; there is no partial-success state
    - The fetch is fully materialized before writing, so a failed page never
      leaves half of a fetch in the database
    - Chunks committed by the writer stay committed; re-running converges

REFERENCES:
    - movyads/services/meta_ads_client.py (fetch)
    - movyads/services/insights_writer.py (write)
    - movyads/workers/sync_worker.py (dispatch)
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from movyads.models import AdAccount
from movyads.schemas import SyncAccountPayload, SyncResult
from movyads.services.insights_writer import write_insights
from movyads.services.meta_ads_client import MetaAdsClient
from movyads.services.token_service import get_credential

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], MetaAdsClient]


class SyncError(Exception):
    """Base class for sync failures that are not upstream API errors."""


class AccountNotFoundError(SyncError):
    pass


class CredentialMissingError(SyncError):
    pass


def compute_lookback_window(days: int, today: Optional[date] = None) -> Tuple[date, date]:
    """Inclusive [since, until] window of ``days`` calendar days ending today.

    ``days=1`` yields a single day (since == until).

    Raises:
        ValueError: days < 1
    """
    if days < 1:
        raise ValueError(f"lookback days must be >= 1 (got {days})")
    until = today or date.today()
    since = until - timedelta(days=days - 1)
    return since, until


def sync_account(
    db: Session,
    payload: SyncAccountPayload,
    *,
    client_factory: ClientFactory = MetaAdsClient.from_settings,
    today: Optional[date] = None,
) -> SyncResult:
    """Fetch and persist ``payload.lookback_days`` of insights for one account.

    Raises:
        AccountNotFoundError: Unknown ad account id
        CredentialMissingError: Tenant has no stored credential
        MetaAdsClientError: Upstream failure (message preserved)
        SQLAlchemyError: Persistence failure
    """
    account = db.get(AdAccount, payload.target_account_id)
    if account is None:
        raise AccountNotFoundError(f"Ad account {payload.target_account_id} not found")

    credential = get_credential(db, account.tenant_id)
    if credential is None:
        raise CredentialMissingError(
            f"No Meta credential for tenant {account.tenant_id}; connect the platform first"
        )
    if credential.is_expired:
        logger.warning(
            "[META_SYNC] Token for tenant %s expired at %s; attempting sync anyway",
            account.tenant_id,
            credential.expires_at,
        )

    since, until = compute_lookback_window(payload.lookback_days, today=today)
    logger.info(
        "[META_SYNC] Syncing account %s (%s) for %s to %s",
        account.id,
        account.external_id,
        since,
        until,
    )

    with client_factory(credential.access_token) as client:
        records = client.fetch_campaign_insights(account.external_id, since, until)

    written = write_insights(
        db,
        tenant_id=account.tenant_id,
        ad_account_id=account.id,
        records=records,
    )

    logger.info(
        "[META_SYNC] Account %s synced: %s campaigns, %s facts",
        account.id,
        written.campaigns_touched,
        written.facts_written,
    )
    return SyncResult(
        campaigns_touched=written.campaigns_touched,
        facts_written=written.facts_written,
    )
