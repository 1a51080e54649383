"""Tenant bootstrap and Meta connect flow.

WHAT:
    - ``create_tenant``: insert a workspace row
    - ``connect_meta``: store the tenant's long-lived token and import the
      ad accounts it can see (upsert on tenant, platform, external id)

WHY:
    The sync pipeline needs an ad account row and a credential before the
    first job can run; this is the only place that creates them.

REFERENCES:
    - movyads/routers/connections.py
    - movyads/services/token_service.py
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from movyads.database import upsert_insert
from movyads.models import AdAccount, PlatformEnum, Tenant, utcnow
from movyads.services.meta_ads_client import MetaAdsClient, normalize_account_id
from movyads.services.token_service import store_tenant_credential

logger = logging.getLogger(__name__)

# Graph API ``account_status`` codes
ACCOUNT_STATUS_LABELS = {
    1: "active",
    2: "disabled",
    3: "unsettled",
    7: "pending_risk_review",
    8: "pending_settlement",
    9: "in_grace_period",
    100: "pending_closure",
    101: "closed",
    201: "any_active",
    202: "any_closed",
}


class TenantNotFoundError(LookupError):
    pass


def create_tenant(db: Session, name: str) -> Tenant:
    tenant = Tenant(name=name.strip(), created_at=utcnow())
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    logger.info("[ACCOUNTS] Created tenant %s (%s)", tenant.id, tenant.name)
    return tenant


def _status_label(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    try:
        return ACCOUNT_STATUS_LABELS.get(int(raw), str(raw))
    except (TypeError, ValueError):
        return str(raw)


def import_ad_accounts(
    db: Session,
    tenant_id: UUID,
    accounts: List[Dict[str, Any]],
) -> int:
    """Upsert ad accounts returned by ``me/adaccounts``; returns rows written."""
    rows = []
    seen = set()
    now = utcnow()
    for account in accounts:
        raw_id = str(account.get("id") or "").strip()
        if not raw_id:
            continue
        external_id = normalize_account_id(raw_id)
        if external_id in seen:
            continue
        seen.add(external_id)
        rows.append({
            "id": uuid.uuid4(),
            "tenant_id": tenant_id,
            "platform": PlatformEnum.meta.value,
            "external_id": external_id,
            "name": account.get("name"),
            "status": _status_label(account.get("account_status")),
            "created_at": now,
            "updated_at": now,
        })

    if not rows:
        return 0

    stmt = upsert_insert(db, AdAccount).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["tenant_id", "platform", "external_id"],
        set_={
            "name": stmt.excluded.name,
            "status": stmt.excluded.status,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    db.commit()
    logger.info("[ACCOUNTS] Imported %s ad accounts for tenant %s", len(rows), tenant_id)
    return len(rows)


def connect_meta(
    db: Session,
    tenant_id: UUID,
    *,
    access_token: str,
    meta_user_id: str,
    expires_in: int = 0,
    client_factory: Callable[[str], MetaAdsClient] = MetaAdsClient.from_settings,
) -> int:
    """Persist the token, then import visible ad accounts.

    Raises:
        TenantNotFoundError: Unknown tenant
        MetaAdsClientError: Listing accounts failed (the token stays stored)
    """
    if db.get(Tenant, tenant_id) is None:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found")

    store_tenant_credential(
        db,
        tenant_id,
        access_token=access_token,
        meta_user_id=meta_user_id,
        expires_in=expires_in,
    )

    with client_factory(access_token) as client:
        accounts = client.get_ad_accounts()

    return import_ad_accounts(db, tenant_id, accounts)
