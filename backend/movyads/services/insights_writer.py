"""Insights upsert writer.

WHAT:
    Persists a fetched batch of campaign-day insight records in two phases:
    1. Campaign dimension: upsert (tenant_id, external_id) -> name, then
       re-read the id mapping for exactly the external ids in the batch
    2. Daily facts: map each record to its campaign id and upsert
       (tenant_id, campaign_id, day) -> spend/impressions/clicks

WHY:
    - Keyed upserts make re-running a sync convergent: a day is always
      overwritten in full, never accumulated
    - Chunked statements keep parameter counts bounded for large accounts
    - Dimension rows commit before facts, so a fact never references a
      campaign that was not persisted

REFERENCES:
    - movyads/services/sync_service.py (caller)
    - movyads/database.py::upsert_insert (dialect-aware INSERT)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from movyads.database import upsert_insert
from movyads.models import Campaign, CampaignInsightDaily, utcnow
from movyads.services.meta_ads_client import InsightRecord

logger = logging.getLogger(__name__)

CAMPAIGN_CHUNK_SIZE = 200
FACT_CHUNK_SIZE = 500

T = TypeVar("T")


@dataclass
class WriteResult:
    campaigns_touched: int = 0
    facts_written: int = 0


def _chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _campaign_names(records: Iterable[InsightRecord]) -> Dict[str, Optional[str]]:
    """Unique external id -> name; the last non-empty name wins."""
    names: Dict[str, Optional[str]] = {}
    for record in records:
        if record.campaign_name:
            names[record.campaign_external_id] = record.campaign_name
        else:
            names.setdefault(record.campaign_external_id, None)
    return names


def _upsert_campaigns(
    db: Session,
    *,
    tenant_id: UUID,
    ad_account_id: UUID,
    names: Dict[str, Optional[str]],
) -> None:
    external_ids = list(names)
    for chunk in _chunked(external_ids, CAMPAIGN_CHUNK_SIZE):
        now = utcnow()
        rows = [
            {
                "id": uuid.uuid4(),
                "tenant_id": tenant_id,
                "ad_account_id": ad_account_id,
                "external_id": external_id,
                "name": names[external_id],
                "created_at": now,
                "updated_at": now,
            }
            for external_id in chunk
        ]
        stmt = upsert_insert(db, Campaign).values(rows)
        # A nameless record must not blank out a name stored earlier.
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_id"],
            set_={
                "name": func.coalesce(stmt.excluded.name, Campaign.name),
                "ad_account_id": stmt.excluded.ad_account_id,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        db.execute(stmt)
        db.commit()
        logger.debug("[INSIGHTS_WRITER] Upserted %s campaigns", len(rows))


def _campaign_id_map(
    db: Session,
    *,
    tenant_id: UUID,
    external_ids: Sequence[str],
) -> Dict[str, UUID]:
    mapping: Dict[str, UUID] = {}
    for chunk in _chunked(list(external_ids), CAMPAIGN_CHUNK_SIZE):
        rows = db.execute(
            select(Campaign.external_id, Campaign.id).where(
                Campaign.tenant_id == tenant_id,
                Campaign.external_id.in_(chunk),
            )
        ).all()
        mapping.update({external_id: campaign_id for external_id, campaign_id in rows})
    return mapping


def _fact_rows(
    records: Iterable[InsightRecord],
    *,
    tenant_id: UUID,
    ad_account_id: UUID,
    id_map: Dict[str, UUID],
) -> List[dict]:
    """Build fact rows keyed by (campaign, day); the last record for a key wins.

    One ON CONFLICT statement cannot touch the same key twice, so duplicates
    inside the batch are collapsed here.
    """
    by_key: Dict[tuple, dict] = {}
    dropped = 0
    for record in records:
        campaign_id = id_map.get(record.campaign_external_id)
        if campaign_id is None:
            dropped += 1
            continue
        now = utcnow()
        by_key[(campaign_id, record.day)] = {
            "id": uuid.uuid4(),
            "tenant_id": tenant_id,
            "ad_account_id": ad_account_id,
            "campaign_id": campaign_id,
            "day": record.day,
            "spend": Decimal(str(record.spend)),
            "impressions": record.impressions,
            "clicks": record.clicks,
            "created_at": now,
            "updated_at": now,
        }
    if dropped:
        logger.warning(
            "[INSIGHTS_WRITER] Dropped %s records whose campaign could not be resolved",
            dropped,
        )
    return list(by_key.values())


def _upsert_facts(db: Session, rows: List[dict]) -> None:
    for chunk in _chunked(rows, FACT_CHUNK_SIZE):
        stmt = upsert_insert(db, CampaignInsightDaily).values(list(chunk))
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "campaign_id", "day"],
            set_={
                "ad_account_id": stmt.excluded.ad_account_id,
                "spend": stmt.excluded.spend,
                "impressions": stmt.excluded.impressions,
                "clicks": stmt.excluded.clicks,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        db.execute(stmt)
        db.commit()
        logger.debug("[INSIGHTS_WRITER] Upserted %s daily facts", len(chunk))


def write_insights(
    db: Session,
    *,
    tenant_id: UUID,
    ad_account_id: UUID,
    records: Sequence[InsightRecord],
) -> WriteResult:
    """Upsert campaigns then daily facts for one fetched batch.

    Args:
        db: Database session (committed once per chunk)
        tenant_id: Owner of every written row
        ad_account_id: Account the batch was fetched for
        records: Fully materialized fetch result

    Returns:
        WriteResult with distinct campaigns upserted and fact rows written.
        An empty batch issues no statements.
    """
    if not records:
        logger.info("[INSIGHTS_WRITER] Empty batch; nothing to write")
        return WriteResult()

    names = _campaign_names(records)
    _upsert_campaigns(db, tenant_id=tenant_id, ad_account_id=ad_account_id, names=names)
    id_map = _campaign_id_map(db, tenant_id=tenant_id, external_ids=list(names))

    rows = _fact_rows(records, tenant_id=tenant_id, ad_account_id=ad_account_id, id_map=id_map)
    _upsert_facts(db, rows)

    result = WriteResult(campaigns_touched=len(names), facts_written=len(rows))
    logger.info(
        "[INSIGHTS_WRITER] Wrote %s campaigns, %s facts for account %s",
        result.campaigns_touched,
        result.facts_written,
        ad_account_id,
    )
    return result
