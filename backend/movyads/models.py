"""SQLAlchemy ORM models and enums.

This module defines the ingestion schema using UUID primary keys. Every row
outside ``tenants`` carries a ``tenant_id``; provider access tokens are
stored encrypted in ``meta_connections`` (one row per tenant).
"""

import uuid
from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums ---------------------------------------------------------

class PlatformEnum(str, enum.Enum):
    meta = "meta"


class JobStatusEnum(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    done = "done"
    error = "error"


class JobTypeEnum(str, enum.Enum):
    """Job types the worker knows how to dispatch.

    Stored as a plain string on ``Job.job_type`` so rows with types this
    build does not know about can still be claimed and failed cleanly.
    """
    sync_account = "sync_account"


# Core models ----------------------------------------------------

class Tenant(Base):
    """Tenant is the isolation boundary (a workspace).

    Created at workspace bootstrap; the core never deletes tenants.
    """
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    connection = relationship("MetaConnection", back_populates="tenant", uselist=False)
    ad_accounts = relationship("AdAccount", back_populates="tenant")

    def __str__(self):
        return self.name


class MetaConnection(Base):
    """Long-lived ads-platform credential for a tenant.

    WHAT:
        At most one row per tenant (upsert on ``tenant_id``, last write wins).
    WHY:
        The sync worker reads it before every job; the token is encrypted
        at rest with ``movyads.security.encrypt_secret``.
    """
    __tablename__ = "meta_connections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, unique=True)
    meta_user_id = Column(String, nullable=True)
    access_token_enc = Column(Text, nullable=False)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="connection")

    def __str__(self):
        expires = self.token_expires_at.strftime('%Y-%m-%d %H:%M') if self.token_expires_at else 'no-expiry'
        return f"meta connection (expires: {expires})"


class AdAccount(Base):
    """External ad account imported into a tenant.

    ``external_id`` is immutable (``act_...`` on Meta); name and status are
    refreshed on every re-import.
    """
    __tablename__ = "ad_accounts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "platform", "external_id", name="uq_ad_account_tenant_platform_external"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    platform = Column(String, nullable=False, default=PlatformEnum.meta.value)
    external_id = Column(String, nullable=False)
    name = Column(String, nullable=True)
    status = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="ad_accounts")

    def __str__(self):
        return f"{self.name or self.external_id} ({self.platform})"


class Campaign(Base):
    """Campaign dimension row, created/refreshed by the insights writer.

    Never deleted: a campaign missing from a fetch batch is simply not touched.
    """
    __tablename__ = "campaigns"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_campaign_tenant_external"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    ad_account_id = Column(Uuid, ForeignKey("ad_accounts.id"), nullable=True, index=True)
    external_id = Column(String, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    facts = relationship("CampaignInsightDaily", back_populates="campaign")

    def __str__(self):
        return self.name or self.external_id


class CampaignInsightDaily(Base):
    """One tenant-campaign-day measurement.

    Base measures only (spend, impressions, clicks). Ratios are computed on
    read by ``movyads.services.metric_aggregator`` so stored values never
    drift from the formulas. Re-ingesting a day overwrites the measures.
    """
    __tablename__ = "campaign_insights_daily"
    __table_args__ = (
        UniqueConstraint("tenant_id", "campaign_id", "day", name="uq_insight_tenant_campaign_day"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    ad_account_id = Column(Uuid, ForeignKey("ad_accounts.id"), nullable=True, index=True)
    campaign_id = Column(Uuid, ForeignKey("campaigns.id"), nullable=False)
    day = Column(Date, nullable=False, index=True)

    spend = Column(Numeric(18, 4), nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    campaign = relationship("Campaign", back_populates="facts")

    def __str__(self):
        return f"{self.day.isoformat()} - {self.campaign_id} - ${self.spend}"


class Job(Base):
    """Durable queue item.

    Status moves ``pending -> processing -> done|error`` and never back.
    The only path into ``processing`` is the conditional update in
    ``movyads.services.job_queue.claim``. ``payload`` holds the request
    fields and, after completion, the merged ``result``/``error`` keys.
    """
    __tablename__ = "job_queue"
    __table_args__ = (
        # Claim query: oldest pending first
        Index("ix_job_queue_status_created_at", "status", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    status = Column(String, nullable=False, default=JobStatusEnum.pending.value)
    job_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    claimed_at = Column(DateTime(timezone=True), nullable=True)  # Informational; no reaper reads it

    def __str__(self):
        return f"{self.job_type} ({self.status})"
