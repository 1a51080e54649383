"""Token service for encrypting and persisting tenant credentials.

WHAT:
    Upserts the single ``meta_connections`` row of a tenant (encrypted
    access token) and reads it back decrypted for the sync worker.

WHY:
    - Keeps encryption logic out of routers and the sync orchestrator
    - One credential per tenant: the upsert conflicts on ``tenant_id`` so
      reconnecting replaces the token (last write wins)

REFERENCES:
    - movyads/security.py (encrypt_secret / decrypt_secret)
    - movyads/services/sync_service.py (consumes decrypted tokens)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
import uuid
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from movyads.database import upsert_insert
from movyads.models import MetaConnection, utcnow
from movyads.security import encrypt_secret, decrypt_secret

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    access_token: str
    expires_at: Optional[datetime] = None
    meta_user_id: Optional[str] = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # SQLite returns naive datetimes; they were written as UTC.
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc)


def store_tenant_credential(
    db: Session,
    tenant_id: UUID,
    *,
    access_token: str,
    meta_user_id: Optional[str] = None,
    expires_in: Optional[int] = None,
) -> None:
    """Encrypt and upsert the tenant's access token.

    Args:
        tenant_id: Owning tenant
        access_token: Plaintext long-lived token
        meta_user_id: Meta user the token belongs to
        expires_in: Lifetime in seconds; 0/None stores no expiry
    """
    now = utcnow()
    expires_at = now + timedelta(seconds=expires_in) if expires_in else None
    encrypted = encrypt_secret(access_token, context=f"meta:{tenant_id}:access")

    stmt = upsert_insert(db, MetaConnection).values(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        meta_user_id=meta_user_id,
        access_token_enc=encrypted,
        token_expires_at=expires_at,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["tenant_id"],
        set_={
            "meta_user_id": stmt.excluded.meta_user_id,
            "access_token_enc": stmt.excluded.access_token_enc,
            "token_expires_at": stmt.excluded.token_expires_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    db.commit()
    logger.info("[TOKEN_SERVICE] Stored Meta credential for tenant %s", tenant_id)


def get_credential(db: Session, tenant_id: UUID) -> Optional[Credential]:
    """Return the tenant's decrypted credential, or None when not connected."""
    connection = db.execute(
        select(MetaConnection)
        .where(MetaConnection.tenant_id == tenant_id)
        .order_by(MetaConnection.updated_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if connection is None:
        return None

    access_token = decrypt_secret(
        connection.access_token_enc,
        context=f"meta:{tenant_id}:access",
    )
    return Credential(
        access_token=access_token,
        expires_at=connection.token_expires_at,
        meta_user_id=connection.meta_user_id,
    )
