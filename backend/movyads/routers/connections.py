"""Tenant bootstrap and Meta connection endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import require_service_token
from ..services.account_service import TenantNotFoundError, connect_meta, create_tenant
from ..services.meta_ads_client import MetaAdsClient, MetaAdsClientError

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/tenants",
    tags=["Tenants"],
    dependencies=[Depends(require_service_token)],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Not Found"},
    }
)


def get_meta_client_factory():
    """Client factory for the connect flow (overridden in tests)."""
    return MetaAdsClient.from_settings


@router.post(
    "",
    response_model=schemas.TenantCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a tenant",
)
def create_tenant_endpoint(body: schemas.TenantCreate, db: Session = Depends(get_db)):
    tenant = create_tenant(db, body.name)
    return schemas.TenantCreateResponse(tenant_id=tenant.id)


@router.post(
    "/{tenant_id}/meta/connect",
    response_model=schemas.MetaConnectResponse,
    summary="Store a Meta token and import its ad accounts",
    description="""
    Upserts the tenant's encrypted Meta credential (one per tenant, last
    write wins) and imports every ad account returned by ``me/adaccounts``.
    """
)
def connect_meta_endpoint(
    tenant_id: UUID,
    body: schemas.MetaConnectRequest,
    db: Session = Depends(get_db),
    client_factory=Depends(get_meta_client_factory),
):
    try:
        imported = connect_meta(
            db,
            tenant_id,
            access_token=body.access_token,
            meta_user_id=body.meta_user_id,
            expires_in=body.expires_in,
            client_factory=client_factory,
        )
    except TenantNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    except MetaAdsClientError as e:
        logger.warning("[ACCOUNTS] Meta connect failed for tenant %s: %s", tenant_id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return schemas.MetaConnectResponse(imported=imported)
