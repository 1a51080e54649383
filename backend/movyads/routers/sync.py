"""Sync queue endpoints.

WHAT:
    - POST /sync/enqueue: queue a ``sync_account`` job for an ad account
    - GET /jobs, GET /jobs/{job_id}: inspect queue rows
    - POST /jobs/{job_id}/requeue: retry an errored or orphaned job

WHY:
    Producers only ever insert queue rows; the worker process does the work,
    so these endpoints return immediately.

REFERENCES:
    - movyads/services/job_queue.py
    - movyads/workers/start_worker.py
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..deps import get_settings, require_service_token
from ..models import AdAccount, JobTypeEnum
from ..services import job_queue

logger = logging.getLogger(__name__)


router = APIRouter(
    tags=["Sync"],
    dependencies=[Depends(require_service_token)],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        404: {"model": schemas.ErrorResponse, "description": "Not Found"},
    }
)


@router.post(
    "/sync/enqueue",
    response_model=schemas.EnqueueResponse,
    summary="Queue an ad account sync",
)
def enqueue_sync(
    body: schemas.EnqueueSyncRequest,
    db: Session = Depends(get_db),
):
    """Validate the account exists, then insert a pending ``sync_account`` job."""
    if db.get(AdAccount, body.target_account_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ad account not found")

    lookback_days = body.lookback_days or get_settings().MOVYADS_SYNC_DAYS_DEFAULT
    payload = schemas.SyncAccountPayload(
        target_account_id=body.target_account_id,
        lookback_days=lookback_days,
    )
    job_id = job_queue.enqueue(
        db,
        JobTypeEnum.sync_account.value,
        payload.model_dump(mode="json"),
    )
    return schemas.EnqueueResponse(job_id=job_id)


@router.get(
    "/jobs",
    response_model=schemas.JobListResponse,
    summary="List recent jobs",
)
def list_jobs(
    db: Session = Depends(get_db),
    job_status: Optional[str] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(50, ge=1, le=500, description="Number of results to return"),
):
    jobs = job_queue.list_jobs(db, status=job_status, limit=limit)
    return schemas.JobListResponse(jobs=[schemas.JobOut.model_validate(job) for job in jobs])


@router.get(
    "/jobs/{job_id}",
    response_model=schemas.JobOut,
    summary="Get a job",
)
def get_job(job_id: UUID, db: Session = Depends(get_db)):
    job = job_queue.get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return schemas.JobOut.model_validate(job)


@router.post(
    "/jobs/{job_id}/requeue",
    response_model=schemas.EnqueueResponse,
    summary="Requeue an errored or orphaned job",
)
def requeue_job(job_id: UUID, db: Session = Depends(get_db)):
    try:
        new_id = job_queue.requeue(db, job_id)
    except job_queue.JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except job_queue.JobNotRequeueableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return schemas.EnqueueResponse(job_id=new_id)
