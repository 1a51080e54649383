"""Durable database-backed job queue.

WHAT:
    Work items live in the ``job_queue`` table and move
    ``pending -> processing -> done | error``. Producers call ``enqueue``;
    the worker loop calls ``claim`` then ``complete`` or ``fail``.

WHY:
    - The queue survives restarts and needs nothing beyond the database
    - ``claim`` is a compare-and-swap: the conditional UPDATE guarded by
      ``status = 'pending'`` is the only mutual-exclusion point, so any
      number of workers can poll without double-processing a job
    - Losing a race returns None instead of retrying; the loop simply
      polls again on its next iteration

KNOWN GAP:
    A worker that dies between claim and complete/fail leaves the job in
    ``processing`` forever. ``requeue`` is the manual remedy.

REFERENCES:
    - movyads/workers/start_worker.py (poll loop)
    - movyads/routers/sync.py (enqueue, inspection, requeue)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from movyads.models import Job, JobStatusEnum, utcnow

logger = logging.getLogger(__name__)

# Keys written by the queue itself; everything else is the request.
OUTCOME_KEYS = ("result", "error", "finished_at", "requeued_as")

REQUEUEABLE_STATUSES = (JobStatusEnum.error.value, JobStatusEnum.processing.value)


class JobNotFoundError(LookupError):
    """Raised when a job id does not exist."""


class JobNotRequeueableError(ValueError):
    """Raised when requeue targets a job that is still pending or done."""


def enqueue(db: Session, job_type: str, payload: Dict[str, Any]) -> UUID:
    """Insert a new pending job and return its id.

    No duplicate suppression: enqueueing the same request twice yields two
    jobs.
    """
    job = Job(
        status=JobStatusEnum.pending.value,
        job_type=job_type,
        payload=dict(payload),
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(job)
    db.commit()
    logger.info("[JOB_QUEUE] Enqueued %s job %s", job_type, job.id)
    return job.id


def _next_pending(db: Session) -> Optional[UUID]:
    return db.execute(
        select(Job.id)
        .where(Job.status == JobStatusEnum.pending.value)
        .order_by(Job.created_at, Job.id)
        .limit(1)
    ).scalar_one_or_none()


def _try_mark_processing(db: Session, job_id: UUID) -> bool:
    """Conditional transition; False when another claimant got there first."""
    now = utcnow()
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == JobStatusEnum.pending.value)
        .values(
            status=JobStatusEnum.processing.value,
            claimed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def claim(db: Session) -> Optional[Job]:
    """Claim the oldest pending job, or return None.

    Returns None both when the queue is empty and when another worker won
    the race for the selected row. Database errors propagate.
    """
    job_id = _next_pending(db)
    if job_id is None:
        return None

    if not _try_mark_processing(db, job_id):
        logger.info("[JOB_QUEUE] Lost claim race for job %s", job_id)
        return None

    job = db.get(Job, job_id, populate_existing=True)
    logger.info("[JOB_QUEUE] Claimed %s job %s", job.job_type, job.id)
    return job


def _merge_payload(
    db: Session,
    job_id: UUID,
    *,
    status: JobStatusEnum,
    extra: Dict[str, Any],
) -> Job:
    job = db.get(Job, job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")

    # Reassign so the JSON column is flagged dirty.
    job.payload = {**(job.payload or {}), **extra}
    job.status = status.value
    job.updated_at = utcnow()
    db.commit()
    return job


def complete(db: Session, job_id: UUID, result_payload: Dict[str, Any]) -> Job:
    """Mark a job done and shallow-merge ``result_payload`` into its payload."""
    try:
        job = _merge_payload(db, job_id, status=JobStatusEnum.done, extra=result_payload)
    except Exception:
        db.rollback()
        logger.exception("[JOB_QUEUE] Failed to mark job %s done", job_id)
        raise
    logger.info("[JOB_QUEUE] Job %s done", job_id)
    return job


def fail(db: Session, job_id: UUID, error: str) -> Job:
    """Mark a job errored and record the message under ``error``."""
    try:
        job = _merge_payload(db, job_id, status=JobStatusEnum.error, extra={"error": error})
    except Exception:
        db.rollback()
        logger.exception("[JOB_QUEUE] Failed to mark job %s as error", job_id)
        raise
    logger.warning("[JOB_QUEUE] Job %s failed: %s", job_id, error)
    return job


def get_job(db: Session, job_id: UUID) -> Optional[Job]:
    return db.get(Job, job_id)


def list_jobs(db: Session, status: Optional[str] = None, limit: int = 50) -> List[Job]:
    """Most recent jobs first, optionally filtered by status."""
    stmt = select(Job).order_by(Job.created_at.desc()).limit(limit)
    if status:
        stmt = stmt.where(Job.status == status)
    return list(db.execute(stmt).scalars())


def requeue(db: Session, job_id: UUID) -> UUID:
    """Create a fresh pending job from an errored or orphaned one.

    The original request fields are copied (queue-written keys stripped).
    The old job keeps its status and gains ``requeued_as`` pointing at the
    new job.

    Raises:
        JobNotFoundError: Unknown job id
        JobNotRequeueableError: Job is pending or done
    """
    job = db.get(Job, job_id)
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    if job.status not in REQUEUEABLE_STATUSES:
        raise JobNotRequeueableError(
            f"Job {job_id} is {job.status}; only error or processing jobs can be requeued"
        )

    request = {k: v for k, v in (job.payload or {}).items() if k not in OUTCOME_KEYS}
    new_id = enqueue(db, job.job_type, request)

    job.payload = {**(job.payload or {}), "requeued_as": str(new_id)}
    job.updated_at = utcnow()
    db.commit()
    logger.info("[JOB_QUEUE] Requeued job %s as %s", job_id, new_id)
    return new_id
