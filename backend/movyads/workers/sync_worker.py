"""Job dispatch for the database-backed sync worker.

WHAT:
    Maps a claimed job's ``job_type`` to its payload model and handler,
    runs it, and records the outcome on the queue row.

WHY:
    - Keeps the poll loop (start_worker.py) free of job-specific logic
    - Every outcome of a claimed job ends in ``done`` or ``error``: unknown
      types, invalid payloads and handler exceptions all become ``fail``
    - Each job type declares a pydantic payload model, and results are
      merged under a dedicated ``result`` key instead of blindly over the
      request fields

REFERENCES:
    - movyads/services/job_queue.py
    - movyads/services/sync_service.py
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel
from sqlalchemy.orm import Session

from movyads.models import Job, JobStatusEnum, JobTypeEnum, utcnow
from movyads.schemas import SyncAccountPayload
from movyads.services import job_queue
from movyads.services.sync_service import sync_account
from movyads.telemetry import capture_exception

logger = logging.getLogger(__name__)

JobHandler = Callable[[Session, BaseModel], BaseModel]

JOB_PAYLOAD_MODELS: Dict[str, Type[BaseModel]] = {
    JobTypeEnum.sync_account.value: SyncAccountPayload,
}

JOB_HANDLERS: Dict[str, JobHandler] = {
    JobTypeEnum.sync_account.value: sync_account,
}


def process_job(
    db: Session,
    job: Job,
    *,
    handlers: Optional[Dict[str, JobHandler]] = None,
) -> str:
    """Run one claimed job and mark it done or error.

    Returns:
        The final status (``done`` or ``error``).

    Raises:
        Whatever ``complete``/``fail`` raise when the outcome itself cannot be
        recorded; the job is then left ``processing``.
    """
    handlers = JOB_HANDLERS if handlers is None else handlers
    job_id = job.id
    job_type = job.job_type

    handler = handlers.get(job_type)
    payload_model = JOB_PAYLOAD_MODELS.get(job_type)
    if handler is None or payload_model is None:
        logger.error("[SYNC_WORKER] Unknown job type %r for job %s", job_type, job_id)
        job_queue.fail(db, job_id, f"Unknown job type: {job_type}")
        return JobStatusEnum.error.value

    try:
        payload = payload_model.model_validate(job.payload or {})
        logger.info("[SYNC_WORKER] Running %s job %s", job_type, job_id)
        result = handler(db, payload)
    except Exception as e:
        db.rollback()
        logger.exception("[SYNC_WORKER] Job %s failed: %s", job_id, e)
        capture_exception(e, extra={"job_id": str(job_id), "job_type": job_type})
        job_queue.fail(db, job_id, str(e) or e.__class__.__name__)
        return JobStatusEnum.error.value

    outcome: Dict[str, Any] = {
        "result": result.model_dump(mode="json"),
        "finished_at": utcnow().isoformat(),
    }
    job_queue.complete(db, job_id, outcome)
    return JobStatusEnum.done.value
