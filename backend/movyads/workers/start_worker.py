#!/usr/bin/env python3
"""Start the database-backed sync worker.

WHAT:
    Single-threaded poll loop: claim the oldest pending job, dispatch it,
    record the outcome, repeat. Drains the queue (up to 50 jobs per cycle)
    and sleeps a fixed interval when it is empty.

WHY:
    - The queue lives in the database, so the worker needs no broker
    - Claiming is a compare-and-swap, so running more than one worker is
      safe (the reference deployment runs one)
    - Job failures end in ``error`` on the row; loop-level failures (claim,
      recording an outcome) are logged, reported to Sentry and retried
      after the interval

USAGE:
    # From backend directory:
    python -m movyads.workers.start_worker

PRODUCTION:
    # Use process manager like supervisord or systemd
    # Example supervisord config:
    #
    # [program:movyads-worker]
    # command=python -m movyads.workers.start_worker
    # directory=/app/backend
    # autostart=true
    # autorestart=true
    # stdout_logfile=/var/log/movyads-worker.log
"""

import logging
import sys
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_JOBS_PER_CYCLE = 50


def run_cycle(session_factory, *, max_jobs: int = MAX_JOBS_PER_CYCLE) -> int:
    """Claim and process jobs until the queue is empty or ``max_jobs`` ran.

    Returns:
        Number of jobs processed in this cycle.
    """
    from movyads.services import job_queue
    from movyads.workers.sync_worker import process_job

    processed = 0
    while processed < max_jobs:
        with session_factory() as db:
            job = job_queue.claim(db)
            if job is None:
                break
            process_job(db, job)
        processed += 1

    if processed >= max_jobs:
        logger.warning(
            "[SYNC_WORKER] Processed %s jobs in one cycle; yielding before polling again",
            processed,
        )
    return processed


def run_worker(
    session_factory=None,
    *,
    interval_seconds: Optional[float] = None,
    max_cycles: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    max_jobs_per_cycle: int = MAX_JOBS_PER_CYCLE,
) -> None:
    """Poll forever (or ``max_cycles`` times), sleeping between cycles.

    Args:
        session_factory: Callable returning a Session usable as a context
            manager (defaults to ``movyads.database.get_sync_session``)
        interval_seconds: Sleep between cycles (defaults to
            MOVYADS_WORKER_INTERVAL_SECONDS)
        max_cycles: Stop after this many cycles (tests); None runs forever
        sleep: Injectable sleep function
        max_jobs_per_cycle: Drain guard
    """
    from movyads.telemetry import capture_exception

    if session_factory is None:
        from movyads.database import get_sync_session
        session_factory = get_sync_session
    if interval_seconds is None:
        from movyads.deps import get_settings
        interval_seconds = get_settings().MOVYADS_WORKER_INTERVAL_SECONDS

    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        cycles += 1
        try:
            run_cycle(session_factory, max_jobs=max_jobs_per_cycle)
        except Exception as e:
            logger.exception("[SYNC_WORKER] Poll cycle failed: %s", e)
            capture_exception(e, extra={"component": "sync_worker_loop"})

        if max_cycles is not None and cycles >= max_cycles:
            break
        sleep(interval_seconds)


def main():
    """Start the sync worker."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    try:
        # Importing the database/security modules validates DATABASE_URL and
        # TOKEN_ENCRYPTION_KEY; either missing is fatal.
        from movyads.database import get_sync_session
        import movyads.security  # noqa: F401
        from movyads.deps import get_settings
        from movyads.telemetry import init_sentry

        settings = get_settings()
        init_sentry()

        logger.info("=" * 60)
        logger.info("Starting movyads sync worker")
        logger.info("=" * 60)
        logger.info("Handles: sync_account")
        logger.info("Queue: job_queue table")
        logger.info("Interval: %ss", settings.MOVYADS_WORKER_INTERVAL_SECONDS)
        logger.info("=" * 60)

        run_worker(get_sync_session, interval_seconds=settings.MOVYADS_WORKER_INTERVAL_SECONDS)

    except RuntimeError as e:
        logger.error("Worker configuration error: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
