"""
Sentry Error Tracking
=====================

Centralized error tracking using Sentry.

Related files:
- movyads/main.py: Initializes Sentry on app creation
- movyads/workers/start_worker.py: Captures job and poll failures

Settings (movyads/deps.py, environment or backend/.env):
- SENTRY_DSN: Sentry project DSN (required for Sentry to work)
- ENVIRONMENT: Environment name (production, staging, development)
- RELEASE_VERSION: Optional release tag
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from movyads.deps import get_settings

logger = logging.getLogger(__name__)


def get_sentry_dsn() -> Optional[str]:
    """Get Sentry DSN from settings.

    Returns:
        DSN string if configured, None otherwise.
    """
    return get_settings().SENTRY_DSN or None


def is_enabled() -> bool:
    return sentry_sdk.get_client().is_active()


def init_sentry() -> bool:
    """
    Initialize the Sentry SDK.

    Returns:
        True if Sentry was initialized, False when no DSN is configured or
        initialization failed.

    Example:
        from movyads.telemetry import init_sentry

        def create_app():
            init_sentry()
            app = FastAPI()
            ...
    """
    dsn = get_sentry_dsn()
    if not dsn:
        logger.info("[SENTRY] SENTRY_DSN not set - error tracking disabled")
        return False

    settings = get_settings()
    environment = settings.ENVIRONMENT

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(
                    transaction_style="endpoint",  # Use route paths as transaction names
                ),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # Capture INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,  # Tokens and tenant names stay out of events
            release=settings.RELEASE_VERSION,
        )
        logger.info("[SENTRY] Initialized for %s environment", environment)
        return True

    except Exception as e:
        logger.error("[SENTRY] Failed to initialize: %s", e)
        return False


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    Use this for exceptions that are caught and handled (job failures, poll
    errors) but should still be tracked.

    Args:
        exception: The exception to capture
        extra: Additional context to attach to the event

    Example:
        except Exception as e:
            capture_exception(e, extra={"job_id": str(job.id)})
    """
    if not is_enabled():
        logger.debug("[SENTRY] Disabled; not capturing %r", exception)
        return

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error("[SENTRY] Failed to capture exception: %s", e)

