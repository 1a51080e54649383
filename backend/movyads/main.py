"""FastAPI application entrypoint.

Includes the tenant, sync and reporting routers and exposes a healthcheck
endpoint. The sync work itself runs in the worker process
(``python -m movyads.workers.start_worker``).
"""

import logging

from fastapi import FastAPI

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

from .deps import get_settings  # noqa: E402
from .routers import connections as connections_router  # noqa: E402
from .routers import reports as reports_router  # noqa: E402
from .routers import sync as sync_router  # noqa: E402
from .telemetry import init_sentry  # noqa: E402
from . import schemas  # noqa: E402

# Import models so Alembic can discover metadata
from . import models  # noqa: E402,F401


def create_app() -> FastAPI:
    init_sentry()

    app = FastAPI(
        title="movyads API",
        description="""
        movyads ingests Meta ads performance data into a per-tenant store.

        This API provides endpoints for:
        - Tenant bootstrap and Meta connection (token + ad account import)
        - Queueing account syncs and inspecting queue jobs
        - Daily, per-account and per-campaign reporting

        Every endpoint except /health requires `Authorization: Bearer <MOVYADS_API_TOKEN>`.
        """,
        version="1.0.0",
    )

    settings = get_settings()
    if not settings.MOVYADS_API_TOKEN:
        logger.warning("[STARTUP] MOVYADS_API_TOKEN is not set; authenticated endpoints will return 503")

    app.include_router(connections_router.router)
    app.include_router(sync_router.router)
    app.include_router(reports_router.router)

    @app.get(
        "/health",
        response_model=schemas.HealthResponse,
        tags=["Health"],
        summary="Health check",
        description="Unauthenticated liveness probe for load balancers.",
    )
    def health():
        return schemas.HealthResponse(status="ok")

    return app


app = create_app()
