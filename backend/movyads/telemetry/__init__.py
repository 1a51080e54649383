"""
Telemetry Module
================

Error tracking for the movyads API and sync worker.

Components:
- sentry.py: Error tracking and performance monitoring

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled when unset)
- ENVIRONMENT: Environment name (production, staging, development)

Usage:
    from movyads.telemetry import init_sentry, capture_exception

    init_sentry()  # once per process

Related modules:
- movyads/main.py: Initializes Sentry on app creation
- movyads/workers/start_worker.py: Initializes Sentry and reports job failures
"""

from movyads.telemetry.sentry import (
    init_sentry,
    capture_exception,
)


__all__ = [
    "init_sentry",
    "capture_exception",
]
