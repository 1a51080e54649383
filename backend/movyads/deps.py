"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException, status
from pydantic_settings import BaseSettings, SettingsConfigDict

from .security import tokens_match


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    # Shared bearer token for server-to-server calls; unset disables the API
    MOVYADS_API_TOKEN: Optional[str] = None

    # Worker
    MOVYADS_WORKER_INTERVAL_SECONDS: float = 5.0
    MOVYADS_SYNC_DAYS_DEFAULT: int = 7

    # Meta Graph API
    META_GRAPH_API_VERSION: str = "v20.0"
    META_HTTP_TIMEOUT_SECONDS: float = 30.0
    META_CALLS_PER_HOUR: int = 200  # Process-wide Graph API budget

    # Telemetry
    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"
    RELEASE_VERSION: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def require_service_token(
    authorization: Optional[str] = Header(default=None),
) -> None:
    """Check ``Authorization: Bearer <MOVYADS_API_TOKEN>``.

    503 when no token is configured (the API refuses to run open), 401 when
    the header is missing or does not match.
    """
    expected = get_settings().MOVYADS_API_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="MOVYADS_API_TOKEN is not configured",
        )

    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization Bearer token")

    # Remove "Bearer " prefix (case-insensitive)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization Bearer token")

    if not tokens_match(token.strip(), expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
