"""Meta Ads API Client Service.

WHAT:
    Thin httpx wrapper over the Meta Graph API providing rate-limited,
    cursor-paginated access to campaign-level daily insights and to the ad
    accounts visible to a token.

WHY:
    - Centralized Meta API interaction (single source of truth)
    - Rate limiting enforcement (META_CALLS_PER_HOUR, 200 calls/hour by default)
    - Explicit pagination with a page guard, so a misbehaving upstream can
      never keep a sync running forever
    - Upstream error messages are preserved verbatim for the job error field

WHERE USED:
    - movyads/services/sync_service.py (sync_account job handler)
    - movyads/services/account_service.py (connect -> import ad accounts)

RATE LIMITS:
    - META_CALLS_PER_HOUR API calls per hour across the whole process,
      enforced by @rate_limit. The limiter sleeps the calling thread, so a
      worker that exhausts the budget pauses until the window frees up.

REFERENCES:
    - https://developers.facebook.com/docs/marketing-api/insights
    - https://developers.facebook.com/docs/graph-api/results (paging.next)
"""

import json
import logging
from collections import deque
from dataclasses import dataclass
from datetime import date
from functools import wraps
from time import time, sleep
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import httpx

from movyads.services.metric_aggregator import safe_int, safe_num

logger = logging.getLogger(__name__)

META_GRAPH_HOST = "https://graph.facebook.com"
DEFAULT_GRAPH_API_VERSION = "v20.0"

INSIGHTS_PAGE_SIZE = 500
MAX_PAGES = 50
DEFAULT_TIMEOUT_SECONDS = 30.0

INSIGHT_FIELDS = [
    "campaign_id",
    "campaign_name",
    "spend",
    "impressions",
    "clicks",
    "date_start",
    "date_stop",
]

AD_ACCOUNT_FIELDS = ["id", "name", "account_status"]


def graph_base_url(version: str) -> str:
    """Graph API root for ``version`` (e.g. ``v20.0``)."""
    return f"{META_GRAPH_HOST}/{version}"


def _configured_calls_per_hour() -> int:
    from movyads.deps import get_settings

    return get_settings().META_CALLS_PER_HOUR


def rate_limit(calls_per_hour: Union[int, Callable[[], int]]):
    """Decorator to enforce rate limiting using a sliding window.

    WHAT:
        Tracks call timestamps in a deque and sleeps when the next call
        would exceed the budget. ``calls_per_hour`` is either a fixed int
        or a callable read on every call (so the budget follows settings).

    WHY:
        Meta throttles per app/account; staying under the budget avoids
        429s mid-pagination, which would fail the whole job.
    """
    call_times = deque()

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            budget = calls_per_hour() if callable(calls_per_hour) else calls_per_hour
            now = time()

            # Drop calls older than 1 hour, and any beyond the current budget
            while call_times and (call_times[0] < now - 3600 or len(call_times) > budget):
                call_times.popleft()

            if len(call_times) >= budget:
                sleep_time = 3600 - (now - call_times[0]) + 1
                logger.warning(
                    "[META_CLIENT] Rate limit reached (%s calls/hour). Sleeping for %.1fs",
                    budget,
                    sleep_time,
                )
                sleep(sleep_time)

            call_times.append(now)
            return func(*args, **kwargs)
        return wrapper
    return decorator


class MetaAdsClientError(Exception):
    """Base exception for Meta Ads Client errors.

    ``str(error)`` is the upstream message when Meta supplied one.
    """

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status


class MetaAdsValidationError(MetaAdsClientError):
    """Raised when request is malformed (400)."""
    pass


class MetaAdsAuthenticationError(MetaAdsClientError):
    """Raised when authentication fails (401)."""
    pass


class MetaAdsPermissionError(MetaAdsClientError):
    """Raised when permissions are insufficient (403)."""
    pass


class MetaAdsRateLimitError(MetaAdsClientError):
    """Raised when Meta throttles the caller (429)."""
    pass


_STATUS_ERRORS = {
    400: MetaAdsValidationError,
    401: MetaAdsAuthenticationError,
    403: MetaAdsPermissionError,
    429: MetaAdsRateLimitError,
}


@dataclass(frozen=True)
class InsightRecord:
    """One campaign's measures for one day, already coerced to numbers."""

    campaign_external_id: str
    campaign_name: Optional[str]
    spend: float
    impressions: int
    clicks: int
    day: date


def normalize_account_id(external_id: str) -> str:
    """Meta ad account ids are addressed as ``act_<id>``."""
    external_id = external_id.strip()
    if external_id.startswith("act_"):
        return external_id
    return f"act_{external_id}"


def parse_insight_row(row: Dict[str, Any]) -> Optional[InsightRecord]:
    """Flatten one insights row; returns None when it cannot be keyed.

    Measures are coerced with ``safe_num``/``safe_int`` so a malformed
    figure becomes 0 instead of failing the batch.
    """
    campaign_id = str(row.get("campaign_id") or "").strip()
    raw_day = str(row.get("date_start") or "")[:10]
    if not campaign_id or not raw_day:
        logger.warning("[META_CLIENT] Skipping insight row without campaign/date: %s", row)
        return None
    try:
        day = date.fromisoformat(raw_day)
    except ValueError:
        logger.warning("[META_CLIENT] Skipping insight row with invalid date %r", raw_day)
        return None

    name = row.get("campaign_name")
    return InsightRecord(
        campaign_external_id=campaign_id,
        campaign_name=str(name) if name else None,
        spend=safe_num(row.get("spend")),
        impressions=safe_int(row.get("impressions")),
        clicks=safe_int(row.get("clicks")),
        day=day,
    )


class MetaAdsClient:
    """Client for the Meta Marketing API insights and ad account edges.

    Usage:
        ```python
        with MetaAdsClient(access_token="TOKEN") as client:
            records = client.fetch_campaign_insights("act_123", since, until)
        ```
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = graph_base_url(DEFAULT_GRAPH_API_VERSION),
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        page_size: int = INSIGHTS_PAGE_SIZE,
        max_pages: int = MAX_PAGES,
        http_client: Optional[httpx.Client] = None,
    ):
        """Initialize the client.

        Args:
            access_token: Long-lived Meta user/system token
            base_url: Graph API root including version
            timeout: Per-request timeout in seconds
            page_size: ``limit`` sent on the first page
            max_pages: Pagination guard (pages per fetch)
            http_client: Optional pre-built httpx client (tests inject a
                MockTransport here)
        """
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=timeout)

        logger.info("[META_CLIENT] Initialized (base_url=%s)", self.base_url)

    @classmethod
    def from_settings(cls, access_token: str, settings=None) -> "MetaAdsClient":
        """Build a client from META_GRAPH_API_VERSION / META_HTTP_TIMEOUT_SECONDS.

        Used by the sync job handler and the connect endpoint.
        """
        if settings is None:
            from movyads.deps import get_settings
            settings = get_settings()
        return cls(
            access_token,
            base_url=graph_base_url(settings.META_GRAPH_API_VERSION),
            timeout=settings.META_HTTP_TIMEOUT_SECONDS,
        )

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> "MetaAdsClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def iter_campaign_insights(
        self,
        account_external_id: str,
        since: date,
        until: date,
    ) -> Iterator[InsightRecord]:
        """Lazily yield per-(campaign, day) insight records for [since, until].

        Raises:
            MetaAdsClientError (or a status-specific subclass) on any
            non-2xx or malformed page. Records already yielded belong to a
            failed fetch and must be discarded by the caller.
        """
        account_id = normalize_account_id(account_external_id)
        params = {
            "level": "campaign",
            "time_increment": 1,
            "time_range": json.dumps({"since": since.isoformat(), "until": until.isoformat()}),
            "fields": ",".join(INSIGHT_FIELDS),
            "limit": self.page_size,
        }
        logger.info(
            "[META_CLIENT] Fetching campaign insights for %s: %s to %s",
            account_id,
            since,
            until,
        )
        for row in self._paginate(f"{self.base_url}/{account_id}/insights", params):
            record = parse_insight_row(row)
            if record is not None:
                yield record

    def fetch_campaign_insights(
        self,
        account_external_id: str,
        since: date,
        until: date,
    ) -> List[InsightRecord]:
        """Materialize ``iter_campaign_insights``; all pages or an exception."""
        records = list(self.iter_campaign_insights(account_external_id, since, until))
        logger.info("[META_CLIENT] Fetched %s insight records", len(records))
        return records

    def get_ad_accounts(self) -> List[Dict[str, Any]]:
        """List ad accounts visible to the token (``me/adaccounts``).

        Returns:
            Dicts with ``id`` (``act_...``), ``name`` and ``account_status``.
        """
        params = {"fields": ",".join(AD_ACCOUNT_FIELDS), "limit": 100}
        accounts = list(self._paginate(f"{self.base_url}/me/adaccounts", params))
        logger.info("[META_CLIENT] Fetched %s ad accounts", len(accounts))
        return accounts

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _paginate(self, url: str, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        """Follow ``paging.next`` until it is absent or the page guard trips."""
        next_url: Optional[str] = url
        next_params: Optional[Dict[str, Any]] = {**params, "access_token": self.access_token}
        pages = 0

        while next_url:
            if pages >= self.max_pages:
                logger.warning(
                    "[META_CLIENT] Page guard reached (%s pages) for %s; stopping pagination",
                    self.max_pages,
                    url,
                )
                break

            body = self._get_page(next_url, next_params)
            pages += 1

            data = body.get("data")
            if not isinstance(data, list):
                raise MetaAdsClientError("Malformed Meta response: 'data' is not a list")
            for row in data:
                if isinstance(row, dict):
                    yield row

            paging = body.get("paging") or {}
            next_url = paging.get("next") if isinstance(paging, dict) else None
            # The next URL already embeds the cursor, fields and token.
            next_params = None

    @rate_limit(calls_per_hour=_configured_calls_per_hour)
    def _get_page(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            response = self._http.get(url, params=params)
        except httpx.RequestError as e:
            logger.error("[META_CLIENT] Transport error calling Meta: %s", e)
            raise MetaAdsClientError(f"Meta request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            self._handle_api_error(response, body)

        if not isinstance(body, dict):
            raise MetaAdsClientError(
                f"Malformed Meta response (HTTP {response.status_code}): expected a JSON object",
                http_status=response.status_code,
            )
        return body

    def _handle_api_error(self, response: httpx.Response, body: Any) -> None:
        """Translate a non-2xx response into a specific exception.

        The message is Meta's ``error.message`` verbatim when present.
        """
        http_status = response.status_code
        message = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = body["error"].get("message")
        if not message:
            message = f"HTTP {http_status} {response.reason_phrase}".strip()

        logger.error(
            "[META_CLIENT] API error: HTTP %s, Message: %s",
            http_status,
            message,
        )
        error_cls = _STATUS_ERRORS.get(http_status, MetaAdsClientError)
        raise error_cls(str(message), http_status=http_status)
