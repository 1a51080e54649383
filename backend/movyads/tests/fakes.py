"""Graph API fakes shared by the test modules."""

from typing import Any, Callable, Dict, List, Optional

import httpx

from movyads.services.meta_ads_client import InsightRecord, MetaAdsClient

GRAPH_BASE = "https://graph.test/v20.0"


def insight_row(
    campaign_id: str,
    day: str,
    *,
    name: Optional[str] = None,
    spend: Any = "1.00",
    impressions: Any = "100",
    clicks: Any = "5",
) -> Dict[str, Any]:
    row = {
        "campaign_id": campaign_id,
        "date_start": day,
        "date_stop": day,
        "spend": spend,
        "impressions": impressions,
        "clicks": clicks,
    }
    if name is not None:
        row["campaign_name"] = name
    return row


def paged_handler(pages: List[List[Dict[str, Any]]], requests: Optional[list] = None) -> Callable:
    """Serve ``pages`` in order, linking each to the next via ``paging.next``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        index = int(request.url.params.get("page", "0"))
        body: Dict[str, Any] = {"data": pages[index]}
        if index + 1 < len(pages):
            body["paging"] = {"next": f"{GRAPH_BASE}/next?page={index + 1}"}
        return httpx.Response(200, json=body)

    return handler


def endless_handler(requests: list) -> Callable:
    """Every page links to another page."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        index = int(request.url.params.get("page", "0"))
        return httpx.Response(200, json={
            "data": [insight_row(f"c{index}", "2025-01-01")],
            "paging": {"next": f"{GRAPH_BASE}/next?page={index + 1}"},
        })

    return handler


def make_client(handler: Callable, **kwargs) -> MetaAdsClient:
    return MetaAdsClient(
        "test-token",
        base_url=GRAPH_BASE,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


def record(campaign_id: str, day, *, name=None, spend=1.0, impressions=100, clicks=5) -> InsightRecord:
    return InsightRecord(
        campaign_external_id=campaign_id,
        campaign_name=name,
        spend=spend,
        impressions=impressions,
        clicks=clicks,
        day=day,
    )


class FakeMetaClient:
    """Stands in for MetaAdsClient in orchestrator and connect tests."""

    def __init__(self, records=None, accounts=None, error: Optional[Exception] = None):
        self.records = list(records or [])
        self.accounts = list(accounts or [])
        self.error = error
        self.calls = []
        self.closed = False

    def __call__(self, access_token: str) -> "FakeMetaClient":
        self.access_token = access_token
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def fetch_campaign_insights(self, account_external_id, since, until):
        self.calls.append((account_external_id, since, until))
        if self.error is not None:
            raise self.error
        return list(self.records)

    def get_ad_accounts(self):
        if self.error is not None:
            raise self.error
        return list(self.accounts)
