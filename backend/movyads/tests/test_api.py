"""HTTP tests for the movyads API.

WHAT:
    Service-token auth, tenant bootstrap and connect, enqueue and job
    inspection, and the reporting routes, through FastAPI's TestClient.

REFERENCES:
    - movyads/main.py
    - movyads/routers/*.py
"""

from datetime import date
import uuid

from movyads.routers.connections import get_meta_client_factory
from movyads.services import job_queue
from movyads.services.insights_writer import write_insights
from movyads.services.meta_ads_client import MetaAdsAuthenticationError
from movyads.tests.fakes import FakeMetaClient, record


class TestAuth:

    def test_health_is_public(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_token(self, client):
        response = client.post("/tenants", json={"name": "Acme"})
        assert response.status_code == 401

    def test_wrong_token(self, client):
        response = client.post("/tenants", json={"name": "Acme"}, headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_unconfigured_token_returns_503(self, client, monkeypatch, auth_headers):
        from movyads.deps import get_settings

        monkeypatch.delenv("MOVYADS_API_TOKEN")
        get_settings.cache_clear()

        response = client.post("/tenants", json={"name": "Acme"}, headers=auth_headers)
        assert response.status_code == 503


class TestTenantsAndConnect:

    def test_create_tenant_and_connect(self, app, client, auth_headers):
        fake = FakeMetaClient(accounts=[
            {"id": "act_1", "name": "One", "account_status": 1},
            {"id": "2", "name": "Two", "account_status": 2},
        ])
        app.dependency_overrides[get_meta_client_factory] = lambda: fake

        created = client.post("/tenants", json={"name": "Acme"}, headers=auth_headers)
        assert created.status_code == 201
        tenant_id = created.json()["tenant_id"]

        response = client.post(
            f"/tenants/{tenant_id}/meta/connect",
            json={"access_token": "long-lived", "meta_user_id": "u-1", "expires_in": 3600},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "imported": 2}
        assert fake.access_token == "long-lived"

        accounts = client.get(f"/tenants/{tenant_id}/reports/accounts", headers=auth_headers).json()["rows"]
        assert sorted(a["external_id"] for a in accounts) == ["act_1", "act_2"]
        assert {a["status"] for a in accounts} == {"active", "disabled"}

    def test_connect_unknown_tenant(self, app, client, auth_headers):
        app.dependency_overrides[get_meta_client_factory] = lambda: FakeMetaClient()
        response = client.post(
            f"/tenants/{uuid.uuid4()}/meta/connect",
            json={"access_token": "t", "meta_user_id": "u"},
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_connect_upstream_error_is_400(self, app, client, auth_headers, tenant):
        fake = FakeMetaClient(error=MetaAdsAuthenticationError("Invalid OAuth access token.", http_status=401))
        app.dependency_overrides[get_meta_client_factory] = lambda: fake

        response = client.post(
            f"/tenants/{tenant.id}/meta/connect",
            json={"access_token": "t", "meta_user_id": "u"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid OAuth access token."


class TestSyncQueue:

    def test_enqueue_and_inspect(self, client, auth_headers, connected):
        response = client.post(
            "/sync/enqueue",
            json={"target_account_id": str(connected.account.id)},
            headers=auth_headers,
        )
        assert response.status_code == 200
        job_id = response.json()["job_id"]

        job = client.get(f"/jobs/{job_id}", headers=auth_headers).json()
        assert job["status"] == "pending"
        assert job["job_type"] == "sync_account"
        assert job["payload"] == {"target_account_id": str(connected.account.id), "lookback_days": 7}

        listed = client.get("/jobs", params={"status": "pending"}, headers=auth_headers).json()
        assert [j["id"] for j in listed["jobs"]] == [job_id]

    def test_enqueue_unknown_account(self, client, auth_headers, tenant):
        response = client.post("/sync/enqueue", json={"target_account_id": str(uuid.uuid4())}, headers=auth_headers)
        assert response.status_code == 404

    def test_enqueue_rejects_out_of_range_lookback(self, client, auth_headers, connected):
        response = client.post(
            "/sync/enqueue",
            json={"target_account_id": str(connected.account.id), "lookback_days": 0},
            headers=auth_headers,
        )
        assert response.status_code == 422

    def test_get_unknown_job(self, client, auth_headers):
        assert client.get(f"/jobs/{uuid.uuid4()}", headers=auth_headers).status_code == 404

    def test_requeue(self, client, auth_headers, db):
        job_id = job_queue.enqueue(db, "sync_account", {"target_account_id": "x"})
        job_queue.claim(db)
        job_queue.fail(db, job_id, "boom")

        response = client.post(f"/jobs/{job_id}/requeue", headers=auth_headers)

        assert response.status_code == 200
        new_id = response.json()["job_id"]
        assert client.get(f"/jobs/{new_id}", headers=auth_headers).json()["status"] == "pending"
        assert client.get(f"/jobs/{job_id}", headers=auth_headers).json()["status"] == "error"

    def test_requeue_pending_is_conflict(self, client, auth_headers, db):
        job_id = job_queue.enqueue(db, "sync_account", {})
        assert client.post(f"/jobs/{job_id}/requeue", headers=auth_headers).status_code == 409


class TestReports:

    def test_daily_report_clamps_days(self, client, auth_headers, db, connected):
        write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=[
            record("c1", date.today(), name="Alpha", spend=4.0, impressions=400, clicks=4),
        ])
        url = f"/tenants/{connected.tenant.id}/reports/daily"

        body = client.get(url, params={"days": "abc"}, headers=auth_headers).json()
        assert len(body["chart"]) == 7
        assert body["totals"]["spend"] == 4.0
        assert body["totals"]["cpc"] == 1.0

        assert len(client.get(url, params={"days": "500"}, headers=auth_headers).json()["chart"]) == 90

    def test_top_campaigns_all(self, client, auth_headers, db, connected):
        write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=[
            record("c1", date.today(), name="Alpha", spend=1.0),
            record("c2", date.today(), name="Beta", spend=3.0),
        ])

        body = client.get(
            f"/tenants/{connected.tenant.id}/reports/campaigns/top",
            params={"account_id": "all", "days": "7"},
            headers=auth_headers,
        ).json()

        assert body["account_id"] is None
        assert [row["campaign_name"] for row in body["rows"]] == ["Beta", "Alpha"]

    def test_account_campaigns_unknown_account(self, client, auth_headers, connected):
        response = client.get(
            f"/tenants/{connected.tenant.id}/reports/accounts/{uuid.uuid4()}/campaigns",
            headers=auth_headers,
        )
        assert response.status_code == 404

    def test_unknown_tenant(self, client, auth_headers):
        response = client.get(f"/tenants/{uuid.uuid4()}/reports/daily", headers=auth_headers)
        assert response.status_code == 404
