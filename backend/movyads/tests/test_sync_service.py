"""Tests for the sync_account orchestrator.

WHAT:
    Account and credential resolution, lookback window, fetch -> write, and
    error propagation, with a fake Meta client.

WHY:
    The orchestrator is strictly linear: any failure must surface to the
    worker so the job ends in error, and nothing is written for a failed
    fetch.

REFERENCES:
    - movyads/services/sync_service.py (module under test)
"""

from datetime import date, datetime, timedelta, timezone
import uuid

import pytest
from sqlalchemy import func, select

from movyads.models import CampaignInsightDaily, MetaConnection
from movyads.schemas import SyncAccountPayload
from movyads.services.meta_ads_client import MetaAdsAuthenticationError
from movyads.services.sync_service import (
    AccountNotFoundError,
    CredentialMissingError,
    SyncError,
    compute_lookback_window,
    sync_account,
)
from movyads.tests.fakes import FakeMetaClient, record

TODAY = date(2025, 3, 10)


def _fact_count(db):
    return db.scalar(select(func.count()).select_from(CampaignInsightDaily))


class TestLookbackWindow:

    def test_seven_days_inclusive(self):
        assert compute_lookback_window(7, today=TODAY) == (date(2025, 3, 4), TODAY)

    def test_one_day_is_today_only(self):
        assert compute_lookback_window(1, today=TODAY) == (TODAY, TODAY)

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            compute_lookback_window(0, today=TODAY)


class TestSyncAccount:

    def test_two_campaigns_two_days(self, db, connected):
        """WHAT: Fetched records are written and counted.
        WHY: Happy path of a sync_account job.
        """
        fake = FakeMetaClient(records=[
            record("c1", date(2025, 3, 9), name="Alpha"),
            record("c1", TODAY, name="Alpha"),
            record("c2", date(2025, 3, 9), name="Beta"),
            record("c2", TODAY, name="Beta"),
        ])
        payload = SyncAccountPayload(target_account_id=connected.account.id, lookback_days=2)

        result = sync_account(db, payload, client_factory=fake, today=TODAY)

        assert (result.campaigns_touched, result.facts_written) == (2, 4)
        assert fake.access_token == "meta-token"
        assert fake.calls == [("act_123", date(2025, 3, 9), TODAY)]
        assert fake.closed
        assert _fact_count(db) == 4

    def test_zero_records(self, db, connected):
        payload = SyncAccountPayload(target_account_id=connected.account.id)

        result = sync_account(db, payload, client_factory=FakeMetaClient(), today=TODAY)

        assert (result.campaigns_touched, result.facts_written) == (0, 0)

    def test_unknown_account(self, db, connected):
        payload = SyncAccountPayload(target_account_id=uuid.uuid4())

        with pytest.raises(AccountNotFoundError):
            sync_account(db, payload, client_factory=FakeMetaClient(), today=TODAY)

    def test_missing_credential(self, db, ad_account):
        """WHAT: No stored token -> CredentialMissingError, no fetch.
        WHY: The job error must tell the operator to connect the platform.
        """
        fake = FakeMetaClient()
        payload = SyncAccountPayload(target_account_id=ad_account.id)

        with pytest.raises(CredentialMissingError, match="connect the platform first") as exc_info:
            sync_account(db, payload, client_factory=fake, today=TODAY)

        assert isinstance(exc_info.value, SyncError)
        assert fake.calls == []

    def test_upstream_error_propagates_and_writes_nothing(self, db, connected):
        fake = FakeMetaClient(
            records=[record("c1", TODAY)],
            error=MetaAdsAuthenticationError("Invalid OAuth access token.", http_status=401),
        )
        payload = SyncAccountPayload(target_account_id=connected.account.id)

        with pytest.raises(MetaAdsAuthenticationError, match="Invalid OAuth access token."):
            sync_account(db, payload, client_factory=fake, today=TODAY)

        assert _fact_count(db) == 0

    def test_expired_token_is_still_used(self, db, connected, caplog):
        connection = db.execute(select(MetaConnection)).scalar_one()
        connection.token_expires_at = datetime.now(timezone.utc) - timedelta(days=1)
        db.commit()
        fake = FakeMetaClient(records=[record("c1", TODAY)])

        result = sync_account(
            db,
            SyncAccountPayload(target_account_id=connected.account.id),
            client_factory=fake,
            today=TODAY,
        )

        assert result.facts_written == 1
        assert "expired" in caplog.text
