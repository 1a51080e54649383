"""Tests for the two-phase insights upsert writer.

WHAT:
    Campaign dimension upsert, id mapping and daily fact upsert against a
    real (SQLite) database.

WHY:
    Re-running a sync must converge: same rows, latest values, no
    accumulation.

REFERENCES:
    - movyads/services/insights_writer.py (module under test)
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from movyads.models import Campaign, CampaignInsightDaily
from movyads.services import insights_writer
from movyads.services.insights_writer import write_insights
from movyads.tests.fakes import record

D1 = date(2025, 1, 1)
D2 = date(2025, 1, 2)


def _facts(db):
    return db.execute(
        select(Campaign.external_id, CampaignInsightDaily.day, CampaignInsightDaily.spend,
               CampaignInsightDaily.impressions, CampaignInsightDaily.clicks)
        .join(Campaign, Campaign.id == CampaignInsightDaily.campaign_id)
        .order_by(Campaign.external_id, CampaignInsightDaily.day)
    ).all()


class TestWriteInsights:

    def test_two_campaigns_two_days(self, db, connected):
        """WHAT: 2 campaigns x 2 days -> 2 campaign rows and 4 fact rows.
        WHY: Baseline shape of a sync batch.
        """
        records = [
            record("c1", D1, name="Alpha", spend=10.0),
            record("c1", D2, name="Alpha", spend=11.0),
            record("c2", D1, name="Beta", spend=5.0),
            record("c2", D2, name="Beta", spend=6.0),
        ]

        result = write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=records)

        assert (result.campaigns_touched, result.facts_written) == (2, 4)
        assert db.scalar(select(func.count()).select_from(Campaign)) == 2
        assert db.scalar(select(func.count()).select_from(CampaignInsightDaily)) == 4

    def test_rerun_overwrites_instead_of_accumulating(self, db, connected):
        """WHAT: Writing the same keys twice leaves one row per key with the latest values.
        WHY: Daily values are replaced on re-ingestion.
        """
        kwargs = dict(tenant_id=connected.tenant.id, ad_account_id=connected.account.id)
        write_insights(db, records=[record("c1", D1, name="Alpha", spend=10.0, impressions=100, clicks=1)], **kwargs)
        write_insights(db, records=[record("c1", D1, name="Alpha", spend=12.5, impressions=150, clicks=3)], **kwargs)

        rows = _facts(db)
        assert len(rows) == 1
        _, day, spend, impressions, clicks = rows[0]
        assert day == D1
        assert Decimal(str(spend)) == Decimal("12.5")
        assert (impressions, clicks) == (150, 3)

    def test_identical_rerun_is_stable(self, db, connected):
        kwargs = dict(tenant_id=connected.tenant.id, ad_account_id=connected.account.id)
        records = [record("c1", D1, name="Alpha"), record("c2", D2, name="Beta")]

        write_insights(db, records=records, **kwargs)
        first = _facts(db)
        write_insights(db, records=records, **kwargs)

        assert _facts(db) == first
        assert db.scalar(select(func.count()).select_from(Campaign)) == 2

    def test_empty_batch_writes_nothing(self, db, connected):
        result = write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=[])
        assert (result.campaigns_touched, result.facts_written) == (0, 0)
        assert db.scalar(select(func.count()).select_from(Campaign)) == 0

    def test_last_non_empty_name_wins(self, db, connected):
        records = [
            record("c1", D1, name="Old"),
            record("c1", D2, name="New"),
            record("c1", D2, name=None),
        ]
        write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=records)

        assert db.scalar(select(Campaign.name).where(Campaign.external_id == "c1")) == "New"

    def test_nameless_batch_keeps_stored_name(self, db, connected):
        kwargs = dict(tenant_id=connected.tenant.id, ad_account_id=connected.account.id)
        write_insights(db, records=[record("c1", D1, name="Alpha")], **kwargs)
        write_insights(db, records=[record("c1", D2, name=None)], **kwargs)

        db.expire_all()
        assert db.scalar(select(Campaign.name).where(Campaign.external_id == "c1")) == "Alpha"

    def test_duplicate_key_in_batch_last_wins(self, db, connected):
        """WHAT: Two records for one (campaign, day) collapse to the later one.
        WHY: One upsert statement cannot update the same key twice.
        """
        records = [record("c1", D1, spend=1.0), record("c1", D1, spend=9.0)]
        result = write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=records)

        assert result.facts_written == 1
        assert Decimal(str(_facts(db)[0][2])) == Decimal("9")

    def test_chunking_covers_every_row(self, db, connected, monkeypatch):
        """WHAT: Batches larger than a chunk are written completely.
        WHY: Chunk boundaries must not drop or duplicate rows.
        """
        monkeypatch.setattr(insights_writer, "CAMPAIGN_CHUNK_SIZE", 2)
        monkeypatch.setattr(insights_writer, "FACT_CHUNK_SIZE", 3)
        records = [record(f"c{i}", day) for i in range(5) for day in (D1, D2)]

        result = write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=records)

        assert (result.campaigns_touched, result.facts_written) == (5, 10)
        assert db.scalar(select(func.count()).select_from(CampaignInsightDaily)) == 10

    def test_unresolved_campaign_is_dropped(self, db, connected, monkeypatch):
        real_map = insights_writer._campaign_id_map

        def partial_map(db, *, tenant_id, external_ids):
            mapping = real_map(db, tenant_id=tenant_id, external_ids=external_ids)
            mapping.pop("c2", None)
            return mapping

        monkeypatch.setattr(insights_writer, "_campaign_id_map", partial_map)
        records = [record("c1", D1), record("c2", D1)]

        result = write_insights(db, tenant_id=connected.tenant.id, ad_account_id=connected.account.id, records=records)

        assert result.facts_written == 1
        assert [row[0] for row in _facts(db)] == ["c1"]
