"""Initial ingestion schema (tenants, credentials, accounts, campaigns, facts, job queue)

Revision ID: 20261019_000001
Revises: None
Create Date: 2026-10-19 09:00:00.000000

WHAT:
    Creates every table used by the sync pipeline:
    - tenants: isolation boundary
    - meta_connections: one encrypted Meta token per tenant
    - ad_accounts: imported accounts, unique per (tenant, platform, external id)
    - campaigns: campaign dimension, unique per (tenant, external id)
    - campaign_insights_daily: one row per (tenant, campaign, day)
    - job_queue: durable work items for the sync worker

WHY:
    The unique constraints are the conflict targets of the upserts in
    movyads/services/insights_writer.py, token_service.py and
    account_service.py; the composite (status, created_at) index serves
    the claim query in movyads/services/job_queue.py.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_000001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'tenants',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # =========================================================================
    # Credentials: at most one row per tenant (upsert on tenant_id)
    # =========================================================================
    op.create_table(
        'meta_connections',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('meta_user_id', sa.String(), nullable=True),
        sa.Column('access_token_enc', sa.Text(), nullable=False),
        sa.Column('token_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id'),
    )

    op.create_table(
        'ad_accounts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('platform', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'platform', 'external_id', name='uq_ad_account_tenant_platform_external'),
    )
    op.create_index('ix_ad_accounts_tenant_id', 'ad_accounts', ['tenant_id'])

    op.create_table(
        'campaigns',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('ad_account_id', sa.Uuid(), nullable=True),
        sa.Column('external_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['ad_account_id'], ['ad_accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'external_id', name='uq_campaign_tenant_external'),
    )
    op.create_index('ix_campaigns_ad_account_id', 'campaigns', ['ad_account_id'])

    # =========================================================================
    # Daily facts: base measures only, ratios are derived on read
    # =========================================================================
    op.create_table(
        'campaign_insights_daily',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.Uuid(), nullable=False),
        sa.Column('ad_account_id', sa.Uuid(), nullable=True),
        sa.Column('campaign_id', sa.Uuid(), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('spend', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['ad_account_id'], ['ad_accounts.id']),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'campaign_id', 'day', name='uq_insight_tenant_campaign_day'),
    )
    op.create_index('ix_campaign_insights_daily_ad_account_id', 'campaign_insights_daily', ['ad_account_id'])
    op.create_index('ix_campaign_insights_daily_day', 'campaign_insights_daily', ['day'])

    # =========================================================================
    # Job queue
    # =========================================================================
    op.create_table(
        'job_queue',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('job_type', sa.String(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_job_queue_status_created_at', 'job_queue', ['status', 'created_at'])
    op.create_index('ix_job_queue_created_at', 'job_queue', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_job_queue_created_at', table_name='job_queue')
    op.drop_index('ix_job_queue_status_created_at', table_name='job_queue')
    op.drop_table('job_queue')

    op.drop_index('ix_campaign_insights_daily_day', table_name='campaign_insights_daily')
    op.drop_index('ix_campaign_insights_daily_ad_account_id', table_name='campaign_insights_daily')
    op.drop_table('campaign_insights_daily')

    op.drop_index('ix_campaigns_ad_account_id', table_name='campaigns')
    op.drop_table('campaigns')

    op.drop_index('ix_ad_accounts_tenant_id', table_name='ad_accounts')
    op.drop_table('ad_accounts')

    op.drop_table('meta_connections')
    op.drop_table('tenants')
