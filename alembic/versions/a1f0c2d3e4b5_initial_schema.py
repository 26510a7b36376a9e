"""initial_schema

Revision ID: a1f0c2d3e4b5
Revises:
Create Date: 2026-10-16

Users and sessions, Google Ads accounts, the metrics cache, entity
hierarchy, saved views, automated rules, activity log and keyword caches.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a1f0c2d3e4b5'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_login', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('token', sa.String(64), nullable=False, unique=True, index=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'google_ads_accounts',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('google_account_id', sa.String(20), nullable=False, index=True),
        sa.Column('account_name', sa.String(), nullable=True),
        sa.Column('currency_code', sa.String(3), default='USD'),
        sa.Column('is_manager', sa.Boolean(), default=False),
        sa.Column('parent_manager_id', sa.String(20), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'google_account_id', name='uq_google_ads_account_user'),
    )

    # Metrics cache
    op.create_table(
        'metrics_facts',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('customer_id', sa.String(20), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True, index=True),
        sa.Column('entity_type', sa.String(20), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False),
        sa.Column('parent_entity_id', sa.String(64), nullable=True, index=True),
        sa.Column('entity_name', sa.String(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('impressions', sa.BigInteger(), default=0),
        sa.Column('clicks', sa.BigInteger(), default=0),
        sa.Column('cost_micros', sa.BigInteger(), default=0),
        sa.Column('conversions', sa.Float(), default=0.0),
        sa.Column('conversions_value', sa.Float(), default=0.0),
        sa.Column('ctr', sa.Float(), default=0.0),
        sa.Column('average_cpc', sa.Float(), default=0.0),
        sa.Column('currency_code', sa.String(3), default='USD'),
        sa.Column('data_freshness', sa.String(20), default='FRESH'),
        sa.Column('synced_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('customer_id', 'entity_type', 'entity_id', 'date', name='uq_metrics_fact_entity_date'),
    )
    op.create_index('ix_metrics_fact_lookup', 'metrics_facts', ['customer_id', 'entity_type', 'date'])

    op.create_table(
        'sync_metadata',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('customer_id', sa.String(20), nullable=False, index=True),
        sa.Column('entity_type', sa.String(20), nullable=False),
        sa.Column('last_sync_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('last_sync_started', sa.DateTime(), nullable=True),
        sa.Column('last_sync_completed', sa.DateTime(), nullable=True),
        sa.Column('last_synced_date', sa.Date(), nullable=True),
        sa.Column('rows_written', sa.Integer(), default=0),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('backfill_progress', sa.JSON(), nullable=True),
        sa.UniqueConstraint('customer_id', 'entity_type', name='uq_sync_metadata_customer_type'),
    )

    op.create_table(
        'entity_hierarchy',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('customer_id', sa.String(20), nullable=False, index=True),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('entity_type', sa.String(20), nullable=False),
        sa.Column('entity_id', sa.String(64), nullable=False),
        sa.Column('entity_name', sa.String(), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('parent_entity_type', sa.String(20), nullable=True),
        sa.Column('parent_entity_id', sa.String(64), nullable=True),
        sa.Column('campaign_id', sa.String(64), nullable=True, index=True),
        sa.Column('ad_group_id', sa.String(64), nullable=True, index=True),
        sa.Column('last_updated', sa.DateTime()),
        sa.UniqueConstraint('customer_id', 'entity_type', 'entity_id', name='uq_entity_hierarchy_entity'),
    )
    op.create_index('ix_entity_hierarchy_parent', 'entity_hierarchy',
                    ['customer_id', 'entity_type', 'parent_entity_id'])

    op.create_table(
        'saved_views',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('google_ads_accounts.id', ondelete='CASCADE'),
                  nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(20), nullable=False, server_default='campaign'),
        sa.Column('filters', sa.JSON()),
        sa.Column('sorting', sa.JSON()),
        sa.Column('columns', sa.JSON()),
        sa.Column('date_preset', sa.String(20), nullable=True),
        sa.Column('is_default', sa.Boolean(), default=False),
        sa.Column('is_pinned', sa.Boolean(), default=False),
        sa.Column('icon', sa.String(50), nullable=True),
        sa.Column('color', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'name', 'entity_type', name='uq_saved_view_user_name_type'),
    )

    # Automated rules
    op.create_table(
        'automated_rules',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('google_ads_accounts.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('entity_type', sa.String(20), nullable=False),
        sa.Column('entity_filter', sa.JSON(), nullable=True),
        sa.Column('conditions', sa.JSON(), nullable=False),
        sa.Column('actions', sa.JSON(), nullable=False),
        sa.Column('schedule', sa.String(20), nullable=False, server_default='daily'),
        sa.Column('enabled', sa.Boolean(), default=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('last_run', sa.DateTime(), nullable=True),
        sa.Column('next_run', sa.DateTime(), nullable=True, index=True),
        sa.Column('run_count', sa.Integer(), default=0),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'rule_executions',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('rule_id', sa.Integer(), sa.ForeignKey('automated_rules.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('executed_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('entities_evaluated', sa.Integer(), default=0),
        sa.Column('entities_matched', sa.Integer(), default=0),
        sa.Column('actions_taken', sa.JSON()),
        sa.Column('errors', sa.JSON()),
        sa.Column('dry_run', sa.Boolean(), default=False),
    )

    op.create_table(
        'guardrail_settings',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('enabled', sa.Boolean(), default=True),
        sa.Column('allow_pause_all', sa.Boolean(), default=False),
        sa.Column('allow_zero_budget', sa.Boolean(), default=False),
        sa.Column('max_budget_change_percent', sa.Float(), default=50.0),
        sa.Column('warn_on_high_performer_pause', sa.Boolean(), default=True),
        sa.Column('high_performer_threshold', sa.Float(), default=80.0),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), nullable=True, index=True),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('action_type', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(20), nullable=True),
        sa.Column('entity_id', sa.String(64), nullable=True),
        sa.Column('entity_name', sa.String(), nullable=True),
        sa.Column('before_value', sa.JSON(), nullable=True),
        sa.Column('after_value', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='success'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('source', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_activity_logs_account_created', 'activity_logs', ['account_id', 'created_at'])

    # Keyword research caches
    op.create_table(
        'keyword_metrics',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('keyword', sa.String(), nullable=False),
        sa.Column('keyword_normalized', sa.String(), nullable=False),
        sa.Column('locale', sa.String(10), nullable=False, server_default='en-US'),
        sa.Column('device', sa.String(10), nullable=False, server_default='desktop'),
        sa.Column('location_id', sa.String(10), nullable=False, server_default='2840'),

        sa.Column('gads_search_volume', sa.Integer(), nullable=True),
        sa.Column('gads_avg_cpc_micros', sa.BigInteger(), nullable=True),
        sa.Column('gads_competition', sa.String(10), nullable=True),
        sa.Column('gads_competition_index', sa.Float(), nullable=True),
        sa.Column('gads_fetched_at', sa.DateTime(), nullable=True),
        sa.Column('gads_status', sa.String(20), nullable=True),
        sa.Column('gads_error', sa.Text(), nullable=True),

        sa.Column('moz_volume', sa.Integer(), nullable=True),
        sa.Column('moz_difficulty', sa.Integer(), nullable=True),
        sa.Column('moz_organic_ctr', sa.Float(), nullable=True),
        sa.Column('moz_priority', sa.Integer(), nullable=True),
        sa.Column('moz_fetched_at', sa.DateTime(), nullable=True),
        sa.Column('moz_status', sa.String(20), nullable=True),
        sa.Column('moz_error', sa.Text(), nullable=True),

        sa.Column('dataforseo_search_volume', sa.Integer(), nullable=True),
        sa.Column('dataforseo_cpc', sa.Float(), nullable=True),
        sa.Column('dataforseo_competition', sa.Float(), nullable=True),
        sa.Column('dataforseo_trends', sa.JSON(), nullable=True),
        sa.Column('dataforseo_fetched_at', sa.DateTime(), nullable=True),
        sa.Column('dataforseo_status', sa.String(20), nullable=True),
        sa.Column('dataforseo_error', sa.Text(), nullable=True),
        sa.Column('dataforseo_kd', sa.Integer(), nullable=True),
        sa.Column('dataforseo_kd_fetched_at', sa.DateTime(), nullable=True),

        sa.Column('best_search_volume', sa.Integer(), nullable=True),
        sa.Column('best_cpc', sa.Float(), nullable=True),
        sa.Column('best_difficulty', sa.Integer(), nullable=True),
        sa.Column('best_source', sa.String(20), nullable=True),

        sa.Column('cache_hit_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_accessed_at', sa.DateTime(), nullable=True),
        sa.Column('ttl_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime()),
        sa.UniqueConstraint('keyword_normalized', 'locale', 'device', 'location_id', name='uq_keyword_metrics_key'),
    )
    op.create_index('ix_keyword_metrics_expires', 'keyword_metrics', ['expires_at'])

    op.create_table(
        'keyword_serp_features',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('keyword', sa.String(), nullable=False),
        sa.Column('keyword_normalized', sa.String(), nullable=False, index=True),
        sa.Column('location_id', sa.String(10), nullable=False, server_default='2840'),
        sa.Column('device', sa.String(10), nullable=False, server_default='desktop'),
        sa.Column('has_featured_snippet', sa.Boolean(), default=False),
        sa.Column('has_knowledge_panel', sa.Boolean(), default=False),
        sa.Column('has_local_pack', sa.Boolean(), default=False),
        sa.Column('has_people_also_ask', sa.Boolean(), default=False),
        sa.Column('has_shopping_results', sa.Boolean(), default=False),
        sa.Column('has_related_searches', sa.Boolean(), default=False),
        sa.Column('top_ads_count', sa.Integer(), default=0),
        sa.Column('bottom_ads_count', sa.Integer(), default=0),
        sa.Column('total_ads_count', sa.Integer(), default=0),
        sa.Column('organic_results_count', sa.Integer(), default=0),
        sa.Column('first_organic_domain', sa.String(), nullable=True),
        sa.Column('serp_difficulty', sa.Integer(), default=0),
        sa.Column('checked_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False, index=True),
        sa.UniqueConstraint('keyword_normalized', 'location_id', 'device', name='uq_keyword_serp_key'),
    )


def downgrade() -> None:
    op.drop_table('keyword_serp_features')
    op.drop_index('ix_keyword_metrics_expires', table_name='keyword_metrics')
    op.drop_table('keyword_metrics')
    op.drop_index('ix_activity_logs_account_created', table_name='activity_logs')
    op.drop_table('activity_logs')
    op.drop_table('guardrail_settings')
    op.drop_table('rule_executions')
    op.drop_table('automated_rules')
    op.drop_table('saved_views')
    op.drop_index('ix_entity_hierarchy_parent', table_name='entity_hierarchy')
    op.drop_table('entity_hierarchy')
    op.drop_table('sync_metadata')
    op.drop_index('ix_metrics_fact_lookup', table_name='metrics_facts')
    op.drop_table('metrics_facts')
    op.drop_table('google_ads_accounts')
    op.drop_table('user_sessions')
    op.drop_table('users')
