"""initial backoffice sync, alerts and providers tables

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'providers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('fiscal_id', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='novo'),
        sa.Column('website', sa.String(length=255), nullable=True),
        sa.Column('entity_type', sa.String(length=32), nullable=True),
        sa.Column('services_json', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('districts_json', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('application_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('first_application_at', sa.DateTime(), nullable=True),
        sa.Column('merged_into_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=True),
        sa.Column('archived_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_providers_email', 'providers', ['email'])
    op.create_index('ix_providers_fiscal_id', 'providers', ['fiscal_id'])
    op.create_index('ix_providers_status', 'providers', ['status'])

    op.create_table(
        'provider_notes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_provider_notes_provider_id', 'provider_notes', ['provider_id'])

    op.create_table(
        'provider_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('event_type', sa.String(length=32), nullable=False, server_default='outros'),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('old_value_json', sa.Text(), nullable=True),
        sa.Column('new_value_json', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_provider_history_provider_id', 'provider_history', ['provider_id'])

    op.create_table(
        'priority_assignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('priority_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_priority_assignments_provider_id', 'priority_assignments', ['provider_id'])
    op.create_index('ix_priority_assignments_priority_id', 'priority_assignments', ['priority_id'])

    op.create_table(
        'onboarding_stages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'onboarding_cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=False),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('onboarding_stages.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_onboarding_cards_provider_id', 'onboarding_cards', ['provider_id'])
    op.create_table(
        'onboarding_tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('card_id', sa.Integer(), sa.ForeignKey('onboarding_cards.id'), nullable=False),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('onboarding_stages.id'), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False, server_default='Tarefa'),
        sa.Column('owner_id', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('due_at', sa.DateTime(), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_onboarding_tasks_card_id', 'onboarding_tasks', ['card_id'])
    op.create_index('ix_onboarding_tasks_status_due', 'onboarding_tasks', ['status', 'due_at'])

    op.create_table(
        'alerts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('subject_type', sa.String(length=32), nullable=False, server_default='onboarding_task'),
        sa.Column('subject_id', sa.Integer(), nullable=False),
        sa.Column('trigger_condition', sa.String(length=64), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=True),
        sa.Column('user_id', sa.String(length=128), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('open_key', sa.String(length=160), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_alerts_kind', 'alerts', ['kind'])
    op.create_index('ix_alerts_subject_id', 'alerts', ['subject_id'])
    op.create_index('ix_alerts_provider_id', 'alerts', ['provider_id'])
    op.create_index('ix_alerts_created_at', 'alerts', ['created_at'])
    op.create_index('ux_alerts_open_key', 'alerts', ['open_key'], unique=True)

    op.create_table(
        'app_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value_json', sa.Text(), nullable=False, server_default='null'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_app_settings_key', 'app_settings', ['key'], unique=True)

    op.create_table(
        'sync_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_kind', sa.String(length=32), nullable=False),
        sa.Column('date_from', sa.Date(), nullable=True),
        sa.Column('date_to', sa.Date(), nullable=True),
        sa.Column('triggered_by', sa.String(length=128), nullable=False, server_default='system'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('records_inserted', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('records_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('records_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('records_failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('duration_seconds', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_runs_entity_kind', 'sync_runs', ['entity_kind'])
    op.create_index('ix_sync_runs_status', 'sync_runs', ['status'])
    op.create_index('ix_sync_runs_started_at', 'sync_runs', ['started_at'])
    op.create_index('ix_sync_runs_kind_status_started', 'sync_runs', ['entity_kind', 'status', 'started_at'])

    op.create_table(
        'sync_kind_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_kind', sa.String(length=32), nullable=False),
        sa.Column('last_success_run_id', sa.Integer(), sa.ForeignKey('sync_runs.id'), nullable=True),
        sa.Column('last_success_at', sa.DateTime(), nullable=True),
        sa.Column('last_error_run_id', sa.Integer(), sa.ForeignKey('sync_runs.id'), nullable=True),
        sa.Column('last_error_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_sync_kind_status_entity_kind', 'sync_kind_status', ['entity_kind'], unique=True)

    op.create_table(
        'synced_entities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_kind', sa.String(length=32), nullable=False),
        sa.Column('source_id', sa.String(length=128), nullable=False),
        sa.Column('payload_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('payload_hash', sa.String(length=64), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('providers.id'), nullable=True),
        sa.Column('last_sync_run_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('synced_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_synced_entities_entity_kind', 'synced_entities', ['entity_kind'])
    op.create_index('ix_synced_entities_provider_id', 'synced_entities', ['provider_id'])
    op.create_index('ux_synced_entities_kind_source', 'synced_entities', ['entity_kind', 'source_id'], unique=True)

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('actor', sa.String(length=128), nullable=False, server_default='system'),
        sa.Column('payload_json', sa.Text(), nullable=False, server_default='{}'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'auth_users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='viewer'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_auth_users_username', 'auth_users', ['username'], unique=True)
    op.create_index('ix_auth_users_is_active', 'auth_users', ['is_active'])


def downgrade() -> None:
    op.drop_table('auth_users')
    op.drop_table('audit_log')
    op.drop_table('synced_entities')
    op.drop_table('sync_kind_status')
    op.drop_table('sync_runs')
    op.drop_table('app_settings')
    op.drop_table('alerts')
    op.drop_table('onboarding_tasks')
    op.drop_table('onboarding_cards')
    op.drop_table('onboarding_stages')
    op.drop_table('priority_assignments')
    op.drop_table('provider_history')
    op.drop_table('provider_notes')
    op.drop_table('providers')
