"""Initial schema: properties, rules, deals, audit trails and compliance tables.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

Types are portable between SQLite and PostgreSQL.
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = True) -> list:
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp())]
    if updated:
        columns.append(
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.current_timestamp())
        )
    return columns


def upgrade() -> None:
    """Create all tables."""

    # =========================================================================
    # Table: user
    # =========================================================================
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('external_id', sa.String(128), nullable=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_user_email', 'user', ['email'])

    # =========================================================================
    # Table: property
    # =========================================================================
    op.create_table(
        'property',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('address', sa.String(255), nullable=False),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(2), nullable=True),
        sa.Column('zip_code', sa.String(10), nullable=True),
        sa.Column('property_type', sa.String(50), nullable=True),
        sa.Column('owner_name', sa.String(255), nullable=True),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('last_sale_price', sa.Float(), nullable=True),
        sa.Column('tax_assessed_value', sa.Float(), nullable=True),
        sa.Column('equity_percent', sa.Float(), nullable=True),
        sa.Column('annual_property_tax', sa.Float(), nullable=True),
        sa.Column('debt_owed', sa.Float(), nullable=True),
        sa.Column('interest_rate', sa.Float(), nullable=True),
        sa.Column('year_built', sa.Integer(), nullable=True),
        sa.Column('square_footage', sa.Integer(), nullable=True),
        sa.Column('unit_count', sa.Integer(), nullable=True),
        sa.Column('owner_occupied', sa.Boolean(), nullable=True),
        sa.Column('distress_signals', sa.JSON(), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('data_freshness_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_property_state', 'property', ['state'])
    op.create_index('ix_property_zip_code', 'property', ['zip_code'])

    # =========================================================================
    # Table: qualification_rule
    # =========================================================================
    op.create_table(
        'qualification_rule',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('rule_type', sa.String(20), nullable=False),
        sa.Column('rule_subtype', sa.String(40), nullable=True),
        sa.Column('field_name', sa.String(255), nullable=False),
        sa.Column('operator', sa.String(20), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('weight', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
    )
    op.create_index('ix_qualification_rule_user_id', 'qualification_rule', ['user_id'])
    op.create_index('ix_rule_user_order', 'qualification_rule', ['user_id', 'rule_type', 'created_at'])

    # =========================================================================
    # Table: deal
    # =========================================================================
    op.create_table(
        'deal',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='NEW'),
        sa.Column('qualification_score', sa.Integer(), nullable=True),
        sa.Column('creative_finance_types', sa.JSON(), nullable=True),
        sa.Column('estimated_profit', sa.Float(), nullable=True),
        sa.Column('closed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['property_id'], ['property.id']),
    )
    op.create_index('ix_deal_user_id', 'deal', ['user_id'])
    op.create_index('ix_deal_property_id', 'deal', ['property_id'])
    op.create_index('ix_deal_status', 'deal', ['status'])
    op.create_index('ix_deal_user_status', 'deal', ['user_id', 'status'])

    # =========================================================================
    # Table: deal_history (append-only)
    # =========================================================================
    op.create_table(
        'deal_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('deal_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('field_changed', sa.String(50), nullable=False, server_default='status'),
        sa.Column('old_value', sa.String(50), nullable=True),
        sa.Column('new_value', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['deal_id'], ['deal.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
    )
    op.create_index('ix_deal_history_deal_id', 'deal_history', ['deal_id'])

    # =========================================================================
    # Table: rule_evaluation_log
    # =========================================================================
    op.create_table(
        'rule_evaluation_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('deal_id', sa.Integer(), nullable=False),
        sa.Column('rule_id', sa.Integer(), nullable=False),
        sa.Column('evaluation_result', sa.String(10), nullable=False),
        sa.Column('score_awarded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['deal_id'], ['deal.id']),
        sa.ForeignKeyConstraint(['rule_id'], ['qualification_rule.id']),
    )
    op.create_index('ix_rule_evaluation_log_deal_id', 'rule_evaluation_log', ['deal_id'])
    op.create_index('ix_rule_evaluation_log_rule_id', 'rule_evaluation_log', ['rule_id'])

    # =========================================================================
    # Table: contact_log (append-only)
    # =========================================================================
    op.create_table(
        'contact_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('owner_phone_encrypted', sa.Text(), nullable=False),
        sa.Column('contact_timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('contact_method', sa.String(10), nullable=False),
        sa.Column('consent_status', sa.String(40), nullable=False),
        sa.Column('consent_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('consent_medium', sa.String(50), nullable=True),
        sa.Column('consent_details', sa.JSON(), nullable=True),
        sa.Column('is_violation', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.ForeignKeyConstraint(['property_id'], ['property.id']),
    )
    op.create_index('ix_contact_log_user_id', 'contact_log', ['user_id'])
    op.create_index('ix_contact_log_property_id', 'contact_log', ['property_id'])
    op.create_index('ix_contact_log_user_time', 'contact_log', ['user_id', 'contact_timestamp'])

    # =========================================================================
    # Table: consent_record
    # =========================================================================
    op.create_table(
        'consent_record',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_phone_encrypted', sa.Text(), nullable=False),
        sa.Column('phone_hash', sa.String(64), nullable=False),
        sa.Column('original_consent_method', sa.String(50), nullable=False),
        sa.Column('original_consent_timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('disclosures_acknowledged', sa.JSON(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('must_retain_until', sa.DateTime(timezone=True), nullable=False),
        sa.Column('compliance_status', sa.String(20), nullable=False, server_default='COMPLIANT'),
        sa.Column('revocation_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revocation_method', sa.String(50), nullable=True),
        sa.Column('revocation_processed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_consent_record_phone_hash', 'consent_record', ['phone_hash'])
    op.create_index('ix_consent_hash_active', 'consent_record', ['phone_hash', 'revocation_timestamp'])

    # =========================================================================
    # Table: do_not_call_entry
    # =========================================================================
    op.create_table(
        'do_not_call_entry',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('phone_hash', sa.String(64), nullable=False),
        sa.Column('added_reason', sa.Text(), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_do_not_call_entry_phone_hash', 'do_not_call_entry', ['phone_hash'], unique=True)

    # =========================================================================
    # Table: background_task
    # =========================================================================
    op.create_table(
        'background_task',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('task_id', sa.String(64), nullable=False),
        sa.Column('task_type', sa.String(50), nullable=False),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=True, server_default='pending'),
        sa.Column('params', sa.JSON(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
    )
    op.create_index('ix_background_task_task_id', 'background_task', ['task_id'], unique=True)
    op.create_index('ix_background_task_task_type', 'background_task', ['task_type'])
    op.create_index('ix_background_task_target_id', 'background_task', ['target_id'])
    op.create_index('ix_background_task_status', 'background_task', ['status'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in (
        'background_task',
        'do_not_call_entry',
        'consent_record',
        'contact_log',
        'rule_evaluation_log',
        'deal_history',
        'deal',
        'qualification_rule',
        'property',
        'user',
    ):
        op.drop_table(table)
