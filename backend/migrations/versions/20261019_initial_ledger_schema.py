"""initial ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the asset hub schema from scratch:
- assets, asset_operations: asset directory and its operation ledger
- consumables, consumable_operations, consumable_alerts: stock ledger and alerts
- approval_requests, approval_cc_recipients: approval registry
- consumable_inventory_tasks, consumable_inventory_entries: physical counts
- action_configs: per-action approval policy
- outbox_events: task-tracker notifications awaiting delivery

Mutable aggregates carry version_id for optimistic locking.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # assets / asset_operations
    # ============================================================================
    op.create_table(
        'assets',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('company_code', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('owner', sa.String(length=255), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('purchase_date', sa.String(length=10), nullable=True),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('purchase_currency', sa.String(length=8), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_assets_status', 'assets', ['status'])
    op.create_index('ix_assets_category', 'assets', ['category'])

    op.create_table(
        'asset_operations',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('asset_id', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('from_user_id', sa.String(length=64), nullable=True),
        sa.Column('to_user_id', sa.String(length=64), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_operations_asset_id', 'asset_operations', ['asset_id'])
    op.create_index('ix_asset_operations_type', 'asset_operations', ['type'])
    op.create_index('ix_asset_operations_status', 'asset_operations', ['status'])
    op.create_index('ix_asset_ops_asset_created', 'asset_operations', ['asset_id', 'created_at'])
    op.create_index('ix_asset_ops_asset_type', 'asset_operations', ['asset_id', 'type'])

    # ============================================================================
    # consumables / consumable_operations / consumable_alerts
    # ============================================================================
    op.create_table(
        'consumables',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('keeper', sa.String(length=255), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('unit', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False),
        sa.Column('safety_stock', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('purchase_currency', sa.String(length=8), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity >= 0', name='ck_consumables_quantity_nonneg'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_consumables_reserved_nonneg'),
        sa.CheckConstraint('reserved_quantity <= quantity', name='ck_consumables_reserved_le_quantity'),
        sa.CheckConstraint('safety_stock >= 0', name='ck_consumables_safety_nonneg'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_consumables_status', 'consumables', ['status'])
    op.create_index('ix_consumables_category', 'consumables', ['category'])
    op.create_index('ix_consumables_keeper', 'consumables', ['keeper'])

    op.create_table(
        'consumable_operations',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('consumable_id', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('reserved_delta', sa.Integer(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('applied_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['consumable_id'], ['consumables.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_consumable_operations_consumable_id', 'consumable_operations', ['consumable_id'])
    op.create_index('ix_consumable_operations_type', 'consumable_operations', ['type'])
    op.create_index('ix_consumable_operations_status', 'consumable_operations', ['status'])
    op.create_index('ix_consumable_ops_consumable_created', 'consumable_operations', ['consumable_id', 'created_at'])
    op.create_index('ix_consumable_ops_type_status', 'consumable_operations', ['type', 'status'])

    op.create_table(
        'consumable_alerts',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('consumable_id', sa.String(length=32), nullable=False),
        sa.Column('consumable_name', sa.String(length=255), nullable=False),
        sa.Column('keeper', sa.String(length=255), nullable=True),
        sa.Column('level', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False),
        sa.Column('external_todo_id', sa.String(length=128), nullable=True),
        *_timestamps(),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['consumable_id'], ['consumables.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_consumable_alerts_consumable_id', 'consumable_alerts', ['consumable_id'])
    op.create_index('ix_consumable_alerts_status', 'consumable_alerts', ['status'])
    op.create_index('ix_consumable_alerts_consumable_status', 'consumable_alerts', ['consumable_id', 'status'])

    # ============================================================================
    # approval_requests / approval_cc_recipients
    # ============================================================================
    op.create_table(
        'approval_requests',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('asset_id', sa.String(length=32), nullable=True),
        sa.Column('consumable_id', sa.String(length=32), nullable=True),
        sa.Column('operation_id', sa.String(length=32), nullable=True),
        sa.Column('consumable_operation_id', sa.String(length=32), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('applicant_id', sa.String(length=64), nullable=False),
        sa.Column('applicant_name', sa.String(length=255), nullable=True),
        sa.Column('approver_id', sa.String(length=64), nullable=True),
        sa.Column('approver_name', sa.String(length=255), nullable=True),
        sa.Column('result', sa.Text(), nullable=True),
        sa.Column('external_todo_id', sa.String(length=128), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id'], ),
        sa.ForeignKeyConstraint(['consumable_id'], ['consumables.id'], ),
        sa.ForeignKeyConstraint(['operation_id'], ['asset_operations.id'], ),
        sa.ForeignKeyConstraint(['consumable_operation_id'], ['consumable_operations.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_approval_requests_asset_id', 'approval_requests', ['asset_id'])
    op.create_index('ix_approval_requests_consumable_id', 'approval_requests', ['consumable_id'])
    op.create_index('ix_approval_requests_operation_id', 'approval_requests', ['operation_id'])
    op.create_index('ix_approval_requests_consumable_operation_id', 'approval_requests',
                    ['consumable_operation_id'])
    op.create_index('ix_approval_requests_type', 'approval_requests', ['type'])
    op.create_index('ix_approval_requests_status', 'approval_requests', ['status'])
    op.create_index('ix_approvals_status_created', 'approval_requests', ['status', 'created_at'])
    op.create_index('ix_approvals_applicant', 'approval_requests', ['applicant_id'])
    op.create_index('ix_approvals_approver', 'approval_requests', ['approver_id'])

    op.create_table(
        'approval_cc_recipients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('approval_id', sa.String(length=32), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('user_name', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['approval_id'], ['approval_requests.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('approval_id', 'user_id', name='uq_approval_cc_user'),
    )
    op.create_index('ix_approval_cc_recipients_approval_id', 'approval_cc_recipients', ['approval_id'])
    op.create_index('ix_approval_cc_recipients_user_id', 'approval_cc_recipients', ['user_id'])

    # ============================================================================
    # consumable_inventory_tasks / consumable_inventory_entries
    # ============================================================================
    op.create_table(
        'consumable_inventory_tasks',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('scope', sa.String(length=255), nullable=True),
        sa.Column('filters', sa.JSON(), nullable=True),
        sa.Column('owner', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_consumable_inventory_tasks_status', 'consumable_inventory_tasks', ['status'])

    op.create_table(
        'consumable_inventory_entries',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('task_id', sa.String(length=32), nullable=False),
        sa.Column('consumable_id', sa.String(length=32), nullable=False),
        sa.Column('consumable_name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('keeper', sa.String(length=255), nullable=True),
        sa.Column('expected_quantity', sa.Integer(), nullable=False),
        sa.Column('expected_reserved', sa.Integer(), nullable=False),
        sa.Column('actual_quantity', sa.Integer(), nullable=True),
        sa.Column('actual_reserved', sa.Integer(), nullable=True),
        sa.Column('variance_quantity', sa.Integer(), nullable=True),
        sa.Column('variance_reserved', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['task_id'], ['consumable_inventory_tasks.id'], ),
        sa.ForeignKeyConstraint(['consumable_id'], ['consumables.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id', 'consumable_id', name='uq_inventory_entries_task_consumable'),
    )
    op.create_index('ix_consumable_inventory_entries_task_id', 'consumable_inventory_entries', ['task_id'])
    op.create_index('ix_consumable_inventory_entries_consumable_id', 'consumable_inventory_entries',
                    ['consumable_id'])
    op.create_index('ix_consumable_inventory_entries_status', 'consumable_inventory_entries', ['status'])

    # ============================================================================
    # action_configs
    # ============================================================================
    op.create_table(
        'action_configs',
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('default_approver_type', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('default_approver_refs', sa.JSON(), nullable=True),
        sa.Column('allow_override', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('action'),
    )

    # ============================================================================
    # outbox_events
    # ============================================================================
    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=64), nullable=False),
        sa.Column('aggregate_id', sa.String(length=32), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_outbox_events_kind', 'outbox_events', ['kind'])
    op.create_index('ix_outbox_events_aggregate_id', 'outbox_events', ['aggregate_id'])
    op.create_index('ix_outbox_events_status', 'outbox_events', ['status'])
    op.create_index('ix_outbox_status_next_attempt', 'outbox_events', ['status', 'next_attempt_at'])


def downgrade():
    op.drop_table('outbox_events')
    op.drop_table('action_configs')
    op.drop_table('consumable_inventory_entries')
    op.drop_table('consumable_inventory_tasks')
    op.drop_table('approval_cc_recipients')
    op.drop_table('approval_requests')
    op.drop_table('consumable_alerts')
    op.drop_table('consumable_operations')
    op.drop_table('consumables')
    op.drop_table('asset_operations')
    op.drop_table('assets')
