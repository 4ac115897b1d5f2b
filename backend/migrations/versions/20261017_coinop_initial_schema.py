"""Initial schema: clients, machines, counter ledger, collections, expenses, company

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17

This migration adds:
1. clients (venues) with machine_count
2. machines with current/initial counters, split percentage and version_id
3. machine_history (human-readable machine timeline)
4. counter_observations (append-only, single-table inheritance keyed by source)
5. collections (1-1 with a collection observation)
6. expenses
7. company_profiles
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. CLIENTS
    # ==========================================================================
    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('business_type', sa.String(length=64), nullable=True),
        sa.Column('owner', sa.String(length=200), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('province', sa.String(length=120), nullable=True),
        sa.Column('postal_code', sa.String(length=16), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('tax_id', sa.String(length=32), nullable=True),
        sa.Column('morning_open_time', sa.String(length=5), nullable=True),
        sa.Column('morning_close_time', sa.String(length=5), nullable=True),
        sa.Column('evening_open_time', sa.String(length=5), nullable=True),
        sa.Column('evening_close_time', sa.String(length=5), nullable=True),
        sa.Column('closing_day', sa.String(length=16), nullable=True),
        sa.Column('machine_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('machine_count >= 0', name='ck_clients_machine_count_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('clients', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_clients_name'), ['name'], unique=False)

    # ==========================================================================
    # 2. MACHINES
    # ==========================================================================
    op.create_table('machines',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('serial_number', sa.String(length=64), nullable=False),
        sa.Column('machine_type', sa.String(length=64), nullable=False),
        sa.Column('model', sa.String(length=120), nullable=True),
        sa.Column('brand', sa.String(length=120), nullable=True),
        sa.Column('cost', sa.Float(), nullable=True),
        sa.Column('purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('supplier', sa.String(length=200), nullable=True),
        sa.Column('warranty_months', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('width', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('depth', sa.Float(), nullable=True),
        sa.Column('has_manual', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('has_warranty_doc', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='warehouse'),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('current_counter', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('initial_counter', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('split_percentage', sa.Float(), nullable=False, server_default='50'),
        sa.Column('installation_data', sa.JSON(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('current_counter >= 0', name='ck_machines_current_counter_nonneg'),
        sa.CheckConstraint('initial_counter >= 0', name='ck_machines_initial_counter_nonneg'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('machines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_machines_serial_number'), ['serial_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_machines_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_machines_client_id'), ['client_id'], unique=False)

    # ==========================================================================
    # 3. MACHINE HISTORY
    # ==========================================================================
    op.create_table('machine_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('machine_id', sa.String(length=36), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('machine_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_machine_history_machine_id'), ['machine_id'], unique=False)
        batch_op.create_index('ix_machine_history_machine_occurred', ['machine_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 4. COUNTER OBSERVATIONS (append-only)
    # ==========================================================================
    op.create_table('counter_observations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('machine_id', sa.String(length=36), nullable=False),
        sa.Column('source', sa.String(length=16), nullable=False),
        sa.Column('previous_counter', sa.Integer(), nullable=False),
        sa.Column('new_counter', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('actor', sa.String(length=120), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        # installation
        sa.Column('client_id', sa.Integer(), nullable=True),
        # transfer
        sa.Column('from_client_id', sa.Integer(), nullable=True),
        sa.Column('to_client_id', sa.Integer(), nullable=True),
        sa.CheckConstraint('difference >= 0', name='ck_counter_obs_difference_nonneg'),
        sa.CheckConstraint('new_counter >= 0', name='ck_counter_obs_new_counter_nonneg'),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['from_client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['to_client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('counter_observations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_counter_observations_machine_id'), ['machine_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_counter_observations_source'), ['source'], unique=False)
        batch_op.create_index(batch_op.f('ix_counter_observations_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_counter_observations_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_counter_observations_from_client_id'), ['from_client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_counter_observations_to_client_id'), ['to_client_id'], unique=False)
        batch_op.create_index('ix_counter_obs_machine_occurred', ['machine_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 5. COLLECTIONS
    # ==========================================================================
    op.create_table('collections',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('machine_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('observation_id', sa.Integer(), nullable=False),
        sa.Column('collected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('previous_counter', sa.Integer(), nullable=False),
        sa.Column('current_counter', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.Column('distribution_percentage', sa.Float(), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('collection_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('staff_member', sa.String(length=120), nullable=False),
        sa.Column('signature_data', sa.Text(), nullable=True),
        sa.Column('ticket_number', sa.String(length=64), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(length=120), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_collections_amount_nonneg'),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['observation_id'], ['counter_observations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('observation_id')
    )
    with op.batch_alter_table('collections', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_collections_machine_id'), ['machine_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_collections_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_collections_collected_at'), ['collected_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_collections_staff_member'), ['staff_member'], unique=False)
        batch_op.create_index('ix_collections_client_collected', ['client_id', 'collected_at'], unique=False)

    # ==========================================================================
    # 6. EXPENSES
    # ==========================================================================
    op.create_table('expenses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('machine_id', sa.String(length=36), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('expense_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expense_type', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('receipt_image', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_expenses_amount_nonneg'),
        sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('expenses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_expenses_machine_id'), ['machine_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_expenses_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_expenses_expense_date'), ['expense_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_expenses_expense_type'), ['expense_type'], unique=False)

    # ==========================================================================
    # 7. COMPANY PROFILE
    # ==========================================================================
    op.create_table('company_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('tax_id', sa.String(length=32), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('logo', sa.Text(), nullable=True),
        sa.Column('vat_percentage', sa.Float(), nullable=False, server_default='21'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('company_profiles')
    op.drop_table('expenses')
    op.drop_table('collections')
    op.drop_table('counter_observations')
    op.drop_table('machine_history')
    op.drop_table('machines')
    op.drop_table('clients')
