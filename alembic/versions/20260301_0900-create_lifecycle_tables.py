"""Create tenant and branch lifecycle tables

Revision ID: create_lifecycle_tables
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'create_lifecycle_tables'
down_revision = None
branch_labels = None
depends_on = None


business_type = sa.Enum('RETAIL', 'RESTAURANT', 'HOSPITALITY', 'SERVICE', name='businesstype')
user_role = sa.Enum('OWNER', 'MANAGER', 'CASHIER', 'KITCHEN', name='userrole')
application_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='applicationstatus')
branch_request_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='branchrequeststatus')


def upgrade() -> None:
    # Create tenants table
    op.create_table(
        'tenants',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('business_name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(length=30), nullable=True),

        # Business profile
        sa.Column('business_type', business_type, nullable=False, server_default='RETAIL'),
        sa.Column('business_logo', sa.String(), nullable=True),
        sa.Column('currency_code', sa.String(length=3), nullable=False, server_default='NGN'),
        sa.Column('currency_symbol', sa.String(length=5), nullable=False, server_default='₦'),
        sa.Column('tax_rate', sa.Float(), nullable=False, server_default='0'),

        # Subscription window
        sa.Column('subscription_start', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('subscription_end', sa.DateTime(), nullable=False),
        sa.Column('grace_period_end', sa.DateTime(), nullable=True),
        sa.Column('is_in_grace_period', sa.Boolean(), nullable=False, server_default='false'),

        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenants_business_name', 'tenants', ['business_name'], unique=True)
    op.create_index('ix_tenants_slug', 'tenants', ['slug'], unique=True)
    op.create_index('ix_tenants_subscription_end', 'tenants', ['subscription_end'])

    # Create branches table
    op.create_table(
        'branches',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('is_main', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_branches_tenant_id', 'branches', ['tenant_id'])
    op.create_index('ix_branches_created_at', 'branches', ['created_at'])
    # At most one main branch per tenant
    op.create_index(
        'uq_branches_tenant_main',
        'branches',
        ['tenant_id'],
        unique=True,
        postgresql_where=sa.text('is_main'),
        sqlite_where=sa.text('is_main'),
    )

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('branch_id', sa.String(), nullable=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('role', user_role, nullable=False, server_default='CASHIER'),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.UniqueConstraint('tenant_id', 'username', name='uq_users_tenant_username'),
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])
    op.create_index('ix_users_username', 'users', ['username'])

    # Create branch_requests table
    op.create_table(
        'branch_requests',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('branch_name', sa.String(), nullable=False),
        sa.Column('address', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', branch_request_status, nullable=False, server_default='PENDING'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('requester_id', sa.String(), nullable=True),
        sa.Column('reviewer_id', sa.String(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('branch_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_branch_requests_tenant_id', 'branch_requests', ['tenant_id'])
    op.create_index('ix_branch_requests_status', 'branch_requests', ['status'])

    # Create tenant_applications table
    op.create_table(
        'tenant_applications',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('business_name', sa.String(), nullable=False),
        sa.Column('business_email', sa.String(), nullable=False),
        sa.Column('business_phone', sa.String(), nullable=True),
        sa.Column('business_address', sa.String(), nullable=True),
        sa.Column('business_type', business_type, nullable=False, server_default='RETAIL'),
        sa.Column('business_logo', sa.String(), nullable=True),
        sa.Column('owner_full_name', sa.String(), nullable=False),
        sa.Column('owner_email', sa.String(), nullable=False),
        sa.Column('owner_phone', sa.String(), nullable=True),
        sa.Column('desired_username', sa.String(), nullable=True),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('status', application_status, nullable=False, server_default='PENDING'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('reviewed_by', sa.String(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_tenant_applications_business_name', 'tenant_applications', ['business_name'])
    op.create_index('ix_tenant_applications_business_email', 'tenant_applications', ['business_email'])
    op.create_index('ix_tenant_applications_status', 'tenant_applications', ['status'])

    # Create tenant-owned commercial tables (branch reference is weak: no cascade)
    op.create_table(
        'products',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('branch_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_branch_id', 'products', ['branch_id'])
    op.create_index('ix_products_sku', 'products', ['sku'])

    op.create_table(
        'sales',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('branch_id', sa.String(), nullable=True),
        sa.Column('cashier_id', sa.String(), nullable=True),
        sa.Column('receipt_number', sa.String(), nullable=False),
        sa.Column('final_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(), nullable=False, server_default='completed'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_sales_tenant_id', 'sales', ['tenant_id'])
    op.create_index('ix_sales_branch_id', 'sales', ['branch_id'])
    op.create_index('ix_sales_receipt_number', 'sales', ['receipt_number'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])

    op.create_table(
        'expenses',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('branch_id', sa.String(), nullable=True),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id']),
    )
    op.create_index('ix_expenses_tenant_id', 'expenses', ['tenant_id'])
    op.create_index('ix_expenses_branch_id', 'expenses', ['branch_id'])

    # Create audit tables (tenant/branch ids are snapshots, not foreign keys)
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=True),
        sa.Column('branch_id', sa.String(), nullable=True),
        sa.Column('actor_id', sa.String(), nullable=True),
        sa.Column('actor_username', sa.String(), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_branch_id', 'audit_logs', ['branch_id'])
    op.create_index('ix_audit_logs_actor_id', 'audit_logs', ['actor_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    op.create_table(
        'impersonation_logs',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('admin_id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('user_agent', sa.String(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('actions_performed', sa.JSON(), nullable=True),

        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_impersonation_logs_admin_id', 'impersonation_logs', ['admin_id'])
    op.create_index('ix_impersonation_logs_tenant_id', 'impersonation_logs', ['tenant_id'])


def downgrade() -> None:
    op.drop_table('impersonation_logs')
    op.drop_table('audit_logs')
    op.drop_table('expenses')
    op.drop_table('sales')
    op.drop_table('products')
    op.drop_table('tenant_applications')
    op.drop_table('branch_requests')
    op.drop_table('users')
    op.drop_index('uq_branches_tenant_main', table_name='branches')
    op.drop_table('branches')
    op.drop_table('tenants')

    branch_request_status.drop(op.get_bind(), checkfirst=True)
    application_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
    business_type.drop(op.get_bind(), checkfirst=True)
