"""initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

# JSONB on Postgres, plain JSON elsewhere
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')
MONEY = sa.Numeric(12, 4)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade():
    # --- Accounts ---
    op.create_table('profiles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.UniqueConstraint('email', name='uq_profiles_email')
    )

    op.create_table('user_roles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
        sa.CheckConstraint("role IN ('admin', 'user', 'supplier')", name='ck_user_roles_role')
    )

    op.create_table('api_tokens',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('token_hash', name='uq_api_tokens_token_hash')
    )

    # --- Suppliers ---
    op.create_table('suppliers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('company_name', sa.String(), nullable=False),
        sa.Column('contact_email', sa.String(), nullable=False),
        sa.Column('contact_phone', sa.String(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE')
    )
    op.create_index('idx_suppliers_user_id', 'suppliers', ['user_id'])

    # --- Designs ---
    op.create_table('designs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('image_key', sa.String(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('wristband_color', sa.String(), nullable=True),
        sa.Column('wristband_type', sa.String(), nullable=False, server_default='tyvek'),
        sa.Column('custom_text', sa.Text(), nullable=True),
        sa.Column('text_color', sa.String(), nullable=True),
        sa.Column('text_position', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE')
    )
    op.create_index('idx_designs_user_id', 'designs', ['user_id'])

    # --- Orders ---
    op.create_table('orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('design_id', sa.String(36), nullable=True),
        sa.Column('supplier_id', sa.String(36), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', MONEY, nullable=False),
        sa.Column('base_price', MONEY, nullable=True),
        sa.Column('total_price', MONEY, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
        sa.Column('print_type', sa.String(), nullable=False, server_default='none'),
        sa.Column('has_trademark', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('trademark_text', sa.Text(), nullable=True),
        sa.Column('has_secure_guests', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('extra_charges', JSON_TYPE, nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('shipping_address', JSON_TYPE, nullable=True),
        sa.Column('stripe_session_id', sa.String(), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['design_id'], ['designs.id']),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.CheckConstraint('quantity > 0', name='ck_orders_quantity_positive'),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'declined', 'processing', 'completed', 'cancelled')",
            name='ck_orders_status'
        ),
        sa.CheckConstraint("payment_status IN ('pending', 'paid', 'failed')", name='ck_orders_payment_status'),
        sa.CheckConstraint("print_type IN ('none', 'black', 'full_color')", name='ck_orders_print_type')
    )
    op.create_index('idx_orders_user_id', 'orders', ['user_id'])
    op.create_index('idx_orders_supplier_id', 'orders', ['supplier_id'])
    op.create_index('idx_orders_design_id', 'orders', ['design_id'])
    op.create_index('idx_orders_stripe_session_id', 'orders', ['stripe_session_id'])
    op.create_index('idx_orders_payment_status_created', 'orders', ['payment_status', 'created_at'])

    # --- Pricing ---
    op.create_table('pricing_config',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('wristband_type', sa.String(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('base_price', MONEY, nullable=False),
        sa.Column('black_print_extra', MONEY, nullable=False, server_default='0'),
        sa.Column('full_color_print_extra', MONEY, nullable=False, server_default='0'),
        sa.Column('trademark_fee_per_thousand', MONEY, nullable=False, server_default='15'),
        sa.Column('qr_code_fee_per_thousand', MONEY, nullable=False, server_default='15'),
        sa.Column('express_delivery_fee', MONEY, nullable=False, server_default='19'),
        sa.Column('min_quantity', sa.Integer(), nullable=False, server_default='1000'),
        *_timestamps(),
        sa.UniqueConstraint('wristband_type', 'currency', name='uq_pricing_config_type_currency')
    )

    # --- Stripe webhook ledger ---
    op.create_table('stripe_events',
        sa.Column('event_id', sa.String(), primary_key=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='received'),
        sa.Column('last_error', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('received', 'processing', 'processed', 'failed')",
            name='ck_stripe_events_status'
        )
    )


def downgrade():
    op.drop_table('stripe_events')
    op.drop_table('pricing_config')
    op.drop_index('idx_orders_payment_status_created', table_name='orders')
    op.drop_index('idx_orders_stripe_session_id', table_name='orders')
    op.drop_index('idx_orders_design_id', table_name='orders')
    op.drop_index('idx_orders_supplier_id', table_name='orders')
    op.drop_index('idx_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('idx_designs_user_id', table_name='designs')
    op.drop_table('designs')
    op.drop_index('idx_suppliers_user_id', table_name='suppliers')
    op.drop_table('suppliers')
    op.drop_table('api_tokens')
    op.drop_table('user_roles')
    op.drop_table('profiles')
