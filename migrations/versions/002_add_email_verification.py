"""Add email verification columns to profiles

Revision ID: 002
Revises: 001
Create Date: 2026-10-17 18:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade():
    conn = op.get_bind()
    columns = [c['name'] for c in sa.inspect(conn).get_columns('profiles')]

    if 'email_verified_at' not in columns:
        op.add_column('profiles', sa.Column('email_verified_at', sa.DateTime(timezone=True), nullable=True))

    # sha256 of the link token; the raw token only ever travels in the email
    if 'verification_token_hash' not in columns:
        op.add_column('profiles', sa.Column('verification_token_hash', sa.String(64), nullable=True))

    if 'verification_expires_at' not in columns:
        op.add_column('profiles', sa.Column('verification_expires_at', sa.DateTime(timezone=True), nullable=True))

    op.create_index('idx_profiles_verification_token_hash', 'profiles', ['verification_token_hash'], unique=True)


def downgrade():
    op.drop_index('idx_profiles_verification_token_hash', table_name='profiles')
    with op.batch_alter_table('profiles') as batch_op:
        batch_op.drop_column('verification_expires_at')
        batch_op.drop_column('verification_token_hash')
        batch_op.drop_column('email_verified_at')
