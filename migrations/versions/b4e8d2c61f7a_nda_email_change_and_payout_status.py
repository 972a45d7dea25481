"""nda acceptances, email change, payout status, totp replay guard

Revision ID: b4e8d2c61f7a
Revises: a7c3e91f0b2d
Create Date: 2026-10-17 09:40:12.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b4e8d2c61f7a'
down_revision: Union[str, Sequence[str], None] = 'a7c3e91f0b2d'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column('users', sa.Column('totp_last_counter', sa.Integer(), nullable=True))
    op.add_column('verification_tokens', sa.Column('new_email', sa.String(length=255), nullable=True))
    op.add_column('developer_profiles', sa.Column('stripe_account_status', sa.String(length=16), nullable=True))
    op.add_column('developer_profiles', sa.Column('stripe_onboarded_at', sa.DateTime(), nullable=True))

    op.create_table(
        'nda_acceptances',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version', sa.String(length=16), nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_reason', sa.Text(), nullable=True),
        sa.UniqueConstraint('user_id', 'game_id', name='uq_nda_acceptances_user_game'),
    )
    op.create_index('idx_nda_acceptances_game', 'nda_acceptances', ['game_id'])


def downgrade() -> None:
    op.drop_index('idx_nda_acceptances_game', table_name='nda_acceptances')
    op.drop_table('nda_acceptances')
    op.drop_column('developer_profiles', 'stripe_onboarded_at')
    op.drop_column('developer_profiles', 'stripe_account_status')
    op.drop_column('verification_tokens', 'new_email')
    op.drop_column('users', 'totp_last_counter')
