"""initial schema: users, one-time codes, partnerships, game requests, plays

Revision ID: 5a1c9e7d2b40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '5a1c9e7d2b40'
down_revision = None
branch_labels = None
depends_on = None

Document = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'otps',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('code_hash', sa.String(length=128), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_otps_email', 'otps', ['email'])
    op.create_index('ix_otps_expires_at', 'otps', ['expires_at'])

    op.create_table(
        'partner_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('sender_id', sa.Uuid(), nullable=False),
        sa.Column('recipient_email', sa.String(length=255), nullable=False),
        sa.Column('recipient_id', sa.Uuid(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['recipient_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_partner_requests_sender_id', 'partner_requests', ['sender_id'])
    op.create_index('ix_partner_requests_recipient_email', 'partner_requests', ['recipient_email'])
    op.create_index('ix_partner_requests_recipient_id', 'partner_requests', ['recipient_id'])
    op.create_index('ix_partner_requests_status', 'partner_requests', ['status'])
    op.create_index(
        'idx_partner_requests_unique_pending', 'partner_requests', ['sender_id', 'recipient_email'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'partnerships',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user1_id', sa.Uuid(), nullable=False),
        sa.Column('user2_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('user1_id <> user2_id', name='chk_partnership_distinct'),
        sa.ForeignKeyConstraint(['user1_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user2_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user1_id'),
        sa.UniqueConstraint('user2_id'),
    )

    op.create_table(
        'games',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(length=10), nullable=True),
        sa.Column('details', Document, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_games_name', 'games', ['name'])

    op.create_table(
        'game_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('game_id', sa.Uuid(), nullable=False),
        sa.Column('requester_id', sa.Uuid(), nullable=False),
        sa.Column('partner_id', sa.Uuid(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['game_id'], ['games.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['requester_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['partner_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('game_id', 'requester_id', 'partner_id', 'status', 'expires_at'):
        op.create_index(f'ix_game_requests_{column}', 'game_requests', [column])
    op.create_index(
        'idx_game_requests_unique_pending', 'game_requests', ['game_id', 'requester_id', 'partner_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'plays',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('game_id', sa.Uuid(), nullable=False),
        sa.Column('partner1_id', sa.Uuid(), nullable=False),
        sa.Column('partner2_id', sa.Uuid(), nullable=False),
        sa.Column('pair_low', sa.Uuid(), nullable=False),
        sa.Column('pair_high', sa.Uuid(), nullable=False),
        sa.Column('play_data', Document, nullable=False),
        sa.Column('is_live', sa.Boolean(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['game_id'], ['games.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['partner1_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['partner2_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('game_id', 'partner1_id', 'partner2_id', 'is_live'):
        op.create_index(f'ix_plays_{column}', 'plays', [column])
    op.create_index('idx_plays_partners', 'plays', ['pair_low', 'pair_high'])
    op.create_index(
        'idx_plays_unique_live', 'plays', ['game_id', 'pair_low', 'pair_high'],
        unique=True,
        postgresql_where=sa.text('is_live'),
        sqlite_where=sa.text('is_live'),
    )


def downgrade():
    op.drop_table('plays')
    op.drop_table('game_requests')
    op.drop_table('games')
    op.drop_table('partnerships')
    op.drop_table('partner_requests')
    op.drop_table('otps')
    op.drop_table('users')
