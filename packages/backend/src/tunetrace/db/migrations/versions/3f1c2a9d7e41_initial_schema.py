"""Initial schema: users, tracked artists, favorites, notifications, artist scans

Learn: The uniqueness rules live in the database, not just the services:
one tracking row per (user, artist), one favorite per (user, concert),
and one notification per (user, source event). artist_scans is the
poller's durable memory of which catalog events it has already seen.

Revision ID: 3f1c2a9d7e41
Revises:
Create Date: 2026-10-19 10:12:44.281306
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # ─── Users ───────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    # ─── Tracked artists + favorites ─────────────────────
    op.create_table(
        'tracked_artists',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('artist_id', sa.String(length=100), nullable=False),
        sa.Column('artist_name', sa.String(length=200), nullable=False),
        sa.Column('artist_image', sa.Text(), nullable=True),
        sa.Column('genre', sa.String(length=100), nullable=True),
        sa.Column('tracked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'artist_id', name='uq_tracked_artists_user_artist'),
    )
    op.create_index('idx_tracked_artists_artist', 'tracked_artists', ['artist_id'])

    op.create_table(
        'favorite_concerts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('concert_id', sa.String(length=100), nullable=False),
        sa.Column('concert_data', JSONType, nullable=False),
        sa.Column('favorited_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'concert_id', name='uq_favorite_concerts_user_concert'),
    )

    # ─── Notifications ───────────────────────────────────
    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', JSONType, nullable=False),
        sa.Column('priority', sa.String(length=10), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('source_event_id', sa.String(length=200), nullable=True),
        sa.Column('artist_id', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'source_event_id', name='uq_notifications_user_event'),
    )
    op.create_index('idx_notifications_user_created', 'notifications', ['user_id', 'created_at'])
    op.create_index('idx_notifications_user_unread', 'notifications', ['user_id', 'is_read'])

    # ─── Poller memory ───────────────────────────────────
    op.create_table(
        'artist_scans',
        sa.Column('artist_id', sa.String(length=100), nullable=False),
        sa.Column('known_event_ids', JSONType, nullable=False),
        sa.Column('first_scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('artist_id'),
    )


def downgrade() -> None:
    op.drop_table('artist_scans')
    op.drop_index('idx_notifications_user_unread', table_name='notifications')
    op.drop_index('idx_notifications_user_created', table_name='notifications')
    op.drop_table('notifications')
    op.drop_table('favorite_concerts')
    op.drop_index('idx_tracked_artists_artist', table_name='tracked_artists')
    op.drop_table('tracked_artists')
    op.drop_table('users')
