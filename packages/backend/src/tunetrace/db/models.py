"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys, stored natively on PostgreSQL and as CHAR(32) on SQLite
- JSON payloads (JSONB on PostgreSQL) for concert snapshots and notification data
- Uniqueness enforced by the database, not just by the service layer:
  one tracking row per (user, artist), one favorite per (user, concert),
  one notification per (user, source event)
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# Notification types
NEW_CONCERT = "NEW_CONCERT"

# Notification priorities
PRIORITY_NORMAL = "normal"
PRIORITY_HIGH = "high"


# ══════════════════════════════════════════════════════════════
# Users
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A registered app user.

    Learn: Owns tracked artists, favorites and notifications. Only the id
    and display name matter to the notification pipeline; credentials
    live here because the auth routes are the identity collaborator.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Tracked artists + favorite concerts
# ══════════════════════════════════════════════════════════════


class TrackedArtist(Base):
    """An artist a user wants new-concert notifications for.

    Created and deleted by explicit user action, never mutated otherwise.
    """

    __tablename__ = "tracked_artists"
    __table_args__ = (
        UniqueConstraint("user_id", "artist_id", name="uq_tracked_artists_user_artist"),
        Index("idx_tracked_artists_artist", "artist_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    artist_id: Mapped[str] = mapped_column(String(100), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(200), nullable=False)
    artist_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    genre: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class FavoriteConcert(Base):
    """A bookmarked concert. concert_data is the client's concert snapshot."""

    __tablename__ = "favorite_concerts"
    __table_args__ = (
        UniqueConstraint("user_id", "concert_id", name="uq_favorite_concerts_user_concert"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    concert_id: Mapped[str] = mapped_column(String(100), nullable=False)
    concert_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    favorited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Notifications
# ══════════════════════════════════════════════════════════════


class Notification(Base):
    """A durable inbox entry for one user.

    Learn: Created only by the concert-discovery poller, mutated only to
    flip is_read, deleted only by the owner. source_event_id carries the
    catalog event that triggered it; the unique constraint guarantees at
    most one notification per (user, event) even if a poller run is
    retried after a crash.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint("user_id", "source_event_id", name="uq_notifications_user_event"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
        Index("idx_notifications_user_unread", "user_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False, default=NEW_CONCERT)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PRIORITY_NORMAL
    )  # normal, high
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_event_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    artist_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )


class ArtistScan(Base):
    """Poller memory: which catalog events have been seen for an artist.

    Learn: With a baselining catalog, the first scan of an artist records
    its current events without notifying anyone. Every later scan treats
    event ids outside known_event_ids as newly announced. The list is
    kept newest first and pruned to the current listing plus recently
    seen ids.
    """

    __tablename__ = "artist_scans"

    artist_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    known_event_ids: Mapped[list[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    first_scanned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    last_scanned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
