"""Notification store — durable inbox records with read/unread state.

Learn: Every query and mutation here is scoped by user_id. Acting on a
notification that exists but belongs to someone else raises the same
NotificationNotFoundError as acting on one that doesn't exist, so the
API can't be used to probe for other users' ids.

Concurrency: unread_count() is always a COUNT over is_read, and the
bulk flip is a single UPDATE ... WHERE is_read = false, so concurrent
mark_read / mark_all_read calls can't double-count anything.

Lifecycle of a row:
  create_for_event (poller) → mark_read / mark_all_read → delete (owner)
"""

import math
import uuid
from typing import Any, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.db.models import PRIORITY_NORMAL, Notification

UserId = Union[str, uuid.UUID]


class NotificationNotFoundError(Exception):
    """Raised when a notification doesn't exist or isn't owned by the caller."""


def _as_uuid(value: UserId) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if page_size > 0 else 0


class NotificationService:
    """User-scoped notification persistence."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ─── Create ───────────────────────────────────────────

    async def create(
        self,
        user_id: UserId,
        type: str,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
        priority: str = PRIORITY_NORMAL,
        *,
        source_event_id: Optional[str] = None,
        artist_id: Optional[str] = None,
    ) -> Notification:
        """Persist a notification. Storage errors propagate to the caller."""
        notification = Notification(
            user_id=_as_uuid(user_id),
            type=type,
            title=title,
            message=message,
            data=data or {},
            priority=priority,
            is_read=False,
            source_event_id=source_event_id,
            artist_id=artist_id,
        )
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def create_for_event(
        self,
        user_id: UserId,
        source_event_id: str,
        type: str,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
        priority: str = PRIORITY_NORMAL,
        *,
        artist_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """Create the notification for (user, event) unless it already exists.

        Returns None when the user was already notified about this event.
        The unique constraint on (user_id, source_event_id) backs the
        pre-check, so a concurrent duplicate insert also resolves to None.
        """
        if await self.exists_for_event(user_id, source_event_id):
            return None
        try:
            return await self.create(
                user_id,
                type,
                title,
                message,
                data,
                priority,
                source_event_id=source_event_id,
                artist_id=artist_id,
            )
        except IntegrityError:
            await self.db.rollback()
            return None

    async def exists_for_event(self, user_id: UserId, source_event_id: str) -> bool:
        q = select(Notification.id).where(
            Notification.user_id == _as_uuid(user_id),
            Notification.source_event_id == source_event_id,
        )
        result = await self.db.execute(q)
        return result.first() is not None

    async def notified_event_ids(self, user_id: UserId, artist_id: str) -> set[str]:
        """Event ids that already produced a notification for (user, artist)."""
        q = select(Notification.source_event_id).where(
            Notification.user_id == _as_uuid(user_id),
            Notification.artist_id == artist_id,
            Notification.source_event_id.isnot(None),
        )
        result = await self.db.execute(q)
        return set(result.scalars().all())

    # ─── Queries ──────────────────────────────────────────

    async def list_by_user(
        self,
        user_id: UserId,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Notification], int]:
        """One page of the user's notifications, newest first, plus the total.

        page is 1-indexed, matching the REST contract.
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        uid = _as_uuid(user_id)
        total = await self.db.scalar(
            select(func.count()).select_from(Notification).where(Notification.user_id == uid)
        )
        q = (
            select(Notification)
            .where(Notification.user_id == uid)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(q)
        return list(result.scalars().all()), int(total or 0)

    async def unread_count(self, user_id: UserId) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.user_id == _as_uuid(user_id),
                Notification.is_read.is_(False),
            )
        )
        return int(count or 0)

    async def get_owned(self, user_id: UserId, notification_id: UserId) -> Notification:
        """Fetch a notification only if it belongs to user_id."""
        try:
            nid = _as_uuid(notification_id)
        except ValueError:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")

        q = select(Notification).where(
            Notification.id == nid,
            Notification.user_id == _as_uuid(user_id),
        )
        result = await self.db.execute(q)
        notification = result.scalars().first()
        if not notification:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        return notification

    # ─── Mutations ────────────────────────────────────────

    async def mark_read(self, user_id: UserId, notification_id: UserId) -> Notification:
        """Flip one notification to read. Idempotent for already-read rows."""
        notification = await self.get_owned(user_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            await self.db.commit()
            await self.db.refresh(notification)
        return notification

    async def mark_all_read(self, user_id: UserId) -> int:
        """Flip every unread notification of the user. Returns rows affected."""
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.user_id == _as_uuid(user_id),
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete(self, user_id: UserId, notification_id: UserId) -> None:
        notification = await self.get_owned(user_id, notification_id)
        await self.db.delete(notification)
        await self.db.commit()
