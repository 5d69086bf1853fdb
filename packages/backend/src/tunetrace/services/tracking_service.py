"""Tracked artists and favorite concerts — simple keyed CRUD.

Learn: Both collections are unique per user (enforced by the DB), and
both "add" operations are idempotent: adding something already there
returns the existing row with created=False instead of failing. That
holds under concurrency too: when two requests race past the lookup,
the loser hits the unique constraint, rolls back and returns the
winner's row.

The poller only reads tracked artists (list_all); everything else here
is driven by the user through the REST API.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.db.models import FavoriteConcert, TrackedArtist


class TrackingService:
    """A user's tracked artists."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def track(
        self,
        user_id: str,
        artist_id: str,
        artist_name: str,
        *,
        artist_image: Optional[str] = None,
        genre: Optional[str] = None,
    ) -> tuple[TrackedArtist, bool]:
        """Track an artist. Returns (row, created)."""
        existing = await self.get(user_id, artist_id)
        if existing:
            return existing, False

        tracked = TrackedArtist(
            user_id=uuid.UUID(user_id),
            artist_id=artist_id,
            artist_name=artist_name,
            artist_image=artist_image,
            genre=genre,
        )
        self.db.add(tracked)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return await self.get(user_id, artist_id), False
        await self.db.refresh(tracked)
        return tracked, True

    async def get(self, user_id: str, artist_id: str) -> Optional[TrackedArtist]:
        q = select(TrackedArtist).where(
            TrackedArtist.user_id == uuid.UUID(user_id),
            TrackedArtist.artist_id == artist_id,
        )
        result = await self.db.execute(q)
        return result.scalars().first()

    async def list_for_user(self, user_id: str) -> list[TrackedArtist]:
        q = (
            select(TrackedArtist)
            .where(TrackedArtist.user_id == uuid.UUID(user_id))
            .order_by(TrackedArtist.tracked_at.desc())
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def list_all(self) -> list[TrackedArtist]:
        """Every tracking row across all users (poller input)."""
        q = select(TrackedArtist).order_by(TrackedArtist.artist_id, TrackedArtist.tracked_at)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def untrack(self, user_id: str, artist_id: str) -> bool:
        result = await self.db.execute(
            delete(TrackedArtist).where(
                TrackedArtist.user_id == uuid.UUID(user_id),
                TrackedArtist.artist_id == artist_id,
            )
        )
        await self.db.commit()
        return bool(result.rowcount)


class FavoriteService:
    """A user's bookmarked concerts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(
        self, user_id: str, concert_id: str, concert_data: dict[str, Any]
    ) -> tuple[FavoriteConcert, bool]:
        """Favorite a concert. Returns (row, created)."""
        existing = await self.get(user_id, concert_id)
        if existing:
            return existing, False

        favorite = FavoriteConcert(
            user_id=uuid.UUID(user_id),
            concert_id=concert_id,
            concert_data=concert_data,
        )
        self.db.add(favorite)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return await self.get(user_id, concert_id), False
        await self.db.refresh(favorite)
        return favorite, True

    async def get(self, user_id: str, concert_id: str) -> Optional[FavoriteConcert]:
        q = select(FavoriteConcert).where(
            FavoriteConcert.user_id == uuid.UUID(user_id),
            FavoriteConcert.concert_id == concert_id,
        )
        result = await self.db.execute(q)
        return result.scalars().first()

    async def list_for_user(self, user_id: str) -> list[FavoriteConcert]:
        q = (
            select(FavoriteConcert)
            .where(FavoriteConcert.user_id == uuid.UUID(user_id))
            .order_by(FavoriteConcert.favorited_at.desc())
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def remove(self, user_id: str, concert_id: str) -> bool:
        result = await self.db.execute(
            delete(FavoriteConcert).where(
                FavoriteConcert.user_id == uuid.UUID(user_id),
                FavoriteConcert.concert_id == concert_id,
            )
        )
        await self.db.commit()
        return bool(result.rowcount)
