"""Pydantic schemas for tracked artists and favorite concerts.

Learn: Request bodies are validated by hand in the routes (the original
API answers missing fields with 400 + a message, not 422), so these
schemas mark the required fields Optional and leave the check to the
handler.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─── Tracked artists ─────────────────────────────────────


class TrackArtistRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    artist_id: Optional[str] = Field(None, alias="artistId")
    artist_name: Optional[str] = Field(None, alias="artistName")
    artist_image: Optional[str] = Field(None, alias="artistImage")
    genre: Optional[str] = None


class TrackedArtistRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID = Field(alias="_id")
    user_id: uuid.UUID = Field(alias="userId")
    artist_id: str = Field(alias="artistId")
    artist_name: str = Field(alias="artistName")
    artist_image: Optional[str] = Field(None, alias="artistImage")
    genre: Optional[str] = None
    tracked_at: datetime = Field(alias="trackedAt")


# ─── Favorites ───────────────────────────────────────────


class FavoriteConcertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    concert_id: Optional[str] = Field(None, alias="concertId")
    concert_data: Optional[dict[str, Any]] = Field(None, alias="concertData")


class FavoriteConcertRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID = Field(alias="_id")
    user_id: uuid.UUID = Field(alias="userId")
    concert_id: str = Field(alias="concertId")
    concert_data: dict[str, Any] = Field(alias="concertData")
    favorited_at: datetime = Field(alias="favoritedAt")
