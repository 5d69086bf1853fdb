"""Pydantic schemas for notifications.

Learn: The mobile client was written against a document store, so the
wire format keeps its field names: "_id", "isRead", "createdAt". Fields
carry those names as aliases (populate_by_name lets ORM objects and
snake_case dicts validate too) and every response is dumped by alias.

The same NotificationRead shape is used for REST responses and for the
NEW_NOTIFICATION payload on the live channel.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class NotificationRead(BaseModel):
    """Wire shape: {_id, type, title, message, data, isRead, createdAt}."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID = Field(alias="_id")
    type: str
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = Field(alias="isRead")
    created_at: datetime = Field(alias="createdAt")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict, as sent over REST and the live channel."""
        return self.model_dump(mode="json", by_alias=True)


class NotificationPage(BaseModel):
    """GET /api/notifications response."""

    model_config = ConfigDict(populate_by_name=True)

    notifications: list[NotificationRead]
    total_pages: int = Field(alias="totalPages")
    current_page: int = Field(alias="currentPage")
    total: int


class NotificationEnvelope(BaseModel):
    notification: NotificationRead


class UnreadCount(BaseModel):
    count: int


class MessageResponse(BaseModel):
    message: str
