"""Notification API — the user's inbox.

Learn: Every route is scoped to the bearer token's user. A notification
id that belongs to someone else gets the same 404 as one that doesn't
exist. The mobile client polls unread-count and the list independently
of the live channel, so these endpoints are the recovery path for any
push that never arrived.

Routes:
- GET    /notifications               → {notifications, totalPages, currentPage, total}
- PATCH  /notifications/read-all      → {message}
- GET    /notifications/unread-count  → {count}
- PATCH  /notifications/{id}/read     → {notification}
- DELETE /notifications/{id}          → {message}
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tunetrace.auth.dependencies import CurrentIdentity, get_current_user
from tunetrace.db.engine import get_db
from tunetrace.schemas.notification import (
    MessageResponse,
    NotificationEnvelope,
    NotificationPage,
    NotificationRead,
    UnreadCount,
)
from tunetrace.services.notification_service import (
    NotificationNotFoundError,
    NotificationService,
    total_pages,
)

router = APIRouter(prefix="/notifications")


@router.get("", response_model=NotificationPage)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Newest first, 1-indexed pages."""
    svc = NotificationService(db)
    items, total = await svc.list_by_user(identity.user_id, page=page, page_size=limit)
    return NotificationPage(
        notifications=[NotificationRead.model_validate(n) for n in items],
        total_pages=total_pages(total, limit),
        current_page=page,
        total=total,
    )


@router.patch("/read-all", response_model=MessageResponse)
async def mark_all_read(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService(db).mark_all_read(identity.user_id)
    return MessageResponse(message="All notifications marked as read")


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService(db).unread_count(identity.user_id)
    return UnreadCount(count=count)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationEnvelope,
)
async def mark_read(
    notification_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        notification = await NotificationService(db).mark_read(identity.user_id, notification_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationEnvelope(notification=NotificationRead.model_validate(notification))


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        await NotificationService(db).delete(identity.user_id, notification_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
    return MessageResponse(message="Notification deleted successfully")
