"""Notification endpoints — list, mark read, unread count."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavepro.auth.dependencies import get_current_identity
from leavepro.auth.schemas import CallerIdentity
from leavepro.common.pagination import PaginationParams
from leavepro.database import get_db
from leavepro.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)
from leavepro.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    is_read: Optional[bool] = Query(default=None, description="Filter by read status"),
    pagination: PaginationParams = Depends(),
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """List notifications for the authenticated user (paginated)."""
    return await NotificationService.get_notifications(
        db,
        employee_id=caller.id,
        pagination=pagination,
        is_read=is_read,
    )


# ── GET /unread-count — badge count ─────────────────────────────────
# Registered before /{notification_id}/read so the literal path wins.

@router.get("/unread-count")
async def unread_count(
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Return the number of unread notifications (for header badge)."""
    count = await NotificationService.get_unread_count(db, caller.id)
    return {"data": {"count": count}}


# ── PUT /read-all — bulk mark all as read ───────────────────────────

@router.put("/read-all")
async def mark_all_read(
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Mark all unread notifications as read for the authenticated user."""
    count = await NotificationService.mark_all_read(db, caller.id)
    return {"message": f"Marked {count} notifications as read", "data": {"count": count}}


# ── PUT /{notification_id}/read — mark single as read ───────────────

@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    caller: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Mark a single notification as read."""
    notification = await NotificationService.mark_read(db, notification_id, caller.id)
    return {
        "message": "Notification marked as read",
        "data": NotificationResponse.model_validate(notification),
    }
