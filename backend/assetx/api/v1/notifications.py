"""Notification inbox API endpoints"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.api.deps import get_current_user
from assetx.models.database import get_db
from assetx.schemas.auth import CurrentUser
from assetx.schemas.notification import NotificationResponse, NotificationListResponse, MarkAllReadResponse
from assetx.services.notifications import (
    list_notifications,
    mark_notification_read,
    mark_all_notifications_read,
)

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Your notifications, newest first, with the unread count"""
    notifications, unread_count = await list_notifications(db, user.user_id, unread_only, limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=unread_count,
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
async def read_all_notifications(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return MarkAllReadResponse(updated=await mark_all_notifications_read(db, user.user_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def read_notification(
    notification_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return NotificationResponse.model_validate(
        await mark_notification_read(db, user.user_id, notification_id)
    )
