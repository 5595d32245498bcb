"""Schemas for notification inbox APIs"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    recipient_id: str
    type: str
    title: str
    message: str
    related_id: Optional[str] = None
    related_url: Optional[str] = None
    priority: str
    is_read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
