"""Notification inbox model"""
from enum import Enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index

from assetx.models.database import Base, utcnow


class NotificationType(str, Enum):
    TOKEN_REQUEST = "token_request"
    PAYMENT = "payment"
    TOKEN_SALE = "token_sale"
    LISTING = "listing"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Notification(Base):
    """Delivered notification for one recipient"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(String(128), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    related_id = Column(String(64), nullable=True, index=True)
    related_url = Column(String(300), nullable=True)
    priority = Column(String(10), nullable=False, default=NotificationPriority.MEDIUM.value)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read", "created_at"),
    )

    def __repr__(self):
        return f"<Notification {self.type} -> {self.recipient_id}>"
