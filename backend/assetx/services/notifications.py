"""Best-effort notification emission for request and listing transitions."""
from dataclasses import dataclass, asdict
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assetx.api.websocket import broadcast_event
from assetx.models.database import async_session_factory
from assetx.models.notification import Notification, NotificationType, NotificationPriority
from assetx.services.errors import NotFound

logger = structlog.get_logger()


@dataclass
class NotificationEvent:
    """One event for the external delivery collaborator"""
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    related_id: Optional[str] = None
    related_url: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.MEDIUM

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = self.type.value
        data["priority"] = self.priority.value
        return data


class TokenNotificationMessages:
    """(title, message) templates for token market events"""

    @staticmethod
    def request_submitted(buyer_name: str, tokens: int, property_name: str) -> Tuple[str, str]:
        return (
            "New Token Purchase Request",
            f"{buyer_name} has requested to purchase {tokens} tokens for {property_name}",
        )

    @staticmethod
    def request_approved(property_name: str) -> Tuple[str, str]:
        return (
            "Token Request Approved",
            f"Your token purchase request for {property_name} has been approved. Please submit payment proof.",
        )

    @staticmethod
    def request_rejected(property_name: str, reason: Optional[str] = None) -> Tuple[str, str]:
        suffix = f": {reason}" if reason else "."
        return (
            "Token Request Rejected",
            f"Your token purchase request for {property_name} was rejected{suffix}",
        )

    @staticmethod
    def payment_proof_submitted(buyer_name: str, property_name: str) -> Tuple[str, str]:
        return (
            "Payment Proof Submitted",
            f"{buyer_name} has submitted payment proof for {property_name}. Please review and confirm.",
        )

    @staticmethod
    def payment_confirmed(property_name: str) -> Tuple[str, str]:
        return (
            "Payment Confirmed",
            f"Your payment for {property_name} has been confirmed. Tokens will be assigned shortly.",
        )

    @staticmethod
    def tokens_assigned(tokens: int, property_name: str) -> Tuple[str, str]:
        return (
            "Tokens Assigned",
            f"{tokens} tokens for {property_name} have been assigned to your portfolio.",
        )

    @staticmethod
    def request_completed(property_name: str) -> Tuple[str, str]:
        return (
            "Token Purchase Completed",
            f"Your token purchase for {property_name} is complete.",
        )

    @staticmethod
    def request_cancelled(property_name: str) -> Tuple[str, str]:
        return (
            "Token Request Cancelled",
            f"A token purchase request for {property_name} has been cancelled.",
        )

    @staticmethod
    def listing_published(tokens: int, symbol: str) -> Tuple[str, str]:
        return (
            "Listing Published",
            f"Your listing of {tokens} {symbol} tokens is now live on the marketplace.",
        )

    @staticmethod
    def listing_cancelled(symbol: str) -> Tuple[str, str]:
        return ("Listing Cancelled", f"Your {symbol} token listing has been cancelled.")

    @staticmethod
    def listing_sold(buyer_name: str, tokens: int, symbol: str, amount: int, currency: str) -> Tuple[str, str]:
        return (
            "Token Sold!",
            f"{buyer_name} purchased {tokens} {symbol} tokens from your listing "
            f"for {amount / 100:.2f} {currency}",
        )

    @staticmethod
    def listing_expired(symbol: str) -> Tuple[str, str]:
        return ("Listing Expired", f"Your {symbol} token listing has expired.")


Broadcaster = Callable[..., Awaitable[None]]


class NotificationEmitter:
    """
    Fire-and-forget producer of notification events.

    Emission runs after the originating transition has committed and uses its
    own session, so a failing inbox write or websocket broadcast can never
    undo a transition. Failures are logged and swallowed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker = async_session_factory,
        broadcaster: Broadcaster = broadcast_event,
    ):
        self.session_factory = session_factory
        self.broadcaster = broadcaster

    async def emit(self, event: NotificationEvent) -> bool:
        """Persist and broadcast one event. Returns False if delivery failed."""
        try:
            async with self.session_factory() as db:
                db.add(Notification(
                    recipient_id=event.recipient_id,
                    type=event.type.value,
                    title=event.title,
                    message=event.message,
                    related_id=event.related_id,
                    related_url=event.related_url,
                    priority=event.priority.value,
                    is_read=False,
                ))
                await db.commit()

            await self.broadcaster(
                event_type=event.type.value,
                data=event.to_dict(),
                channel="notifications",
                recipient_id=event.recipient_id,
            )
        except Exception as e:
            logger.warning(
                "Failed to emit notification",
                recipient_id=event.recipient_id,
                notification_type=event.type.value,
                related_id=event.related_id,
                error=str(e),
            )
            return False

        logger.debug(
            "Emitted notification",
            recipient_id=event.recipient_id,
            notification_type=event.type.value,
            related_id=event.related_id,
        )
        return True

    async def emit_all(self, events: Iterable[NotificationEvent]) -> int:
        """Emit several events; returns how many were delivered."""
        delivered = 0
        for event in events:
            if await self.emit(event):
                delivered += 1
        return delivered


_emitter: Optional[NotificationEmitter] = None


def get_notification_emitter() -> NotificationEmitter:
    """Get or create the singleton emitter (FastAPI dependency)."""
    global _emitter
    if _emitter is None:
        _emitter = NotificationEmitter()
    return _emitter


# =============================================================================
# Inbox
# =============================================================================

async def list_notifications(
    db: AsyncSession,
    recipient_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> Tuple[List[Notification], int]:
    """Newest-first notifications for a recipient, plus their unread count."""
    query = select(Notification).where(Notification.recipient_id == recipient_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    result = await db.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    )
    notifications = list(result.scalars().all())

    unread = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.recipient_id == recipient_id,
            Notification.is_read.is_(False),
        )
    )
    return notifications, unread.scalar_one()


async def mark_notification_read(db: AsyncSession, recipient_id: str, notification_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.recipient_id == recipient_id,
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFound("Notification not found", notification_id=notification_id)

    notification.is_read = True
    await db.commit()
    return notification


async def mark_all_notifications_read(db: AsyncSession, recipient_id: str) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()
    return result.rowcount
