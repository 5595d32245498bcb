"""AssetX token market services"""
from .errors import (
    TokenMarketError,
    NotFound,
    Forbidden,
    InvalidTransition,
    InsufficientInventory,
    InsufficientHolding,
    ListingNotEditable,
    ListingNotAvailable,
    ValidationError,
    SettlementInconsistency,
)
from .inventory import OfferingInventoryManager, ReconciliationReport
from .notifications import NotificationEmitter, NotificationEvent, get_notification_emitter
from .offerings import OfferingService
from .purchase_requests import PurchaseRequestService, TRANSITIONS
from .listings import ListingMarket

__all__ = [
    # Errors
    "TokenMarketError",
    "NotFound",
    "Forbidden",
    "InvalidTransition",
    "InsufficientInventory",
    "InsufficientHolding",
    "ListingNotEditable",
    "ListingNotAvailable",
    "ValidationError",
    "SettlementInconsistency",
    # Ledger
    "OfferingInventoryManager",
    "ReconciliationReport",
    "OfferingService",
    "PurchaseRequestService",
    "TRANSITIONS",
    "ListingMarket",
    # Notifications
    "NotificationEmitter",
    "NotificationEvent",
    "get_notification_emitter",
]
