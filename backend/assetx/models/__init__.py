"""Database models"""
from assetx.models.database import Base, get_db
from assetx.models.offering import TokenOffering, OfferingStatus, RiskLevel, DividendFrequency, Currency
from assetx.models.purchase_request import TokenPurchaseRequest, PurchaseRequestStatus
from assetx.models.investment import TokenInvestment, InvestmentStatus, InvestmentSource, PaymentStatus
from assetx.models.listing import TokenListing, ListingStatus

# Supporting tables
from assetx.models.notification import Notification, NotificationType, NotificationPriority
from assetx.models.profile import UserProfile

__all__ = [
    "Base",
    "get_db",
    "TokenOffering",
    "OfferingStatus",
    "RiskLevel",
    "DividendFrequency",
    "Currency",
    "TokenPurchaseRequest",
    "PurchaseRequestStatus",
    "TokenInvestment",
    "InvestmentStatus",
    "InvestmentSource",
    "PaymentStatus",
    "TokenListing",
    "ListingStatus",
    # Supporting
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "UserProfile",
]
