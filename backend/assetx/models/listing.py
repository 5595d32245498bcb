"""P2P token listing model"""
from enum import Enum
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Text, ForeignKey, Index, JSON, CheckConstraint
from sqlalchemy.orm import relationship

from assetx.models.database import Base, utcnow


class ListingStatus(str, Enum):
    ACTIVE = "active"
    SOLD = "sold"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class TokenListing(Base):
    """Secondary-market offer to resell tokens from one investment"""
    __tablename__ = "token_listings"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Seller snapshot
    seller_id = Column(String(128), nullable=False, index=True)
    seller_name = Column(String(200), nullable=False)
    seller_email = Column(String(200), nullable=True)

    investment_id = Column(Integer, ForeignKey("token_investments.id"), nullable=False, index=True)
    offering_id = Column(Integer, ForeignKey("token_offerings.id"), nullable=False, index=True)
    property_id = Column(String(64), nullable=False)

    # Listing details (amounts in cents)
    tokens_for_sale = Column(BigInteger, nullable=False)
    price_per_token = Column(BigInteger, nullable=False)
    total_price = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)

    # Denormalized from the offering for browsing
    property_title = Column(String(200), nullable=True)
    token_name = Column(String(100), nullable=False)
    token_symbol = Column(String(16), nullable=False)
    property_type = Column(String(50), nullable=True)
    risk_level = Column(String(10), nullable=True)

    status = Column(String(20), nullable=False, default=ListingStatus.ACTIVE.value, index=True)

    listed_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    sold_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

    # Buyer snapshot (populated when the last token sells)
    buyer_id = Column(String(128), nullable=True)
    buyer_name = Column(String(200), nullable=True)
    buyer_email = Column(String(200), nullable=True)

    description = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    offering = relationship("TokenOffering", back_populates="listings")
    investment = relationship("TokenInvestment")

    __table_args__ = (
        CheckConstraint("tokens_for_sale >= 0", name="ck_listing_tokens_non_negative"),
        Index("ix_listings_seller_status", "seller_id", "status"),
        Index("ix_listings_status_listed", "status", "listed_at"),
    )

    def __repr__(self):
        return f"<TokenListing {self.token_symbol} x{self.tokens_for_sale} ({self.status})>"
