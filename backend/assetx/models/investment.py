"""Token investment (ownership) model"""
from enum import Enum
from sqlalchemy import Column, Integer, String, BigInteger, Float, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from assetx.models.database import Base, utcnow


class InvestmentStatus(str, Enum):
    ACTIVE = "active"
    SOLD = "sold"  # Every token resold
    TRANSFERRED = "transferred"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class InvestmentSource(str, Enum):
    """Where the tokens of an investment came from"""
    OFFERING = "offering"  # Primary settlement of a purchase request
    LISTING = "listing"  # P2P resale


class TokenInvestment(Base):
    """Durable record of tokens held by one investor"""
    __tablename__ = "token_investments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    investor_id = Column(String(128), nullable=False, index=True)
    investor_email = Column(String(200), nullable=True)
    offering_id = Column(Integer, ForeignKey("token_offerings.id"), nullable=False, index=True)
    property_id = Column(String(64), nullable=False, index=True)

    tokens_owned = Column(BigInteger, nullable=False)
    purchase_price = Column(BigInteger, nullable=False)  # Cents per token at settlement
    total_investment = Column(BigInteger, nullable=False)  # Cents
    ownership_percentage = Column(Float, nullable=False)  # tokens_owned / offering.total_tokens

    transaction_id = Column(String(64), unique=True, nullable=False)
    payment_method = Column(String(100), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.SUCCESS.value)

    total_dividends_earned = Column(BigInteger, nullable=False, default=0)
    last_dividend_date = Column(DateTime, nullable=True)

    source = Column(String(20), nullable=False, default=InvestmentSource.OFFERING.value)
    purchase_request_id = Column(Integer, nullable=True, index=True)
    listing_id = Column(Integer, nullable=True, index=True)

    status = Column(String(20), nullable=False, default=InvestmentStatus.ACTIVE.value)
    purchase_date = Column(DateTime, default=utcnow)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    offering = relationship("TokenOffering", back_populates="investments")

    __table_args__ = (
        CheckConstraint("tokens_owned >= 0", name="ck_investment_tokens_non_negative"),
        Index("ix_investments_investor_status", "investor_id", "status"),
    )

    def __repr__(self):
        return f"<TokenInvestment {self.investor_id} x{self.tokens_owned} ({self.status})>"
