"""Token offering models"""
from enum import Enum
from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Text, CheckConstraint
from sqlalchemy.orm import relationship

from assetx.models.database import Base, utcnow


class OfferingStatus(str, Enum):
    """Token offering lifecycle status"""
    DRAFT = "draft"  # Created by the owner, not yet purchasable
    ACTIVE = "active"  # Open for purchase requests
    FUNDED = "funded"  # Every token sold
    CLOSED = "closed"  # Closed by the owner
    CANCELLED = "cancelled"  # Withdrawn before any sale


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DividendFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BI_ANNUALLY = "bi_annually"
    ANNUALLY = "annually"


class Currency(str, Enum):
    EUR = "EUR"
    THB = "THB"


class TokenOffering(Base):
    """Fractional issuance of one property"""
    __tablename__ = "token_offerings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    property_id = Column(String(64), unique=True, nullable=False, index=True)
    property_title = Column(String(200), nullable=True)
    owner_id = Column(String(128), nullable=False, index=True)  # Landlord who issued the tokens

    token_name = Column(String(100), nullable=False)
    token_symbol = Column(String(16), nullable=False)

    # Inventory (tokens_available is kept in the same statement as tokens_sold)
    total_tokens = Column(BigInteger, nullable=False)
    tokens_sold = Column(BigInteger, nullable=False, default=0)
    tokens_available = Column(BigInteger, nullable=False)
    min_purchase = Column(BigInteger, nullable=False, default=1)
    max_purchase = Column(BigInteger, nullable=True)

    # Pricing (amounts in cents)
    token_price = Column(BigInteger, nullable=False)
    property_value = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default=Currency.EUR.value)

    expected_return = Column(String(50), nullable=True)  # e.g. "8-10%"
    dividend_frequency = Column(String(20), nullable=False, default=DividendFrequency.QUARTERLY.value)
    risk_level = Column(String(10), nullable=False, default=RiskLevel.MEDIUM.value)
    property_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)

    offering_start_date = Column(DateTime, nullable=False)
    offering_end_date = Column(DateTime, nullable=False)

    status = Column(String(20), nullable=False, default=OfferingStatus.DRAFT.value, index=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    purchase_requests = relationship("TokenPurchaseRequest", back_populates="offering", lazy="dynamic")
    investments = relationship("TokenInvestment", back_populates="offering", lazy="dynamic")
    listings = relationship("TokenListing", back_populates="offering", lazy="dynamic")

    __table_args__ = (
        CheckConstraint("total_tokens > 0", name="ck_offering_total_positive"),
        CheckConstraint("token_price > 0", name="ck_offering_price_positive"),
        CheckConstraint("tokens_sold >= 0 AND tokens_sold <= total_tokens", name="ck_offering_sold_bounds"),
        CheckConstraint("tokens_available >= 0", name="ck_offering_available_non_negative"),
    )

    @property
    def funding_progress(self) -> float:
        """Percentage of tokens sold"""
        if not self.total_tokens:
            return 0.0
        return round(self.tokens_sold / self.total_tokens * 100, 2)

    def __repr__(self):
        return f"<TokenOffering {self.token_symbol} ({self.tokens_sold}/{self.total_tokens}, {self.status})>"
