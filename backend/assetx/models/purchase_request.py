"""Token purchase request model"""
from enum import Enum
from sqlalchemy import Column, Integer, String, BigInteger, Boolean, DateTime, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from assetx.models.database import Base, utcnow


class PurchaseRequestStatus(str, Enum):
    """Purchase request workflow status"""
    PENDING = "pending"  # Submitted by the buyer, awaiting seller review
    APPROVED = "approved"  # Seller accepted, buyer may pay
    REJECTED = "rejected"  # Seller declined (terminal)
    PAYMENT_PENDING = "payment_pending"  # Buyer uploaded payment proof
    PAYMENT_CONFIRMED = "payment_confirmed"  # Seller attested the payment arrived
    TOKENS_ASSIGNED = "tokens_assigned"  # Inventory settled, investment created
    COMPLETED = "completed"  # Bookkeeping closed (terminal)
    CANCELLED = "cancelled"  # Withdrawn by the buyer (terminal)


class TokenPurchaseRequest(Base):
    """Negotiated purchase of offering tokens between one buyer and the offering's seller"""
    __tablename__ = "token_purchase_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_number = Column(BigInteger, unique=True, nullable=True, index=True)  # Human-facing, set after insert
    offering_id = Column(Integer, ForeignKey("token_offerings.id"), nullable=False, index=True)
    property_id = Column(String(64), nullable=False)

    # Buyer snapshot (frozen at submission)
    buyer_id = Column(String(128), nullable=False, index=True)
    buyer_name = Column(String(200), nullable=False)
    buyer_email = Column(String(200), nullable=True)
    buyer_phone = Column(String(50), nullable=True)
    buyer_address = Column(Text, nullable=True)

    # Seller snapshot
    seller_id = Column(String(128), nullable=False, index=True)
    seller_name = Column(String(200), nullable=False)
    seller_email = Column(String(200), nullable=True)

    # Purchase details (amounts in cents)
    tokens_requested = Column(BigInteger, nullable=False)
    price_per_token = Column(BigInteger, nullable=False)
    total_amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)

    message = Column(Text, nullable=True)
    proposed_payment_method = Column(String(100), nullable=False)
    investment_purpose = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=PurchaseRequestStatus.PENDING.value, index=True)

    # Review
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(128), nullable=True)
    seller_payment_instructions = Column(Text, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(128), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Payment attestation
    payment_method = Column(String(100), nullable=True)
    payment_proof = Column(String(500), nullable=True)  # Blob store URL
    payment_submitted_at = Column(DateTime, nullable=True)
    payment_confirmed_at = Column(DateTime, nullable=True)
    payment_confirmed_by = Column(String(128), nullable=True)

    # Settlement
    tokens_assigned = Column(BigInteger, nullable=False, default=0)
    tokens_assigned_at = Column(DateTime, nullable=True)
    investment_id = Column(Integer, ForeignKey("token_investments.id"), nullable=True)
    completed_at = Column(DateTime, nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(128), nullable=True)

    # Agreement
    agreement_document_url = Column(String(500), nullable=True)
    agreement_signed_by_buyer = Column(Boolean, nullable=False, default=False)
    agreement_signed_by_seller = Column(Boolean, nullable=False, default=False)
    agreement_signed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    offering = relationship("TokenOffering", back_populates="purchase_requests")
    investment = relationship("TokenInvestment", foreign_keys=[investment_id])

    __table_args__ = (
        CheckConstraint("tokens_requested > 0", name="ck_request_tokens_positive"),
        Index("ix_purchase_requests_buyer_status", "buyer_id", "status"),
        Index("ix_purchase_requests_seller_status", "seller_id", "status"),
    )

    def __repr__(self):
        return f"<TokenPurchaseRequest #{self.request_number} ({self.status})>"
