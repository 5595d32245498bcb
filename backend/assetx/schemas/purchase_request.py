"""Schemas for token purchase request APIs"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from assetx.models.purchase_request import PurchaseRequestStatus


class SubmitPurchaseRequest(BaseModel):
    """Buyer's request to purchase offering tokens"""
    offering_id: int
    tokens_requested: int = Field(..., gt=0)
    proposed_payment_method: str  # e.g. "bank_transfer"
    message: Optional[str] = None
    investment_purpose: Optional[str] = None


class ApproveRequest(BaseModel):
    seller_payment_instructions: Optional[str] = None


class RejectRequest(BaseModel):
    # Checked for blank values by the workflow, not here
    rejection_reason: Optional[str] = None


class PaymentProofRequest(BaseModel):
    payment_proof: str  # Blob store URL
    payment_method: Optional[str] = None


class SignAgreementRequest(BaseModel):
    agreement_document_url: Optional[str] = None  # Blob store URL


class PurchaseRequestResponse(BaseModel):
    """Token purchase request response"""
    id: int
    request_number: Optional[int] = None
    offering_id: int
    property_id: str

    buyer_id: str
    buyer_name: str
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_address: Optional[str] = None
    seller_id: str
    seller_name: str
    seller_email: Optional[str] = None

    tokens_requested: int
    price_per_token: int  # In cents
    total_amount: int  # In cents
    currency: str
    message: Optional[str] = None
    proposed_payment_method: str
    investment_purpose: Optional[str] = None

    status: PurchaseRequestStatus
    allowed_transitions: List[str] = []

    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    seller_payment_instructions: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    payment_method: Optional[str] = None
    payment_proof: Optional[str] = None
    payment_submitted_at: Optional[datetime] = None
    payment_confirmed_at: Optional[datetime] = None
    payment_confirmed_by: Optional[str] = None

    tokens_assigned: int
    tokens_assigned_at: Optional[datetime] = None
    investment_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None

    agreement_document_url: Optional[str] = None
    agreement_signed_by_buyer: bool
    agreement_signed_by_seller: bool
    agreement_signed_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PurchaseRequestListResponse(BaseModel):
    requests: List[PurchaseRequestResponse]
    total: int
    page: int
    limit: int
