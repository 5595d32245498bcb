"""Schemas for P2P listing APIs"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from assetx.models.listing import ListingStatus
from assetx.schemas.investment import InvestmentResponse


class CreateListingRequest(BaseModel):
    """Offer tokens from an investment for resale"""
    investment_id: int
    tokens_for_sale: int = Field(..., gt=0)
    price_per_token: int = Field(..., gt=0)  # In cents
    description: Optional[str] = None
    tags: List[str] = []
    expires_in_days: Optional[int] = None


class UpdateListingRequest(BaseModel):
    price_per_token: Optional[int] = Field(None, gt=0)
    description: Optional[str] = None


class PurchaseListingRequest(BaseModel):
    expected_price_per_token: int = Field(..., gt=0)  # Price the buyer saw, in cents
    tokens_to_purchase: Optional[int] = Field(None, gt=0)  # Defaults to every listed token


class ListingResponse(BaseModel):
    """P2P listing response"""
    id: int
    seller_id: str
    seller_name: str
    investment_id: int
    offering_id: int
    property_id: str
    tokens_for_sale: int
    price_per_token: int  # In cents
    total_price: int  # In cents
    currency: str
    property_title: Optional[str] = None
    token_name: str
    token_symbol: str
    property_type: Optional[str] = None
    risk_level: Optional[str] = None
    status: ListingStatus
    listed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    buyer_id: Optional[str] = None
    buyer_name: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    class Config:
        from_attributes = True


class ListingListResponse(BaseModel):
    listings: List[ListingResponse]
    total: int
    page: int
    limit: int


class ListingPurchaseResponse(BaseModel):
    """Result of buying from a listing"""
    listing: ListingResponse
    investment: InvestmentResponse
    tokens_purchased: int
    amount_paid: int  # In cents


class ExpireSweepResponse(BaseModel):
    expired_listing_ids: List[int]
    count: int
