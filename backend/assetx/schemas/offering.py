"""Schemas for token offering APIs"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from assetx.models.offering import OfferingStatus, RiskLevel, DividendFrequency, Currency


class CreateOfferingRequest(BaseModel):
    """Request to fractionalize a property"""
    property_id: str
    property_title: Optional[str] = None
    token_name: str
    token_symbol: str = Field(..., min_length=1, max_length=16)
    total_tokens: int
    token_price: int  # In cents
    property_value: int  # In cents
    min_purchase: int = 1
    max_purchase: Optional[int] = None
    currency: Currency = Currency.EUR
    expected_return: Optional[str] = None  # e.g. "8-10%"
    dividend_frequency: DividendFrequency = DividendFrequency.QUARTERLY
    risk_level: RiskLevel = RiskLevel.MEDIUM
    property_type: Optional[str] = None
    description: Optional[str] = None
    offering_start_date: datetime
    offering_end_date: datetime


class OfferingResponse(BaseModel):
    """Token offering response"""
    id: int
    property_id: str
    property_title: Optional[str] = None
    owner_id: str
    token_name: str
    token_symbol: str
    total_tokens: int
    tokens_sold: int
    tokens_available: int
    min_purchase: int
    max_purchase: Optional[int] = None
    token_price: int  # In cents
    property_value: int  # In cents
    currency: str
    expected_return: Optional[str] = None
    dividend_frequency: str
    risk_level: str
    property_type: Optional[str] = None
    description: Optional[str] = None
    offering_start_date: datetime
    offering_end_date: datetime
    status: OfferingStatus
    funding_progress: float  # Percent sold
    investor_count: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OfferingListResponse(BaseModel):
    offerings: List[OfferingResponse]
    total: int
    page: int
    limit: int


class ReconciliationResponse(BaseModel):
    """Offering counters against the holdings that back them"""
    offering_id: int
    total_tokens: int
    tokens_sold: int
    tokens_available: int
    tokens_held: int  # Sum of tokens_owned across the offering's investments
    investment_count: int
    counters_consistent: bool
    holdings_consistent: bool
    is_consistent: bool
