"""Schemas for investment and portfolio APIs"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel

from assetx.models.investment import InvestmentStatus, InvestmentSource


class InvestmentResponse(BaseModel):
    """Tokens held by one investor"""
    id: int
    investor_id: str
    offering_id: int
    property_id: str
    tokens_owned: int
    purchase_price: int  # In cents per token
    total_investment: int  # In cents
    ownership_percentage: float  # Fraction of the offering's total tokens
    transaction_id: str
    payment_method: str
    payment_status: str
    total_dividends_earned: int  # In cents
    source: InvestmentSource
    purchase_request_id: Optional[int] = None
    listing_id: Optional[int] = None
    status: InvestmentStatus
    purchase_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class PortfolioHolding(BaseModel):
    """All of an investor's active tokens in one offering"""
    offering_id: int
    property_id: str
    property_title: Optional[str] = None
    token_name: str
    token_symbol: str
    currency: str
    tokens_owned: int
    total_invested: int  # In cents
    current_value: int  # tokens_owned * offering token_price, in cents
    ownership_percentage: float
    total_dividends_earned: int
    investments: List[InvestmentResponse]


class PortfolioResponse(BaseModel):
    """Investor portfolio summary"""
    investor_id: str
    property_count: int
    total_tokens: int
    total_invested: int  # In cents
    total_dividends_earned: int  # In cents
    holdings: List[PortfolioHolding]
