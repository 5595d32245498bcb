"""Schemas for the unified marketplace"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Optional, List, Literal, Union
from pydantic import BaseModel, Field


class MarketSource(str, Enum):
    ALL = "all"
    OFFICIAL = "official"
    P2P = "p2p"


class MarketSort(str, Enum):
    NEWEST = "newest"
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"


class OfficialMarketItem(BaseModel):
    """Active primary offering, bought through a purchase request"""
    type: Literal["official"] = "official"
    offering_id: int
    property_id: str
    property_title: Optional[str] = None
    token_name: str
    token_symbol: str
    price_per_token: int  # In cents
    currency: str
    tokens_available: int
    total_tokens: int
    funding_progress: float
    min_purchase: int
    max_purchase: Optional[int] = None
    expected_return: Optional[str] = None
    risk_level: str
    property_type: Optional[str] = None
    seller_id: str
    listed_at: Optional[datetime] = None


class P2PMarketItem(BaseModel):
    """Active resale listing, bought directly"""
    type: Literal["p2p"] = "p2p"
    listing_id: int
    offering_id: int
    property_id: str
    property_title: Optional[str] = None
    token_name: str
    token_symbol: str
    price_per_token: int  # In cents
    currency: str
    tokens_for_sale: int
    total_price: int
    risk_level: Optional[str] = None
    property_type: Optional[str] = None
    seller_id: str
    seller_name: str
    listed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


MarketItem = Annotated[Union[OfficialMarketItem, P2PMarketItem], Field(discriminator="type")]


class MarketplaceResponse(BaseModel):
    items: List[MarketItem]
    total: int
    official_count: int
    p2p_count: int
    page: int
    limit: int
