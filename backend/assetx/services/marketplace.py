"""Unified browsing of official offerings and P2P listings"""
from typing import List, Optional, Union

from sqlalchemy import select, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.models.database import utcnow
from assetx.models.offering import TokenOffering, OfferingStatus, RiskLevel
from assetx.models.listing import TokenListing, ListingStatus
from assetx.schemas.marketplace import (
    MarketSource,
    MarketSort,
    OfficialMarketItem,
    P2PMarketItem,
    MarketplaceResponse,
)


def _official_item(offering: TokenOffering) -> OfficialMarketItem:
    return OfficialMarketItem(
        offering_id=offering.id,
        property_id=offering.property_id,
        property_title=offering.property_title,
        token_name=offering.token_name,
        token_symbol=offering.token_symbol,
        price_per_token=offering.token_price,
        currency=offering.currency,
        tokens_available=offering.tokens_available,
        total_tokens=offering.total_tokens,
        funding_progress=offering.funding_progress,
        min_purchase=offering.min_purchase,
        max_purchase=offering.max_purchase,
        expected_return=offering.expected_return,
        risk_level=offering.risk_level,
        property_type=offering.property_type,
        seller_id=offering.owner_id,
        listed_at=offering.created_at,
    )


def _p2p_item(listing: TokenListing) -> P2PMarketItem:
    return P2PMarketItem(
        listing_id=listing.id,
        offering_id=listing.offering_id,
        property_id=listing.property_id,
        property_title=listing.property_title,
        token_name=listing.token_name,
        token_symbol=listing.token_symbol,
        price_per_token=listing.price_per_token,
        currency=listing.currency,
        tokens_for_sale=listing.tokens_for_sale,
        total_price=listing.total_price,
        risk_level=listing.risk_level,
        property_type=listing.property_type,
        seller_id=listing.seller_id,
        seller_name=listing.seller_name,
        listed_at=listing.listed_at,
        expires_at=listing.expires_at,
    )


def _ordering(sort: MarketSort, price, listed_at, row_id) -> tuple:
    if sort == MarketSort.PRICE_LOW:
        return (price.asc(), row_id.asc())
    if sort == MarketSort.PRICE_HIGH:
        return (price.desc(), row_id.asc())
    return (listed_at.desc(), row_id.desc())


async def browse_marketplace(
    db: AsyncSession,
    source: MarketSource = MarketSource.ALL,
    risk_level: Optional[RiskLevel] = None,
    sort: MarketSort = MarketSort.NEWEST,
    page: int = 1,
    limit: int = 20,
) -> MarketplaceResponse:
    """
    Merge purchasable offerings and unexpired active listings into one page.

    The two sources live in separate tables, so each is sorted in SQL and
    read only up to the end of the requested page; the merged rows are then
    sorted again and sliced. Counts come from COUNT queries, so the cost of
    a page grows with its depth and not with the size of the market.
    """
    window = page * limit
    items: List[Union[OfficialMarketItem, P2PMarketItem]] = []
    official_count = 0
    p2p_count = 0

    if source in (MarketSource.ALL, MarketSource.OFFICIAL):
        conditions = [
            TokenOffering.status == OfferingStatus.ACTIVE.value,
            TokenOffering.tokens_available > 0,
        ]
        if risk_level:
            conditions.append(TokenOffering.risk_level == risk_level.value)
        official_count = await db.scalar(select(func.count(TokenOffering.id)).where(*conditions))
        result = await db.execute(
            select(TokenOffering)
            .where(*conditions)
            .order_by(*_ordering(sort, TokenOffering.token_price, TokenOffering.created_at, TokenOffering.id))
            .limit(window)
        )
        items.extend(_official_item(o) for o in result.scalars().all())

    if source in (MarketSource.ALL, MarketSource.P2P):
        conditions = [
            TokenListing.status == ListingStatus.ACTIVE.value,
            or_(TokenListing.expires_at.is_(None), TokenListing.expires_at > utcnow()),
        ]
        if risk_level:
            conditions.append(TokenListing.risk_level == risk_level.value)
        p2p_count = await db.scalar(select(func.count(TokenListing.id)).where(*conditions))
        result = await db.execute(
            select(TokenListing)
            .where(*conditions)
            .order_by(*_ordering(sort, TokenListing.price_per_token, TokenListing.listed_at, TokenListing.id))
            .limit(window)
        )
        items.extend(_p2p_item(listing) for listing in result.scalars().all())

    if sort == MarketSort.PRICE_LOW:
        items.sort(key=lambda item: item.price_per_token)
    elif sort == MarketSort.PRICE_HIGH:
        items.sort(key=lambda item: item.price_per_token, reverse=True)
    else:
        items.sort(key=lambda item: item.listed_at.timestamp() if item.listed_at else 0, reverse=True)

    start = (page - 1) * limit
    return MarketplaceResponse(
        items=items[start:start + limit],
        total=official_count + p2p_count,
        official_count=official_count,
        p2p_count=p2p_count,
        page=page,
        limit=limit,
    )
