"""Marketplace and portfolio API endpoints"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.api.deps import get_current_user
from assetx.models.database import get_db
from assetx.models.offering import RiskLevel
from assetx.schemas.auth import CurrentUser
from assetx.schemas.investment import PortfolioResponse
from assetx.schemas.marketplace import MarketSource, MarketSort, MarketplaceResponse
from assetx.services.marketplace import browse_marketplace
from assetx.services.portfolio import get_portfolio

router = APIRouter()


@router.get("/marketplace", response_model=MarketplaceResponse)
async def get_marketplace(
    source: MarketSource = MarketSource.ALL,
    risk_level: Optional[RiskLevel] = None,
    sort: MarketSort = MarketSort.NEWEST,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Browse official offerings and P2P listings together.

    Each item carries type "official" (buy through a purchase request) or
    "p2p" (buy directly from the listing).
    """
    return await browse_marketplace(db, source=source, risk_level=risk_level, sort=sort, page=page, limit=limit)


@router.get("/portfolio", response_model=PortfolioResponse)
async def get_my_portfolio(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Your active token holdings grouped by offering"""
    return await get_portfolio(db, user.user_id)
