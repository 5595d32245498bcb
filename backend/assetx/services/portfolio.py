"""Investor portfolio summary"""
from collections import defaultdict
from typing import Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from assetx.models.investment import TokenInvestment, InvestmentStatus
from assetx.schemas.investment import InvestmentResponse, PortfolioHolding, PortfolioResponse


async def get_portfolio(db: AsyncSession, investor_id: str) -> PortfolioResponse:
    """Active holdings of an investor, grouped by offering"""
    result = await db.execute(
        select(TokenInvestment)
        .options(selectinload(TokenInvestment.offering))
        .where(
            TokenInvestment.investor_id == investor_id,
            TokenInvestment.status == InvestmentStatus.ACTIVE.value,
        )
        .order_by(TokenInvestment.purchase_date, TokenInvestment.id)
    )
    by_offering: Dict[int, List[TokenInvestment]] = defaultdict(list)
    for investment in result.scalars().all():
        by_offering[investment.offering_id].append(investment)

    holdings = []
    for investments in by_offering.values():
        offering = investments[0].offering
        tokens = sum(inv.tokens_owned for inv in investments)
        holdings.append(PortfolioHolding(
            offering_id=offering.id,
            property_id=offering.property_id,
            property_title=offering.property_title,
            token_name=offering.token_name,
            token_symbol=offering.token_symbol,
            currency=offering.currency,
            tokens_owned=tokens,
            total_invested=sum(inv.total_investment for inv in investments),
            current_value=tokens * offering.token_price,
            ownership_percentage=tokens / offering.total_tokens,
            total_dividends_earned=sum(inv.total_dividends_earned for inv in investments),
            investments=[InvestmentResponse.model_validate(inv) for inv in investments],
        ))

    return PortfolioResponse(
        investor_id=investor_id,
        property_count=len(holdings),
        total_tokens=sum(h.tokens_owned for h in holdings),
        total_invested=sum(h.total_invested for h in holdings),
        total_dividends_earned=sum(h.total_dividends_earned for h in holdings),
        holdings=holdings,
    )
