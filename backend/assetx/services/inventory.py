"""Offering inventory: availability checks, atomic settlement and holdings."""
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select, update, func, case, cast, and_, Float
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.models.database import utcnow
from assetx.models.offering import TokenOffering, OfferingStatus
from assetx.models.investment import TokenInvestment, InvestmentStatus, InvestmentSource, PaymentStatus
from assetx.services.errors import NotFound, InsufficientInventory, InsufficientHolding

logger = structlog.get_logger()


@dataclass
class ReconciliationReport:
    """Ledger counters of one offering next to the holdings that back them."""
    offering_id: int
    total_tokens: int
    tokens_sold: int
    tokens_available: int
    tokens_held: int
    investment_count: int

    @property
    def counters_consistent(self) -> bool:
        return self.tokens_sold + self.tokens_available == self.total_tokens

    @property
    def holdings_consistent(self) -> bool:
        return self.tokens_held == self.tokens_sold

    @property
    def is_consistent(self) -> bool:
        return self.counters_consistent and self.holdings_consistent


class OfferingInventoryManager:
    """
    Sole writer of offering counters.

    Inventory is committed only by settle(), as one guarded UPDATE. Nothing
    here commits; callers own the transaction so that settle() and
    create_investment() land together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_offering(self, offering_id: int) -> TokenOffering:
        result = await self.db.execute(
            select(TokenOffering).where(TokenOffering.id == offering_id)
        )
        offering = result.scalar_one_or_none()
        if not offering:
            raise NotFound("Offering not found", offering_id=offering_id)
        return offering

    async def check_availability(self, offering_id: int, count: int) -> TokenOffering:
        """Read-only check that count tokens are still unsold. Reserves nothing."""
        offering = await self.get_offering(offering_id)
        if count > offering.tokens_available:
            raise InsufficientInventory(
                f"Only {offering.tokens_available} tokens available",
                offering_id=offering_id,
                requested=count,
                available=offering.tokens_available,
            )
        return offering

    async def settle(self, offering_id: int, count: int) -> TokenOffering:
        """
        Commit count tokens of inventory.

        tokens_sold and tokens_available move in the same statement, guarded so
        tokens_sold can never pass total_tokens. The offering flips to funded
        when the last token sells.
        """
        sold_after = TokenOffering.tokens_sold + count
        result = await self.db.execute(
            update(TokenOffering)
            .where(
                TokenOffering.id == offering_id,
                sold_after <= TokenOffering.total_tokens,
                TokenOffering.status != OfferingStatus.CANCELLED.value,
            )
            .values(
                tokens_sold=sold_after,
                tokens_available=TokenOffering.tokens_available - count,
                status=case(
                    (
                        and_(
                            sold_after >= TokenOffering.total_tokens,
                            TokenOffering.status == OfferingStatus.ACTIVE.value,
                        ),
                        OfferingStatus.FUNDED.value,
                    ),
                    else_=TokenOffering.status,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            offering = await self.get_offering(offering_id)
            await self.db.refresh(offering)
            logger.warning(
                "Settlement refused",
                offering_id=offering_id,
                requested=count,
                available=offering.tokens_available,
                status=offering.status,
            )
            raise InsufficientInventory(
                f"Cannot settle {count} tokens; {offering.tokens_available} available",
                offering_id=offering_id,
                requested=count,
                available=offering.tokens_available,
            )

        offering = await self.get_offering(offering_id)
        await self.db.refresh(offering)
        logger.info(
            "Settled offering inventory",
            offering_id=offering_id,
            tokens=count,
            tokens_sold=offering.tokens_sold,
            tokens_available=offering.tokens_available,
            status=offering.status,
        )
        return offering

    async def create_investment(
        self,
        offering: TokenOffering,
        investor_id: str,
        tokens: int,
        price_per_token: int,
        transaction_id: str,
        payment_method: str,
        investor_email: Optional[str] = None,
        source: InvestmentSource = InvestmentSource.OFFERING,
        purchase_request_id: Optional[int] = None,
        listing_id: Optional[int] = None,
    ) -> TokenInvestment:
        """Insert an ownership record. Offering counters are not touched."""
        investment = TokenInvestment(
            investor_id=investor_id,
            investor_email=investor_email,
            offering_id=offering.id,
            property_id=offering.property_id,
            tokens_owned=tokens,
            purchase_price=price_per_token,
            total_investment=tokens * price_per_token,
            ownership_percentage=tokens / offering.total_tokens,
            transaction_id=transaction_id,
            payment_method=payment_method,
            payment_status=PaymentStatus.SUCCESS.value,
            total_dividends_earned=0,
            source=source.value,
            purchase_request_id=purchase_request_id,
            listing_id=listing_id,
            status=InvestmentStatus.ACTIVE.value,
            purchase_date=utcnow(),
        )
        self.db.add(investment)
        await self.db.flush()

        logger.info(
            "Created investment",
            investment_id=investment.id,
            investor_id=investor_id,
            offering_id=offering.id,
            tokens=tokens,
            source=source.value,
            transaction_id=transaction_id,
        )
        return investment

    async def release_holding(self, investment_id: int, count: int, total_tokens: int) -> None:
        """Take count tokens out of an active investment (resale)."""
        owned_after = TokenInvestment.tokens_owned - count
        result = await self.db.execute(
            update(TokenInvestment)
            .where(
                TokenInvestment.id == investment_id,
                TokenInvestment.tokens_owned >= count,
                TokenInvestment.status == InvestmentStatus.ACTIVE.value,
            )
            .values(
                tokens_owned=owned_after,
                total_investment=owned_after * TokenInvestment.purchase_price,
                ownership_percentage=cast(owned_after, Float) / total_tokens,
                status=case(
                    (owned_after == 0, InvestmentStatus.SOLD.value),
                    else_=TokenInvestment.status,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientHolding(
                f"Investment no longer holds {count} tokens",
                investment_id=investment_id,
                requested=count,
            )

        logger.info("Released holding", investment_id=investment_id, tokens=count)

    async def reconcile(self, offering_id: int) -> ReconciliationReport:
        offering = await self.get_offering(offering_id)
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(TokenInvestment.tokens_owned), 0),
                func.count(TokenInvestment.id),
            ).where(TokenInvestment.offering_id == offering_id)
        )
        tokens_held, investment_count = result.one()

        report = ReconciliationReport(
            offering_id=offering.id,
            total_tokens=offering.total_tokens,
            tokens_sold=offering.tokens_sold,
            tokens_available=offering.tokens_available,
            tokens_held=int(tokens_held),
            investment_count=investment_count,
        )
        if not report.is_consistent:
            logger.error(
                "Offering ledger out of balance",
                offering_id=offering_id,
                tokens_sold=report.tokens_sold,
                tokens_available=report.tokens_available,
                tokens_held=report.tokens_held,
            )
        return report
