"""Offering lifecycle: create, activate, close, cancel"""
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.models.database import utcnow
from assetx.models.offering import TokenOffering, OfferingStatus, RiskLevel, DividendFrequency, Currency
from assetx.models.investment import TokenInvestment, InvestmentStatus
from assetx.schemas.auth import CurrentUser, UserRole
from assetx.services.errors import Forbidden, InvalidTransition, ValidationError
from assetx.services.inventory import OfferingInventoryManager, ReconciliationReport

logger = structlog.get_logger()


class OfferingService:
    """Owner actions on token offerings"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.inventory = OfferingInventoryManager(db)

    async def create_offering(
        self,
        user: CurrentUser,
        property_id: str,
        token_name: str,
        token_symbol: str,
        total_tokens: int,
        token_price: int,
        property_value: int,
        offering_start_date: datetime,
        offering_end_date: datetime,
        min_purchase: int = 1,
        max_purchase: Optional[int] = None,
        property_title: Optional[str] = None,
        currency: Currency = Currency.EUR,
        expected_return: Optional[str] = None,
        dividend_frequency: DividendFrequency = DividendFrequency.QUARTERLY,
        risk_level: RiskLevel = RiskLevel.MEDIUM,
        property_type: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TokenOffering:
        """Create a draft offering with its whole supply available."""
        if user.role != UserRole.LANDLORD:
            raise Forbidden("Only landlords can create offerings", role=user.role.value)

        if total_tokens <= 0:
            raise ValidationError("total_tokens must be positive", total_tokens=total_tokens)
        if token_price <= 0:
            raise ValidationError("token_price must be positive", token_price=token_price)
        if property_value <= 0:
            raise ValidationError("property_value must be positive", property_value=property_value)
        if not 1 <= min_purchase <= total_tokens:
            raise ValidationError("min_purchase must be between 1 and total_tokens", min_purchase=min_purchase)
        if max_purchase is not None and not min_purchase <= max_purchase <= total_tokens:
            raise ValidationError(
                "max_purchase must be between min_purchase and total_tokens",
                max_purchase=max_purchase,
            )
        if offering_start_date > offering_end_date:
            raise ValidationError("offering_start_date must not be after offering_end_date")

        if await self._property_has_offering(property_id):
            raise ValidationError("Property already has an offering", property_id=property_id)

        offering = TokenOffering(
            property_id=property_id,
            property_title=property_title,
            owner_id=user.user_id,
            token_name=token_name,
            token_symbol=token_symbol.upper(),
            total_tokens=total_tokens,
            tokens_sold=0,
            tokens_available=total_tokens,
            min_purchase=min_purchase,
            max_purchase=max_purchase,
            token_price=token_price,
            property_value=property_value,
            currency=currency.value,
            expected_return=expected_return,
            dividend_frequency=dividend_frequency.value,
            risk_level=risk_level.value,
            property_type=property_type,
            description=description,
            offering_start_date=offering_start_date,
            offering_end_date=offering_end_date,
            status=OfferingStatus.DRAFT.value,
        )
        self.db.add(offering)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with another create for the same property
            await self.db.rollback()
            raise ValidationError("Property already has an offering", property_id=property_id)

        logger.info(
            "Offering created",
            offering_id=offering.id,
            property_id=property_id,
            owner_id=user.user_id,
            total_tokens=total_tokens,
            token_price=token_price,
        )
        return offering

    async def _property_has_offering(self, property_id: str) -> bool:
        result = await self.db.execute(
            select(TokenOffering.id).where(TokenOffering.property_id == property_id)
        )
        return result.scalar_one_or_none() is not None

    async def _transition(
        self,
        offering_id: int,
        user: CurrentUser,
        action: str,
        from_statuses: Iterable[OfferingStatus],
        to_status: OfferingStatus,
        extra_conditions: Tuple = (),
    ) -> TokenOffering:
        offering = await self.inventory.get_offering(offering_id)
        if offering.owner_id != user.user_id:
            raise Forbidden(f"Only the owner can {action} this offering", offering_id=offering_id)

        result = await self.db.execute(
            update(TokenOffering)
            .where(
                TokenOffering.id == offering_id,
                TokenOffering.status.in_([s.value for s in from_statuses]),
                *extra_conditions,
            )
            .values(status=to_status.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(offering)
            raise InvalidTransition(
                f"Cannot {action} an offering in status '{offering.status}'",
                current_status=offering.status,
                offering_id=offering_id,
                tokens_sold=offering.tokens_sold,
            )

        await self.db.commit()
        await self.db.refresh(offering)
        logger.info("Offering transitioned", offering_id=offering_id, action=action, status=offering.status)
        return offering

    async def activate_offering(self, offering_id: int, user: CurrentUser) -> TokenOffering:
        return await self._transition(
            offering_id, user, "activate", [OfferingStatus.DRAFT], OfferingStatus.ACTIVE
        )

    async def close_offering(self, offering_id: int, user: CurrentUser) -> TokenOffering:
        return await self._transition(
            offering_id, user, "close", [OfferingStatus.ACTIVE, OfferingStatus.FUNDED], OfferingStatus.CLOSED
        )

    async def cancel_offering(self, offering_id: int, user: CurrentUser) -> TokenOffering:
        # Only while nothing has been settled
        return await self._transition(
            offering_id,
            user,
            "cancel",
            [OfferingStatus.DRAFT, OfferingStatus.ACTIVE],
            OfferingStatus.CANCELLED,
            extra_conditions=(TokenOffering.tokens_sold == 0,),
        )

    async def get_offering(self, offering_id: int) -> TokenOffering:
        return await self.inventory.get_offering(offering_id)

    async def reconcile(self, offering_id: int, user: CurrentUser) -> ReconciliationReport:
        offering = await self.inventory.get_offering(offering_id)
        if user.role != UserRole.SUPERADMIN and offering.owner_id != user.user_id:
            raise Forbidden("Only the owner can reconcile this offering", offering_id=offering_id)
        return await self.inventory.reconcile(offering_id)

    async def investor_count(self, offering_id: int) -> int:
        result = await self.db.execute(
            select(func.count(func.distinct(TokenInvestment.investor_id))).where(
                TokenInvestment.offering_id == offering_id,
                TokenInvestment.status == InvestmentStatus.ACTIVE.value,
            )
        )
        return result.scalar_one()

    async def list_offerings(
        self,
        status: Optional[OfferingStatus] = OfferingStatus.ACTIVE,
        risk_level: Optional[RiskLevel] = None,
        property_type: Optional[str] = None,
        owner_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[TokenOffering], int]:
        conditions: List[Any] = []
        if status:
            conditions.append(TokenOffering.status == status.value)
        if risk_level:
            conditions.append(TokenOffering.risk_level == risk_level.value)
        if property_type:
            conditions.append(TokenOffering.property_type == property_type)
        if owner_id:
            conditions.append(TokenOffering.owner_id == owner_id)

        total = (await self.db.execute(
            select(func.count(TokenOffering.id)).where(*conditions)
        )).scalar_one()
        result = await self.db.execute(
            select(TokenOffering)
            .where(*conditions)
            .order_by(TokenOffering.created_at.desc(), TokenOffering.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
