"""P2P listing market: resale of held tokens by direct purchase."""
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import select, update, func, case, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.config import get_settings
from assetx.models.database import utcnow
from assetx.models.investment import TokenInvestment, InvestmentStatus, InvestmentSource
from assetx.models.listing import TokenListing, ListingStatus
from assetx.models.notification import NotificationType, NotificationPriority
from assetx.schemas.auth import CurrentUser, UserRole
from assetx.services.errors import (
    NotFound,
    Forbidden,
    InvalidTransition,
    InsufficientHolding,
    ListingNotEditable,
    ListingNotAvailable,
    ValidationError,
    TokenMarketError,
    SettlementInconsistency,
)
from assetx.services.inventory import OfferingInventoryManager
from assetx.services.notifications import NotificationEmitter, NotificationEvent, TokenNotificationMessages
from assetx.services.profiles import get_contact

logger = structlog.get_logger()

RESALE_PAYMENT_METHOD = "p2p_direct"


def _resale_transaction_id(listing_id: int) -> str:
    return f"LST-{listing_id}-{secrets.token_hex(4)}"


class ListingMarket:
    """
    Listing lifecycle and direct purchase.

    Partial fills are supported: a purchase of fewer tokens than listed keeps
    the listing active with the remainder; buying the remainder sells it.
    Resales move tokens between investments and never touch offering counters.
    """

    def __init__(self, db: AsyncSession, emitter: NotificationEmitter):
        self.db = db
        self.emitter = emitter
        self.inventory = OfferingInventoryManager(db)
        self.settings = get_settings()

    async def _load(self, listing_id: int) -> TokenListing:
        result = await self.db.execute(
            select(TokenListing).where(TokenListing.id == listing_id)
        )
        listing = result.scalar_one_or_none()
        if not listing:
            raise NotFound("Listing not found", listing_id=listing_id)
        return listing

    async def _notify_seller(
        self,
        listing: TokenListing,
        notification_type: NotificationType,
        content: Tuple[str, str],
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> None:
        title, message = content
        await self.emitter.emit(NotificationEvent(
            recipient_id=listing.seller_id,
            type=notification_type,
            title=title,
            message=message,
            related_id=str(listing.id),
            related_url=f"/marketplace/listings/{listing.id}",
            priority=priority,
        ))

    async def _listed_tokens(self, investment_id: int) -> int:
        """Tokens of an investment already on active listings"""
        result = await self.db.execute(
            select(func.coalesce(func.sum(TokenListing.tokens_for_sale), 0)).where(
                TokenListing.investment_id == investment_id,
                TokenListing.status == ListingStatus.ACTIVE.value,
            )
        )
        return int(result.scalar_one())

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_listing(
        self,
        user: CurrentUser,
        investment_id: int,
        tokens_for_sale: int,
        price_per_token: int,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        expires_in_days: Optional[int] = None,
    ) -> TokenListing:
        if user.role != UserRole.BUYER:
            raise Forbidden("Only token holders can create listings", role=user.role.value)
        if tokens_for_sale <= 0:
            raise ValidationError("tokens_for_sale must be positive", tokens_for_sale=tokens_for_sale)
        if price_per_token <= 0:
            raise ValidationError("price_per_token must be positive", price_per_token=price_per_token)
        if expires_in_days is not None and not 1 <= expires_in_days <= self.settings.max_listing_lifetime_days:
            raise ValidationError(
                f"expires_in_days must be between 1 and {self.settings.max_listing_lifetime_days}",
                expires_in_days=expires_in_days,
            )

        result = await self.db.execute(
            select(TokenInvestment).where(TokenInvestment.id == investment_id)
        )
        investment = result.scalar_one_or_none()
        if not investment:
            raise NotFound("Investment not found", investment_id=investment_id)
        if investment.investor_id != user.user_id:
            raise Forbidden("You do not own this investment", investment_id=investment_id)
        if investment.status != InvestmentStatus.ACTIVE.value:
            raise InsufficientHolding(
                "Investment holds no tokens",
                investment_id=investment_id,
                status=investment.status,
            )

        unlisted = investment.tokens_owned - await self._listed_tokens(investment_id)
        if tokens_for_sale > unlisted:
            raise InsufficientHolding(
                f"Only {unlisted} unlisted tokens remain on this investment",
                investment_id=investment_id,
                requested=tokens_for_sale,
                available=unlisted,
            )

        offering = await self.inventory.get_offering(investment.offering_id)
        seller = await get_contact(self.db, user.user_id)
        now = utcnow()

        listing = TokenListing(
            seller_id=user.user_id,
            seller_name=seller.name,
            seller_email=seller.email,
            investment_id=investment.id,
            offering_id=offering.id,
            property_id=offering.property_id,
            tokens_for_sale=tokens_for_sale,
            price_per_token=price_per_token,
            total_price=tokens_for_sale * price_per_token,
            currency=offering.currency,
            property_title=offering.property_title,
            token_name=offering.token_name,
            token_symbol=offering.token_symbol,
            property_type=offering.property_type,
            risk_level=offering.risk_level,
            status=ListingStatus.ACTIVE.value,
            listed_at=now,
            expires_at=now + timedelta(days=expires_in_days) if expires_in_days else None,
            description=description,
            tags=tags or [],
        )
        self.db.add(listing)
        await self.db.commit()

        logger.info(
            "Listing created",
            listing_id=listing.id,
            seller_id=user.user_id,
            investment_id=investment_id,
            tokens=tokens_for_sale,
            price_per_token=price_per_token,
        )

        await self._notify_seller(
            listing,
            NotificationType.LISTING,
            TokenNotificationMessages.listing_published(tokens_for_sale, listing.token_symbol),
        )
        return listing

    async def update_listing(
        self,
        listing_id: int,
        user: CurrentUser,
        price_per_token: Optional[int] = None,
        description: Optional[str] = None,
    ) -> TokenListing:
        listing = await self._load(listing_id)
        if listing.seller_id != user.user_id:
            raise Forbidden("Only the seller can edit this listing", listing_id=listing_id)
        if price_per_token is None and description is None:
            raise ValidationError("Nothing to update", listing_id=listing_id)

        values = {"updated_at": utcnow()}
        if price_per_token is not None:
            if price_per_token <= 0:
                raise ValidationError("price_per_token must be positive", price_per_token=price_per_token)
            values["price_per_token"] = price_per_token
            values["total_price"] = TokenListing.tokens_for_sale * price_per_token
        if description is not None:
            values["description"] = description

        result = await self.db.execute(
            update(TokenListing)
            .where(TokenListing.id == listing_id, TokenListing.status == ListingStatus.ACTIVE.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(listing)
            raise ListingNotEditable(
                f"Listing is {listing.status} and can no longer be edited",
                listing_id=listing_id,
                status=listing.status,
            )

        await self.db.commit()
        await self.db.refresh(listing)
        logger.info("Listing updated", listing_id=listing_id, price_per_token=listing.price_per_token)
        return listing

    async def cancel_listing(self, listing_id: int, user: CurrentUser) -> TokenListing:
        listing = await self._load(listing_id)
        if listing.seller_id != user.user_id:
            raise Forbidden("Only the seller can cancel this listing", listing_id=listing_id)

        now = utcnow()
        result = await self.db.execute(
            update(TokenListing)
            .where(TokenListing.id == listing_id, TokenListing.status == ListingStatus.ACTIVE.value)
            .values(status=ListingStatus.CANCELLED.value, cancelled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(listing)
            raise InvalidTransition(
                f"Cannot cancel a listing in status '{listing.status}'",
                current_status=listing.status,
                listing_id=listing_id,
            )

        await self.db.commit()
        await self.db.refresh(listing)
        logger.info("Listing cancelled", listing_id=listing_id, seller_id=user.user_id)

        await self._notify_seller(
            listing,
            NotificationType.LISTING,
            TokenNotificationMessages.listing_cancelled(listing.token_symbol),
            NotificationPriority.LOW,
        )
        return listing

    async def purchase(
        self,
        listing_id: int,
        user: CurrentUser,
        tokens_to_purchase: Optional[int] = None,
        expected_price_per_token: Optional[int] = None,
    ) -> Tuple[TokenListing, TokenInvestment]:
        """
        Buy tokens from a listing in one transaction: shrink the listing,
        release the seller's holding, create the buyer's investment.

        expected_price_per_token is the price the buyer agreed to. The purchase
        only goes through at that price; if the seller has repriced since, it
        fails with ListingNotAvailable. Without it the current price is taken.
        """
        listing = await self._load(listing_id)
        if listing.seller_id == user.user_id:
            raise Forbidden("Cannot purchase your own listing", listing_id=listing_id)

        now = utcnow()
        if listing.status != ListingStatus.ACTIVE.value:
            raise ListingNotAvailable(
                f"Listing is {listing.status}",
                listing_id=listing_id,
                status=listing.status,
            )
        if listing.expires_at is not None and listing.expires_at <= now:
            raise ListingNotAvailable("Listing has expired", listing_id=listing_id)

        tokens = listing.tokens_for_sale if tokens_to_purchase is None else tokens_to_purchase
        if tokens <= 0:
            raise ValidationError("tokens_to_purchase must be positive", tokens_to_purchase=tokens)
        if tokens > listing.tokens_for_sale:
            raise InsufficientHolding(
                f"Only {listing.tokens_for_sale} tokens are listed",
                listing_id=listing_id,
                requested=tokens,
                available=listing.tokens_for_sale,
            )
        if expected_price_per_token is not None and expected_price_per_token != listing.price_per_token:
            raise ListingNotAvailable(
                "Listing price has changed",
                listing_id=listing_id,
                expected_price_per_token=expected_price_per_token,
                price_per_token=listing.price_per_token,
            )

        # Captured up front: a rollback expires the loaded instance
        price = listing.price_per_token if expected_price_per_token is None else expected_price_per_token
        investment_id = listing.investment_id
        offering_id = listing.offering_id
        seller_id = listing.seller_id
        token_symbol = listing.token_symbol
        currency = listing.currency

        buyer = await get_contact(self.db, user.user_id)
        remaining_after = TokenListing.tokens_for_sale - tokens
        sells_out = TokenListing.tokens_for_sale == tokens
        transaction_id = _resale_transaction_id(listing_id)

        try:
            result = await self.db.execute(
                update(TokenListing)
                .where(
                    TokenListing.id == listing_id,
                    TokenListing.status == ListingStatus.ACTIVE.value,
                    TokenListing.tokens_for_sale >= tokens,
                    TokenListing.price_per_token == price,
                    or_(TokenListing.expires_at.is_(None), TokenListing.expires_at > now),
                )
                .values(
                    tokens_for_sale=remaining_after,
                    total_price=remaining_after * price,
                    status=case((sells_out, ListingStatus.SOLD.value), else_=TokenListing.status),
                    sold_at=case((sells_out, now), else_=TokenListing.sold_at),
                    buyer_id=case((sells_out, user.user_id), else_=TokenListing.buyer_id),
                    buyer_name=case((sells_out, buyer.name), else_=TokenListing.buyer_name),
                    buyer_email=case((sells_out, buyer.email), else_=TokenListing.buyer_email),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ListingNotAvailable(
                    "Listing changed before the purchase went through",
                    listing_id=listing_id,
                )

            offering = await self.inventory.get_offering(offering_id)
            await self.inventory.release_holding(investment_id, tokens, offering.total_tokens)
            investment = await self.inventory.create_investment(
                offering,
                investor_id=user.user_id,
                investor_email=buyer.email,
                tokens=tokens,
                price_per_token=price,
                transaction_id=transaction_id,
                payment_method=RESALE_PAYMENT_METHOD,
                source=InvestmentSource.LISTING,
                listing_id=listing_id,
            )
        except TokenMarketError:
            await self.db.rollback()
            raise
        except IntegrityError:
            await self.db.rollback()
            raise ListingNotAvailable("Purchase could not be recorded, retry", listing_id=listing_id)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Resale commit failed",
                listing_id=listing_id,
                buyer_id=user.user_id,
                tokens=tokens,
                transaction_id=transaction_id,
                error=str(e),
            )
            raise SettlementInconsistency(
                "Resale outcome unknown; reconcile the listing before retrying",
                listing_id=listing_id,
                offering_id=offering_id,
                transaction_id=transaction_id,
            )

        await self.db.refresh(listing)
        logger.info(
            "Listing purchase settled",
            listing_id=listing_id,
            seller_id=seller_id,
            buyer_id=user.user_id,
            tokens=tokens,
            remaining=listing.tokens_for_sale,
            status=listing.status,
            investment_id=investment.id,
        )

        await self._notify_seller(
            listing,
            NotificationType.TOKEN_SALE,
            TokenNotificationMessages.listing_sold(buyer.name, tokens, token_symbol, tokens * price, currency),
            NotificationPriority.HIGH,
        )
        return listing, investment

    async def expire(
        self,
        listing_id: int,
        user: Optional[CurrentUser] = None,
        now: Optional[datetime] = None,
    ) -> TokenListing:
        """active -> expired once expires_at has passed. System or superadmin only."""
        if user is not None and user.role != UserRole.SUPERADMIN:
            raise Forbidden("Only the system can expire listings", role=user.role.value)

        listing = await self._load(listing_id)
        now = now or utcnow()
        result = await self.db.execute(
            update(TokenListing)
            .where(
                TokenListing.id == listing_id,
                TokenListing.status == ListingStatus.ACTIVE.value,
                TokenListing.expires_at.is_not(None),
                TokenListing.expires_at <= now,
            )
            .values(status=ListingStatus.EXPIRED.value, expired_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.refresh(listing)
            if listing.status != ListingStatus.ACTIVE.value:
                message = f"Cannot expire a listing in status '{listing.status}'"
            else:
                message = "Listing has not reached its expiry time"
            raise InvalidTransition(message, current_status=listing.status, listing_id=listing_id)

        await self.db.commit()
        await self.db.refresh(listing)
        logger.info("Listing expired", listing_id=listing_id, expires_at=str(listing.expires_at))

        await self._notify_seller(
            listing,
            NotificationType.LISTING,
            TokenNotificationMessages.listing_expired(listing.token_symbol),
            NotificationPriority.LOW,
        )
        return listing

    async def due_for_expiry(self, now: Optional[datetime] = None) -> List[TokenListing]:
        """Active listings whose expiry has passed, oldest id first"""
        result = await self.db.execute(
            select(TokenListing).where(
                TokenListing.status == ListingStatus.ACTIVE.value,
                TokenListing.expires_at.is_not(None),
                TokenListing.expires_at <= (now or utcnow()),
            ).order_by(TokenListing.id)
        )
        return list(result.scalars().all())

    async def expire_due(self, now: Optional[datetime] = None) -> List[int]:
        """Expire every active listing past its expiry. Returns the expired ids."""
        now = now or utcnow()
        due = [listing.id for listing in await self.due_for_expiry(now)]

        expired = []
        for listing_id in due:
            try:
                await self.expire(listing_id, now=now)
            except InvalidTransition as e:
                # Sold or cancelled between the scan and the update
                logger.info("Skipped listing in sweep", listing_id=listing_id, reason=e.message)
                continue
            expired.append(listing_id)

        logger.info("Listing expiry sweep finished", due=len(due), expired=len(expired))
        return expired

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_listing(self, listing_id: int) -> TokenListing:
        return await self._load(listing_id)

    async def list_listings(
        self,
        seller_id: Optional[str] = None,
        status: Optional[ListingStatus] = ListingStatus.ACTIVE,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Tuple[List[TokenListing], int]:
        limit = limit or self.settings.listing_page_size
        conditions = []
        if seller_id:
            conditions.append(TokenListing.seller_id == seller_id)
        if status:
            conditions.append(TokenListing.status == status.value)

        total = (await self.db.execute(
            select(func.count(TokenListing.id)).where(*conditions)
        )).scalar_one()
        result = await self.db.execute(
            select(TokenListing)
            .where(*conditions)
            .order_by(TokenListing.listed_at.desc(), TokenListing.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
