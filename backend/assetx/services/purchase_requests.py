"""Token purchase request workflow.

pending -> approved -> payment_pending -> payment_confirmed -> tokens_assigned -> completed,
with rejected (from pending) and cancelled (from pending, approved or
payment_pending) as terminal branches.

Every transition is one UPDATE keyed on (id, expected status). A zero
rowcount means the precondition no longer holds, whether it never did or a
concurrent caller moved the request first, and is reported as
InvalidTransition with nothing changed. Inventory is committed only at
assign_tokens.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import structlog
from sqlalchemy import select, update, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.config import get_settings
from assetx.models.database import utcnow
from assetx.models.offering import TokenOffering, OfferingStatus
from assetx.models.purchase_request import TokenPurchaseRequest, PurchaseRequestStatus
from assetx.models.investment import TokenInvestment, InvestmentSource
from assetx.models.notification import NotificationType, NotificationPriority
from assetx.schemas.auth import CurrentUser, UserRole
from assetx.services.errors import (
    NotFound,
    Forbidden,
    InvalidTransition,
    ValidationError,
    TokenMarketError,
    SettlementInconsistency,
)
from assetx.services.inventory import OfferingInventoryManager
from assetx.services.notifications import NotificationEmitter, NotificationEvent, TokenNotificationMessages
from assetx.services.profiles import get_contact

logger = structlog.get_logger()


class Actor(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


@dataclass(frozen=True)
class Transition:
    actor: Actor
    from_statuses: FrozenSet[PurchaseRequestStatus]
    to_status: PurchaseRequestStatus


TRANSITIONS: Dict[str, Transition] = {
    "approve": Transition(
        Actor.SELLER,
        frozenset({PurchaseRequestStatus.PENDING}),
        PurchaseRequestStatus.APPROVED,
    ),
    "reject": Transition(
        Actor.SELLER,
        frozenset({PurchaseRequestStatus.PENDING}),
        PurchaseRequestStatus.REJECTED,
    ),
    "upload_payment_proof": Transition(
        Actor.BUYER,
        frozenset({PurchaseRequestStatus.APPROVED}),
        PurchaseRequestStatus.PAYMENT_PENDING,
    ),
    "confirm_payment": Transition(
        Actor.SELLER,
        frozenset({PurchaseRequestStatus.PAYMENT_PENDING}),
        PurchaseRequestStatus.PAYMENT_CONFIRMED,
    ),
    "assign_tokens": Transition(
        Actor.SELLER,
        frozenset({PurchaseRequestStatus.PAYMENT_CONFIRMED}),
        PurchaseRequestStatus.TOKENS_ASSIGNED,
    ),
    "complete": Transition(
        Actor.SELLER,
        frozenset({PurchaseRequestStatus.TOKENS_ASSIGNED}),
        PurchaseRequestStatus.COMPLETED,
    ),
    "cancel": Transition(
        Actor.BUYER,
        frozenset({
            PurchaseRequestStatus.PENDING,
            PurchaseRequestStatus.APPROVED,
            PurchaseRequestStatus.PAYMENT_PENDING,
        }),
        PurchaseRequestStatus.CANCELLED,
    ),
}

AGREEMENT_CLOSED_STATUSES = frozenset({
    PurchaseRequestStatus.REJECTED.value,
    PurchaseRequestStatus.CANCELLED.value,
})


def allowed_transitions(status: str) -> List[str]:
    """Names of the transitions a request in this status may take"""
    return [
        name for name, transition in TRANSITIONS.items()
        if status in {s.value for s in transition.from_statuses}
    ]


class PurchaseRequestService:
    """Runs purchase request transitions for one unit of work"""

    def __init__(self, db: AsyncSession, emitter: NotificationEmitter):
        self.db = db
        self.emitter = emitter
        self.inventory = OfferingInventoryManager(db)
        self.settings = get_settings()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load(self, request_id: int) -> TokenPurchaseRequest:
        result = await self.db.execute(
            select(TokenPurchaseRequest).where(TokenPurchaseRequest.id == request_id)
        )
        request = result.scalar_one_or_none()
        if not request:
            raise NotFound("Purchase request not found", request_id=request_id)
        return request

    async def _current_status(self, request_id: int) -> Optional[str]:
        result = await self.db.execute(
            select(TokenPurchaseRequest.status).where(TokenPurchaseRequest.id == request_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _require_actor(request: TokenPurchaseRequest, user: CurrentUser, actor: Actor):
        expected = request.buyer_id if actor == Actor.BUYER else request.seller_id
        if user.user_id != expected:
            raise Forbidden(
                f"Only the request's {actor.value} may do this",
                request_id=request.id,
                actor=actor.value,
            )

    async def _apply(self, request: TokenPurchaseRequest, name: str, values: Dict[str, Any]) -> None:
        """Guarded status write; raises InvalidTransition if no row matched."""
        transition = TRANSITIONS[name]
        result = await self.db.execute(
            update(TokenPurchaseRequest)
            .where(
                TokenPurchaseRequest.id == request.id,
                TokenPurchaseRequest.status.in_([s.value for s in transition.from_statuses]),
            )
            .values(status=transition.to_status.value, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._current_status(request.id)
            logger.info(
                "Transition refused",
                request_id=request.id,
                transition=name,
                current_status=current,
            )
            raise InvalidTransition(
                f"Cannot {name.replace('_', ' ')} a request in status '{current}'",
                current_status=current,
                request_id=request.id,
                transition=name,
            )

    async def _run(
        self,
        request_id: int,
        user: CurrentUser,
        name: str,
        values: Dict[str, Any],
    ) -> TokenPurchaseRequest:
        request = await self._load(request_id)
        self._require_actor(request, user, TRANSITIONS[name].actor)
        await self._apply(request, name, values)
        await self.db.commit()
        await self.db.refresh(request)

        logger.info(
            "Purchase request transitioned",
            request_id=request.id,
            request_number=request.request_number,
            transition=name,
            status=request.status,
            actor_id=user.user_id,
        )
        return request

    async def _notify(
        self,
        request: TokenPurchaseRequest,
        recipient_id: str,
        notification_type: NotificationType,
        content: Tuple[str, str],
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> None:
        title, message = content
        await self.emitter.emit(NotificationEvent(
            recipient_id=recipient_id,
            type=notification_type,
            title=title,
            message=message,
            related_id=str(request.id),
            related_url=f"/token-requests/{request.id}",
            priority=priority,
        ))

    async def _property_name(self, request: TokenPurchaseRequest) -> str:
        result = await self.db.execute(
            select(TokenOffering.property_title).where(TokenOffering.id == request.offering_id)
        )
        return result.scalar_one_or_none() or request.property_id

    # =========================================================================
    # Transitions
    # =========================================================================

    async def submit(
        self,
        user: CurrentUser,
        offering_id: int,
        tokens_requested: int,
        proposed_payment_method: str,
        message: Optional[str] = None,
        investment_purpose: Optional[str] = None,
    ) -> TokenPurchaseRequest:
        """Create a pending request. Checks inventory but commits none."""
        if user.role != UserRole.BUYER:
            raise Forbidden("Only buyers can submit purchase requests", role=user.role.value)
        if tokens_requested <= 0:
            raise ValidationError("tokens_requested must be positive", tokens_requested=tokens_requested)
        if not proposed_payment_method or not proposed_payment_method.strip():
            raise ValidationError("proposed_payment_method is required")

        offering = await self.inventory.get_offering(offering_id)
        if offering.status != OfferingStatus.ACTIVE.value:
            raise InvalidTransition(
                "Offering is not open for purchase",
                current_status=offering.status,
                offering_id=offering_id,
            )
        if offering.owner_id == user.user_id:
            raise Forbidden("Cannot purchase tokens from your own offering", offering_id=offering_id)
        if tokens_requested < offering.min_purchase:
            raise ValidationError(
                f"Minimum purchase is {offering.min_purchase} tokens",
                tokens_requested=tokens_requested,
                min_purchase=offering.min_purchase,
            )
        if offering.max_purchase is not None and tokens_requested > offering.max_purchase:
            raise ValidationError(
                f"Maximum purchase is {offering.max_purchase} tokens",
                tokens_requested=tokens_requested,
                max_purchase=offering.max_purchase,
            )
        await self.inventory.check_availability(offering_id, tokens_requested)

        buyer = await get_contact(self.db, user.user_id)
        seller = await get_contact(self.db, offering.owner_id)

        request = TokenPurchaseRequest(
            offering_id=offering.id,
            property_id=offering.property_id,
            buyer_id=user.user_id,
            buyer_name=buyer.name,
            buyer_email=buyer.email,
            buyer_phone=buyer.phone,
            buyer_address=buyer.address,
            seller_id=offering.owner_id,
            seller_name=seller.name,
            seller_email=seller.email,
            tokens_requested=tokens_requested,
            price_per_token=offering.token_price,
            total_amount=tokens_requested * offering.token_price,
            currency=offering.currency,
            message=message,
            proposed_payment_method=proposed_payment_method.strip(),
            investment_purpose=investment_purpose,
            status=PurchaseRequestStatus.PENDING.value,
            tokens_assigned=0,
        )
        self.db.add(request)
        await self.db.flush()
        request.request_number = self.settings.request_number_base + request.id - 1
        await self.db.commit()

        logger.info(
            "Purchase request submitted",
            request_id=request.id,
            request_number=request.request_number,
            offering_id=offering.id,
            buyer_id=user.user_id,
            tokens=tokens_requested,
            total_amount=request.total_amount,
        )

        await self._notify(
            request,
            request.seller_id,
            NotificationType.TOKEN_REQUEST,
            TokenNotificationMessages.request_submitted(
                request.buyer_name, tokens_requested, offering.property_title or offering.property_id
            ),
            NotificationPriority.HIGH,
        )
        return request

    async def approve(
        self,
        request_id: int,
        user: CurrentUser,
        seller_payment_instructions: Optional[str] = None,
    ) -> TokenPurchaseRequest:
        request = await self._run(request_id, user, "approve", {
            "approved_at": utcnow(),
            "approved_by": user.user_id,
            "seller_payment_instructions": seller_payment_instructions,
        })
        await self._notify(
            request,
            request.buyer_id,
            NotificationType.TOKEN_REQUEST,
            TokenNotificationMessages.request_approved(await self._property_name(request)),
            NotificationPriority.HIGH,
        )
        return request

    async def reject(self, request_id: int, user: CurrentUser, rejection_reason: Optional[str]) -> TokenPurchaseRequest:
        request = await self._load(request_id)
        self._require_actor(request, user, TRANSITIONS["reject"].actor)
        if not rejection_reason or not rejection_reason.strip():
            raise ValidationError("rejection_reason is required", request_id=request_id)

        request = await self._run(request_id, user, "reject", {
            "rejected_at": utcnow(),
            "rejected_by": user.user_id,
            "rejection_reason": rejection_reason.strip(),
        })
        await self._notify(
            request,
            request.buyer_id,
            NotificationType.TOKEN_REQUEST,
            TokenNotificationMessages.request_rejected(
                await self._property_name(request), request.rejection_reason
            ),
        )
        return request

    async def upload_payment_proof(
        self,
        request_id: int,
        user: CurrentUser,
        payment_proof: str,
        payment_method: Optional[str] = None,
    ) -> TokenPurchaseRequest:
        if not payment_proof or not payment_proof.strip():
            raise ValidationError("payment_proof URL is required", request_id=request_id)

        values = {
            "payment_proof": payment_proof.strip(),
            "payment_submitted_at": utcnow(),
        }
        if payment_method:
            values["payment_method"] = payment_method
        request = await self._run(request_id, user, "upload_payment_proof", values)

        await self._notify(
            request,
            request.seller_id,
            NotificationType.PAYMENT,
            TokenNotificationMessages.payment_proof_submitted(
                request.buyer_name, await self._property_name(request)
            ),
            NotificationPriority.HIGH,
        )
        return request

    async def confirm_payment(self, request_id: int, user: CurrentUser) -> TokenPurchaseRequest:
        request = await self._run(request_id, user, "confirm_payment", {
            "payment_confirmed_at": utcnow(),
            "payment_confirmed_by": user.user_id,
        })
        await self._notify(
            request,
            request.buyer_id,
            NotificationType.PAYMENT,
            TokenNotificationMessages.payment_confirmed(await self._property_name(request)),
        )
        return request

    async def assign_tokens(self, request_id: int, user: CurrentUser) -> TokenPurchaseRequest:
        """
        Settle the request: guard the status, commit inventory, create the
        buyer's investment, all in one transaction.

        Any failure before commit rolls the whole unit back and leaves the
        request in payment_confirmed. If the commit itself fails the outcome
        is unknown and SettlementInconsistency is raised for reconciliation.
        """
        request = await self._load(request_id)
        self._require_actor(request, user, Actor.SELLER)

        # Captured up front: a rollback expires the loaded instance
        offering_id = request.offering_id
        tokens = request.tokens_requested
        transaction_id = f"TPR-{request.request_number}"

        try:
            await self._apply(request, "assign_tokens", {
                "tokens_assigned": tokens,
                "tokens_assigned_at": utcnow(),
            })
            offering = await self.inventory.settle(offering_id, tokens)
            investment = await self.inventory.create_investment(
                offering,
                investor_id=request.buyer_id,
                investor_email=request.buyer_email,
                tokens=tokens,
                price_per_token=request.price_per_token,
                transaction_id=transaction_id,
                payment_method=request.payment_method or request.proposed_payment_method,
                source=InvestmentSource.OFFERING,
                purchase_request_id=request.id,
            )
            await self.db.execute(
                update(TokenPurchaseRequest)
                .where(TokenPurchaseRequest.id == request_id)
                .values(investment_id=investment.id)
                .execution_options(synchronize_session=False)
            )
        except TokenMarketError:
            await self.db.rollback()
            raise
        except IntegrityError:
            await self.db.rollback()
            raise InvalidTransition(
                "Request has already been settled",
                request_id=request_id,
                transaction_id=transaction_id,
            )

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Settlement commit failed",
                request_id=request_id,
                offering_id=offering_id,
                tokens=tokens,
                transaction_id=transaction_id,
                error=str(e),
            )
            raise SettlementInconsistency(
                "Settlement outcome unknown; reconcile the offering before retrying",
                request_id=request_id,
                offering_id=offering_id,
                transaction_id=transaction_id,
            )

        await self.db.refresh(request)
        logger.info(
            "Tokens assigned",
            request_id=request.id,
            request_number=request.request_number,
            offering_id=offering_id,
            investment_id=request.investment_id,
            tokens=tokens,
        )

        await self._notify(
            request,
            request.buyer_id,
            NotificationType.TOKEN_REQUEST,
            TokenNotificationMessages.tokens_assigned(tokens, await self._property_name(request)),
            NotificationPriority.HIGH,
        )
        return request

    async def complete(self, request_id: int, user: CurrentUser) -> TokenPurchaseRequest:
        request = await self._run(request_id, user, "complete", {"completed_at": utcnow()})
        await self._notify(
            request,
            request.buyer_id,
            NotificationType.TOKEN_REQUEST,
            TokenNotificationMessages.request_completed(await self._property_name(request)),
        )
        return request

    async def cancel(self, request_id: int, user: CurrentUser) -> TokenPurchaseRequest:
        request = await self._run(request_id, user, "cancel", {
            "cancelled_at": utcnow(),
            "cancelled_by": user.user_id,
        })
        await self._notify(
            request,
            request.seller_id,
            NotificationType.TOKEN_REQUEST,
            TokenNotificationMessages.request_cancelled(await self._property_name(request)),
            NotificationPriority.LOW,
        )
        return request

    async def sign_agreement(
        self,
        request_id: int,
        user: CurrentUser,
        document_url: Optional[str] = None,
    ) -> TokenPurchaseRequest:
        """Record the caller's signature; signed_at is set once both parties have signed."""
        request = await self._load(request_id)
        if user.user_id == request.buyer_id:
            own_flag = TokenPurchaseRequest.agreement_signed_by_buyer
            other_flag = TokenPurchaseRequest.agreement_signed_by_seller
        elif user.user_id == request.seller_id:
            own_flag = TokenPurchaseRequest.agreement_signed_by_seller
            other_flag = TokenPurchaseRequest.agreement_signed_by_buyer
        else:
            raise Forbidden("Only the buyer or seller may sign the agreement", request_id=request_id)

        values = {
            own_flag.key: True,
            "agreement_signed_at": case(
                (
                    other_flag.is_(True) & TokenPurchaseRequest.agreement_signed_at.is_(None),
                    utcnow(),
                ),
                else_=TokenPurchaseRequest.agreement_signed_at,
            ),
            "updated_at": utcnow(),
        }
        if document_url:
            values["agreement_document_url"] = document_url

        result = await self.db.execute(
            update(TokenPurchaseRequest)
            .where(
                TokenPurchaseRequest.id == request_id,
                TokenPurchaseRequest.status.not_in(list(AGREEMENT_CLOSED_STATUSES)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._current_status(request_id)
            raise InvalidTransition(
                f"Cannot sign the agreement of a request in status '{current}'",
                current_status=current,
                request_id=request_id,
            )

        await self.db.commit()
        await self.db.refresh(request)
        logger.info(
            "Agreement signed",
            request_id=request_id,
            signer_id=user.user_id,
            fully_signed=request.agreement_signed_at is not None,
        )
        return request

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, request_id: int, user: CurrentUser) -> TokenPurchaseRequest:
        request = await self._load(request_id)
        if user.role != UserRole.SUPERADMIN and user.user_id not in (request.buyer_id, request.seller_id):
            raise Forbidden("Not a party to this request", request_id=request_id)
        return request

    async def get_investment(self, request: TokenPurchaseRequest) -> Optional[TokenInvestment]:
        if request.investment_id is None:
            return None
        result = await self.db.execute(
            select(TokenInvestment).where(TokenInvestment.id == request.investment_id)
        )
        return result.scalar_one_or_none()

    async def list_requests(
        self,
        user: CurrentUser,
        view: Actor = Actor.BUYER,
        status: Optional[PurchaseRequestStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[TokenPurchaseRequest], int]:
        column = TokenPurchaseRequest.buyer_id if view == Actor.BUYER else TokenPurchaseRequest.seller_id
        query = select(TokenPurchaseRequest).where(column == user.user_id)
        count_query = select(func.count(TokenPurchaseRequest.id)).where(column == user.user_id)
        if status:
            query = query.where(TokenPurchaseRequest.status == status.value)
            count_query = count_query.where(TokenPurchaseRequest.status == status.value)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(TokenPurchaseRequest.created_at.desc(), TokenPurchaseRequest.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
