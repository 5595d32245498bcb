"""Integration tests for the purchase request workflow"""
import asyncio
import os

import pytest
from sqlalchemy import select

from assetx.models.investment import TokenInvestment
from assetx.models.notification import Notification
from assetx.models.purchase_request import PurchaseRequestStatus
from assetx.models.profile import UserProfile
from assetx.schemas.auth import CurrentUser, UserRole
from assetx.services.errors import (
    Forbidden,
    InvalidTransition,
    InsufficientInventory,
    NotFound,
    ValidationError,
)
from assetx.services.inventory import OfferingInventoryManager
from assetx.services.notifications import NotificationEmitter
from assetx.services.purchase_requests import PurchaseRequestService, Actor


class TestWorkedScenario:
    """1000-token offering at 10 EUR, one buyer takes 100 tokens"""

    @pytest.mark.asyncio
    async def test_full_purchase_flow(self, db_session, request_service, active_offering, landlord, buyer):
        request = await request_service.submit(
            buyer,
            offering_id=active_offering.id,
            tokens_requested=100,
            proposed_payment_method="bank_transfer",
        )
        assert request.status == "pending"
        assert request.price_per_token == 1000
        assert request.total_amount == 100_000
        assert request.request_number == 1000
        assert request.seller_id == landlord.user_id

        request = await request_service.approve(request.id, landlord, "Bank X, ref 123")
        assert request.status == "approved"
        assert request.seller_payment_instructions == "Bank X, ref 123"
        assert request.approved_by == landlord.user_id

        request = await request_service.upload_payment_proof(request.id, buyer, "https://blobs.example/proof.pdf")
        assert request.status == "payment_pending"
        assert request.payment_submitted_at is not None

        request = await request_service.confirm_payment(request.id, landlord)
        assert request.status == "payment_confirmed"

        request = await request_service.assign_tokens(request.id, landlord)
        assert request.status == "tokens_assigned"
        assert request.tokens_assigned == 100
        assert request.tokens_assigned_at is not None

        offering = await OfferingInventoryManager(db_session).get_offering(active_offering.id)
        await db_session.refresh(offering)
        assert offering.tokens_sold == 100
        assert offering.tokens_available == 900

        investment = (await db_session.execute(
            select(TokenInvestment).where(TokenInvestment.id == request.investment_id)
        )).scalar_one()
        assert investment.investor_id == buyer.user_id
        assert investment.tokens_owned == 100
        assert investment.ownership_percentage == pytest.approx(0.10)
        assert investment.transaction_id == "TPR-1000"
        assert investment.purchase_request_id == request.id

        request = await request_service.complete(request.id, landlord)
        assert request.status == "completed"
        assert request.completed_at is not None

        with pytest.raises(InsufficientInventory):
            await request_service.submit(
                buyer,
                offering_id=active_offering.id,
                tokens_requested=950,
                proposed_payment_method="bank_transfer",
            )

    @pytest.mark.asyncio
    async def test_request_numbers_increase(self, submit_request):
        first = await submit_request(10)
        second = await submit_request(20)
        assert second.request_number == first.request_number + 1


class TestSubmit:
    """Tests for request submission rules"""

    @pytest.mark.asyncio
    async def test_snapshots_buyer_profile(self, db_session, submit_request, buyer):
        db_session.add(UserProfile(
            user_id=buyer.user_id,
            role="buyer",
            name="Alice Buyer",
            email="alice@example.com",
            phone="+66 800 000 000",
        ))
        await db_session.commit()

        request = await submit_request(10)
        assert request.buyer_name == "Alice Buyer"
        assert request.buyer_email == "alice@example.com"
        assert request.buyer_phone == "+66 800 000 000"

    @pytest.mark.asyncio
    async def test_missing_profile_falls_back_to_user_id(self, submit_request, buyer, landlord):
        request = await submit_request(10)
        assert request.buyer_name == buyer.user_id
        assert request.buyer_email is None
        assert request.seller_name == landlord.user_id

    @pytest.mark.asyncio
    async def test_only_buyers_submit(self, request_service, active_offering):
        tenant = CurrentUser(user_id="tenant-1", role=UserRole.TENANT)
        with pytest.raises(Forbidden):
            await request_service.submit(tenant, active_offering.id, 10, "bank_transfer")

    @pytest.mark.asyncio
    async def test_owner_cannot_buy_own_offering(self, request_service, active_offering, landlord):
        owner_as_buyer = CurrentUser(user_id=landlord.user_id, role=UserRole.BUYER)
        with pytest.raises(Forbidden):
            await request_service.submit(owner_as_buyer, active_offering.id, 10, "bank_transfer")

    @pytest.mark.asyncio
    async def test_non_positive_tokens(self, request_service, active_offering, buyer):
        with pytest.raises(ValidationError):
            await request_service.submit(buyer, active_offering.id, 0, "bank_transfer")

    @pytest.mark.asyncio
    async def test_purchase_limits(self, offering_service, request_service, landlord, buyer, offering_data):
        offering_data.update(min_purchase=10, max_purchase=200)
        offering = await offering_service.create_offering(landlord, **offering_data)
        await offering_service.activate_offering(offering.id, landlord)

        with pytest.raises(ValidationError):
            await request_service.submit(buyer, offering.id, 5, "bank_transfer")
        with pytest.raises(ValidationError):
            await request_service.submit(buyer, offering.id, 201, "bank_transfer")

        request = await request_service.submit(buyer, offering.id, 200, "bank_transfer")
        assert request.status == "pending"

    @pytest.mark.asyncio
    async def test_draft_offering_not_purchasable(self, offering_service, request_service, landlord, buyer, offering_data):
        offering = await offering_service.create_offering(landlord, **offering_data)
        with pytest.raises(InvalidTransition):
            await request_service.submit(buyer, offering.id, 10, "bank_transfer")

    @pytest.mark.asyncio
    async def test_unknown_offering(self, request_service, buyer):
        with pytest.raises(NotFound):
            await request_service.submit(buyer, 999, 10, "bank_transfer")


class TestTransitions:
    """Tests for guarded status changes"""

    @pytest.mark.asyncio
    async def test_pending_cannot_jump_to_assigned(self, db_session, request_service, submit_request, landlord):
        request = await submit_request(100)

        with pytest.raises(InvalidTransition) as exc_info:
            await request_service.assign_tokens(request.id, landlord)
        assert exc_info.value.detail["current_status"] == "pending"

        await db_session.refresh(request)
        assert request.status == "pending"
        offering = await OfferingInventoryManager(db_session).get_offering(request.offering_id)
        await db_session.refresh(offering)
        assert offering.tokens_sold == 0

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, db_session, request_service, submit_request, landlord):
        request = await submit_request(100)

        for reason in (None, "", "   "):
            with pytest.raises(ValidationError):
                await request_service.reject(request.id, landlord, reason)

        await db_session.refresh(request)
        assert request.status == "pending"

        request = await request_service.reject(request.id, landlord, "KYC incomplete")
        assert request.status == "rejected"
        assert request.rejection_reason == "KYC incomplete"
        assert request.rejected_by == landlord.user_id

    @pytest.mark.asyncio
    async def test_reject_checks_caller_before_reason(
        self, db_session, request_service, submit_request, second_buyer, landlord
    ):
        request = await submit_request(100)

        with pytest.raises(Forbidden):
            await request_service.reject(request.id, second_buyer, "")
        with pytest.raises(NotFound):
            await request_service.reject(999, landlord, "   ")

        await db_session.refresh(request)
        assert request.status == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reached", [
        PurchaseRequestStatus.PENDING,
        PurchaseRequestStatus.APPROVED,
        PurchaseRequestStatus.PAYMENT_PENDING,
    ])
    async def test_cancel_before_payment_confirmed(self, request_service, submit_request, advance_request, buyer, reached):
        request = await submit_request(100)
        if reached != PurchaseRequestStatus.PENDING:
            await advance_request(request.id, reached)

        request = await request_service.cancel(request.id, buyer)
        assert request.status == "cancelled"
        assert request.cancelled_by == buyer.user_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reached", [
        PurchaseRequestStatus.PAYMENT_CONFIRMED,
        PurchaseRequestStatus.TOKENS_ASSIGNED,
        PurchaseRequestStatus.COMPLETED,
    ])
    async def test_cancel_refused_after_payment_confirmed(
        self, db_session, request_service, submit_request, advance_request, buyer, reached
    ):
        request = await submit_request(100)
        await advance_request(request.id, reached)

        with pytest.raises(InvalidTransition):
            await request_service.cancel(request.id, buyer)

        await db_session.refresh(request)
        assert request.status == reached.value

    @pytest.mark.asyncio
    async def test_wrong_actor_forbidden(self, request_service, submit_request, buyer, second_buyer, landlord):
        request = await submit_request(100)

        with pytest.raises(Forbidden):
            await request_service.approve(request.id, buyer)
        with pytest.raises(Forbidden):
            await request_service.cancel(request.id, second_buyer)
        with pytest.raises(Forbidden):
            await request_service.cancel(request.id, landlord)

    @pytest.mark.asyncio
    async def test_repeated_transition_refused(self, request_service, submit_request, landlord):
        request = await submit_request(100)
        await request_service.approve(request.id, landlord)

        with pytest.raises(InvalidTransition) as exc_info:
            await request_service.approve(request.id, landlord)
        assert exc_info.value.detail["current_status"] == "approved"


class TestSettlementConcurrency:
    """Tests for the one-winner guarantee of assign_tokens"""

    @pytest.mark.asyncio
    async def test_stale_second_assign_refused(
        self, session_factory, emitter, submit_request, advance_request, landlord
    ):
        request = await submit_request(100)
        await advance_request(request.id, PurchaseRequestStatus.PAYMENT_CONFIRMED)

        async with session_factory() as first, session_factory() as second:
            first_service = PurchaseRequestService(first, emitter)
            second_service = PurchaseRequestService(second, emitter)
            # Both callers have read the request as payment_confirmed
            await first_service.get(request.id, landlord)
            await second_service.get(request.id, landlord)

            await first_service.assign_tokens(request.id, landlord)
            with pytest.raises(InvalidTransition):
                await second_service.assign_tokens(request.id, landlord)

        async with session_factory() as check:
            offering = await OfferingInventoryManager(check).get_offering(request.offering_id)
            assert offering.tokens_sold == 100
            investments = (await check.execute(select(TokenInvestment))).scalars().all()
            assert len(investments) == 1

    @pytest.mark.asyncio
    async def test_competing_requests_for_last_tokens(
        self, db_session, request_service, submit_request, advance_request, landlord
    ):
        first = await submit_request(600)
        second = await submit_request(600)
        await advance_request(first.id, PurchaseRequestStatus.PAYMENT_CONFIRMED)
        await advance_request(second.id, PurchaseRequestStatus.PAYMENT_CONFIRMED)

        await request_service.assign_tokens(first.id, landlord)
        with pytest.raises(InsufficientInventory):
            await request_service.assign_tokens(second.id, landlord)

        await db_session.refresh(second)
        assert second.status == "payment_confirmed"
        assert second.tokens_assigned == 0
        assert second.investment_id is None

        offering = await OfferingInventoryManager(db_session).get_offering(second.offering_id)
        await db_session.refresh(offering)
        assert offering.tokens_sold == 600
        assert offering.tokens_available == 400

    @pytest.mark.asyncio
    @pytest.mark.skipif(
        not (os.getenv("TEST_DATABASE_URL") or "").startswith("postgresql"),
        reason="needs row-level locking; set TEST_DATABASE_URL to a PostgreSQL database",
    )
    async def test_simultaneous_assign_settles_once(
        self, session_factory, emitter, submit_request, advance_request, landlord
    ):
        request = await submit_request(100)
        await advance_request(request.id, PurchaseRequestStatus.PAYMENT_CONFIRMED)

        async def attempt():
            async with session_factory() as session:
                try:
                    await PurchaseRequestService(session, emitter).assign_tokens(request.id, landlord)
                    return "ok"
                except (InvalidTransition, InsufficientInventory) as e:
                    return e.code

        outcomes = await asyncio.gather(attempt(), attempt())
        assert sorted(outcomes) == ["invalid_transition", "ok"]

        async with session_factory() as check:
            offering = await OfferingInventoryManager(check).get_offering(request.offering_id)
            assert offering.tokens_sold == 100


class TestNotifications:
    """Tests for events emitted by transitions"""

    @pytest.mark.asyncio
    async def test_each_transition_notifies_counterparty(
        self, db_session, submit_request, advance_request, broadcaster, landlord, buyer
    ):
        request = await submit_request(100)
        await advance_request(request.id, PurchaseRequestStatus.COMPLETED)

        recipients = [call.kwargs["recipient_id"] for call in broadcaster.call_args_list]
        assert recipients == [
            landlord.user_id,  # submitted
            buyer.user_id,  # approved
            landlord.user_id,  # payment proof
            buyer.user_id,  # payment confirmed
            buyer.user_id,  # tokens assigned
            buyer.user_id,  # completed
        ]

        stored = (await db_session.execute(
            select(Notification).where(Notification.recipient_id == landlord.user_id)
        )).scalars().all()
        assert len(stored) == 2
        assert all(n.related_id == str(request.id) for n in stored)

    @pytest.mark.asyncio
    async def test_failed_delivery_does_not_fail_transition(
        self, db_session, session_factory, submit_request, landlord
    ):
        request = await submit_request(100)

        async def broken_broadcaster(**kwargs):
            raise ConnectionError("delivery down")

        service = PurchaseRequestService(
            db_session, NotificationEmitter(session_factory=session_factory, broadcaster=broken_broadcaster)
        )
        request = await service.approve(request.id, landlord)
        assert request.status == "approved"

    @pytest.mark.asyncio
    async def test_failed_inbox_does_not_fail_transition(self, db_session, submit_request, landlord):
        request = await submit_request(100)

        def broken_factory():
            raise RuntimeError("inbox unavailable")

        service = PurchaseRequestService(db_session, NotificationEmitter(session_factory=broken_factory))
        request = await service.approve(request.id, landlord)
        assert request.status == "approved"


class TestAgreementAndReads:

    @pytest.mark.asyncio
    async def test_both_parties_sign(self, request_service, submit_request, landlord, buyer, second_buyer):
        request = await submit_request(100)

        request = await request_service.sign_agreement(request.id, buyer, "https://blobs.example/spa.pdf")
        assert request.agreement_signed_by_buyer is True
        assert request.agreement_signed_at is None
        assert request.agreement_document_url == "https://blobs.example/spa.pdf"

        request = await request_service.sign_agreement(request.id, landlord)
        assert request.agreement_signed_by_seller is True
        assert request.agreement_signed_at is not None

        with pytest.raises(Forbidden):
            await request_service.sign_agreement(request.id, second_buyer)

    @pytest.mark.asyncio
    async def test_cannot_sign_cancelled_request(self, request_service, submit_request, buyer):
        request = await submit_request(100)
        await request_service.cancel(request.id, buyer)

        with pytest.raises(InvalidTransition):
            await request_service.sign_agreement(request.id, buyer)

    @pytest.mark.asyncio
    async def test_list_by_role(self, request_service, submit_request, landlord, buyer, second_buyer):
        await submit_request(10)
        await submit_request(20)
        await submit_request(30, user=second_buyer)

        mine, total = await request_service.list_requests(buyer, view=Actor.BUYER)
        assert total == 2
        assert {r.tokens_requested for r in mine} == {10, 20}

        incoming, total = await request_service.list_requests(landlord, view=Actor.SELLER)
        assert total == 3

        pending, total = await request_service.list_requests(
            landlord, view=Actor.SELLER, status=PurchaseRequestStatus.APPROVED
        )
        assert total == 0
        assert pending == []

    @pytest.mark.asyncio
    async def test_get_restricted_to_parties(self, request_service, submit_request, second_buyer, landlord):
        request = await submit_request(10)
        assert (await request_service.get(request.id, landlord)).id == request.id
        with pytest.raises(Forbidden):
            await request_service.get(request.id, second_buyer)
