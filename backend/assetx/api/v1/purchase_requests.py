"""Token purchase request API endpoints"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from assetx.api.deps import get_current_user, get_purchase_request_service
from assetx.models.purchase_request import TokenPurchaseRequest, PurchaseRequestStatus
from assetx.schemas.auth import CurrentUser
from assetx.schemas.purchase_request import (
    SubmitPurchaseRequest,
    ApproveRequest,
    RejectRequest,
    PaymentProofRequest,
    SignAgreementRequest,
    PurchaseRequestResponse,
    PurchaseRequestListResponse,
)
from assetx.services.purchase_requests import PurchaseRequestService, Actor, allowed_transitions

router = APIRouter()


def _build_request_response(request: TokenPurchaseRequest) -> PurchaseRequestResponse:
    """Convert TokenPurchaseRequest model to response schema"""
    response = PurchaseRequestResponse.model_validate(request)
    response.allowed_transitions = allowed_transitions(request.status)
    return response


@router.post("", response_model=PurchaseRequestResponse)
async def submit_purchase_request(
    request: SubmitPurchaseRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """
    Request to buy tokens of an active offering.

    Prices and contact details are snapshotted now. Inventory is checked but
    not committed until the seller assigns tokens.
    """
    purchase_request = await service.submit(
        user,
        offering_id=request.offering_id,
        tokens_requested=request.tokens_requested,
        proposed_payment_method=request.proposed_payment_method,
        message=request.message,
        investment_purpose=request.investment_purpose,
    )
    return _build_request_response(purchase_request)


@router.get("", response_model=PurchaseRequestListResponse)
async def list_purchase_requests(
    role: Actor = Query(Actor.BUYER, description="List requests where you are the buyer or the seller"),
    status: Optional[PurchaseRequestStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    requests, total = await service.list_requests(user, view=role, status=status, page=page, limit=limit)
    return PurchaseRequestListResponse(
        requests=[_build_request_response(r) for r in requests],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/{request_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(
    request_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Get a request (buyer or seller only)"""
    return _build_request_response(await service.get(request_id, user))


@router.post("/{request_id}/approve", response_model=PurchaseRequestResponse)
async def approve_purchase_request(
    request_id: int,
    request: ApproveRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Seller accepts a pending request, optionally with payment instructions"""
    return _build_request_response(
        await service.approve(request_id, user, request.seller_payment_instructions)
    )


@router.post("/{request_id}/reject", response_model=PurchaseRequestResponse)
async def reject_purchase_request(
    request_id: int,
    request: RejectRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Seller declines a pending request. A reason is required."""
    return _build_request_response(await service.reject(request_id, user, request.rejection_reason))


@router.post("/{request_id}/payment-proof", response_model=PurchaseRequestResponse)
async def upload_payment_proof(
    request_id: int,
    request: PaymentProofRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Buyer attaches the URL of an uploaded payment proof"""
    return _build_request_response(
        await service.upload_payment_proof(request_id, user, request.payment_proof, request.payment_method)
    )


@router.post("/{request_id}/confirm-payment", response_model=PurchaseRequestResponse)
async def confirm_payment(
    request_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Seller attests that the payment arrived"""
    return _build_request_response(await service.confirm_payment(request_id, user))


@router.post("/{request_id}/assign-tokens", response_model=PurchaseRequestResponse)
async def assign_tokens(
    request_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """
    Settle the request.

    Commits offering inventory and creates the buyer's investment in one
    transaction. Fails with insufficient_inventory if another request took
    the remaining tokens first.
    """
    return _build_request_response(await service.assign_tokens(request_id, user))


@router.post("/{request_id}/complete", response_model=PurchaseRequestResponse)
async def complete_purchase_request(
    request_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    return _build_request_response(await service.complete(request_id, user))


@router.post("/{request_id}/cancel", response_model=PurchaseRequestResponse)
async def cancel_purchase_request(
    request_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Buyer withdraws a request that has not been paid for yet"""
    return _build_request_response(await service.cancel(request_id, user))


@router.post("/{request_id}/agreement", response_model=PurchaseRequestResponse)
async def sign_agreement(
    request_id: int,
    request: SignAgreementRequest,
    user: CurrentUser = Depends(get_current_user),
    service: PurchaseRequestService = Depends(get_purchase_request_service),
):
    """Buyer or seller signs the purchase agreement"""
    return _build_request_response(
        await service.sign_agreement(request_id, user, request.agreement_document_url)
    )
