"""Token offering API endpoints"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from assetx.api.deps import get_current_user, get_offering_service
from assetx.models.offering import TokenOffering, OfferingStatus, RiskLevel
from assetx.schemas.auth import CurrentUser
from assetx.schemas.offering import (
    CreateOfferingRequest,
    OfferingResponse,
    OfferingListResponse,
    ReconciliationResponse,
)
from assetx.services.offerings import OfferingService

router = APIRouter()


def _build_offering_response(offering: TokenOffering, investor_count: Optional[int] = None) -> OfferingResponse:
    """Convert TokenOffering model to response schema"""
    response = OfferingResponse.model_validate(offering)
    response.investor_count = investor_count
    return response


@router.post("", response_model=OfferingResponse)
async def create_offering(
    request: CreateOfferingRequest,
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """
    Fractionalize a property into a draft token offering.

    Landlords only. Amounts are in cents. The offering is not purchasable
    until activated.
    """
    offering = await service.create_offering(user, **request.model_dump())
    return _build_offering_response(offering, investor_count=0)


@router.get("", response_model=OfferingListResponse)
async def list_offerings(
    status: Optional[OfferingStatus] = Query(OfferingStatus.ACTIVE),
    risk_level: Optional[RiskLevel] = None,
    property_type: Optional[str] = None,
    mine: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """List offerings, active ones by default"""
    offerings, total = await service.list_offerings(
        status=status,
        risk_level=risk_level,
        property_type=property_type,
        owner_id=user.user_id if mine else None,
        page=page,
        limit=limit,
    )
    return OfferingListResponse(
        offerings=[_build_offering_response(o) for o in offerings],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/{offering_id}", response_model=OfferingResponse)
async def get_offering(
    offering_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """Get an offering with its funding progress and investor count"""
    offering = await service.get_offering(offering_id)
    return _build_offering_response(offering, await service.investor_count(offering_id))


@router.get("/{offering_id}/reconciliation", response_model=ReconciliationResponse)
async def reconcile_offering(
    offering_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """
    Compare the offering's sold counter against the investments backing it.

    Used to resolve a settlement whose outcome was reported as unknown.
    """
    report = await service.reconcile(offering_id, user)
    return ReconciliationResponse(
        offering_id=report.offering_id,
        total_tokens=report.total_tokens,
        tokens_sold=report.tokens_sold,
        tokens_available=report.tokens_available,
        tokens_held=report.tokens_held,
        investment_count=report.investment_count,
        counters_consistent=report.counters_consistent,
        holdings_consistent=report.holdings_consistent,
        is_consistent=report.is_consistent,
    )


@router.post("/{offering_id}/activate", response_model=OfferingResponse)
async def activate_offering(
    offering_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """Open a draft offering for purchase requests (owner only)"""
    return _build_offering_response(await service.activate_offering(offering_id, user))


@router.post("/{offering_id}/close", response_model=OfferingResponse)
async def close_offering(
    offering_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """Close an active or funded offering (owner only)"""
    return _build_offering_response(await service.close_offering(offering_id, user))


@router.post("/{offering_id}/cancel", response_model=OfferingResponse)
async def cancel_offering(
    offering_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: OfferingService = Depends(get_offering_service),
):
    """Withdraw an offering before any token has been settled (owner only)"""
    return _build_offering_response(await service.cancel_offering(offering_id, user))
