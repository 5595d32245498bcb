"""P2P listing API endpoints"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from assetx.api.deps import get_current_user, get_listing_market
from assetx.models.listing import ListingStatus
from assetx.schemas.auth import CurrentUser, UserRole
from assetx.schemas.investment import InvestmentResponse
from assetx.schemas.listing import (
    CreateListingRequest,
    UpdateListingRequest,
    PurchaseListingRequest,
    ListingResponse,
    ListingListResponse,
    ListingPurchaseResponse,
    ExpireSweepResponse,
)
from assetx.services.errors import Forbidden
from assetx.services.listings import ListingMarket

router = APIRouter()


@router.post("", response_model=ListingResponse)
async def create_listing(
    request: CreateListingRequest,
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    """
    List tokens from one of your investments for resale.

    Cannot exceed the investment's tokens not already on another active listing.
    """
    listing = await market.create_listing(
        user,
        investment_id=request.investment_id,
        tokens_for_sale=request.tokens_for_sale,
        price_per_token=request.price_per_token,
        description=request.description,
        tags=request.tags,
        expires_in_days=request.expires_in_days,
    )
    return ListingResponse.model_validate(listing)


@router.get("", response_model=ListingListResponse)
async def list_listings(
    mine: bool = False,
    status: Optional[ListingStatus] = Query(ListingStatus.ACTIVE),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    listings, total = await market.list_listings(
        seller_id=user.user_id if mine else None,
        status=status,
        page=page,
        limit=limit,
    )
    return ListingListResponse(
        listings=[ListingResponse.model_validate(listing) for listing in listings],
        total=total,
        page=page,
        limit=limit or market.settings.listing_page_size,
    )


@router.post("/expire-due", response_model=ExpireSweepResponse)
async def expire_due_listings(
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    """Expire every active listing past its expiry (superadmin, for an external scheduler)"""
    if user.role != UserRole.SUPERADMIN:
        raise Forbidden("Only the system can expire listings", role=user.role.value)
    expired = await market.expire_due()
    return ExpireSweepResponse(expired_listing_ids=expired, count=len(expired))


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: int,
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    return ListingResponse.model_validate(await market.get_listing(listing_id))


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: int,
    request: UpdateListingRequest,
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    """Change price or description of an active listing (seller only)"""
    listing = await market.update_listing(
        listing_id,
        user,
        price_per_token=request.price_per_token,
        description=request.description,
    )
    return ListingResponse.model_validate(listing)


@router.post("/{listing_id}/cancel", response_model=ListingResponse)
async def cancel_listing(
    listing_id: int,
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    return ListingResponse.model_validate(await market.cancel_listing(listing_id, user))


@router.post("/{listing_id}/purchase", response_model=ListingPurchaseResponse)
async def purchase_listing(
    listing_id: int,
    request: PurchaseListingRequest,
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    """
    Buy tokens directly from a listing.

    The purchase is refused if the listing no longer costs
    expected_price_per_token. Omit tokens_to_purchase to buy everything
    listed. A partial purchase keeps the listing active with the remaining
    tokens.
    """
    listing, investment = await market.purchase(
        listing_id, user, request.tokens_to_purchase, request.expected_price_per_token
    )
    return ListingPurchaseResponse(
        listing=ListingResponse.model_validate(listing),
        investment=InvestmentResponse.model_validate(investment),
        tokens_purchased=investment.tokens_owned,
        amount_paid=investment.total_investment,
    )


@router.post("/{listing_id}/expire", response_model=ListingResponse)
async def expire_listing(
    listing_id: int,
    user: CurrentUser = Depends(get_current_user),
    market: ListingMarket = Depends(get_listing_market),
):
    """Expire one listing whose expiry has passed (superadmin only)"""
    return ListingResponse.model_validate(await market.expire(listing_id, user))
