"""Shared API dependencies"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.api.identity import get_current_user  # noqa: F401
from assetx.models.database import get_db
from assetx.services.listings import ListingMarket
from assetx.services.notifications import NotificationEmitter, get_notification_emitter
from assetx.services.offerings import OfferingService
from assetx.services.purchase_requests import PurchaseRequestService


def get_offering_service(db: AsyncSession = Depends(get_db)) -> OfferingService:
    return OfferingService(db)


def get_purchase_request_service(
    db: AsyncSession = Depends(get_db),
    emitter: NotificationEmitter = Depends(get_notification_emitter),
) -> PurchaseRequestService:
    return PurchaseRequestService(db, emitter)


def get_listing_market(
    db: AsyncSession = Depends(get_db),
    emitter: NotificationEmitter = Depends(get_notification_emitter),
) -> ListingMarket:
    return ListingMarket(db, emitter)
