"""API v1 router aggregation"""
from fastapi import APIRouter

from assetx.api.v1 import offerings, purchase_requests, listings, marketplace, notifications, profiles

api_router = APIRouter()

api_router.include_router(offerings.router, prefix="/offerings", tags=["Offerings"])
api_router.include_router(purchase_requests.router, prefix="/purchase-requests", tags=["Purchase Requests"])
api_router.include_router(listings.router, prefix="/listings", tags=["Listings"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
api_router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])

# Top-level read views (/marketplace, /portfolio)
api_router.include_router(marketplace.router, tags=["Marketplace"])
