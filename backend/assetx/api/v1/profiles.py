"""User profile API endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.api.deps import get_current_user
from assetx.models.database import get_db
from assetx.schemas.auth import CurrentUser
from assetx.schemas.profile import UpdateProfileRequest, ProfileResponse
from assetx.services.profiles import get_profile, upsert_profile

router = APIRouter()


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Your contact profile; empty if you have not saved one"""
    profile = await get_profile(db, user.user_id)
    if not profile:
        return ProfileResponse(user_id=user.user_id, role=user.role.value)
    return ProfileResponse.model_validate(profile)


@router.put("/me", response_model=ProfileResponse)
async def update_my_profile(
    request: UpdateProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Save your contact details.

    They are copied into purchase requests and listings you create from now
    on; existing records keep their snapshot.
    """
    profile = await upsert_profile(db, user, **request.model_dump())
    return ProfileResponse.model_validate(profile)
