"""User contact profiles"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetx.models.profile import UserProfile
from assetx.schemas.auth import CurrentUser


@dataclass
class ContactSnapshot:
    """Contact details frozen into a request or listing"""
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


async def get_profile(db: AsyncSession, user_id: str) -> Optional[UserProfile]:
    result = await db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def get_contact(db: AsyncSession, user_id: str) -> ContactSnapshot:
    """Snapshot a user's contact details; users without a profile get their id as name."""
    profile = await get_profile(db, user_id)
    if not profile:
        return ContactSnapshot(name=user_id)
    return ContactSnapshot(
        name=profile.display_name,
        email=profile.email,
        phone=profile.phone,
        address=profile.address,
    )


async def upsert_profile(
    db: AsyncSession,
    user: CurrentUser,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    address: Optional[str] = None,
) -> UserProfile:
    profile = await get_profile(db, user.user_id)
    if not profile:
        profile = UserProfile(user_id=user.user_id, role=user.role.value)
        db.add(profile)

    profile.role = user.role.value
    profile.name = name
    profile.email = email
    profile.phone = phone
    profile.address = address

    await db.commit()
    await db.refresh(profile)
    return profile
