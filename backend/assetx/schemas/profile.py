"""Schemas for user profile APIs"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ProfileResponse(BaseModel):
    user_id: str
    role: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
