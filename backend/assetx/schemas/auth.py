"""Caller identity schemas"""
from enum import Enum
from pydantic import BaseModel


class UserRole(str, Enum):
    """Roles issued by the identity provider"""
    LANDLORD = "landlord"
    MANAGER = "manager"
    BUYER = "buyer"
    TENANT = "tenant"
    SUPERADMIN = "superadmin"


class CurrentUser(BaseModel):
    """Opaque (user_id, role) pair supplied by the identity provider, trusted verbatim."""
    user_id: str
    role: UserRole
