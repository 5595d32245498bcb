"""Caller identity from the identity provider headers"""
from typing import Optional
from fastapi import Header, HTTPException, WebSocketException, status

from assetx.schemas.auth import CurrentUser, UserRole


def resolve_identity(x_user_id: Optional[str], x_user_role: Optional[str]) -> CurrentUser:
    """
    Caller identity as asserted by the identity provider in front of the API.

    The (user id, role) pair is trusted verbatim. Raises ValueError with the
    reason when either header is missing or the role is unknown.
    """
    if not x_user_id or not x_user_id.strip():
        raise ValueError("Missing X-User-Id header")
    if not x_user_role:
        raise ValueError("Missing X-User-Role header")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise ValueError(f"Unknown role: {x_user_role}")
    return CurrentUser(user_id=x_user_id.strip(), role=role)


async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    try:
        return resolve_identity(x_user_id, x_user_role)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))


async def get_websocket_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    """Same identity for websocket handshakes; refused with a policy-violation close."""
    try:
        return resolve_identity(x_user_id, x_user_role)
    except ValueError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
