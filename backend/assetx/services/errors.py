"""Typed failures raised by the token market services.

Every operation either returns the updated entity or raises one of these.
The HTTP layer renders them as a structured error envelope; nothing here is
retried automatically.
"""
from typing import Any, Dict, Optional


class TokenMarketError(Exception):
    """Base class for all token market failures"""

    code = "token_market_error"
    status_code = 400

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "detail": self.detail or None,
        }


class NotFound(TokenMarketError):
    """Referenced offering, request, listing or investment does not exist"""
    code = "not_found"
    status_code = 404


class Forbidden(TokenMarketError):
    """Caller is not the actor required for the operation"""
    code = "forbidden"
    status_code = 403


class InvalidTransition(TokenMarketError):
    """Current status does not permit the transition, or a concurrent writer moved it first"""
    code = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current_status: Optional[str] = None, **detail: Any):
        if current_status is not None:
            detail["current_status"] = current_status
        super().__init__(message, **detail)


class InsufficientInventory(TokenMarketError):
    """Requested tokens exceed what the offering has left"""
    code = "insufficient_inventory"
    status_code = 409


class InsufficientHolding(TokenMarketError):
    """Requested tokens exceed what the holder or listing has"""
    code = "insufficient_holding"
    status_code = 409


class ListingNotEditable(TokenMarketError):
    code = "listing_not_editable"
    status_code = 409


class ListingNotAvailable(TokenMarketError):
    code = "listing_not_available"
    status_code = 409


class ValidationError(TokenMarketError):
    """Malformed or missing required field"""
    code = "validation_error"
    status_code = 422


class SettlementInconsistency(TokenMarketError):
    """Settlement outcome unknown; needs out-of-band reconciliation"""
    code = "settlement_inconsistency"
    status_code = 500
