"""Unit tests for token market error types"""
import pytest

from assetx.services.errors import (
    TokenMarketError,
    NotFound,
    Forbidden,
    InvalidTransition,
    InsufficientInventory,
    InsufficientHolding,
    ListingNotEditable,
    ListingNotAvailable,
    ValidationError,
    SettlementInconsistency,
)


class TestErrorTypes:
    """Tests for the typed failure hierarchy"""

    @pytest.mark.parametrize("error_class,code,status_code", [
        (NotFound, "not_found", 404),
        (Forbidden, "forbidden", 403),
        (InvalidTransition, "invalid_transition", 409),
        (InsufficientInventory, "insufficient_inventory", 409),
        (InsufficientHolding, "insufficient_holding", 409),
        (ListingNotEditable, "listing_not_editable", 409),
        (ListingNotAvailable, "listing_not_available", 409),
        (ValidationError, "validation_error", 422),
        (SettlementInconsistency, "settlement_inconsistency", 500),
    ])
    def test_codes_and_status(self, error_class, code, status_code):
        error = error_class("boom")
        assert isinstance(error, TokenMarketError)
        assert error.code == code
        assert error.status_code == status_code

    def test_to_dict_envelope(self):
        error = InsufficientInventory("Only 900 tokens available", requested=950, available=900)
        assert error.to_dict() == {
            "error": "insufficient_inventory",
            "message": "Only 900 tokens available",
            "detail": {"requested": 950, "available": 900},
        }

    def test_empty_detail_is_none(self):
        assert NotFound("Offering not found").to_dict()["detail"] is None

    def test_invalid_transition_records_current_status(self):
        error = InvalidTransition("Cannot cancel", current_status="payment_confirmed", request_id=7)
        assert error.detail == {"current_status": "payment_confirmed", "request_id": 7}
        assert str(error) == "Cannot cancel"
