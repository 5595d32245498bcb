"""Unit tests for the purchase request transition table"""
import pytest

from assetx.models.purchase_request import PurchaseRequestStatus
from assetx.services.purchase_requests import TRANSITIONS, Actor, allowed_transitions


class TestTransitionTable:
    """Tests for the edges a request may follow"""

    def test_every_transition_declared(self):
        assert set(TRANSITIONS) == {
            "approve",
            "reject",
            "upload_payment_proof",
            "confirm_payment",
            "assign_tokens",
            "complete",
            "cancel",
        }

    @pytest.mark.parametrize("name,actor", [
        ("approve", Actor.SELLER),
        ("reject", Actor.SELLER),
        ("upload_payment_proof", Actor.BUYER),
        ("confirm_payment", Actor.SELLER),
        ("assign_tokens", Actor.SELLER),
        ("complete", Actor.SELLER),
        ("cancel", Actor.BUYER),
    ])
    def test_actors(self, name, actor):
        assert TRANSITIONS[name].actor == actor

    def test_tokens_assigned_only_reachable_from_payment_confirmed(self):
        sources = [
            status
            for transition in TRANSITIONS.values()
            if transition.to_status == PurchaseRequestStatus.TOKENS_ASSIGNED
            for status in transition.from_statuses
        ]
        assert sources == [PurchaseRequestStatus.PAYMENT_CONFIRMED]

    def test_pending_cannot_assign(self):
        assert "assign_tokens" not in allowed_transitions(PurchaseRequestStatus.PENDING.value)
        assert set(allowed_transitions("pending")) == {"approve", "reject", "cancel"}

    @pytest.mark.parametrize("status", ["pending", "approved", "payment_pending"])
    def test_cancel_allowed_before_payment_confirmed(self, status):
        assert "cancel" in allowed_transitions(status)

    @pytest.mark.parametrize("status", ["payment_confirmed", "tokens_assigned", "completed"])
    def test_cancel_refused_once_payment_confirmed(self, status):
        assert "cancel" not in allowed_transitions(status)

    @pytest.mark.parametrize("status", ["rejected", "cancelled", "completed"])
    def test_terminal_statuses_have_no_exits(self, status):
        assert allowed_transitions(status) == []
