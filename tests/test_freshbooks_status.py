"""Tests for FreshBooks status codes, normalization and action gating."""

from types import SimpleNamespace

import pytest

from app.services.freshbooks import status as fb_status


def _invoice(status=None, final_status=None):
    return SimpleNamespace(status=status, final_status=final_status)


class TestNumericCodes:
    @pytest.mark.parametrize(
        "value,expected",
        [("draft", 1), ("sent", 2), ("viewed", 3), ("paid", 4), ("void", 5), ("voided", 5), (" Paid ", 4), ("3", 3)],
    )
    def test_to_numeric(self, value, expected):
        assert fb_status.to_numeric(value) == expected

    def test_to_numeric_accepts_codes(self):
        assert fb_status.to_numeric(2) == 2

    @pytest.mark.parametrize("value", ["overdue", 0, 6, True, 1.5, None])
    def test_to_numeric_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            fb_status.to_numeric(value)

    def test_to_string(self):
        assert fb_status.to_string(1) == "draft"
        assert fb_status.to_string("5") == "void"

    def test_to_string_rejects_unknown(self):
        with pytest.raises(ValueError):
            fb_status.to_string(9)

    def test_safe_variants_return_none(self):
        assert fb_status.to_numeric_safe("bogus") is None
        assert fb_status.to_string_safe(42) is None


class TestNormalizeStatus:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Void", "voided"),
            ("Voided + Email Sent", "voided"),
            ("Sent - Awaiting Payment", "sent"),
            (4, "paid"),
            ("2", "sent"),
            ("  ", None),
            (None, None),
            ("disputed", "disputed"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert fb_status.normalize_status(raw) == expected

    def test_vis_state_one_means_voided(self):
        assert fb_status.status_from_freshbooks({"vis_state": 1, "status": 2}) == "voided"

    def test_v3_status_fallback(self):
        assert fb_status.status_from_freshbooks({"v3_status": "viewed"}) == "viewed"


class TestTransitions:
    def test_forward_transitions(self):
        assert fb_status.can_transition("draft", "sent")
        assert fb_status.can_transition("sent", "paid")
        assert fb_status.can_transition("viewed", "Void")

    def test_final_states_are_terminal(self):
        assert not fb_status.can_transition("paid", "sent")
        assert not fb_status.can_transition("voided", "draft")

    def test_no_current_status_allows_anything(self):
        assert fb_status.can_transition(None, "paid")

    def test_unpaid_and_voided_helpers(self):
        assert fb_status.is_unpaid("viewed")
        assert not fb_status.is_unpaid("paid")
        assert fb_status.is_voided("void")


class TestActionRules:
    def test_draft_allows_every_action(self):
        actions = fb_status.allowed_actions(_invoice("draft"))
        assert actions == [
            fb_status.SEND_INVOICE,
            fb_status.VOID_INVOICE,
            fb_status.VOID_INVOICE_WITH_EMAIL,
            fb_status.APPLY_DISCOUNT,
            fb_status.MARK_PAID,
        ]

    def test_sent_cannot_be_resent(self):
        invoice = _invoice("sent")
        assert not fb_status.action_allowed(fb_status.SEND_INVOICE, invoice)
        assert fb_status.action_allowed(fb_status.MARK_PAID, invoice)

    def test_disputed_only_voids(self):
        assert fb_status.allowed_actions(_invoice("disputed")) == [
            fb_status.VOID_INVOICE,
            fb_status.VOID_INVOICE_WITH_EMAIL,
        ]

    @pytest.mark.parametrize("state", ["paid", "void", "Voided + email sent"])
    def test_final_states_allow_nothing(self, state):
        invoice = _invoice(state)
        assert fb_status.allowed_actions(invoice) == []
        assert fb_status.is_final_state(invoice)

    def test_final_status_takes_precedence(self):
        invoice = _invoice(status="sent", final_status="paid")
        assert fb_status.invoice_state(invoice) == "paid"

    def test_missing_status_defaults_to_draft(self):
        assert fb_status.invoice_state(_invoice()) == "draft"

    def test_capability_helpers(self):
        assert fb_status.can_send(_invoice("draft"))
        assert not fb_status.can_send(_invoice("sent"))
        assert fb_status.can_void(_invoice("overdue"))
        assert not fb_status.can_void(_invoice("paid"))
        assert fb_status.can_mark_paid(_invoice("partial"))
        assert not fb_status.can_apply_discount(_invoice("disputed"))
