"""Unit tests for order numbering, status transitions and bonus points."""

import pytest

from src.services.orders import ORDER_TRANSITIONS, apply_bonus, can_transition, format_order_number


@pytest.mark.unit
class TestOrderTransitions:
    """The order state machine."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            ("pending", "confirmed"),
            ("confirmed", "preparing"),
            ("preparing", "ready"),
            ("ready", "completed"),
            ("completed", "refunded"),
            ("pending", "cancelled"),
            ("ready", "cancelled"),
        ],
    )
    def test_allowed(self, current: str, new: str) -> None:
        """Forward moves and cancellation of open orders are allowed."""
        assert can_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            ("pending", "completed"),
            ("completed", "cancelled"),
            ("cancelled", "pending"),
            ("refunded", "completed"),
            ("unknown", "pending"),
        ],
    )
    def test_rejected(self, current: str, new: str) -> None:
        """Skipping steps, reopening and leaving terminal states are rejected."""
        assert not can_transition(current, new)

    def test_terminal_states(self) -> None:
        """Cancelled and refunded orders cannot move."""
        assert ORDER_TRANSITIONS["cancelled"] == frozenset()
        assert ORDER_TRANSITIONS["refunded"] == frozenset()


@pytest.mark.unit
class TestOrderNumber:
    """Order numbers are ORD-{year}-{5 digit sequence}."""

    def test_padding(self) -> None:
        assert format_order_number(2025, 7) == "ORD-2025-00007"

    def test_wide_sequence(self) -> None:
        assert format_order_number(2025, 123456) == "ORD-2025-123456"


@pytest.mark.unit
class TestApplyBonus:
    """Points spending on checkout."""

    def test_no_points_requested(self) -> None:
        assert apply_bonus(10000, 0, None, 500) == 0.0
        assert apply_bonus(10000, 0, 0, 500) == 0.0

    def test_insufficient_balance(self) -> None:
        """A request above the balance spends nothing."""
        assert apply_bonus(10000, 0, 600, 500) == 0.0

    def test_spends_requested_points(self) -> None:
        assert apply_bonus(10000, 1000, 300, 500) == 300.0

    def test_capped_at_amount_due(self) -> None:
        """Points never push the total below zero."""
        assert apply_bonus(1000, 800, 500, 1000) == 200.0

    def test_fractional_amount_due_spends_whole_points(self) -> None:
        """bonus_amount and points_used must agree, so partial points are never spent."""
        assert apply_bonus(1000, 800.5, 500, 1000) == 199.0
