"""Unit tests for promo code eligibility and discount rules."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from src.services.promo import calculate_discount, loyalty_points, rejection_reason

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def promo(**overrides) -> SimpleNamespace:
    fields = {
        "status": "active",
        "type": "percentage",
        "value": 10,
        "max_discount_amount": None,
        "min_order_amount": None,
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=1),
        "max_total_uses": None,
        "current_total_uses": 0,
        "max_uses_per_user": 1,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.unit
class TestRejectionReason:
    """Checks run in order and the first failure is reported."""

    def test_eligible(self) -> None:
        """An active code inside its window with no limits hit is accepted."""
        assert rejection_reason(promo(), NOW, user_redemptions=0, order_amount=50000) is None

    def test_inactive_status(self) -> None:
        """A paused code reports its status."""
        assert rejection_reason(promo(status="paused"), NOW) == "Promo code is paused"

    def test_not_yet_active(self) -> None:
        """valid_from in the future."""
        assert rejection_reason(promo(valid_from=NOW + timedelta(hours=1)), NOW) == "Promo code is not yet active"

    def test_expired(self) -> None:
        """valid_until in the past."""
        assert rejection_reason(promo(valid_until=NOW - timedelta(seconds=1)), NOW) == "Promo code has expired"

    def test_open_ended_window(self) -> None:
        """A code without valid_until never expires."""
        assert rejection_reason(promo(valid_until=None), NOW + timedelta(days=3650)) is None

    def test_total_limit(self) -> None:
        """The global usage cap applies to everyone."""
        reason = rejection_reason(promo(max_total_uses=5, current_total_uses=5), NOW)
        assert reason == "Promo code has reached its maximum usage limit"

    def test_per_user_limit(self) -> None:
        """Known users are capped by max_uses_per_user."""
        reason = rejection_reason(promo(max_uses_per_user=2), NOW, user_redemptions=2)
        assert reason == "You have already used this promo code the maximum number of times"

    def test_anonymous_skips_per_user_limit(self) -> None:
        """Without a user there is nothing to count."""
        assert rejection_reason(promo(max_uses_per_user=1), NOW, user_redemptions=None) is None

    def test_minimum_order_amount(self) -> None:
        """Integral minimums are rendered without decimals."""
        reason = rejection_reason(promo(min_order_amount=30000), NOW, order_amount=29999.5)
        assert reason == "Minimum order amount is 30000 UZS"

    def test_status_checked_before_dates(self) -> None:
        """An expired and disabled code reports the status first."""
        reason = rejection_reason(promo(status="expired", valid_until=NOW - timedelta(days=5)), NOW)
        assert reason == "Promo code is expired"


@pytest.mark.unit
class TestCalculateDiscount:
    """Discount amounts per promo type."""

    def test_percentage(self) -> None:
        """Percent of the order amount, rounded to 2 places."""
        assert calculate_discount(promo(value=15), 33333) == pytest.approx(4999.95)

    def test_percentage_is_capped(self) -> None:
        """max_discount_amount bounds percentage discounts."""
        assert calculate_discount(promo(value=50, max_discount_amount=10000), 100000) == 10000

    def test_percentage_without_amount(self) -> None:
        """Nothing to discount when the order amount is unknown."""
        assert calculate_discount(promo(value=50), None) == 0.0

    def test_fixed_amount(self) -> None:
        """Fixed codes grant their value regardless of the order."""
        assert calculate_discount(promo(type="fixed_amount", value=5000), 1000) == 5000.0

    def test_free_item_and_bonus_have_no_discount(self) -> None:
        """Only percentage and fixed codes reduce the price."""
        assert calculate_discount(promo(type="free_item", value=1), 10000) == 0.0
        assert calculate_discount(promo(type="loyalty_bonus", value=100), 10000) == 0.0


@pytest.mark.unit
class TestLoyaltyPoints:
    """Loyalty bonus codes award floor(value) points."""

    def test_bonus_points(self) -> None:
        assert loyalty_points(promo(type="loyalty_bonus", value=150.9)) == 150

    def test_other_types(self) -> None:
        assert loyalty_points(promo(type="percentage", value=20)) == 0
