"""Unit tests for stock valuation and slot capacity checks."""

import pytest

from src.services.inventory import weighted_average_cost
from src.services.machines import refill_exceeds_capacity


@pytest.mark.unit
class TestWeightedAverageCost:
    """Moving average purchase price on receipt of goods."""

    def test_blends_prices(self) -> None:
        assert weighted_average_cost(10, 100, 10, 200) == 150

    def test_first_receipt(self) -> None:
        assert weighted_average_cost(0, 0, 5, 80) == 80

    def test_empty_stock_takes_unit_cost(self) -> None:
        assert weighted_average_cost(0, 120, 0, 95) == 95


@pytest.mark.unit
class TestRefillCapacity:
    """Slots never hold more than their capacity."""

    def test_over(self) -> None:
        assert refill_exceeds_capacity(8, 3, 10)

    def test_exactly_full(self) -> None:
        assert not refill_exceeds_capacity(7, 3, 10)
