"""Unit tests for commission calculation."""

from datetime import date, datetime, time, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.services.contracts import ContractService, calculate_commission_amount, round2


@pytest.mark.unit
class TestRound2:
    """Money rounding is half-up on the decimal value."""

    def test_half_up(self) -> None:
        assert round2(2.675) == 2.68
        assert round2(925.875) == 925.88

    def test_negative(self) -> None:
        assert round2(-1.005) == -1.01


@pytest.mark.unit
class TestCalculateCommissionAmount:
    """One case per commission type."""

    def test_percentage(self) -> None:
        amount, details = calculate_commission_amount("percentage", 12345, rate=7.5)
        assert amount == 925.88
        assert details == {"base_rate": 7.5}

    def test_fixed_ignores_revenue(self) -> None:
        amount, details = calculate_commission_amount("fixed", 0, fixed_amount=500000)
        assert amount == 500000
        assert details == {"fixed_amount": 500000.0}

    def test_tiered_consumes_bands_in_order(self) -> None:
        """Tiers given out of order are sorted by min_revenue; the last band is open-ended."""
        tiers = [
            {"min_revenue": 1_000_000, "max_revenue": None, "rate": 3},
            {"min_revenue": 0, "max_revenue": 1_000_000, "rate": 5},
        ]
        amount, details = calculate_commission_amount("tiered", 1_500_000, tiers=tiers)
        assert amount == 65000
        assert details["tier_breakdown"] == [
            {"tier": 1, "amount": 1_000_000, "rate": 5.0, "commission": 50000.0},
            {"tier": 2, "amount": 500_000, "rate": 3.0, "commission": 15000.0},
        ]

    def test_tiered_stops_when_revenue_is_spent(self) -> None:
        tiers = [
            {"min_revenue": 0, "max_revenue": 1_000_000, "rate": 5},
            {"min_revenue": 1_000_000, "max_revenue": None, "rate": 3},
        ]
        amount, details = calculate_commission_amount("tiered", 400_000, tiers=tiers)
        assert amount == 20000
        assert len(details["tier_breakdown"]) == 1

    def test_hybrid(self) -> None:
        amount, details = calculate_commission_amount(
            "hybrid", 1_234_567, hybrid_fixed=100000, hybrid_rate=2
        )
        assert amount == 124691.34
        assert details == {"hybrid_fixed": 100000.0, "hybrid_rate": 2.0}

    def test_unknown_type(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            calculate_commission_amount("barter", 1000)
        assert exc_info.value.status_code == 400


def contract(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "contract_number": "CTR-001",
        "status": "active",
        "commission_type": "percentage",
        "commission_rate": 10,
        "commission_fixed_amount": None,
        "commission_tiers": None,
        "commission_hybrid_fixed": None,
        "commission_hybrid_rate": None,
        "payment_term_days": 15,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.unit
class TestContractServiceCommission:
    """ContractService.calculate_commission with repositories mocked."""

    async def test_stores_calculation(self, mocker: MockerFixture, mock_session, saved) -> None:
        """Revenue covers whole UTC days and the due date adds the payment term."""
        service = ContractService(mock_session)
        active = contract()
        mocker.patch.object(service, "get_contract", mocker.AsyncMock(return_value=active))
        revenue = mocker.patch.object(
            service.payments, "contract_revenue", mocker.AsyncMock(return_value=(2_000_000.0, 42))
        )
        mocker.patch.object(service.repo, "save", saved)
        user_id = uuid4()

        calc = await service.calculate_commission(active.id, date(2025, 1, 1), date(2025, 1, 31), user_id)

        revenue.assert_awaited_once_with(
            active.id,
            datetime(2025, 1, 1, tzinfo=timezone.utc),
            datetime.combine(date(2025, 1, 31), time.max, tzinfo=timezone.utc),
        )
        assert calc.commission_amount == 200000
        assert calc.total_revenue == 2_000_000.0
        assert calc.transaction_count == 42
        assert calc.payment_status == "pending"
        assert calc.payment_due_date == date(2025, 2, 15)
        assert calc.calculated_by_user_id == user_id

    async def test_inactive_contract(self, mocker: MockerFixture, mock_session) -> None:
        service = ContractService(mock_session)
        draft = contract(status="draft")
        mocker.patch.object(service, "get_contract", mocker.AsyncMock(return_value=draft))
        revenue = mocker.patch.object(service.payments, "contract_revenue", mocker.AsyncMock())

        with pytest.raises(HTTPException) as exc_info:
            await service.calculate_commission(draft.id, date(2025, 1, 1), date(2025, 1, 31))

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Commission can only be calculated for active contracts"
        revenue.assert_not_awaited()


@pytest.mark.unit
class TestContractTransitions:
    """draft -> active <-> suspended, and anything not yet terminated can be terminated."""

    @pytest.fixture
    def service(self, mocker: MockerFixture, mock_session, saved) -> ContractService:
        service = ContractService(mock_session)
        mocker.patch.object(service.repo, "save", saved)
        return service

    @pytest.mark.parametrize(
        ("method", "current", "new"),
        [
            ("activate_contract", "draft", "active"),
            ("suspend_contract", "active", "suspended"),
            ("terminate_contract", "draft", "terminated"),
            ("terminate_contract", "suspended", "terminated"),
            ("terminate_contract", "expired", "terminated"),
        ],
    )
    async def test_allowed(
        self, service: ContractService, mocker: MockerFixture, method: str, current: str, new: str
    ) -> None:
        stored = contract(status=current)
        mocker.patch.object(service.repo, "get_contract", mocker.AsyncMock(return_value=stored))

        moved = await getattr(service, method)(stored.id)

        assert moved.status == new
        service.repo.save.assert_awaited_once_with(stored)

    @pytest.mark.parametrize(
        ("method", "current", "message"),
        [
            ("activate_contract", "active", "Only draft contracts can be activated"),
            ("suspend_contract", "draft", "Only active contracts can be suspended"),
            ("terminate_contract", "terminated", "Contract is already terminated"),
        ],
    )
    async def test_rejected(
        self, service: ContractService, mocker: MockerFixture, method: str, current: str, message: str
    ) -> None:
        stored = contract(status=current)
        mocker.patch.object(service.repo, "get_contract", mocker.AsyncMock(return_value=stored))

        with pytest.raises(HTTPException) as exc_info:
            await getattr(service, method)(stored.id)

        assert exc_info.value.detail == message
        assert stored.status == current
        service.repo.save.assert_not_awaited()

    async def test_only_drafts_deleted(self, service: ContractService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_contract", mocker.AsyncMock(return_value=contract()))
        remove = mocker.patch.object(service.repo, "remove", mocker.AsyncMock())

        with pytest.raises(HTTPException) as exc_info:
            await service.delete_contract(uuid4())

        assert exc_info.value.detail == "Only draft contracts can be deleted"
        remove.assert_not_awaited()

    @pytest.mark.parametrize("status", ["paid", "cancelled"])
    async def test_commission_paid_once(self, service: ContractService, mocker: MockerFixture, status: str) -> None:
        calculation = SimpleNamespace(payment_status=status, paid_at=None)
        mocker.patch.object(service.repo, "get_commission", mocker.AsyncMock(return_value=calculation))

        with pytest.raises(HTTPException) as exc_info:
            await service.mark_as_paid(uuid4())

        assert exc_info.value.detail == f"Commission is already {status}"

    async def test_commission_marked_paid(self, service: ContractService, mocker: MockerFixture) -> None:
        calculation = SimpleNamespace(payment_status="overdue", paid_at=None, payment_transaction_id=None)
        mocker.patch.object(service.repo, "get_commission", mocker.AsyncMock(return_value=calculation))
        transaction_id = uuid4()

        await service.mark_as_paid(uuid4(), transaction_id)

        assert calculation.payment_status == "paid"
        assert calculation.paid_at is not None
        assert calculation.payment_transaction_id == transaction_id
