"""Unit tests for OrderService creation and status changes; repositories are mocked."""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.schemas.orders import OrderCreate
from src.schemas.promo import PromoValidationResult
from src.services.orders import OrderService

LATTE = SimpleNamespace(id=uuid4(), name="Latte", sku="LAT-01", selling_price=15000)
WATER = SimpleNamespace(id=uuid4(), name="Water", sku="WAT-01", selling_price=4000.5)


@pytest.fixture
def published(mocker: MockerFixture):
    return mocker.patch("src.services.orders.broadcast_manager.publish_order_event", mocker.AsyncMock())


@pytest.fixture
def service(mock_session, mocker: MockerFixture, saved, published) -> OrderService:
    orders = OrderService(mock_session)
    mocker.patch.object(orders.products, "get_many", mocker.AsyncMock(return_value=[LATTE, WATER]))
    mocker.patch.object(orders.repo, "count_orders", mocker.AsyncMock(return_value=41))
    mocker.patch.object(orders.repo, "save", saved)
    return orders


def order_payload(**overrides) -> OrderCreate:
    fields = {
        "items": [{"product_id": LATTE.id, "quantity": 2}, {"product_id": WATER.id, "quantity": 1}],
        "payment_method": "payme",
    }
    fields.update(overrides)
    return OrderCreate(**fields)


@pytest.mark.unit
class TestCreateOrder:
    """Prices come from the catalog; promo and points reduce the total."""

    async def test_totals(self, service: OrderService, published, tenant_id) -> None:
        order = await service.create_order(None, order_payload())

        assert order.subtotal_amount == 34000.5
        assert order.total_amount == 34000.5
        assert order.order_number.endswith("-00042")
        assert (order.status, order.payment_status, order.payment_method) == ("pending", "pending", "payme")
        assert [(i.product_name, i.quantity, i.total_price) for i in order.items] == [
            ("Latte", 2, 30000),
            ("Water", 1, 4000.5),
        ]
        published.assert_awaited_once()
        assert published.await_args.args[:2] == (str(tenant_id), "order.created")

    async def test_missing_product(self, service: OrderService) -> None:
        service.products.get_many.return_value = [LATTE]

        with pytest.raises(HTTPException) as exc_info:
            await service.create_order(None, order_payload())

        assert exc_info.value.detail == "Some products not found"

    async def test_promo_and_whole_points(self, service: OrderService, mocker: MockerFixture) -> None:
        user_id = uuid4()
        user = SimpleNamespace(id=user_id, points_balance=50000)
        mocker.patch.object(
            service.promo,
            "validate",
            mocker.AsyncMock(return_value=PromoValidationResult(valid=True, discount_amount=3400.05)),
        )
        get_user = mocker.patch.object(service.users, "get_user_by_id", mocker.AsyncMock(return_value=user))

        order = await service.create_order(user_id, order_payload(promo_code="summer10", use_points=40000))

        get_user.assert_awaited_once_with(user_id, for_update=True)
        assert order.promo_code == "SUMMER10"
        assert order.promo_discount == 3400.05
        assert order.bonus_amount == 30600
        assert order.points_used == 30600
        assert user.points_balance == 19400
        assert order.total_amount == pytest.approx(0.45)

    async def test_invalid_promo_is_ignored(self, service: OrderService, mocker: MockerFixture) -> None:
        mocker.patch.object(
            service.promo,
            "validate",
            mocker.AsyncMock(return_value=PromoValidationResult(valid=False, reason="Promo code has expired")),
        )

        order = await service.create_order(None, order_payload(promo_code="OLD"))

        assert order.promo_code is None
        assert order.discount_amount == 0
        assert order.total_amount == 34000.5

    async def test_points_over_balance_not_spent(self, service: OrderService, mocker: MockerFixture) -> None:
        user = SimpleNamespace(points_balance=100)
        mocker.patch.object(service.users, "get_user_by_id", mocker.AsyncMock(return_value=user))

        order = await service.create_order(uuid4(), order_payload(use_points=500))

        assert (order.bonus_amount, order.points_used) == (0, 0)
        assert user.points_balance == 100


def stored_order(status: str) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid4(),
        order_number="ORD-2025-00007",
        status=status,
        payment_status="paid",
        total_amount=15000,
        machine_id=None,
        user_id=None,
        confirmed_at=None,
        prepared_at=None,
        completed_at=None,
        cancelled_at=None,
        cancellation_reason=None,
    )


@pytest.mark.unit
class TestUpdateStatus:
    @pytest.mark.parametrize(
        ("current", "new", "column"),
        [("pending", "confirmed", "confirmed_at"), ("preparing", "ready", "prepared_at"), ("ready", "completed", "completed_at")],
    )
    async def test_stamps_timestamp(
        self, service: OrderService, mocker: MockerFixture, published, current: str, new: str, column: str
    ) -> None:
        order = stored_order(current)
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=order))

        await service.update_status(order.id, new)

        assert order.status == new
        assert getattr(order, column) is not None
        assert published.await_args.args[1] == "order.status_changed"
        assert published.await_args.args[2]["previous_status"] == current

    async def test_cancel_keeps_reason(self, service: OrderService, mocker: MockerFixture) -> None:
        order = stored_order("confirmed")
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=order))

        await service.update_status(order.id, "cancelled", "Machine out of cups")

        assert order.cancelled_at is not None
        assert order.cancellation_reason == "Machine out of cups"

    async def test_invalid_transition(self, service: OrderService, mocker: MockerFixture) -> None:
        order = stored_order("completed")
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=order))

        with pytest.raises(HTTPException) as exc_info:
            await service.update_status(order.id, "preparing")

        assert exc_info.value.detail == "Invalid status transition from completed to preparing"
        assert order.completed_at is None
