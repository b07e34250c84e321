"""Unit tests for the three-level stock flow; the repository is mocked."""

from typing import List
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture
from sqlalchemy.dialects import postgresql

from src.db.models.inventory import InventoryMovement, MachineInventory, OperatorInventory, WarehouseInventory
from src.repositories.inventory import InventoryRepository
from src.schemas.inventory import InventoryAdjustment, MachineSale, StockIn, TransferToMachine, TransferToOperator
from src.services.inventory import InventoryService

PRODUCT = uuid4()
OPERATOR = uuid4()
MACHINE = uuid4()


@pytest.fixture
def added() -> List:
    return []


@pytest.fixture
def service(mock_session, mocker: MockerFixture, added: List) -> InventoryService:
    inventory = InventoryService(mock_session)
    mocker.patch.object(inventory.repo, "add", mocker.AsyncMock(side_effect=added.append))
    mocker.patch.object(inventory.repo, "reload", mocker.AsyncMock(side_effect=lambda entity: entity))
    return inventory


def warehouse(current: float, reserved: float = 0, avg: float = 0) -> WarehouseInventory:
    return WarehouseInventory(product_id=PRODUCT, current_quantity=current, reserved_quantity=reserved, avg_purchase_price=avg)


@pytest.mark.unit
class TestWarehouse:
    async def test_stock_in_blends_cost(self, service: InventoryService, mocker: MockerFixture, mock_session) -> None:
        stock = warehouse(10, avg=100)
        mocker.patch.object(service.repo, "get_warehouse", mocker.AsyncMock(return_value=stock))

        movement = await service.warehouse_stock_in(StockIn(product_id=PRODUCT, quantity=10, unit_cost=200))

        assert stock.current_quantity == 20
        assert stock.avg_purchase_price == 150
        assert stock.last_purchase_price == 200
        assert (movement.movement_type, movement.total_cost) == ("warehouse_in", 2000)
        mock_session.commit.assert_awaited_once()

    async def test_stock_in_creates_row(self, service: InventoryService, mocker: MockerFixture, added: List) -> None:
        mocker.patch.object(service.repo, "get_warehouse", mocker.AsyncMock(return_value=None))

        await service.warehouse_stock_in(StockIn(product_id=PRODUCT, quantity=5))

        created = [e for e in added if isinstance(e, WarehouseInventory)]
        assert len(created) == 1
        assert created[0].current_quantity == 5
        assert created[0].avg_purchase_price == 0


@pytest.mark.unit
class TestTransfers:
    """Stock only moves when the source level holds enough of it."""

    async def test_warehouse_to_operator_insufficient(
        self, service: InventoryService, mocker: MockerFixture, mock_session
    ) -> None:
        get_warehouse = mocker.patch.object(
            service.repo, "get_warehouse", mocker.AsyncMock(return_value=warehouse(5, reserved=2))
        )

        with pytest.raises(HTTPException) as exc_info:
            await service.transfer_warehouse_to_operator(
                TransferToOperator(product_id=PRODUCT, operator_id=OPERATOR, quantity=4)
            )

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Insufficient warehouse stock. Available: 3.0, Requested: 4.0"
        get_warehouse.assert_awaited_once_with(PRODUCT, for_update=True)
        mock_session.commit.assert_not_awaited()

    async def test_warehouse_to_operator_missing_product(self, service: InventoryService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_warehouse", mocker.AsyncMock(return_value=None))

        with pytest.raises(HTTPException) as exc_info:
            await service.transfer_warehouse_to_operator(
                TransferToOperator(product_id=PRODUCT, operator_id=OPERATOR, quantity=1)
            )

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == f"Product {PRODUCT} not found in warehouse"

    async def test_warehouse_to_operator(self, service: InventoryService, mocker: MockerFixture, added: List) -> None:
        stock = warehouse(10, avg=1500)
        mocker.patch.object(service.repo, "get_warehouse", mocker.AsyncMock(return_value=stock))
        get_operator = mocker.patch.object(service.repo, "get_operator", mocker.AsyncMock(return_value=None))

        movement = await service.transfer_warehouse_to_operator(
            TransferToOperator(product_id=PRODUCT, operator_id=OPERATOR, quantity=3)
        )

        get_operator.assert_awaited_once_with(OPERATOR, PRODUCT, for_update=True)
        held = next(e for e in added if isinstance(e, OperatorInventory))
        assert held.current_quantity == 3
        assert stock.current_quantity == 7
        assert (movement.unit_cost, movement.total_cost) == (1500, 4500)
        assert movement.operator_id == OPERATOR

    async def test_operator_to_machine_without_stock(self, service: InventoryService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_operator", mocker.AsyncMock(return_value=None))

        with pytest.raises(HTTPException) as exc_info:
            await service.transfer_operator_to_machine(
                TransferToMachine(product_id=PRODUCT, operator_id=OPERATOR, machine_id=MACHINE, quantity=1)
            )

        assert exc_info.value.status_code == 404

    async def test_operator_to_machine_insufficient(self, service: InventoryService, mocker: MockerFixture) -> None:
        held = OperatorInventory(operator_id=OPERATOR, product_id=PRODUCT, current_quantity=2, reserved_quantity=0)
        mocker.patch.object(service.repo, "get_operator", mocker.AsyncMock(return_value=held))
        get_machine = mocker.patch.object(service.repo, "get_machine", mocker.AsyncMock())

        with pytest.raises(HTTPException) as exc_info:
            await service.transfer_operator_to_machine(
                TransferToMachine(product_id=PRODUCT, operator_id=OPERATOR, machine_id=MACHINE, quantity=5)
            )

        assert exc_info.value.detail == "Insufficient operator stock. Available: 2.0, Requested: 5.0"
        assert held.current_quantity == 2
        get_machine.assert_not_awaited()

    async def test_operator_to_machine_fills_slot(self, service: InventoryService, mocker: MockerFixture, added: List) -> None:
        held = OperatorInventory(operator_id=OPERATOR, product_id=PRODUCT, current_quantity=10, reserved_quantity=0)
        mocker.patch.object(service.repo, "get_operator", mocker.AsyncMock(return_value=held))
        get_machine = mocker.patch.object(service.repo, "get_machine", mocker.AsyncMock(return_value=None))

        movement = await service.transfer_operator_to_machine(
            TransferToMachine(product_id=PRODUCT, operator_id=OPERATOR, machine_id=MACHINE, slot_number="A3", quantity=6)
        )

        get_machine.assert_awaited_once_with(MACHINE, PRODUCT, "A3", for_update=True)
        slot = next(e for e in added if isinstance(e, MachineInventory))
        assert (slot.slot_number, slot.current_quantity) == ("A3", 6)
        assert slot.last_refilled_at is not None
        assert held.current_quantity == 4
        assert movement.details == {"slot_number": "A3"}

    async def test_machine_sale(self, service: InventoryService, mocker: MockerFixture) -> None:
        slot = MachineInventory(machine_id=MACHINE, product_id=PRODUCT, slot_number="A3", current_quantity=4, total_sold=10)
        mocker.patch.object(service.repo, "get_machine", mocker.AsyncMock(return_value=slot))

        movement = await service.record_machine_sale(MachineSale(product_id=PRODUCT, machine_id=MACHINE, slot_number="A3"))

        assert (slot.current_quantity, slot.total_sold) == (3, 11)
        assert movement.movement_type == "machine_sale"

    async def test_machine_sale_insufficient(self, service: InventoryService, mocker: MockerFixture) -> None:
        slot = MachineInventory(machine_id=MACHINE, product_id=PRODUCT, current_quantity=0, total_sold=10)
        mocker.patch.object(service.repo, "get_machine", mocker.AsyncMock(return_value=slot))

        with pytest.raises(HTTPException) as exc_info:
            await service.record_machine_sale(MachineSale(product_id=PRODUCT, machine_id=MACHINE, quantity=2))

        assert exc_info.value.detail == "Insufficient machine stock. Available: 0.0, Requested: 2.0"


@pytest.mark.unit
class TestAdjustments:
    async def test_records_signed_difference(self, service: InventoryService, mocker: MockerFixture) -> None:
        stock = warehouse(12)
        mocker.patch.object(service.repo, "get_warehouse", mocker.AsyncMock(return_value=stock))

        movement = await service.adjust_inventory(
            InventoryAdjustment(level="warehouse", product_id=PRODUCT, new_quantity=9, notes="Stock count")
        )

        assert isinstance(movement, InventoryMovement)
        assert stock.current_quantity == 9
        assert movement.quantity == -3
        assert movement.details == {"level": "warehouse", "previous_quantity": 12.0, "new_quantity": 9.0}

    async def test_machine_level_needs_machine(self, service: InventoryService) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await service.adjust_inventory(InventoryAdjustment(level="machine", product_id=PRODUCT, new_quantity=1))
        assert exc_info.value.detail == "machine_id is required for machine adjustments"


@pytest.mark.unit
class TestMachineRowLookup:
    """Machine rows are keyed by machine, product and slot, including an empty slot."""

    def compiled(self, mock_session) -> str:
        stmt = mock_session.execute.await_args.args[0]
        return str(stmt.compile(dialect=postgresql.dialect()))

    async def test_no_slot_matches_unslotted_row(self, mock_session) -> None:
        await InventoryRepository(mock_session).get_machine(MACHINE, PRODUCT, for_update=True)

        sql = self.compiled(mock_session)
        assert "slot_number IS NULL" in sql
        assert "FOR UPDATE" in sql

    async def test_slot_is_matched_exactly(self, mock_session) -> None:
        await InventoryRepository(mock_session).get_machine(MACHINE, PRODUCT, "B1")

        sql = self.compiled(mock_session)
        assert "slot_number = " in sql
        assert "IS NULL" not in sql
