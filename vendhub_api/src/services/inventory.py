from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.inventory import InventoryMovement, MachineInventory, OperatorInventory, WarehouseInventory
from src.repositories.inventory import InventoryRepository
from src.schemas.inventory import (
    InventoryAdjustment,
    MachineSale,
    ReturnToWarehouse,
    StockIn,
    TransferToMachine,
    TransferToOperator,
)
from src.services.base import BaseService, bad_request, not_found, utcnow

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def weighted_average_cost(prev_qty: float, prev_avg: float, qty: float, unit_cost: float) -> float:
    """Moving average purchase price after receiving `qty` units at `unit_cost`."""
    total = prev_qty + qty
    if total <= 0:
        return unit_cost
    return (prev_qty * prev_avg + qty * unit_cost) / total


def _insufficient(level: str, available: float, requested: float):
    return bad_request(f"Insufficient {level} stock. Available: {available}, Requested: {requested}")


class InventoryService(BaseService):
    """
    Three-level stock flow: warehouse -> operator -> machine.

    Every operation locks the rows it touches, writes a movement to the ledger
    and commits once, so a failure leaves no partial transfer behind.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = InventoryRepository(session)

    async def _record(self, movement_type: str, product_id: UUID, quantity: float, **fields) -> InventoryMovement:
        movement = InventoryMovement(
            movement_type=movement_type,
            product_id=product_id,
            quantity=quantity,
            operation_date=utcnow(),
            **fields,
        )
        await self.repo.add(movement)
        return movement

    async def _finish(self, movement: InventoryMovement) -> InventoryMovement:
        await self.repo.commit()
        logger.info(
            "Inventory movement %s: product=%s qty=%s", movement.movement_type, movement.product_id, movement.quantity
        )
        return await self.repo.reload(movement)

    # PUBLIC_INTERFACE
    async def warehouse_stock_in(self, payload: StockIn, user_id: Optional[UUID] = None) -> InventoryMovement:
        stock = await self.repo.get_warehouse(payload.product_id, for_update=True)
        if stock is None:
            stock = WarehouseInventory(product_id=payload.product_id, current_quantity=0, reserved_quantity=0, avg_purchase_price=0)
            await self.repo.add(stock)

        prev_qty = float(stock.current_quantity or 0)
        if payload.unit_cost is not None:
            stock.avg_purchase_price = weighted_average_cost(
                prev_qty, float(stock.avg_purchase_price or 0), payload.quantity, payload.unit_cost
            )
            stock.last_purchase_price = payload.unit_cost
        stock.current_quantity = prev_qty + payload.quantity
        stock.last_restocked_at = utcnow()

        movement = await self._record(
            "warehouse_in",
            payload.product_id,
            payload.quantity,
            performed_by_user_id=user_id,
            unit_cost=payload.unit_cost,
            total_cost=payload.unit_cost * payload.quantity if payload.unit_cost is not None else None,
            notes=payload.notes,
        )
        return await self._finish(movement)

    # PUBLIC_INTERFACE
    async def transfer_warehouse_to_operator(
        self, payload: TransferToOperator, user_id: Optional[UUID] = None
    ) -> InventoryMovement:
        stock = await self.repo.get_warehouse(payload.product_id, for_update=True)
        if stock is None:
            raise not_found(f"Product {payload.product_id} not found in warehouse")
        if stock.available_quantity < payload.quantity:
            raise _insufficient("warehouse", stock.available_quantity, payload.quantity)

        stock.current_quantity = float(stock.current_quantity) - payload.quantity

        held = await self.repo.get_operator(payload.operator_id, payload.product_id, for_update=True)
        if held is None:
            held = OperatorInventory(
                operator_id=payload.operator_id, product_id=payload.product_id, current_quantity=0, reserved_quantity=0
            )
            await self.repo.add(held)
        held.current_quantity = float(held.current_quantity or 0) + payload.quantity
        held.last_received_at = utcnow()

        unit_cost = float(stock.avg_purchase_price or 0)
        movement = await self._record(
            "warehouse_to_operator",
            payload.product_id,
            payload.quantity,
            operator_id=payload.operator_id,
            performed_by_user_id=user_id,
            unit_cost=unit_cost,
            total_cost=unit_cost * payload.quantity,
            notes=payload.notes,
        )
        return await self._finish(movement)

    # PUBLIC_INTERFACE
    async def transfer_operator_to_machine(
        self, payload: TransferToMachine, user_id: Optional[UUID] = None
    ) -> InventoryMovement:
        held = await self.repo.get_operator(payload.operator_id, payload.product_id, for_update=True)
        if held is None:
            raise not_found(f"Operator {payload.operator_id} has no stock of product {payload.product_id}")
        available = float(held.current_quantity)
        if available < payload.quantity:
            raise _insufficient("operator", available, payload.quantity)
        held.current_quantity = available - payload.quantity

        loaded = await self.repo.get_machine(payload.machine_id, payload.product_id, payload.slot_number, for_update=True)
        if loaded is None:
            loaded = MachineInventory(
                machine_id=payload.machine_id,
                product_id=payload.product_id,
                slot_number=payload.slot_number,
                current_quantity=0,
                min_stock_level=0,
                max_capacity=0,
                total_sold=0,
            )
            await self.repo.add(loaded)
        loaded.current_quantity = float(loaded.current_quantity or 0) + payload.quantity
        loaded.last_refilled_at = utcnow()

        movement = await self._record(
            "operator_to_machine",
            payload.product_id,
            payload.quantity,
            operator_id=payload.operator_id,
            machine_id=payload.machine_id,
            performed_by_user_id=user_id,
            notes=payload.notes,
            details={"slot_number": payload.slot_number} if payload.slot_number else {},
        )
        return await self._finish(movement)

    # PUBLIC_INTERFACE
    async def return_operator_to_warehouse(
        self, payload: ReturnToWarehouse, user_id: Optional[UUID] = None
    ) -> InventoryMovement:
        held = await self.repo.get_operator(payload.operator_id, payload.product_id, for_update=True)
        available = float(held.current_quantity) if held else 0.0
        if held is None or available < payload.quantity:
            raise _insufficient("operator", available, payload.quantity)
        held.current_quantity = available - payload.quantity

        stock = await self.repo.get_warehouse(payload.product_id, for_update=True)
        if stock is None:
            stock = WarehouseInventory(product_id=payload.product_id, current_quantity=0, reserved_quantity=0, avg_purchase_price=0)
            await self.repo.add(stock)
        stock.current_quantity = float(stock.current_quantity or 0) + payload.quantity

        movement = await self._record(
            "operator_to_warehouse",
            payload.product_id,
            payload.quantity,
            operator_id=payload.operator_id,
            performed_by_user_id=user_id,
            notes=payload.notes,
        )
        return await self._finish(movement)

    # PUBLIC_INTERFACE
    async def record_machine_sale(self, payload: MachineSale, user_id: Optional[UUID] = None) -> InventoryMovement:
        loaded = await self.repo.get_machine(payload.machine_id, payload.product_id, payload.slot_number, for_update=True)
        if loaded is None:
            raise not_found(f"Product {payload.product_id} not found in machine {payload.machine_id}")
        available = float(loaded.current_quantity)
        if available < payload.quantity:
            raise _insufficient("machine", available, payload.quantity)
        loaded.current_quantity = available - payload.quantity
        loaded.total_sold = float(loaded.total_sold or 0) + payload.quantity

        movement = await self._record(
            "machine_sale",
            payload.product_id,
            payload.quantity,
            machine_id=payload.machine_id,
            performed_by_user_id=user_id,
            notes=payload.notes,
            details={"slot_number": payload.slot_number} if payload.slot_number else {},
        )
        return await self._finish(movement)

    # PUBLIC_INTERFACE
    async def adjust_inventory(self, payload: InventoryAdjustment, user_id: Optional[UUID] = None) -> InventoryMovement:
        """Set the counted quantity at one level and record the signed difference."""
        level = payload.level.value
        if level == "warehouse":
            row = await self.repo.get_warehouse(payload.product_id, for_update=True)
        elif level == "operator":
            if payload.operator_id is None:
                raise bad_request("operator_id is required for operator adjustments")
            row = await self.repo.get_operator(payload.operator_id, payload.product_id, for_update=True)
        else:
            if payload.machine_id is None:
                raise bad_request("machine_id is required for machine adjustments")
            row = await self.repo.get_machine(payload.machine_id, payload.product_id, payload.slot_number, for_update=True)
        if row is None:
            raise not_found(f"No {level} inventory found for product {payload.product_id}")

        previous = float(row.current_quantity or 0)
        difference = payload.new_quantity - previous
        row.current_quantity = payload.new_quantity

        movement = await self._record(
            "adjustment",
            payload.product_id,
            difference,
            operator_id=payload.operator_id,
            machine_id=payload.machine_id,
            performed_by_user_id=user_id,
            notes=payload.notes,
            details={"level": level, "previous_quantity": previous, "new_quantity": payload.new_quantity},
        )
        return await self._finish(movement)

    # Listing
    # PUBLIC_INTERFACE
    async def list_warehouse(self, limit: int = 50, offset: int = 0) -> Tuple[List[WarehouseInventory], int]:
        return await self.repo.list_warehouse(limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def warehouse_low_stock(self) -> List[WarehouseInventory]:
        return await self.repo.list_warehouse_low_stock()

    # PUBLIC_INTERFACE
    async def operator_stock(self, operator_id: UUID) -> List[OperatorInventory]:
        return await self.repo.list_operator(operator_id)

    # PUBLIC_INTERFACE
    async def machine_stock(self, machine_id: UUID) -> List[MachineInventory]:
        return await self.repo.list_machine(machine_id)

    # PUBLIC_INTERFACE
    async def machines_needing_refill(self) -> List[MachineInventory]:
        return await self.repo.list_machines_needing_refill()

    # PUBLIC_INTERFACE
    async def movements(self, **filters) -> Tuple[List[InventoryMovement], int]:
        return await self.repo.list_movements(**filters)
