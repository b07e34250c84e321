from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select

from src.db.models.inventory import InventoryMovement, MachineInventory, OperatorInventory, WarehouseInventory
from .base import BaseRepository


class InventoryRepository(BaseRepository):
    """
    Stock rows at the three inventory levels and the movement ledger.

    The *_for_update getters lock the row (SELECT ... FOR UPDATE) so concurrent
    transfers serialize on the same product.
    """

    # Warehouse
    async def get_warehouse(self, product_id: UUID, *, for_update: bool = False) -> Optional[WarehouseInventory]:
        stmt = select(WarehouseInventory).where(WarehouseInventory.product_id == product_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def list_warehouse(self, *, limit: int = 50, offset: int = 0) -> Tuple[List[WarehouseInventory], int]:
        stmt = select(WarehouseInventory).order_by(WarehouseInventory.created_at)
        return await self.paginate(stmt, limit, offset)

    async def list_warehouse_low_stock(self) -> List[WarehouseInventory]:
        stmt = (
            select(WarehouseInventory)
            .where(WarehouseInventory.current_quantity <= WarehouseInventory.min_stock_level)
            .order_by(WarehouseInventory.current_quantity.asc())
        )
        return list(await self.scalars(stmt))

    # Operator
    async def get_operator(
        self, operator_id: UUID, product_id: UUID, *, for_update: bool = False
    ) -> Optional[OperatorInventory]:
        stmt = select(OperatorInventory).where(
            OperatorInventory.operator_id == operator_id, OperatorInventory.product_id == product_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def list_operator(self, operator_id: UUID) -> List[OperatorInventory]:
        stmt = (
            select(OperatorInventory)
            .where(OperatorInventory.operator_id == operator_id)
            .order_by(OperatorInventory.created_at)
        )
        return list(await self.scalars(stmt))

    # Machine
    async def get_machine(
        self,
        machine_id: UUID,
        product_id: UUID,
        slot_number: Optional[str] = None,
        *,
        for_update: bool = False,
    ) -> Optional[MachineInventory]:
        stmt = select(MachineInventory).where(
            MachineInventory.machine_id == machine_id, MachineInventory.product_id == product_id
        )
        if slot_number is None:
            stmt = stmt.where(MachineInventory.slot_number.is_(None))
        else:
            stmt = stmt.where(MachineInventory.slot_number == slot_number)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt.limit(1))

    async def list_machine(self, machine_id: UUID) -> List[MachineInventory]:
        stmt = (
            select(MachineInventory)
            .where(MachineInventory.machine_id == machine_id)
            .order_by(MachineInventory.slot_number)
        )
        return list(await self.scalars(stmt))

    async def list_machines_needing_refill(self) -> List[MachineInventory]:
        stmt = (
            select(MachineInventory)
            .where(MachineInventory.current_quantity <= MachineInventory.min_stock_level)
            .order_by(MachineInventory.machine_id, MachineInventory.slot_number)
        )
        return list(await self.scalars(stmt))

    # Movements
    async def list_movements(
        self,
        *,
        movement_type: Optional[str] = None,
        product_id: Optional[UUID] = None,
        machine_id: Optional[UUID] = None,
        operator_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[InventoryMovement], int]:
        stmt = select(InventoryMovement)
        if movement_type:
            stmt = stmt.where(InventoryMovement.movement_type == movement_type)
        if product_id:
            stmt = stmt.where(InventoryMovement.product_id == product_id)
        if machine_id:
            stmt = stmt.where(InventoryMovement.machine_id == machine_id)
        if operator_id:
            stmt = stmt.where(InventoryMovement.operator_id == operator_id)
        return await self.paginate(stmt.order_by(InventoryMovement.operation_date.desc()), limit, offset)
