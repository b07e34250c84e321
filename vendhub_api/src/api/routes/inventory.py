from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.inventory import (
    InventoryAdjustment,
    MachineSale,
    MachineStockRead,
    MovementRead,
    MovementType,
    OperatorStockRead,
    ReturnToWarehouse,
    StockIn,
    TransferToMachine,
    TransferToOperator,
    WarehouseStockRead,
)
from src.services.inventory import InventoryService

router = APIRouter(prefix="/inventory", tags=["Inventory"])

_view = [Depends(require_roles("admin", "manager", "operator", "accountant", "inventory:view", "inventory:manage"))]
_move = ("admin", "manager", "operator", "inventory:manage")


# PUBLIC_INTERFACE
@router.get(
    "/warehouse",
    response_model=Page[WarehouseStockRead],
    summary="Warehouse stock",
    description="Level 1 stock per product with reserved and available quantities.",
    dependencies=_view,
)
async def list_warehouse(
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[WarehouseStockRead]:
    items, total = await InventoryService(session).list_warehouse(limit=limit, offset=offset)
    return Page[WarehouseStockRead](
        items=[WarehouseStockRead.model_validate(w) for w in items], total=total, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.get("/warehouse/low-stock", response_model=List[WarehouseStockRead], summary="Warehouse low stock", dependencies=_view)
async def warehouse_low_stock(session: AsyncSession = Depends(get_tenant_session)) -> List[WarehouseStockRead]:
    return [WarehouseStockRead.model_validate(w) for w in await InventoryService(session).warehouse_low_stock()]


# PUBLIC_INTERFACE
@router.get("/operators/{operator_id}", response_model=List[OperatorStockRead], summary="Operator stock", dependencies=_view)
async def operator_stock(
    operator_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> List[OperatorStockRead]:
    return [OperatorStockRead.model_validate(o) for o in await InventoryService(session).operator_stock(operator_id)]


# PUBLIC_INTERFACE
@router.get("/machines/needs-refill", response_model=List[MachineStockRead], summary="Machine stock needing refill", dependencies=_view)
async def machines_needing_refill(session: AsyncSession = Depends(get_tenant_session)) -> List[MachineStockRead]:
    return [MachineStockRead.model_validate(m) for m in await InventoryService(session).machines_needing_refill()]


# PUBLIC_INTERFACE
@router.get("/machines/{machine_id}", response_model=List[MachineStockRead], summary="Machine stock", dependencies=_view)
async def machine_stock(
    machine_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> List[MachineStockRead]:
    return [MachineStockRead.model_validate(m) for m in await InventoryService(session).machine_stock(machine_id)]


# PUBLIC_INTERFACE
@router.get(
    "/movements",
    response_model=Page[MovementRead],
    summary="Inventory movements",
    description="Movement journal, newest first.",
    dependencies=_view,
)
async def list_movements(
    session: AsyncSession = Depends(get_tenant_session),
    movement_type: Optional[MovementType] = Query(None),
    product_id: Optional[UUID] = Query(None),
    machine_id: Optional[UUID] = Query(None),
    operator_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[MovementRead]:
    items, total = await InventoryService(session).movements(
        movement_type=movement_type.value if movement_type else None,
        product_id=product_id,
        machine_id=machine_id,
        operator_id=operator_id,
        limit=limit,
        offset=offset,
    )
    return Page[MovementRead](items=[MovementRead.model_validate(m) for m in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.post("/warehouse/stock-in", response_model=MovementRead, status_code=status.HTTP_201_CREATED, summary="Receive stock")
async def warehouse_stock_in(
    payload: StockIn,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "inventory:manage")),
) -> MovementRead:
    return MovementRead.model_validate(await InventoryService(session).warehouse_stock_in(payload, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/transfer/warehouse-to-operator",
    response_model=MovementRead,
    status_code=status.HTTP_201_CREATED,
    summary="Issue stock to an operator",
)
async def transfer_to_operator(
    payload: TransferToOperator,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles(*_move)),
) -> MovementRead:
    return MovementRead.model_validate(await InventoryService(session).transfer_warehouse_to_operator(payload, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/transfer/operator-to-machine",
    response_model=MovementRead,
    status_code=status.HTTP_201_CREATED,
    summary="Load stock into a machine",
)
async def transfer_to_machine(
    payload: TransferToMachine,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles(*_move)),
) -> MovementRead:
    return MovementRead.model_validate(await InventoryService(session).transfer_operator_to_machine(payload, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/transfer/operator-to-warehouse",
    response_model=MovementRead,
    status_code=status.HTTP_201_CREATED,
    summary="Return operator stock",
)
async def return_to_warehouse(
    payload: ReturnToWarehouse,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles(*_move)),
) -> MovementRead:
    return MovementRead.model_validate(await InventoryService(session).return_operator_to_warehouse(payload, user.id))


# PUBLIC_INTERFACE
@router.post("/sales", response_model=MovementRead, status_code=status.HTTP_201_CREATED, summary="Record a machine sale")
async def record_sale(
    payload: MachineSale,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles(*_move)),
) -> MovementRead:
    return MovementRead.model_validate(await InventoryService(session).record_machine_sale(payload, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/adjust",
    response_model=MovementRead,
    status_code=status.HTTP_201_CREATED,
    summary="Adjust counted stock",
    description="Set the counted quantity at a level; the signed difference is journaled as an adjustment.",
)
async def adjust_inventory(
    payload: InventoryAdjustment,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "inventory:manage")),
) -> MovementRead:
    return MovementRead.model_validate(await InventoryService(session).adjust_inventory(payload, user.id))
