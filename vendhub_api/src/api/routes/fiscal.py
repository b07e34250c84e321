from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.common import CountResponse, Page
from src.schemas.fiscal import (
    DeviceCreate,
    DeviceRead,
    DeviceStatistics,
    DeviceUpdate,
    QueueItemCreate,
    QueueItemRead,
    QueueStatus,
    ReceiptCreate,
    ReceiptRead,
    ReceiptStatus,
    ReceiptType,
    ShiftOpen,
    ShiftRead,
    XReport,
)
from src.services.base import not_found
from src.services.fiscal import FiscalService

router = APIRouter(prefix="/fiscal", tags=["Fiscal"])

_view = [Depends(require_roles("admin", "manager", "accountant", "fiscal:view", "fiscal:manage"))]
_manage = [Depends(require_roles("admin", "manager", "fiscal:manage"))]


# Devices
# PUBLIC_INTERFACE
@router.get("/devices", response_model=List[DeviceRead], summary="List fiscal devices", dependencies=_view)
async def list_devices(session: AsyncSession = Depends(get_tenant_session)) -> List[DeviceRead]:
    return [DeviceRead.model_validate(d) for d in await FiscalService(session).list_devices()]


# PUBLIC_INTERFACE
@router.post(
    "/devices",
    response_model=DeviceRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register fiscal device",
    description="Credentials are stored with the device and never returned.",
    dependencies=_manage,
)
async def create_device(payload: DeviceCreate, session: AsyncSession = Depends(get_tenant_session)) -> DeviceRead:
    return DeviceRead.model_validate(await FiscalService(session).create_device(payload))


# PUBLIC_INTERFACE
@router.get("/devices/{device_id}", response_model=DeviceRead, summary="Get fiscal device", dependencies=_view)
async def get_device(device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> DeviceRead:
    return DeviceRead.model_validate(await FiscalService(session).get_device(device_id))


# PUBLIC_INTERFACE
@router.patch("/devices/{device_id}", response_model=DeviceRead, summary="Update fiscal device", dependencies=_manage)
async def update_device(
    payload: DeviceUpdate, device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> DeviceRead:
    return DeviceRead.model_validate(await FiscalService(session).update_device(device_id, payload))


# PUBLIC_INTERFACE
@router.post("/devices/{device_id}/activate", response_model=DeviceRead, summary="Activate device", dependencies=_manage)
async def activate_device(device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> DeviceRead:
    return DeviceRead.model_validate(await FiscalService(session).activate_device(device_id))


# PUBLIC_INTERFACE
@router.post("/devices/{device_id}/deactivate", response_model=DeviceRead, summary="Deactivate device", dependencies=_manage)
async def deactivate_device(
    device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> DeviceRead:
    return DeviceRead.model_validate(await FiscalService(session).deactivate_device(device_id))


# PUBLIC_INTERFACE
@router.get(
    "/devices/{device_id}/statistics", response_model=DeviceStatistics, summary="Device statistics", dependencies=_view
)
async def device_statistics(
    device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> DeviceStatistics:
    return await FiscalService(session).device_statistics(device_id)


# Shifts
# PUBLIC_INTERFACE
@router.post(
    "/devices/{device_id}/shifts/open",
    response_model=ShiftRead,
    status_code=status.HTTP_201_CREATED,
    summary="Open shift",
    description="Fails with 400 when the device already has an open shift.",
    dependencies=_manage,
)
async def open_shift(
    payload: ShiftOpen, device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> ShiftRead:
    return ShiftRead.model_validate(await FiscalService(session).open_shift(device_id, payload.cashier_name))


# PUBLIC_INTERFACE
@router.post("/devices/{device_id}/shifts/close", response_model=ShiftRead, summary="Close shift (Z-report)", dependencies=_manage)
async def close_shift(device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ShiftRead:
    return ShiftRead.model_validate(await FiscalService(session).close_shift(device_id))


# PUBLIC_INTERFACE
@router.get(
    "/devices/{device_id}/shifts/current", response_model=Optional[ShiftRead], summary="Current shift", dependencies=_view
)
async def current_shift(
    device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> Optional[ShiftRead]:
    shift = await FiscalService(session).current_shift(device_id)
    return ShiftRead.model_validate(shift) if shift else None


# PUBLIC_INTERFACE
@router.get("/devices/{device_id}/shifts", response_model=List[ShiftRead], summary="Shift history", dependencies=_view)
async def shift_history(
    device_id: UUID = Path(...),
    limit: int = Query(30, ge=1, le=365),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ShiftRead]:
    return [ShiftRead.model_validate(s) for s in await FiscalService(session).shift_history(device_id, limit)]


# PUBLIC_INTERFACE
@router.get("/devices/{device_id}/x-report", response_model=XReport, summary="X-report", dependencies=_view)
async def x_report(device_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> XReport:
    return await FiscalService(session).x_report(device_id)


# Receipts
# PUBLIC_INTERFACE
@router.post(
    "/receipts",
    response_model=ReceiptRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create fiscal receipt",
    description="Fiscalized immediately; provider failures leave the receipt failed and queued for retry.",
    dependencies=_manage,
)
async def create_receipt(payload: ReceiptCreate, session: AsyncSession = Depends(get_tenant_session)) -> ReceiptRead:
    return ReceiptRead.model_validate(await FiscalService(session).create_receipt(payload))


# PUBLIC_INTERFACE
@router.get("/receipts", response_model=Page[ReceiptRead], summary="List receipts", dependencies=_view)
async def list_receipts(
    session: AsyncSession = Depends(get_tenant_session),
    device_id: Optional[UUID] = Query(None),
    shift_id: Optional[UUID] = Query(None),
    type_: Optional[ReceiptType] = Query(None, alias="type"),
    status_: Optional[ReceiptStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> Page[ReceiptRead]:
    items, total = await FiscalService(session).list_receipts(
        device_id=device_id,
        shift_id=shift_id,
        type_=type_.value if type_ else None,
        status=status_.value if status_ else None,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return Page[ReceiptRead](items=[ReceiptRead.model_validate(r) for r in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.get("/receipts/{receipt_id}", response_model=ReceiptRead, summary="Get receipt", dependencies=_view)
async def get_receipt(receipt_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ReceiptRead:
    return ReceiptRead.model_validate(await FiscalService(session).get_receipt(receipt_id))


# Queue
# PUBLIC_INTERFACE
@router.get("/queue", response_model=List[QueueItemRead], summary="List queue items", dependencies=_view)
async def list_queue(
    session: AsyncSession = Depends(get_tenant_session),
    device_id: Optional[UUID] = Query(None),
    status_: Optional[QueueStatus] = Query(None, alias="status"),
) -> List[QueueItemRead]:
    items = await FiscalService(session).list_queue(device_id, status_.value if status_ else None)
    return [QueueItemRead.model_validate(i) for i in items]


# PUBLIC_INTERFACE
@router.post(
    "/queue", response_model=QueueItemRead, status_code=status.HTTP_201_CREATED, summary="Queue operation", dependencies=_manage
)
async def add_to_queue(payload: QueueItemCreate, session: AsyncSession = Depends(get_tenant_session)) -> QueueItemRead:
    item = await FiscalService(session).add_to_queue(
        payload.device_id, payload.operation.value, payload.payload, payload.priority
    )
    return QueueItemRead.model_validate(item)


# PUBLIC_INTERFACE
@router.post("/queue/process", response_model=CountResponse, summary="Process due queue items", dependencies=_manage)
async def process_due_queue(session: AsyncSession = Depends(get_tenant_session)) -> CountResponse:
    return CountResponse(count=await FiscalService(session).process_due_queue())


# PUBLIC_INTERFACE
@router.post("/queue/{item_id}/process", response_model=QueueItemRead, summary="Process one queue item", dependencies=_manage)
async def process_queue_item(item_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> QueueItemRead:
    item = await FiscalService(session).process_queue_item(item_id)
    if item is None:
        raise not_found("Queue item not found")
    return QueueItemRead.model_validate(item)
