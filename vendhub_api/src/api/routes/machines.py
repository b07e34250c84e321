from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.machines import (
    ErrorLogCreate,
    ErrorLogRead,
    ErrorResolve,
    MachineCreate,
    MachineMapPoint,
    MachineRead,
    MachineStats,
    MachineStatus,
    MachineStatusUpdate,
    MachineType,
    MachineUpdate,
    SlotCreate,
    SlotRead,
    SlotRefill,
    SlotUpdate,
    TelemetryUpdate,
)
from src.services.machines import MachineService

router = APIRouter(prefix="/machines", tags=["Machines"])

_view = [Depends(require_roles("admin", "manager", "operator", "machines:view", "machines:manage"))]
_manage = [Depends(require_roles("admin", "manager", "machines:manage"))]


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Page[MachineRead],
    summary="List machines",
    description="Machines of the current tenant ordered by name, filtered by status, type and a search term.",
    dependencies=_view,
)
async def list_machines(
    session: AsyncSession = Depends(get_tenant_session),
    status_: Optional[MachineStatus] = Query(None, alias="status"),
    type_: Optional[MachineType] = Query(None, alias="type"),
    search: Optional[str] = Query(None, description="Matches name, serial number or machine number"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[MachineRead]:
    items, total = await MachineService(session).list_machines(
        status=status_.value if status_ else None,
        type_=type_.value if type_ else None,
        search=search,
        limit=limit,
        offset=offset,
    )
    return Page[MachineRead](
        items=[MachineRead.model_validate(m) for m in items], total=total, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post("", response_model=MachineRead, status_code=status.HTTP_201_CREATED, summary="Create machine", dependencies=_manage)
async def create_machine(payload: MachineCreate, session: AsyncSession = Depends(get_tenant_session)) -> MachineRead:
    return MachineRead.model_validate(await MachineService(session).create(payload))


# PUBLIC_INTERFACE
@router.get("/stats", response_model=MachineStats, summary="Machine counts by status", dependencies=_view)
async def machine_stats(session: AsyncSession = Depends(get_tenant_session)) -> MachineStats:
    return await MachineService(session).stats()


# PUBLIC_INTERFACE
@router.get(
    "/map",
    response_model=List[MachineMapPoint],
    summary="Machines with coordinates",
    description="Machines that have latitude and longitude, for map views.",
    dependencies=_view,
)
async def machine_map(session: AsyncSession = Depends(get_tenant_session)) -> List[MachineMapPoint]:
    return [MachineMapPoint.model_validate(m) for m in await MachineService(session).map_points()]


# PUBLIC_INTERFACE
@router.get("/{machine_id}", response_model=MachineRead, summary="Get machine", dependencies=_view)
async def get_machine(machine_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> MachineRead:
    return MachineRead.model_validate(await MachineService(session).get(machine_id))


# PUBLIC_INTERFACE
@router.patch("/{machine_id}", response_model=MachineRead, summary="Update machine", dependencies=_manage)
async def update_machine(
    payload: MachineUpdate,
    machine_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> MachineRead:
    return MachineRead.model_validate(await MachineService(session).update(machine_id, payload))


# PUBLIC_INTERFACE
@router.delete("/{machine_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete machine", dependencies=_manage)
async def delete_machine(machine_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await MachineService(session).delete(machine_id)


# PUBLIC_INTERFACE
@router.patch(
    "/{machine_id}/status",
    response_model=MachineRead,
    summary="Update machine status",
    description="Change the machine status and notify `machines` websocket subscribers.",
    dependencies=[Depends(require_roles("admin", "manager", "operator", "technician", "machines:manage"))],
)
async def update_machine_status(
    payload: MachineStatusUpdate,
    machine_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> MachineRead:
    return MachineRead.model_validate(await MachineService(session).update_status(machine_id, payload.status.value))


# PUBLIC_INTERFACE
@router.post(
    "/{machine_id}/telemetry",
    response_model=MachineRead,
    summary="Report telemetry",
    description="Merge telemetry keys into the machine record and mark it online.",
    dependencies=_manage,
)
async def report_telemetry(
    payload: TelemetryUpdate,
    machine_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> MachineRead:
    return MachineRead.model_validate(await MachineService(session).update_telemetry(machine_id, payload.telemetry))


# Slots
# PUBLIC_INTERFACE
@router.get("/{machine_id}/slots", response_model=List[SlotRead], summary="List slots", dependencies=_view)
async def list_slots(machine_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> List[SlotRead]:
    return [SlotRead.model_validate(s) for s in await MachineService(session).list_slots(machine_id)]


# PUBLIC_INTERFACE
@router.post(
    "/{machine_id}/slots",
    response_model=SlotRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create slot",
    dependencies=_manage,
)
async def create_slot(
    payload: SlotCreate,
    machine_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> SlotRead:
    return SlotRead.model_validate(await MachineService(session).create_slot(machine_id, payload))


# PUBLIC_INTERFACE
@router.patch("/{machine_id}/slots/{slot_id}", response_model=SlotRead, summary="Update slot", dependencies=_manage)
async def update_slot(
    payload: SlotUpdate,
    machine_id: UUID = Path(...),
    slot_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> SlotRead:
    return SlotRead.model_validate(await MachineService(session).update_slot(machine_id, slot_id, payload))


# PUBLIC_INTERFACE
@router.post(
    "/{machine_id}/slots/{slot_id}/refill",
    response_model=SlotRead,
    summary="Refill slot",
    description="Add units to a slot; fails when the slot would exceed its capacity.",
    dependencies=[Depends(require_roles("admin", "manager", "operator", "machines:manage"))],
)
async def refill_slot(
    payload: SlotRefill,
    machine_id: UUID = Path(...),
    slot_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> SlotRead:
    return SlotRead.model_validate(await MachineService(session).refill_slot(machine_id, slot_id, payload.quantity))


# Error logs
# PUBLIC_INTERFACE
@router.get("/{machine_id}/errors", response_model=Page[ErrorLogRead], summary="Error history", dependencies=_view)
async def error_history(
    machine_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[ErrorLogRead]:
    items, total = await MachineService(session).error_history(machine_id, limit=limit, offset=offset)
    return Page[ErrorLogRead](
        items=[ErrorLogRead.model_validate(e) for e in items], total=total, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post(
    "/{machine_id}/errors",
    response_model=ErrorLogRead,
    status_code=status.HTTP_201_CREATED,
    summary="Log machine error",
    description="Record an error; error and critical severities put the machine into status `error`.",
    dependencies=[Depends(require_roles("admin", "manager", "operator", "technician", "machines:manage"))],
)
async def log_error(
    payload: ErrorLogCreate,
    machine_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> ErrorLogRead:
    return ErrorLogRead.model_validate(await MachineService(session).log_error(machine_id, payload))


# PUBLIC_INTERFACE
@router.post("/{machine_id}/errors/{error_id}/resolve", response_model=ErrorLogRead, summary="Resolve machine error")
async def resolve_error(
    payload: ErrorResolve,
    machine_id: UUID = Path(...),
    error_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "technician", "machines:manage")),
) -> ErrorLogRead:
    resolved = await MachineService(session).resolve_error(machine_id, error_id, payload.resolution, user.id)
    return ErrorLogRead.model_validate(resolved)
