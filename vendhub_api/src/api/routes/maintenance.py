from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.maintenance import (
    ApproveRequest,
    AssignTechnician,
    CancelRequest,
    CompleteWork,
    MaintenancePriority,
    MaintenanceRequestCreate,
    MaintenanceRequestRead,
    MaintenanceRequestUpdate,
    MaintenanceStats,
    MaintenanceStatus,
    MaintenanceType,
    PartCreate,
    PartRead,
    PartUpdate,
    RejectRequest,
    ScheduleCreate,
    ScheduleRead,
    ScheduleUpdate,
    StartWork,
    VerifyWork,
    WorkLogCreate,
    WorkLogRead,
    WorkLogUpdate,
)
from src.services.maintenance import MaintenanceService

router = APIRouter(prefix="/maintenance", tags=["Maintenance"])

_view = [Depends(require_roles("admin", "manager", "technician", "maintenance:view", "maintenance:manage"))]
_work = [Depends(require_roles("admin", "manager", "technician", "maintenance:manage"))]
_approve = require_roles("admin", "manager", "maintenance:approve")


def _read(request) -> MaintenanceRequestRead:
    return MaintenanceRequestRead.model_validate(request)


# Schedules are registered before /{request_id} so the static path wins.
# PUBLIC_INTERFACE
@router.get("/schedules", response_model=List[ScheduleRead], summary="List maintenance schedules", dependencies=_view)
async def list_schedules(
    machine_id: Optional[UUID] = Query(None), session: AsyncSession = Depends(get_tenant_session)
) -> List[ScheduleRead]:
    return [ScheduleRead.model_validate(s) for s in await MaintenanceService(session).list_schedules(machine_id)]


# PUBLIC_INTERFACE
@router.post(
    "/schedules",
    response_model=ScheduleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create maintenance schedule",
    description="Auto-create schedules open a request once next_due_date has passed, then advance by their frequency.",
    dependencies=[Depends(_approve)],
)
async def create_schedule(payload: ScheduleCreate, session: AsyncSession = Depends(get_tenant_session)) -> ScheduleRead:
    return ScheduleRead.model_validate(await MaintenanceService(session).create_schedule(payload))


# PUBLIC_INTERFACE
@router.get("/schedules/{schedule_id}", response_model=ScheduleRead, summary="Get maintenance schedule", dependencies=_view)
async def get_schedule(schedule_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ScheduleRead:
    return ScheduleRead.model_validate(await MaintenanceService(session).get_schedule(schedule_id))


# PUBLIC_INTERFACE
@router.patch(
    "/schedules/{schedule_id}", response_model=ScheduleRead, summary="Update maintenance schedule", dependencies=[Depends(_approve)]
)
async def update_schedule(
    payload: ScheduleUpdate, schedule_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> ScheduleRead:
    return ScheduleRead.model_validate(await MaintenanceService(session).update_schedule(schedule_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete maintenance schedule",
    dependencies=[Depends(_approve)],
)
async def delete_schedule(schedule_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await MaintenanceService(session).delete_schedule(schedule_id)


# PUBLIC_INTERFACE
@router.get("/stats", response_model=MaintenanceStats, summary="Maintenance statistics", dependencies=_view)
async def maintenance_stats(
    session: AsyncSession = Depends(get_tenant_session),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
) -> MaintenanceStats:
    return await MaintenanceService(session).stats(date_from, date_to)


# Requests
# PUBLIC_INTERFACE
@router.get("", response_model=Page[MaintenanceRequestRead], summary="List maintenance requests", dependencies=_view)
async def list_requests(
    session: AsyncSession = Depends(get_tenant_session),
    status_: Optional[MaintenanceStatus] = Query(None, alias="status"),
    priority: Optional[MaintenancePriority] = Query(None),
    maintenance_type: Optional[MaintenanceType] = Query(None),
    machine_id: Optional[UUID] = Query(None),
    technician_id: Optional[UUID] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[MaintenanceRequestRead]:
    items, total = await MaintenanceService(session).list_requests(
        status=status_.value if status_ else None,
        priority=priority.value if priority else None,
        maintenance_type=maintenance_type.value if maintenance_type else None,
        machine_id=machine_id,
        technician_id=technician_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return Page[MaintenanceRequestRead](items=[_read(r) for r in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=MaintenanceRequestRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create maintenance request",
    description="Requests start as draft with an SLA deadline derived from the priority.",
)
async def create_request(
    payload: MaintenanceRequestCreate,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "technician", "operator", "maintenance:manage")),
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).create(payload, user.id))


# PUBLIC_INTERFACE
@router.get("/{request_id}", response_model=MaintenanceRequestRead, summary="Get maintenance request", dependencies=_view)
async def get_request(
    request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).get(request_id))


# PUBLIC_INTERFACE
@router.patch("/{request_id}", response_model=MaintenanceRequestRead, summary="Update draft request", dependencies=_work)
async def update_request(
    payload: MaintenanceRequestUpdate, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).update(request_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{request_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete draft request", dependencies=_work
)
async def delete_request(request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await MaintenanceService(session).delete(request_id)


# Workflow
# PUBLIC_INTERFACE
@router.post("/{request_id}/submit", response_model=MaintenanceRequestRead, summary="Submit request", dependencies=_work)
async def submit_request(
    request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).submit(request_id))


# PUBLIC_INTERFACE
@router.post("/{request_id}/approve", response_model=MaintenanceRequestRead, summary="Approve request")
async def approve_request(
    payload: ApproveRequest,
    request_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(_approve),
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).approve(request_id, user.id, payload.estimated_cost))


# PUBLIC_INTERFACE
@router.post("/{request_id}/reject", response_model=MaintenanceRequestRead, summary="Reject request", dependencies=[Depends(_approve)])
async def reject_request(
    payload: RejectRequest, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).reject(request_id, payload.reason))


# PUBLIC_INTERFACE
@router.post("/{request_id}/assign", response_model=MaintenanceRequestRead, summary="Assign technician", dependencies=[Depends(_approve)])
async def assign_technician(
    payload: AssignTechnician, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    request = await MaintenanceService(session).assign_technician(request_id, payload.technician_id, payload.scheduled_date)
    return _read(request)


# PUBLIC_INTERFACE
@router.post(
    "/{request_id}/start",
    response_model=MaintenanceRequestRead,
    summary="Start work",
    description="Puts the machine into maintenance status.",
    dependencies=_work,
)
async def start_work(
    payload: StartWork, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).start(request_id, payload.downtime_start))


# PUBLIC_INTERFACE
@router.post("/{request_id}/awaiting-parts", response_model=MaintenanceRequestRead, summary="Wait for parts", dependencies=_work)
async def awaiting_parts(
    request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).set_awaiting_parts(request_id))


# PUBLIC_INTERFACE
@router.post(
    "/{request_id}/complete",
    response_model=MaintenanceRequestRead,
    summary="Complete work",
    description="Computes duration, downtime and total cost, flags SLA breaches and returns the machine to active.",
    dependencies=_work,
)
async def complete_work(
    payload: CompleteWork, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).complete(request_id, payload))


# PUBLIC_INTERFACE
@router.post("/{request_id}/verify", response_model=MaintenanceRequestRead, summary="Verify completed work")
async def verify_work(
    payload: VerifyWork,
    request_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(_approve),
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).verify(request_id, user.id, payload.passed))


# PUBLIC_INTERFACE
@router.post("/{request_id}/cancel", response_model=MaintenanceRequestRead, summary="Cancel request", dependencies=_work)
async def cancel_request(
    payload: CancelRequest, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> MaintenanceRequestRead:
    return _read(await MaintenanceService(session).cancel(request_id, payload.reason))


# Parts
# PUBLIC_INTERFACE
@router.post(
    "/{request_id}/parts", response_model=PartRead, status_code=status.HTTP_201_CREATED, summary="Add part", dependencies=_work
)
async def add_part(
    payload: PartCreate, request_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> PartRead:
    return PartRead.model_validate(await MaintenanceService(session).add_part(request_id, payload))


# PUBLIC_INTERFACE
@router.patch("/{request_id}/parts/{part_id}", response_model=PartRead, summary="Update part", dependencies=_work)
async def update_part(
    payload: PartUpdate,
    request_id: UUID = Path(...),
    part_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> PartRead:
    return PartRead.model_validate(await MaintenanceService(session).update_part(request_id, part_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{request_id}/parts/{part_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove part", dependencies=_work
)
async def remove_part(
    request_id: UUID = Path(...), part_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> None:
    await MaintenanceService(session).remove_part(request_id, part_id)


# Work logs
# PUBLIC_INTERFACE
@router.post(
    "/{request_id}/work-logs",
    response_model=WorkLogRead,
    status_code=status.HTTP_201_CREATED,
    summary="Log work",
    description="Duration comes from the HH:MM start and end times; labor cost = hourly_rate / 60 x minutes.",
)
async def add_work_log(
    payload: WorkLogCreate,
    request_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "technician", "maintenance:manage")),
) -> WorkLogRead:
    return WorkLogRead.model_validate(await MaintenanceService(session).add_work_log(request_id, payload, user.id))


# PUBLIC_INTERFACE
@router.patch("/{request_id}/work-logs/{log_id}", response_model=WorkLogRead, summary="Update work log", dependencies=_work)
async def update_work_log(
    payload: WorkLogUpdate,
    request_id: UUID = Path(...),
    log_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> WorkLogRead:
    return WorkLogRead.model_validate(await MaintenanceService(session).update_work_log(request_id, log_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{request_id}/work-logs/{log_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove work log", dependencies=_work
)
async def remove_work_log(
    request_id: UUID = Path(...), log_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> None:
    await MaintenanceService(session).remove_work_log(request_id, log_id)
