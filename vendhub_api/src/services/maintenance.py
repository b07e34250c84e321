from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.maintenance import (
    MaintenancePart,
    MaintenanceRequest,
    MaintenanceSchedule,
    MaintenanceWorkLog,
)
from src.repositories.maintenance import MaintenanceRepository
from src.schemas.maintenance import (
    CompleteWork,
    MaintenanceRequestCreate,
    MaintenanceRequestUpdate,
    MaintenanceStats,
    PartCreate,
    PartUpdate,
    ScheduleCreate,
    ScheduleUpdate,
    WorkLogCreate,
    WorkLogUpdate,
)
from src.services.base import BaseService, bad_request, not_found, utcnow
from src.services.machines import MachineService

logger = logging.getLogger(__name__)

MAINTENANCE_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "draft": ("submitted", "cancelled"),
    "submitted": ("approved", "rejected", "cancelled"),
    "approved": ("scheduled", "in_progress", "cancelled"),
    "rejected": ("draft",),
    "scheduled": ("in_progress", "cancelled"),
    "in_progress": ("awaiting_parts", "completed", "cancelled"),
    "awaiting_parts": ("in_progress", "cancelled"),
    "completed": ("verified", "in_progress"),
    "verified": (),
    "cancelled": (),
}

SLA_HOURS = {"critical": 4, "high": 24, "normal": 72, "low": 168}


# PUBLIC_INTERFACE
def validate_transition(current: str, new_status: str) -> None:
    """Raise 400 unless the maintenance workflow allows current -> new_status."""
    if new_status not in MAINTENANCE_TRANSITIONS.get(current, ()):
        raise bad_request(f"Invalid status transition from {current} to {new_status}")


# PUBLIC_INTERFACE
def sla_due_date(priority: str, created: datetime) -> datetime:
    return created + timedelta(hours=SLA_HOURS.get(priority, SLA_HOURS["normal"]))


# PUBLIC_INTERFACE
def format_request_number(year: int, seq: int) -> str:
    return f"MNT-{year}-{seq:06d}"


# PUBLIC_INTERFACE
def minutes_between(start_time: str, end_time: str) -> int:
    """Minutes from one HH:MM time to another on the same day; may be negative."""
    sh, sm = (int(p) for p in start_time.split(":"))
    eh, em = (int(p) for p in end_time.split(":"))
    return (eh * 60 + em) - (sh * 60 + sm)


def _minutes(start: datetime, end: datetime) -> int:
    return round((end - start).total_seconds() / 60)


# PUBLIC_INTERFACE
def next_due_date(frequency_type: str, frequency_value: int, base: date) -> date:
    """Advance a schedule's due date by its frequency; unknown frequencies move 30 days."""
    n = frequency_value or 1
    if frequency_type == "daily":
        return base + timedelta(days=n)
    if frequency_type == "weekly":
        return base + timedelta(days=7 * n)
    if frequency_type == "monthly":
        return (pd.Timestamp(base) + pd.DateOffset(months=n)).date()
    if frequency_type == "quarterly":
        return (pd.Timestamp(base) + pd.DateOffset(months=3 * n)).date()
    if frequency_type == "yearly":
        return (pd.Timestamp(base) + pd.DateOffset(years=n)).date()
    return base + timedelta(days=30)


class MaintenanceService(BaseService):
    """
    Maintenance requests and their workflow, parts, work logs and recurring schedules.

    Starting work puts the machine into maintenance and completing it returns
    the machine to active, both through MachineService so subscribers are notified.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = MaintenanceRepository(session)
        self.machines = MachineService(session)

    # Requests
    # PUBLIC_INTERFACE
    async def create(
        self,
        payload: MaintenanceRequestCreate,
        user_id: Optional[UUID] = None,
        schedule_id: Optional[UUID] = None,
    ) -> MaintenanceRequest:
        await self.machines.get(payload.machine_id)
        now = utcnow()
        seq = await self.repo.count_requests_in_year(now.year) + 1
        request = MaintenanceRequest(
            request_number=format_request_number(now.year, seq),
            machine_id=payload.machine_id,
            title=payload.title,
            description=payload.description,
            maintenance_type=payload.maintenance_type.value,
            priority=payload.priority.value,
            status="draft",
            created_by_user_id=user_id,
            scheduled_date=payload.scheduled_date,
            estimated_duration=payload.estimated_duration,
            estimated_cost=payload.estimated_cost,
            sla_due_date=sla_due_date(payload.priority.value, now),
            maintenance_schedule_id=schedule_id,
        )
        request = await self.repo.save(request)
        logger.info("Maintenance request created: %s", request.request_number)
        return request

    # PUBLIC_INTERFACE
    async def list_requests(self, **filters) -> Tuple[List[MaintenanceRequest], int]:
        return await self.repo.list_requests(**filters)

    # PUBLIC_INTERFACE
    async def get(self, request_id: UUID) -> MaintenanceRequest:
        request = await self.repo.get(request_id)
        if not request:
            raise not_found(f"Maintenance request {request_id} not found")
        return request

    # PUBLIC_INTERFACE
    async def update(self, request_id: UUID, payload: MaintenanceRequestUpdate) -> MaintenanceRequest:
        request = await self.get(request_id)
        if request.status != "draft":
            raise bad_request("Can only update draft requests")
        data = payload.model_dump(exclude_unset=True)
        for key, value in data.items():
            setattr(request, key, value.value if hasattr(value, "value") else value)
        if "priority" in data:
            request.sla_due_date = sla_due_date(request.priority, request.created_at)
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def delete(self, request_id: UUID) -> None:
        request = await self.get(request_id)
        if request.status != "draft":
            raise bad_request("Can only delete draft requests")
        await self.repo.remove(request)

    async def _transition(self, request: MaintenanceRequest, new_status: str) -> None:
        validate_transition(request.status, new_status)
        logger.info("Maintenance %s: %s -> %s", request.request_number, request.status, new_status)
        request.status = new_status

    # PUBLIC_INTERFACE
    async def submit(self, request_id: UUID) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "submitted")
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def approve(self, request_id: UUID, user_id: Optional[UUID], estimated_cost: Optional[float] = None) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "approved")
        request.approved_by_user_id = user_id
        request.approved_at = utcnow()
        if estimated_cost is not None:
            request.estimated_cost = estimated_cost
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def reject(self, request_id: UUID, reason: str) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "rejected")
        request.rejection_reason = reason
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def assign_technician(
        self, request_id: UUID, technician_id: UUID, scheduled_date: Optional[datetime] = None
    ) -> MaintenanceRequest:
        request = await self.get(request_id)
        request.assigned_technician_id = technician_id
        if scheduled_date:
            request.scheduled_date = scheduled_date
        if request.status == "approved":
            await self._transition(request, "scheduled")
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def start(self, request_id: UUID, downtime_start: Optional[datetime] = None) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "in_progress")
        request.started_at = utcnow()
        if downtime_start:
            request.downtime_start = downtime_start
        request = await self.repo.save(request)
        await self.machines.update_status(request.machine_id, "maintenance")
        return request

    # PUBLIC_INTERFACE
    async def set_awaiting_parts(self, request_id: UUID) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "awaiting_parts")
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def complete(self, request_id: UUID, payload: CompleteWork) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "completed")
        now = utcnow()
        request.completed_at = now
        request.completion_notes = payload.completion_notes
        request.root_cause = payload.root_cause
        request.actions_taken = payload.actions_taken
        request.recommendations = payload.recommendations
        if request.started_at:
            request.actual_duration = _minutes(request.started_at, now)

        if payload.downtime_end:
            request.downtime_end = payload.downtime_end
        elif request.downtime_start:
            request.downtime_end = now
        if request.downtime_start and request.downtime_end:
            request.downtime_minutes = _minutes(request.downtime_start, request.downtime_end)

        await self._recalculate_costs(request)
        if request.sla_due_date and now > request.sla_due_date:
            request.sla_breached = True
        request = await self.repo.save(request)

        machine = await self.machines.update_status(request.machine_id, "active")
        machine.last_maintenance_date = now
        await self.machines.repo.save(machine)
        logger.info("Maintenance %s completed (total cost %s)", request.request_number, request.total_cost)
        return request

    # PUBLIC_INTERFACE
    async def verify(self, request_id: UUID, user_id: Optional[UUID], passed: bool) -> MaintenanceRequest:
        request = await self.get(request_id)
        if passed:
            await self._transition(request, "verified")
            request.verified_by_user_id = user_id
            request.verified_at = utcnow()
        else:
            await self._transition(request, "in_progress")
        return await self.repo.save(request)

    # PUBLIC_INTERFACE
    async def cancel(self, request_id: UUID, reason: Optional[str] = None) -> MaintenanceRequest:
        request = await self.get(request_id)
        await self._transition(request, "cancelled")
        if reason:
            request.rejection_reason = reason
        return await self.repo.save(request)

    async def _recalculate_costs(self, request: MaintenanceRequest) -> None:
        parts = await self.repo.list_parts(request.id)
        logs = await self.repo.list_work_logs(request.id)
        request.parts_cost = sum(float(p.total_price or 0) for p in parts)
        request.labor_cost = sum(float(w.labor_cost or 0) for w in logs if w.is_billable)
        request.total_cost = request.parts_cost + request.labor_cost

    async def _save_with_costs(self, request: MaintenanceRequest) -> None:
        await self.repo.flush()
        await self._recalculate_costs(request)
        await self.repo.commit()

    # Parts
    # PUBLIC_INTERFACE
    async def add_part(self, request_id: UUID, payload: PartCreate) -> MaintenancePart:
        request = await self.get(request_id)
        part = MaintenancePart(
            maintenance_request_id=request.id,
            total_price=payload.quantity_needed * payload.unit_price,
            **payload.model_dump(),
        )
        await self.repo.add(part)
        await self._save_with_costs(request)
        return await self.repo.reload(part)

    # PUBLIC_INTERFACE
    async def update_part(self, request_id: UUID, part_id: UUID, payload: PartUpdate) -> MaintenancePart:
        request = await self.get(request_id)
        part = await self.repo.get_part(request_id, part_id)
        if not part:
            raise not_found(f"Part {part_id} not found")
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(part, key, value)
        if part.quantity_used is not None:
            part.total_price = float(part.quantity_used) * float(part.unit_price)
        else:
            part.total_price = float(part.quantity_needed) * float(part.unit_price)
        await self._save_with_costs(request)
        return await self.repo.reload(part)

    # PUBLIC_INTERFACE
    async def remove_part(self, request_id: UUID, part_id: UUID) -> None:
        request = await self.get(request_id)
        part = await self.repo.get_part(request_id, part_id)
        if not part:
            raise not_found(f"Part {part_id} not found")
        await self.session.delete(part)
        await self._save_with_costs(request)

    # Work logs
    # PUBLIC_INTERFACE
    async def add_work_log(self, request_id: UUID, payload: WorkLogCreate, user_id: Optional[UUID] = None) -> MaintenanceWorkLog:
        request = await self.get(request_id)
        duration = minutes_between(payload.start_time, payload.end_time)
        if duration <= 0:
            raise bad_request("End time must be after start time")
        data = payload.model_dump()
        data["technician_id"] = data.get("technician_id") or user_id
        log = MaintenanceWorkLog(
            maintenance_request_id=request.id,
            duration_minutes=duration,
            labor_cost=(payload.hourly_rate or 0) / 60 * duration,
            **data,
        )
        await self.repo.add(log)
        await self._save_with_costs(request)
        return await self.repo.reload(log)

    # PUBLIC_INTERFACE
    async def update_work_log(self, request_id: UUID, log_id: UUID, payload: WorkLogUpdate) -> MaintenanceWorkLog:
        request = await self.get(request_id)
        log = await self.repo.get_work_log(request_id, log_id)
        if not log:
            raise not_found(f"Work log {log_id} not found")
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(log, key, value)
        duration = minutes_between(log.start_time, log.end_time)
        if duration <= 0:
            raise bad_request("End time must be after start time")
        log.duration_minutes = duration
        log.labor_cost = float(log.hourly_rate or 0) / 60 * duration
        await self._save_with_costs(request)
        return await self.repo.reload(log)

    # PUBLIC_INTERFACE
    async def remove_work_log(self, request_id: UUID, log_id: UUID) -> None:
        request = await self.get(request_id)
        log = await self.repo.get_work_log(request_id, log_id)
        if not log:
            raise not_found(f"Work log {log_id} not found")
        await self.session.delete(log)
        await self._save_with_costs(request)

    # Schedules
    # PUBLIC_INTERFACE
    async def create_schedule(self, payload: ScheduleCreate) -> MaintenanceSchedule:
        await self.machines.get(payload.machine_id)
        data = payload.model_dump()
        data["maintenance_type"] = payload.maintenance_type.value
        data["frequency_type"] = payload.frequency_type.value
        if data["next_due_date"] is None:
            data["next_due_date"] = next_due_date(data["frequency_type"], data["frequency_value"], utcnow().date())
        return await self.repo.save(MaintenanceSchedule(**data))

    # PUBLIC_INTERFACE
    async def list_schedules(self, machine_id: Optional[UUID] = None) -> List[MaintenanceSchedule]:
        return await self.repo.list_schedules(machine_id)

    # PUBLIC_INTERFACE
    async def get_schedule(self, schedule_id: UUID) -> MaintenanceSchedule:
        schedule = await self.repo.get_schedule(schedule_id)
        if not schedule:
            raise not_found(f"Maintenance schedule {schedule_id} not found")
        return schedule

    # PUBLIC_INTERFACE
    async def update_schedule(self, schedule_id: UUID, payload: ScheduleUpdate) -> MaintenanceSchedule:
        schedule = await self.get_schedule(schedule_id)
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(schedule, key, value.value if hasattr(value, "value") else value)
        return await self.repo.save(schedule)

    # PUBLIC_INTERFACE
    async def delete_schedule(self, schedule_id: UUID) -> None:
        await self.repo.remove(await self.get_schedule(schedule_id))

    # PUBLIC_INTERFACE
    async def stats(self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> MaintenanceStats:
        requests = await self.repo.requests_in_range(date_from, date_to)
        by_status: Dict[str, int] = {}
        by_type: Dict[str, int] = {}
        durations = []
        for r in requests:
            by_status[r.status] = by_status.get(r.status, 0) + 1
            by_type[r.maintenance_type] = by_type.get(r.maintenance_type, 0) + 1
            if r.actual_duration:
                durations.append(r.actual_duration)
        return MaintenanceStats(
            total=len(requests),
            by_status=by_status,
            by_type=by_type,
            sla_breached=sum(1 for r in requests if r.sla_breached),
            average_completion_minutes=round(sum(durations) / len(durations)) if durations else 0,
            total_cost=sum(float(r.total_cost or 0) for r in requests),
        )

    # Jobs
    # PUBLIC_INTERFACE
    async def check_scheduled_maintenance(self) -> int:
        """Create requests for overdue auto-create schedules and advance them. Returns requests created."""
        today = utcnow().date()
        created = 0
        # A rollback expires loaded rows, so each schedule is re-read by id
        schedule_ids = [schedule.id for schedule in await self.repo.list_due_schedules(today)]
        for schedule_id in schedule_ids:
            try:
                schedule = await self.repo.get_schedule(schedule_id)
                if schedule is None:
                    continue
                request = await self.create(
                    MaintenanceRequestCreate(
                        machine_id=schedule.machine_id,
                        title=f"Scheduled: {schedule.name}",
                        description=schedule.description,
                        maintenance_type=schedule.maintenance_type,
                        priority="normal",
                        estimated_duration=schedule.estimated_duration,
                        estimated_cost=schedule.estimated_cost,
                    ),
                    schedule_id=schedule_id,
                )
                schedule.last_executed_date = today
                schedule.next_due_date = next_due_date(schedule.frequency_type, schedule.frequency_value, today)
                schedule.times_executed = (schedule.times_executed or 0) + 1
                request_number = request.request_number
                await self.repo.save(schedule)
                created += 1
                logger.info("Created maintenance request %s from schedule %s", request_number, schedule.name)
            except Exception:
                await self.session.rollback()
                logger.exception("Failed to create request from schedule %s", schedule_id)
        return created

    # PUBLIC_INTERFACE
    async def check_sla_breaches(self) -> int:
        requests = await self.repo.list_sla_candidates(utcnow())
        for request in requests:
            request.sla_breached = True
            logger.warning("SLA breached for maintenance request %s", request.request_number)
        if requests:
            await self.repo.commit()
        return len(requests)
