from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import extract, func, select

from src.db.models.maintenance import (
    MaintenancePart,
    MaintenanceRequest,
    MaintenanceSchedule,
    MaintenanceWorkLog,
)
from .base import CrudRepository

OPEN_STATUSES = ("submitted", "approved", "scheduled", "in_progress", "awaiting_parts")


class MaintenanceRepository(CrudRepository[MaintenanceRequest]):
    model = MaintenanceRequest

    async def count_requests_in_year(self, year: int) -> int:
        stmt = select(func.count(MaintenanceRequest.id)).where(
            extract("year", MaintenanceRequest.created_at) == year
        )
        return int((await self.execute(stmt)).scalar_one())

    def _filtered(
        self,
        *,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        maintenance_type: Optional[str] = None,
        machine_id: Optional[UUID] = None,
        technician_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ):
        stmt = select(MaintenanceRequest)
        if status:
            stmt = stmt.where(MaintenanceRequest.status == status)
        if priority:
            stmt = stmt.where(MaintenanceRequest.priority == priority)
        if maintenance_type:
            stmt = stmt.where(MaintenanceRequest.maintenance_type == maintenance_type)
        if machine_id:
            stmt = stmt.where(MaintenanceRequest.machine_id == machine_id)
        if technician_id:
            stmt = stmt.where(MaintenanceRequest.assigned_technician_id == technician_id)
        if date_from:
            stmt = stmt.where(MaintenanceRequest.created_at >= date_from)
        if date_to:
            stmt = stmt.where(MaintenanceRequest.created_at <= date_to)
        return stmt

    async def list_requests(self, *, limit: int = 20, offset: int = 0, **filters) -> Tuple[List[MaintenanceRequest], int]:
        stmt = self._filtered(**filters).order_by(MaintenanceRequest.created_at.desc())
        return await self.paginate(stmt, limit, offset)

    async def requests_in_range(
        self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None
    ) -> List[MaintenanceRequest]:
        return list(await self.scalars(self._filtered(date_from=date_from, date_to=date_to)))

    async def list_sla_candidates(self, now: datetime) -> List[MaintenanceRequest]:
        stmt = select(MaintenanceRequest).where(
            MaintenanceRequest.status.in_(OPEN_STATUSES),
            MaintenanceRequest.sla_due_date < now,
            MaintenanceRequest.sla_breached.is_(False),
        )
        return list(await self.scalars(stmt))

    # Parts and work logs
    async def get_part(self, request_id: UUID, part_id: UUID) -> Optional[MaintenancePart]:
        stmt = select(MaintenancePart).where(
            MaintenancePart.id == part_id, MaintenancePart.maintenance_request_id == request_id
        )
        return await self.scalar_one_or_none(stmt)

    async def list_parts(self, request_id: UUID) -> List[MaintenancePart]:
        stmt = select(MaintenancePart).where(MaintenancePart.maintenance_request_id == request_id)
        return list(await self.scalars(stmt))

    async def get_work_log(self, request_id: UUID, log_id: UUID) -> Optional[MaintenanceWorkLog]:
        stmt = select(MaintenanceWorkLog).where(
            MaintenanceWorkLog.id == log_id, MaintenanceWorkLog.maintenance_request_id == request_id
        )
        return await self.scalar_one_or_none(stmt)

    async def list_work_logs(self, request_id: UUID) -> List[MaintenanceWorkLog]:
        stmt = select(MaintenanceWorkLog).where(MaintenanceWorkLog.maintenance_request_id == request_id)
        return list(await self.scalars(stmt))

    # Schedules
    async def get_schedule(self, schedule_id: UUID) -> Optional[MaintenanceSchedule]:
        return await self.scalar_one_or_none(select(MaintenanceSchedule).where(MaintenanceSchedule.id == schedule_id))

    async def list_schedules(self, machine_id: Optional[UUID] = None) -> List[MaintenanceSchedule]:
        stmt = select(MaintenanceSchedule)
        if machine_id:
            stmt = stmt.where(MaintenanceSchedule.machine_id == machine_id)
        return list(await self.scalars(stmt.order_by(MaintenanceSchedule.next_due_date.asc().nulls_last())))

    async def list_due_schedules(self, today: date) -> List[MaintenanceSchedule]:
        stmt = select(MaintenanceSchedule).where(
            MaintenanceSchedule.is_active.is_(True),
            MaintenanceSchedule.auto_create_request.is_(True),
            MaintenanceSchedule.next_due_date < today,
        )
        return list(await self.scalars(stmt))
