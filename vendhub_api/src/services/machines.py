from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.machines import Machine, MachineErrorLog, MachineSlot
from src.repositories.machines import MachineRepository
from src.schemas.machines import (
    ErrorLogCreate,
    MachineCreate,
    MachineStats,
    MachineUpdate,
    SlotCreate,
    SlotUpdate,
)
from src.schemas.realtime import MachineSnapshot
from src.services.base import BaseService, bad_request, conflict, not_found, utcnow
from src.services.realtime import broadcast_manager

logger = logging.getLogger(__name__)

ALARM_SEVERITIES = {"error", "critical"}


# PUBLIC_INTERFACE
def refill_exceeds_capacity(current: int, adding: int, capacity: int) -> bool:
    """True when adding `adding` units to a slot would pass its capacity."""
    return current + adding > capacity


class MachineService(BaseService):
    """
    Domain service for the machine fleet.

    Status, error and telemetry changes are pushed to `machines:{tenant}` subscribers.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = MachineRepository(session)

    async def _notify(self, event_type: str, machine: Machine, **extra) -> None:
        if not self.tenant_id:
            return
        payload = {
            "machine_id": str(machine.id),
            "machine_number": machine.machine_number,
            "status": machine.status,
            "connection_status": machine.connection_status,
            **extra,
        }
        await broadcast_manager.publish_machine_event(self.tenant_id, event_type, payload)

    # PUBLIC_INTERFACE
    async def create(self, payload: MachineCreate) -> Machine:
        if await self.repo.get_by_number(payload.machine_number):
            raise conflict(f"Machine number {payload.machine_number} already exists")
        machine = Machine(**payload.model_dump(mode="json", exclude={"contract_id"}), contract_id=payload.contract_id)
        machine = await self.repo.save(machine)
        logger.info("Machine created: %s (%s)", machine.machine_number, machine.id)
        return machine

    # PUBLIC_INTERFACE
    async def list_machines(
        self,
        *,
        status: Optional[str] = None,
        type_: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Machine], int]:
        return await self.repo.list_machines(status=status, type_=type_, search=search, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get(self, machine_id: UUID) -> Machine:
        machine = await self.repo.get(machine_id)
        if not machine:
            raise not_found(f"Machine with ID {machine_id} not found")
        return machine

    # PUBLIC_INTERFACE
    async def update(self, machine_id: UUID, payload: MachineUpdate) -> Machine:
        machine = await self.get(machine_id)
        data = payload.model_dump(exclude_unset=True, mode="json")
        if "contract_id" in data:
            data["contract_id"] = payload.contract_id
        new_number = data.get("machine_number")
        if new_number and new_number != machine.machine_number and await self.repo.get_by_number(new_number):
            raise conflict(f"Machine number {new_number} already exists")
        for key, value in data.items():
            setattr(machine, key, value)
        return await self.repo.save(machine)

    # PUBLIC_INTERFACE
    async def delete(self, machine_id: UUID) -> None:
        machine = await self.get(machine_id)
        await self.repo.remove(machine)
        logger.info("Machine deleted: %s", machine_id)

    # PUBLIC_INTERFACE
    async def update_status(self, machine_id: UUID, new_status: str) -> Machine:
        machine = await self.get(machine_id)
        previous = machine.status
        machine.status = new_status
        machine = await self.repo.save(machine)
        await self._notify("machine.status", machine, previous_status=previous)
        return machine

    # PUBLIC_INTERFACE
    async def update_telemetry(self, machine_id: UUID, telemetry: dict) -> Machine:
        """Shallow-merge telemetry keys and mark the machine online."""
        machine = await self.get(machine_id)
        machine.telemetry = {**(machine.telemetry or {}), **telemetry}
        machine.connection_status = "online"
        machine.last_ping_at = utcnow()
        machine = await self.repo.save(machine)
        await self._notify("machine.telemetry", machine, telemetry=machine.telemetry)
        return machine

    # PUBLIC_INTERFACE
    async def stats(self) -> MachineStats:
        by_status = await self.repo.count_by_status()
        return MachineStats(total=sum(by_status.values()), by_status=by_status, online=await self.repo.count_online())

    # PUBLIC_INTERFACE
    async def snapshot(self) -> MachineSnapshot:
        """Fleet overview sent to realtime subscribers when they connect."""
        stats = await self.stats()
        return MachineSnapshot(
            by_status=stats.by_status,
            total=stats.total,
            online=stats.online,
            slots_needing_refill=await self.repo.count_slots_needing_refill(),
        )

    # PUBLIC_INTERFACE
    async def map_points(self) -> List[Machine]:
        return await self.repo.list_with_coordinates()

    # Slots
    # PUBLIC_INTERFACE
    async def list_slots(self, machine_id: UUID) -> List[MachineSlot]:
        await self.get(machine_id)
        return await self.repo.list_slots(machine_id)

    # PUBLIC_INTERFACE
    async def create_slot(self, machine_id: UUID, payload: SlotCreate) -> MachineSlot:
        await self.get(machine_id)
        if await self.repo.get_slot_by_number(machine_id, payload.slot_number):
            raise bad_request(f"Slot {payload.slot_number} already exists on this machine")
        slot = MachineSlot(machine_id=machine_id, **payload.model_dump())
        return await self.repo.save(slot)

    async def _get_slot(self, machine_id: UUID, slot_id: UUID, *, for_update: bool = False) -> MachineSlot:
        slot = await self.repo.get_slot(machine_id, slot_id, for_update=for_update)
        if not slot:
            raise not_found(f"Slot with ID {slot_id} not found")
        return slot

    # PUBLIC_INTERFACE
    async def update_slot(self, machine_id: UUID, slot_id: UUID, payload: SlotUpdate) -> MachineSlot:
        slot = await self._get_slot(machine_id, slot_id)
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(slot, key, value)
        return await self.repo.save(slot)

    # PUBLIC_INTERFACE
    async def refill_slot(self, machine_id: UUID, slot_id: UUID, quantity: int) -> MachineSlot:
        """Add units to a slot without passing its capacity."""
        machine = await self.get(machine_id)
        slot = await self._get_slot(machine_id, slot_id, for_update=True)
        if refill_exceeds_capacity(slot.current_quantity, quantity, slot.capacity):
            raise bad_request(
                f"Refill would exceed slot capacity. Current: {slot.current_quantity}, "
                f"Adding: {quantity}, Capacity: {slot.capacity}"
            )
        now = utcnow()
        slot.current_quantity += quantity
        slot.last_refilled_at = now
        machine.last_refill_date = now
        await self.repo.commit()
        return await self.repo.reload(slot)

    # Error logs
    # PUBLIC_INTERFACE
    async def log_error(self, machine_id: UUID, payload: ErrorLogCreate) -> MachineErrorLog:
        machine = await self.get(machine_id)
        data = payload.model_dump(mode="json", exclude={"occurred_at"})
        entry = MachineErrorLog(machine_id=machine_id, **data)
        if payload.occurred_at:
            entry.occurred_at = payload.occurred_at
        alarm = payload.severity.value in ALARM_SEVERITIES
        if alarm:
            machine.status = "error"
        entry = await self.repo.save(entry)
        logger.warning("Machine %s reported %s: %s", machine.machine_number, entry.error_code, entry.message)
        if alarm:
            machine = await self.repo.reload(machine)
            await self._notify(
                "machine.error",
                machine,
                error_id=str(entry.id),
                error_code=entry.error_code,
                severity=entry.severity,
                message=entry.message,
            )
        return entry

    # PUBLIC_INTERFACE
    async def resolve_error(
        self, machine_id: UUID, error_id: UUID, resolution: str, user_id: Optional[UUID] = None
    ) -> MachineErrorLog:
        machine = await self.get(machine_id)
        entry = await self.repo.get_error(machine_id, error_id)
        if not entry:
            raise not_found(f"Error log with ID {error_id} not found")
        if entry.resolved_at is not None:
            raise bad_request("This error has already been resolved")
        entry.resolved_at = utcnow()
        entry.resolved_by_user_id = user_id
        entry.resolution = resolution
        await self.repo.flush()
        restored = False
        if machine.status == "error" and await self.repo.count_unresolved_errors(machine_id) == 0:
            machine.status = "active"
            restored = True
        await self.repo.commit()
        if restored:
            await self._notify("machine.status", await self.repo.reload(machine), previous_status="error")
        return await self.repo.reload(entry)

    # PUBLIC_INTERFACE
    async def error_history(self, machine_id: UUID, limit: int = 50, offset: int = 0) -> Tuple[List[MachineErrorLog], int]:
        await self.get(machine_id)
        return await self.repo.list_errors(machine_id, limit=limit, offset=offset)
