from __future__ import annotations

from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select

from src.db.models.machines import Machine, MachineErrorLog, MachineSlot
from .base import CrudRepository


class MachineRepository(CrudRepository[Machine]):
    """Machines, their slots and error logs."""

    model = Machine

    async def get_by_number(self, machine_number: str) -> Optional[Machine]:
        return await self.scalar_one_or_none(select(Machine).where(Machine.machine_number == machine_number))

    async def list_machines(
        self,
        *,
        status: Optional[str] = None,
        type_: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Machine], int]:
        stmt = select(Machine)
        if status:
            stmt = stmt.where(Machine.status == status)
        if type_:
            stmt = stmt.where(Machine.type == type_)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(
                or_(Machine.name.ilike(like), Machine.serial_number.ilike(like), Machine.machine_number.ilike(like))
            )
        return await self.paginate(stmt.order_by(Machine.name), limit, offset)

    async def count_by_status(self) -> Dict[str, int]:
        res = await self.execute(select(Machine.status, func.count(Machine.id)).group_by(Machine.status))
        return {status: int(n) for status, n in res.all()}

    async def count_online(self) -> int:
        res = await self.execute(select(func.count(Machine.id)).where(Machine.connection_status == "online"))
        return int(res.scalar_one())

    async def list_with_coordinates(self) -> List[Machine]:
        stmt = (
            select(Machine)
            .where(Machine.latitude.is_not(None), Machine.longitude.is_not(None))
            .order_by(Machine.name)
        )
        return list(await self.scalars(stmt))

    async def list_by_contract(self, contract_id: UUID) -> List[Machine]:
        return list(await self.scalars(select(Machine).where(Machine.contract_id == contract_id)))

    # Slots
    async def list_slots(self, machine_id: UUID) -> List[MachineSlot]:
        stmt = select(MachineSlot).where(MachineSlot.machine_id == machine_id).order_by(MachineSlot.slot_number)
        return list(await self.scalars(stmt))

    async def get_slot(self, machine_id: UUID, slot_id: UUID, *, for_update: bool = False) -> Optional[MachineSlot]:
        stmt = select(MachineSlot).where(MachineSlot.id == slot_id, MachineSlot.machine_id == machine_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def get_slot_by_number(self, machine_id: UUID, slot_number: str) -> Optional[MachineSlot]:
        stmt = select(MachineSlot).where(
            MachineSlot.machine_id == machine_id, MachineSlot.slot_number == slot_number
        )
        return await self.scalar_one_or_none(stmt)

    async def count_slots_needing_refill(self) -> int:
        stmt = select(func.count(MachineSlot.id)).where(
            MachineSlot.capacity > 0, MachineSlot.current_quantity <= MachineSlot.min_quantity
        )
        return int((await self.execute(stmt)).scalar_one())

    # Error logs
    async def get_error(self, machine_id: UUID, error_id: UUID) -> Optional[MachineErrorLog]:
        stmt = select(MachineErrorLog).where(
            MachineErrorLog.id == error_id, MachineErrorLog.machine_id == machine_id
        )
        return await self.scalar_one_or_none(stmt)

    async def list_errors(self, machine_id: UUID, *, limit: int = 50, offset: int = 0) -> Tuple[List[MachineErrorLog], int]:
        stmt = (
            select(MachineErrorLog)
            .where(MachineErrorLog.machine_id == machine_id)
            .order_by(MachineErrorLog.occurred_at.desc())
        )
        return await self.paginate(stmt, limit, offset)

    async def count_unresolved_errors(self, machine_id: UUID) -> int:
        stmt = select(func.count(MachineErrorLog.id)).where(
            MachineErrorLog.machine_id == machine_id, MachineErrorLog.resolved_at.is_(None)
        )
        return int((await self.execute(stmt)).scalar_one())
