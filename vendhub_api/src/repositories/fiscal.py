from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select

from src.db.models.fiscal import FiscalDevice, FiscalQueueItem, FiscalReceipt, FiscalShift
from .base import CrudRepository


class FiscalRepository(CrudRepository[FiscalDevice]):
    """Fiscal devices, shifts, receipts and the delivery queue."""

    model = FiscalDevice

    async def list_devices(self) -> List[FiscalDevice]:
        return list(await self.scalars(select(FiscalDevice).order_by(FiscalDevice.created_at.desc())))

    # Shifts
    async def get_open_shift(self, device_id: UUID) -> Optional[FiscalShift]:
        stmt = (
            select(FiscalShift)
            .where(FiscalShift.device_id == device_id, FiscalShift.status == "open")
            .order_by(FiscalShift.opened_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def last_shift_number(self, device_id: UUID) -> int:
        stmt = select(func.coalesce(func.max(FiscalShift.shift_number), 0)).where(FiscalShift.device_id == device_id)
        return int((await self.execute(stmt)).scalar_one())

    async def shift_history(self, device_id: UUID, limit: int = 30) -> List[FiscalShift]:
        stmt = (
            select(FiscalShift)
            .where(FiscalShift.device_id == device_id)
            .order_by(FiscalShift.opened_at.desc())
            .limit(limit)
        )
        return list(await self.scalars(stmt))

    # Receipts
    async def get_receipt(self, receipt_id: UUID) -> Optional[FiscalReceipt]:
        return await self.scalar_one_or_none(select(FiscalReceipt).where(FiscalReceipt.id == receipt_id))

    async def list_receipts(
        self,
        *,
        device_id: Optional[UUID] = None,
        shift_id: Optional[UUID] = None,
        type_: Optional[str] = None,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[FiscalReceipt], int]:
        stmt = select(FiscalReceipt)
        if device_id:
            stmt = stmt.where(FiscalReceipt.device_id == device_id)
        if shift_id:
            stmt = stmt.where(FiscalReceipt.shift_id == shift_id)
        if type_:
            stmt = stmt.where(FiscalReceipt.type == type_)
        if status:
            stmt = stmt.where(FiscalReceipt.status == status)
        if date_from:
            stmt = stmt.where(FiscalReceipt.created_at >= date_from)
        if date_to:
            stmt = stmt.where(FiscalReceipt.created_at <= date_to)
        return await self.paginate(stmt.order_by(FiscalReceipt.created_at.desc()), limit, offset)

    async def shift_receipts(self, shift_id: UUID) -> List[FiscalReceipt]:
        stmt = select(FiscalReceipt).where(FiscalReceipt.shift_id == shift_id, FiscalReceipt.status == "success")
        return list(await self.scalars(stmt))

    async def device_receipts_since(self, device_id: UUID, since: datetime) -> List[FiscalReceipt]:
        stmt = select(FiscalReceipt).where(
            FiscalReceipt.device_id == device_id,
            FiscalReceipt.status == "success",
            FiscalReceipt.created_at >= since,
        )
        return list(await self.scalars(stmt))

    # Queue
    async def get_queue_item(self, item_id: UUID) -> Optional[FiscalQueueItem]:
        return await self.scalar_one_or_none(select(FiscalQueueItem).where(FiscalQueueItem.id == item_id))

    async def list_queue(
        self, *, device_id: Optional[UUID] = None, status: Optional[str] = None, limit: int = 50
    ) -> List[FiscalQueueItem]:
        stmt = select(FiscalQueueItem)
        if device_id:
            stmt = stmt.where(FiscalQueueItem.device_id == device_id)
        if status:
            stmt = stmt.where(FiscalQueueItem.status == status)
        stmt = stmt.order_by(FiscalQueueItem.priority.desc(), FiscalQueueItem.created_at.asc()).limit(limit)
        return list(await self.scalars(stmt))

    async def list_due_queue(self, now: datetime, limit: int = 100) -> List[FiscalQueueItem]:
        stmt = (
            select(FiscalQueueItem)
            .where(
                or_(
                    FiscalQueueItem.status == "pending",
                    (FiscalQueueItem.status == "retry") & (FiscalQueueItem.next_retry_at <= now),
                )
            )
            .order_by(FiscalQueueItem.priority.desc(), FiscalQueueItem.created_at.asc())
            .limit(limit)
        )
        return list(await self.scalars(stmt))

    async def queue_counts(self, device_id: UUID) -> dict[str, int]:
        stmt = (
            select(FiscalQueueItem.status, func.count(FiscalQueueItem.id))
            .where(FiscalQueueItem.device_id == device_id)
            .group_by(FiscalQueueItem.status)
        )
        return {s: int(n) for s, n in (await self.execute(stmt)).all()}
