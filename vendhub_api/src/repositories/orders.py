from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select

from src.db.models.orders import Order
from .base import CrudRepository


class OrderRepository(CrudRepository[Order]):
    model = Order

    async def count_orders(self) -> int:
        return int((await self.execute(select(func.count(Order.id)))).scalar_one())

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        return await self.scalar_one_or_none(select(Order).where(Order.order_number == order_number))

    def _filtered(
        self,
        *,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        machine_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ):
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == status)
        if payment_status:
            stmt = stmt.where(Order.payment_status == payment_status)
        if machine_id:
            stmt = stmt.where(Order.machine_id == machine_id)
        if user_id:
            stmt = stmt.where(Order.user_id == user_id)
        if date_from:
            stmt = stmt.where(Order.created_at >= date_from)
        if date_to:
            stmt = stmt.where(Order.created_at <= date_to)
        return stmt

    async def list_orders(self, *, limit: int = 20, offset: int = 0, **filters) -> Tuple[List[Order], int]:
        stmt = self._filtered(**filters).order_by(Order.created_at.desc())
        return await self.paginate(stmt, limit, offset)

    async def status_counts(self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> Dict[str, int]:
        sub = self._filtered(date_from=date_from, date_to=date_to).subquery()
        res = await self.execute(select(sub.c.status, func.count()).group_by(sub.c.status))
        return {status: int(n) for status, n in res.all()}

    async def paid_revenue_by_method(
        self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None
    ) -> Dict[str, float]:
        sub = self._filtered(payment_status="paid", date_from=date_from, date_to=date_to).subquery()
        res = await self.execute(
            select(sub.c.payment_method, func.coalesce(func.sum(sub.c.total_amount), 0)).group_by(sub.c.payment_method)
        )
        return {(method or "unknown"): float(total) for method, total in res.all()}
