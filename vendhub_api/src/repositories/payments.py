from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select

from src.db.models.machines import Machine
from src.db.models.payments import PaymentRefund, PaymentTransaction
from .base import CrudRepository


class PaymentRepository(CrudRepository[PaymentTransaction]):
    """Payment transactions and their refunds."""

    model = PaymentTransaction

    async def get_by_provider_tx_id(self, provider: str, provider_tx_id: str) -> Optional[PaymentTransaction]:
        stmt = select(PaymentTransaction).where(
            PaymentTransaction.provider == provider,
            PaymentTransaction.provider_tx_id == provider_tx_id,
        )
        return await self.scalar_one_or_none(stmt.limit(1))

    async def get_latest_for_order(
        self, order_id: str, *, provider: Optional[str] = None, status: Optional[str] = None
    ) -> Optional[PaymentTransaction]:
        stmt = select(PaymentTransaction).where(PaymentTransaction.order_id == order_id)
        if provider:
            stmt = stmt.where(PaymentTransaction.provider == provider)
        if status:
            stmt = stmt.where(PaymentTransaction.status == status)
        stmt = stmt.order_by(PaymentTransaction.created_at.desc()).limit(1)
        return await self.scalar_one_or_none(stmt)

    def _filtered(
        self,
        *,
        provider: Optional[str] = None,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        order_id: Optional[str] = None,
        machine_id: Optional[UUID] = None,
    ):
        stmt = select(PaymentTransaction)
        if provider:
            stmt = stmt.where(PaymentTransaction.provider == provider)
        if status:
            stmt = stmt.where(PaymentTransaction.status == status)
        if date_from:
            stmt = stmt.where(PaymentTransaction.created_at >= date_from)
        if date_to:
            stmt = stmt.where(PaymentTransaction.created_at <= date_to)
        if order_id:
            stmt = stmt.where(PaymentTransaction.order_id == order_id)
        if machine_id:
            stmt = stmt.where(PaymentTransaction.machine_id == machine_id)
        return stmt

    async def list_transactions(self, *, limit: int = 20, offset: int = 0, **filters) -> Tuple[List[PaymentTransaction], int]:
        stmt = self._filtered(**filters).order_by(PaymentTransaction.created_at.desc())
        return await self.paginate(stmt, limit, offset)

    async def provider_status_totals(
        self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None
    ) -> List[Tuple[str, str, int, float]]:
        """(provider, status, count, amount) rows for the period."""
        sub = self._filtered(date_from=date_from, date_to=date_to).subquery()
        stmt = select(
            sub.c.provider, sub.c.status, func.count(), func.coalesce(func.sum(sub.c.amount), 0)
        ).group_by(sub.c.provider, sub.c.status)
        return [(p, s, int(n), float(a)) for p, s, n, a in (await self.execute(stmt)).all()]

    async def contract_revenue(self, contract_id: UUID, start: datetime, end: datetime) -> Tuple[float, int]:
        """Completed revenue and transaction count for machines bound to the contract."""
        stmt = (
            select(func.coalesce(func.sum(PaymentTransaction.amount), 0), func.count(PaymentTransaction.id))
            .select_from(PaymentTransaction)
            .join(Machine, Machine.id == PaymentTransaction.machine_id)
            .where(
                Machine.contract_id == contract_id,
                PaymentTransaction.status == "completed",
                PaymentTransaction.processed_at >= start,
                PaymentTransaction.processed_at <= end,
            )
        )
        revenue, count = (await self.execute(stmt)).one()
        return float(revenue), int(count)

    # Refunds
    async def get_refund(self, refund_id: UUID) -> Optional[PaymentRefund]:
        return await self.scalar_one_or_none(select(PaymentRefund).where(PaymentRefund.id == refund_id))

    async def refunded_total(self, transaction_id: UUID, statuses: Tuple[str, ...] = ("completed",)) -> float:
        stmt = select(func.coalesce(func.sum(PaymentRefund.amount), 0)).where(
            PaymentRefund.payment_transaction_id == transaction_id,
            PaymentRefund.status.in_(statuses),
        )
        return float((await self.execute(stmt)).scalar_one())
