from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select, update

from src.db.models.contracts import CommissionCalculation, Contract, Contractor
from .base import BaseRepository


class ContractRepository(BaseRepository):
    """Contractors, contracts and commission calculations."""

    # Contractors
    async def get_contractor(self, contractor_id: UUID) -> Optional[Contractor]:
        return await self.scalar_one_or_none(select(Contractor).where(Contractor.id == contractor_id))

    async def list_contractors(
        self, *, service_type: Optional[str] = None, search: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> Tuple[List[Contractor], int]:
        stmt = select(Contractor)
        if service_type:
            stmt = stmt.where(Contractor.service_type == service_type)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(
                or_(Contractor.company_name.ilike(like), Contractor.contact_person.ilike(like), Contractor.inn.ilike(like))
            )
        return await self.paginate(stmt.order_by(Contractor.company_name), limit, offset)

    # Contracts
    async def get_contract(self, contract_id: UUID) -> Optional[Contract]:
        return await self.scalar_one_or_none(select(Contract).where(Contract.id == contract_id))

    async def get_contract_by_number(self, contract_number: str) -> Optional[Contract]:
        return await self.scalar_one_or_none(select(Contract).where(Contract.contract_number == contract_number))

    async def list_contracts(
        self,
        *,
        contractor_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Contract], int]:
        stmt = select(Contract)
        if contractor_id:
            stmt = stmt.where(Contract.contractor_id == contractor_id)
        if status:
            stmt = stmt.where(Contract.status == status)
        return await self.paginate(stmt.order_by(Contract.start_date.desc()), limit, offset)

    # Commissions
    async def get_commission(self, commission_id: UUID) -> Optional[CommissionCalculation]:
        stmt = select(CommissionCalculation).where(CommissionCalculation.id == commission_id)
        return await self.scalar_one_or_none(stmt)

    async def list_commissions(
        self,
        *,
        contract_id: Optional[UUID] = None,
        payment_status: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[CommissionCalculation], int]:
        stmt = select(CommissionCalculation)
        if contract_id:
            stmt = stmt.where(CommissionCalculation.contract_id == contract_id)
        if payment_status:
            stmt = stmt.where(CommissionCalculation.payment_status == payment_status)
        return await self.paginate(stmt.order_by(CommissionCalculation.period_start.desc()), limit, offset)

    async def mark_overdue_before(self, today: date) -> int:
        stmt = (
            update(CommissionCalculation)
            .where(
                CommissionCalculation.payment_status == "pending",
                CommissionCalculation.payment_due_date < today,
            )
            .values(payment_status="overdue")
            .execution_options(synchronize_session=False)
        )
        result = await self.execute(stmt)
        await self.commit()
        return int(result.rowcount or 0)
