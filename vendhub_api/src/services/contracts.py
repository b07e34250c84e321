from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.contracts import CommissionCalculation, Contract, Contractor
from src.repositories.contracts import ContractRepository
from src.repositories.payments import PaymentRepository
from src.schemas.contracts import (
    CommissionType,
    ContractCreate,
    ContractorCreate,
    ContractorUpdate,
    ContractUpdate,
)
from src.services.base import BaseService, bad_request, conflict, not_found, utcnow

logger = logging.getLogger(__name__)


def round2(value: float) -> float:
    """Round to 2 places, halves away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# PUBLIC_INTERFACE
def calculate_commission_amount(
    commission_type: str,
    revenue: float,
    *,
    rate: Optional[float] = None,
    fixed_amount: Optional[float] = None,
    tiers: Optional[List[Dict[str, Any]]] = None,
    hybrid_fixed: Optional[float] = None,
    hybrid_rate: Optional[float] = None,
) -> Tuple[float, Dict[str, Any]]:
    """
    Commission owed on `revenue` and the details stored alongside it.

    Tiered contracts consume revenue band by band in ascending min_revenue order;
    a tier without max_revenue is open-ended.
    """
    if commission_type == "percentage":
        base_rate = float(rate or 0)
        return round2(revenue * base_rate / 100), {"base_rate": base_rate}

    if commission_type == "fixed":
        amount = float(fixed_amount or 0)
        return amount, {"fixed_amount": amount}

    if commission_type == "tiered":
        remaining = revenue
        total = 0.0
        breakdown = []
        ordered = sorted(tiers or [], key=lambda t: float(t["min_revenue"]))
        for index, tier in enumerate(ordered, start=1):
            if remaining <= 0:
                break
            upper = math.inf if tier.get("max_revenue") is None else float(tier["max_revenue"])
            in_tier = min(remaining, upper - float(tier["min_revenue"]))
            commission = round2(in_tier * float(tier["rate"]) / 100)
            total += commission
            breakdown.append({"tier": index, "amount": in_tier, "rate": float(tier["rate"]), "commission": commission})
            remaining -= in_tier
        return round2(total), {"tier_breakdown": breakdown}

    if commission_type == "hybrid":
        fixed = float(hybrid_fixed or 0)
        pct = float(hybrid_rate or 0)
        return round2(fixed + round2(revenue * pct / 100)), {"hybrid_fixed": fixed, "hybrid_rate": pct}

    raise bad_request(f"Unknown commission type: {commission_type}")


class ContractService(BaseService):
    """Contractors, contracts and commission calculation."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ContractRepository(session)
        self.payments = PaymentRepository(session)

    # Contractors
    # PUBLIC_INTERFACE
    async def create_contractor(self, payload: ContractorCreate) -> Contractor:
        contractor = await self.repo.save(Contractor(**payload.model_dump(mode="json")))
        logger.info("Contractor created: %s (%s)", contractor.company_name, contractor.id)
        return contractor

    # PUBLIC_INTERFACE
    async def list_contractors(self, **filters) -> Tuple[List[Contractor], int]:
        return await self.repo.list_contractors(**filters)

    # PUBLIC_INTERFACE
    async def get_contractor(self, contractor_id: UUID) -> Contractor:
        contractor = await self.repo.get_contractor(contractor_id)
        if not contractor:
            raise not_found("Contractor not found")
        return contractor

    # PUBLIC_INTERFACE
    async def update_contractor(self, contractor_id: UUID, payload: ContractorUpdate) -> Contractor:
        contractor = await self.get_contractor(contractor_id)
        for key, value in payload.model_dump(exclude_unset=True, mode="json").items():
            setattr(contractor, key, value)
        return await self.repo.save(contractor)

    # PUBLIC_INTERFACE
    async def delete_contractor(self, contractor_id: UUID) -> None:
        await self.repo.remove(await self.get_contractor(contractor_id))

    # Contracts
    # PUBLIC_INTERFACE
    async def create_contract(self, payload: ContractCreate) -> Contract:
        await self.get_contractor(payload.contractor_id)
        if await self.repo.get_contract_by_number(payload.contract_number):
            raise conflict(f'Contract number "{payload.contract_number}" already exists')
        data = payload.model_dump()
        data["commission_type"] = payload.commission_type.value
        contract = await self.repo.save(Contract(status="draft", **data))
        logger.info("Contract created: %s", contract.contract_number)
        return contract

    # PUBLIC_INTERFACE
    async def list_contracts(self, **filters) -> Tuple[List[Contract], int]:
        return await self.repo.list_contracts(**filters)

    # PUBLIC_INTERFACE
    async def get_contract(self, contract_id: UUID) -> Contract:
        contract = await self.repo.get_contract(contract_id)
        if not contract:
            raise not_found("Contract not found")
        return contract

    # PUBLIC_INTERFACE
    async def update_contract(self, contract_id: UUID, payload: ContractUpdate) -> Contract:
        contract = await self.get_contract(contract_id)
        if contract.status == "terminated":
            raise bad_request("Cannot update a terminated contract")
        for key, value in payload.model_dump(exclude_unset=True).items():
            setattr(contract, key, value.value if isinstance(value, CommissionType) else value)
        return await self.repo.save(contract)

    # PUBLIC_INTERFACE
    async def delete_contract(self, contract_id: UUID) -> None:
        contract = await self.get_contract(contract_id)
        if contract.status != "draft":
            raise bad_request("Only draft contracts can be deleted")
        await self.repo.remove(contract)

    async def _move(self, contract_id: UUID, allowed_from: Tuple[str, ...], new_status: str, message: str) -> Contract:
        contract = await self.get_contract(contract_id)
        if contract.status not in allowed_from:
            raise bad_request(message)
        contract.status = new_status
        contract = await self.repo.save(contract)
        logger.info("Contract %s -> %s", contract.contract_number, new_status)
        return contract

    # PUBLIC_INTERFACE
    async def activate_contract(self, contract_id: UUID) -> Contract:
        return await self._move(contract_id, ("draft",), "active", "Only draft contracts can be activated")

    # PUBLIC_INTERFACE
    async def suspend_contract(self, contract_id: UUID) -> Contract:
        return await self._move(contract_id, ("active",), "suspended", "Only active contracts can be suspended")

    # PUBLIC_INTERFACE
    async def terminate_contract(self, contract_id: UUID) -> Contract:
        return await self._move(
            contract_id,
            ("draft", "active", "suspended", "expired"),
            "terminated",
            "Contract is already terminated",
        )

    # Commissions
    # PUBLIC_INTERFACE
    async def calculate_commission(
        self, contract_id: UUID, period_start: date, period_end: date, user_id: Optional[UUID] = None
    ) -> CommissionCalculation:
        contract = await self.get_contract(contract_id)
        if contract.status != "active":
            raise bad_request("Commission can only be calculated for active contracts")

        start = datetime.combine(period_start, time.min, tzinfo=timezone.utc)
        end = datetime.combine(period_end, time.max, tzinfo=timezone.utc)
        revenue, count = await self.payments.contract_revenue(contract.id, start, end)

        amount, details = calculate_commission_amount(
            contract.commission_type,
            revenue,
            rate=contract.commission_rate,
            fixed_amount=contract.commission_fixed_amount,
            tiers=contract.commission_tiers,
            hybrid_fixed=contract.commission_hybrid_fixed,
            hybrid_rate=contract.commission_hybrid_rate,
        )
        calculation = CommissionCalculation(
            contract_id=contract.id,
            period_start=period_start,
            period_end=period_end,
            total_revenue=revenue,
            transaction_count=count,
            commission_amount=amount,
            commission_type=contract.commission_type,
            calculation_details=details,
            payment_status="pending",
            payment_due_date=period_end + timedelta(days=contract.payment_term_days or 0),
            calculated_by_user_id=user_id,
        )
        calculation = await self.repo.save(calculation)
        logger.info(
            "Commission calculated for contract %s: %s on revenue %s", contract.contract_number, amount, revenue
        )
        return calculation

    # PUBLIC_INTERFACE
    async def list_commissions(self, **filters) -> Tuple[List[CommissionCalculation], int]:
        return await self.repo.list_commissions(**filters)

    # PUBLIC_INTERFACE
    async def mark_as_paid(self, commission_id: UUID, payment_transaction_id: Optional[UUID] = None) -> CommissionCalculation:
        calculation = await self.repo.get_commission(commission_id)
        if not calculation:
            raise not_found("Commission calculation not found")
        if calculation.payment_status in ("paid", "cancelled"):
            raise bad_request(f"Commission is already {calculation.payment_status}")
        calculation.payment_status = "paid"
        calculation.paid_at = utcnow()
        if payment_transaction_id:
            calculation.payment_transaction_id = payment_transaction_id
        return await self.repo.save(calculation)

    # PUBLIC_INTERFACE
    async def mark_overdue(self) -> int:
        """Scheduled job: pending commissions past their due date become overdue."""
        count = await self.repo.mark_overdue_before(utcnow().date())
        if count:
            logger.info("Marked %s commission(s) overdue", count)
        return count
