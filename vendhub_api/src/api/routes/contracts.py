from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.contracts import (
    CommissionCalculate,
    CommissionPay,
    CommissionPaymentStatus,
    CommissionRead,
    ContractCreate,
    ContractRead,
    ContractStatus,
    ContractUpdate,
    ContractorCreate,
    ContractorRead,
    ContractorUpdate,
    ServiceType,
)
from src.services.contracts import ContractService

router = APIRouter(tags=["Contracts"])

_view = [Depends(require_roles("admin", "manager", "accountant", "contracts:view", "contracts:manage"))]
_manage = [Depends(require_roles("admin", "manager", "contracts:manage"))]


# Contractors
# PUBLIC_INTERFACE
@router.get("/contractors", response_model=Page[ContractorRead], summary="List contractors", dependencies=_view)
async def list_contractors(
    session: AsyncSession = Depends(get_tenant_session),
    service_type: Optional[ServiceType] = Query(None),
    search: Optional[str] = Query(None, description="Matches company, contact person or INN"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[ContractorRead]:
    items, total = await ContractService(session).list_contractors(
        service_type=service_type.value if service_type else None, search=search, limit=limit, offset=offset
    )
    return Page[ContractorRead](
        items=[ContractorRead.model_validate(c) for c in items], total=total, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.post(
    "/contractors", response_model=ContractorRead, status_code=status.HTTP_201_CREATED, summary="Create contractor", dependencies=_manage
)
async def create_contractor(payload: ContractorCreate, session: AsyncSession = Depends(get_tenant_session)) -> ContractorRead:
    return ContractorRead.model_validate(await ContractService(session).create_contractor(payload))


# PUBLIC_INTERFACE
@router.get("/contractors/{contractor_id}", response_model=ContractorRead, summary="Get contractor", dependencies=_view)
async def get_contractor(
    contractor_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> ContractorRead:
    return ContractorRead.model_validate(await ContractService(session).get_contractor(contractor_id))


# PUBLIC_INTERFACE
@router.patch("/contractors/{contractor_id}", response_model=ContractorRead, summary="Update contractor", dependencies=_manage)
async def update_contractor(
    payload: ContractorUpdate, contractor_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> ContractorRead:
    return ContractorRead.model_validate(await ContractService(session).update_contractor(contractor_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/contractors/{contractor_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete contractor", dependencies=_manage
)
async def delete_contractor(contractor_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await ContractService(session).delete_contractor(contractor_id)


# Contracts
# PUBLIC_INTERFACE
@router.get("/contracts", response_model=Page[ContractRead], summary="List contracts", dependencies=_view)
async def list_contracts(
    session: AsyncSession = Depends(get_tenant_session),
    contractor_id: Optional[UUID] = Query(None),
    status_: Optional[ContractStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[ContractRead]:
    items, total = await ContractService(session).list_contracts(
        contractor_id=contractor_id, status=status_.value if status_ else None, limit=limit, offset=offset
    )
    return Page[ContractRead](items=[ContractRead.model_validate(c) for c in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.post(
    "/contracts",
    response_model=ContractRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create contract",
    description="Contracts start as draft. Contract numbers are unique within the tenant.",
    dependencies=_manage,
)
async def create_contract(payload: ContractCreate, session: AsyncSession = Depends(get_tenant_session)) -> ContractRead:
    return ContractRead.model_validate(await ContractService(session).create_contract(payload))


# PUBLIC_INTERFACE
@router.get("/contracts/{contract_id}", response_model=ContractRead, summary="Get contract", dependencies=_view)
async def get_contract(contract_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ContractRead:
    return ContractRead.model_validate(await ContractService(session).get_contract(contract_id))


# PUBLIC_INTERFACE
@router.patch("/contracts/{contract_id}", response_model=ContractRead, summary="Update contract", dependencies=_manage)
async def update_contract(
    payload: ContractUpdate, contract_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> ContractRead:
    return ContractRead.model_validate(await ContractService(session).update_contract(contract_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/contracts/{contract_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete contract",
    description="Only draft contracts can be deleted.",
    dependencies=_manage,
)
async def delete_contract(contract_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await ContractService(session).delete_contract(contract_id)


# PUBLIC_INTERFACE
@router.post("/contracts/{contract_id}/activate", response_model=ContractRead, summary="Activate contract", dependencies=_manage)
async def activate_contract(contract_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ContractRead:
    return ContractRead.model_validate(await ContractService(session).activate_contract(contract_id))


# PUBLIC_INTERFACE
@router.post("/contracts/{contract_id}/suspend", response_model=ContractRead, summary="Suspend contract", dependencies=_manage)
async def suspend_contract(contract_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ContractRead:
    return ContractRead.model_validate(await ContractService(session).suspend_contract(contract_id))


# PUBLIC_INTERFACE
@router.post("/contracts/{contract_id}/terminate", response_model=ContractRead, summary="Terminate contract", dependencies=_manage)
async def terminate_contract(
    contract_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> ContractRead:
    return ContractRead.model_validate(await ContractService(session).terminate_contract(contract_id))


# Commissions
# PUBLIC_INTERFACE
@router.post(
    "/contracts/{contract_id}/commissions",
    response_model=CommissionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Calculate commission",
    description="Sums completed transactions on the contract's machines over the period (inclusive).",
)
async def calculate_commission(
    payload: CommissionCalculate,
    contract_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "accountant", "contracts:manage")),
) -> CommissionRead:
    calculation = await ContractService(session).calculate_commission(
        contract_id, payload.period_start, payload.period_end, user.id
    )
    return CommissionRead.model_validate(calculation)


# PUBLIC_INTERFACE
@router.get("/commissions", response_model=Page[CommissionRead], summary="List commission calculations", dependencies=_view)
async def list_commissions(
    session: AsyncSession = Depends(get_tenant_session),
    contract_id: Optional[UUID] = Query(None),
    payment_status: Optional[CommissionPaymentStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[CommissionRead]:
    items, total = await ContractService(session).list_commissions(
        contract_id=contract_id,
        payment_status=payment_status.value if payment_status else None,
        limit=limit,
        offset=offset,
    )
    return Page[CommissionRead](items=[CommissionRead.model_validate(c) for c in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.post(
    "/commissions/{commission_id}/pay",
    response_model=CommissionRead,
    summary="Mark commission paid",
    dependencies=[Depends(require_roles("admin", "accountant", "contracts:manage"))],
)
async def mark_commission_paid(
    payload: CommissionPay, commission_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> CommissionRead:
    calculation = await ContractService(session).mark_as_paid(commission_id, payload.payment_transaction_id)
    return CommissionRead.model_validate(calculation)
