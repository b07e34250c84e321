from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_active_user, get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.promo import (
    PromoCodeCreate,
    PromoCodeRead,
    PromoCodeUpdate,
    PromoRedeemRequest,
    PromoStats,
    PromoStatus,
    PromoValidateRequest,
    PromoValidationResult,
    RedemptionRead,
)
from src.services.promo import PromoService

router = APIRouter(prefix="/promo-codes", tags=["Promo codes"])

_view = [Depends(require_roles("admin", "manager", "promo:view", "promo:manage"))]
_manage = [Depends(require_roles("admin", "manager", "promo:manage"))]


# PUBLIC_INTERFACE
@router.get("", response_model=Page[PromoCodeRead], summary="List promo codes", dependencies=_view)
async def list_codes(
    session: AsyncSession = Depends(get_tenant_session),
    status_: Optional[PromoStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Matches code or name"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[PromoCodeRead]:
    items, total = await PromoService(session).list_codes(
        status=status_.value if status_ else None, search=search, limit=limit, offset=offset
    )
    return Page[PromoCodeRead](items=[PromoCodeRead.model_validate(p) for p in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=PromoCodeRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create promo code",
    description="Codes are stored uppercase and start in status draft.",
)
async def create_code(
    payload: PromoCodeCreate,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "promo:manage")),
) -> PromoCodeRead:
    return PromoCodeRead.model_validate(await PromoService(session).create(payload, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/validate",
    response_model=PromoValidationResult,
    summary="Validate a code",
    description="Check whether a code can be applied; returns the reason when it cannot.",
)
async def validate_code(
    payload: PromoValidateRequest,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(get_current_active_user),
) -> PromoValidationResult:
    return await PromoService(session).validate(payload.code, payload.client_user_id or user.id, payload.order_amount)


# PUBLIC_INTERFACE
@router.post(
    "/redeem",
    response_model=RedemptionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Redeem a code",
    dependencies=[Depends(require_roles("admin", "manager", "operator", "promo:manage"))],
)
async def redeem_code(payload: PromoRedeemRequest, session: AsyncSession = Depends(get_tenant_session)) -> RedemptionRead:
    return RedemptionRead.model_validate(await PromoService(session).redeem(payload))


# PUBLIC_INTERFACE
@router.get("/code/{code}", response_model=PromoCodeRead, summary="Get promo code by code", dependencies=_view)
async def get_by_code(code: str, session: AsyncSession = Depends(get_tenant_session)) -> PromoCodeRead:
    return PromoCodeRead.model_validate(await PromoService(session).get_by_code(code))


# PUBLIC_INTERFACE
@router.get("/{promo_id}", response_model=PromoCodeRead, summary="Get promo code", dependencies=_view)
async def get_code(promo_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> PromoCodeRead:
    return PromoCodeRead.model_validate(await PromoService(session).get_by_id(promo_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{promo_id}",
    response_model=PromoCodeRead,
    summary="Update promo code",
    description="Partial update; set status to `active` to enable a draft code.",
    dependencies=_manage,
)
async def update_code(
    payload: PromoCodeUpdate,
    promo_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> PromoCodeRead:
    return PromoCodeRead.model_validate(await PromoService(session).update(promo_id, payload))


# PUBLIC_INTERFACE
@router.post("/{promo_id}/deactivate", response_model=PromoCodeRead, summary="Pause promo code", dependencies=_manage)
async def deactivate_code(promo_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> PromoCodeRead:
    return PromoCodeRead.model_validate(await PromoService(session).deactivate(promo_id))


# PUBLIC_INTERFACE
@router.get("/{promo_id}/stats", response_model=PromoStats, summary="Promo code usage", dependencies=_view)
async def code_stats(promo_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> PromoStats:
    return await PromoService(session).stats(promo_id)


# PUBLIC_INTERFACE
@router.get("/{promo_id}/redemptions", response_model=Page[RedemptionRead], summary="Redemptions", dependencies=_view)
async def list_redemptions(
    promo_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[RedemptionRead]:
    items, total = await PromoService(session).redemptions(promo_id, limit=limit, offset=offset)
    return Page[RedemptionRead](items=[RedemptionRead.model_validate(r) for r in items], total=total, limit=limit, offset=offset)
