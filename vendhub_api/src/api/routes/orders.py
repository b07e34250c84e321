from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_active_user, get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.orders import (
    OrderCreate,
    OrderRead,
    OrderStats,
    OrderStatus,
    OrderStatusUpdate,
    PaymentStatus,
    PaymentStatusUpdate,
)
from src.services.orders import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

_view = [Depends(require_roles("admin", "manager", "operator", "accountant", "orders:view", "orders:manage"))]
_manage = [Depends(require_roles("admin", "manager", "operator", "orders:manage"))]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create order",
    description=(
        "Create an order for the current user. Prices come from the catalog; an optional promo code "
        "and loyalty points reduce the total. Publishes `order.created`."
    ),
)
async def create_order(
    payload: OrderCreate,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(get_current_active_user),
) -> OrderRead:
    return OrderRead.model_validate(await OrderService(session).create_order(user.id, payload))


# PUBLIC_INTERFACE
@router.get("", response_model=Page[OrderRead], summary="List orders", dependencies=_view)
async def list_orders(
    session: AsyncSession = Depends(get_tenant_session),
    status_: Optional[OrderStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None),
    machine_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[OrderRead]:
    items, total = await OrderService(session).list_orders(
        status=status_.value if status_ else None,
        payment_status=payment_status.value if payment_status else None,
        machine_id=machine_id,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return Page[OrderRead](items=[OrderRead.model_validate(o) for o in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.get("/my", response_model=Page[OrderRead], summary="Current user's orders")
async def my_orders(
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(get_current_active_user),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[OrderRead]:
    items, total = await OrderService(session).user_orders(user.id, limit=limit, offset=offset)
    return Page[OrderRead](items=[OrderRead.model_validate(o) for o in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.get("/stats", response_model=OrderStats, summary="Order statistics", dependencies=_view)
async def order_stats(
    session: AsyncSession = Depends(get_tenant_session),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
) -> OrderStats:
    return await OrderService(session).stats(date_from, date_to)


# PUBLIC_INTERFACE
@router.get("/number/{order_number}", response_model=OrderRead, summary="Get order by number", dependencies=_view)
async def get_by_number(order_number: str, session: AsyncSession = Depends(get_tenant_session)) -> OrderRead:
    return OrderRead.model_validate(await OrderService(session).get_by_number(order_number))


# PUBLIC_INTERFACE
@router.get("/{order_id}", response_model=OrderRead, summary="Get order", dependencies=_view)
async def get_order(order_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> OrderRead:
    return OrderRead.model_validate(await OrderService(session).get(order_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{order_id}/status",
    response_model=OrderRead,
    summary="Change order status",
    description="Move the order along its workflow and publish `order.status_changed`.",
    dependencies=_manage,
)
async def update_order_status(
    payload: OrderStatusUpdate,
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> OrderRead:
    order = await OrderService(session).update_status(order_id, payload.status.value, payload.reason)
    return OrderRead.model_validate(order)


# PUBLIC_INTERFACE
@router.patch("/{order_id}/payment-status", response_model=OrderRead, summary="Change payment status", dependencies=_manage)
async def update_payment_status(
    payload: PaymentStatusUpdate,
    order_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> OrderRead:
    order = await OrderService(session).update_payment_status(
        order_id, payload.payment_status.value, payload.payment_method.value if payload.payment_method else None
    )
    return OrderRead.model_validate(order)
