from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.orders import Order, OrderItem
from src.repositories.orders import OrderRepository
from src.repositories.products import ProductRepository
from src.repositories.security import SecurityRepository
from src.schemas.orders import OrderCreate, OrderStats
from src.services.base import BaseService, bad_request, not_found, utcnow
from src.services.promo import PromoService
from src.services.realtime import broadcast_manager

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"preparing", "cancelled"}),
    "preparing": frozenset({"ready", "cancelled"}),
    "ready": frozenset({"completed", "cancelled"}),
    "completed": frozenset({"refunded"}),
    "cancelled": frozenset(),
    "refunded": frozenset(),
}

# Status -> timestamp column stamped on entry.
STATUS_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "ready": "prepared_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
    "refunded": "refunded_at",
}

OPEN_STATUSES = ("pending", "confirmed", "preparing", "ready")


# PUBLIC_INTERFACE
def can_transition(current: str, new: str) -> bool:
    return new in ORDER_TRANSITIONS.get(current, frozenset())


# PUBLIC_INTERFACE
def format_order_number(year: int, sequence: int) -> str:
    return f"ORD-{year}-{sequence:05d}"


# PUBLIC_INTERFACE
def apply_bonus(subtotal: float, promo_discount: float, use_points: Optional[int], points_balance: int) -> float:
    """Whole points spent on an order: never more than what is left to pay, only when the balance covers the request."""
    if not use_points or points_balance < use_points:
        return 0.0
    return float(math.floor(max(0.0, min(use_points, subtotal - promo_discount))))


class OrderService(BaseService):
    """Order lifecycle. Creation and status changes are pushed to `orders:{tenant}` subscribers."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = OrderRepository(session)
        self.products = ProductRepository(session)
        self.users = SecurityRepository(session)
        self.promo = PromoService(session)

    async def _notify(self, event_type: str, order: Order, **extra) -> None:
        if not self.tenant_id:
            return
        payload = {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
            "payment_status": order.payment_status,
            "total_amount": order.total_amount,
            "machine_id": str(order.machine_id) if order.machine_id else None,
            **extra,
        }
        await broadcast_manager.publish_order_event(self.tenant_id, event_type, payload, user_id=order.user_id)

    # PUBLIC_INTERFACE
    async def create_order(self, user_id: Optional[UUID], payload: OrderCreate) -> Order:
        """
        Price the items from the catalog, apply promo and loyalty points, and store the order.

        An invalid promo code does not fail the order; it is simply not applied.
        """
        products = {p.id: p for p in await self.products.get_many(i.product_id for i in payload.items)}
        if len(products) != len({i.product_id for i in payload.items}):
            raise bad_request("Some products not found")

        items: List[OrderItem] = []
        subtotal = 0.0
        for line in payload.items:
            product = products[line.product_id]
            unit_price = float(product.selling_price or 0)
            total = unit_price * line.quantity
            subtotal += total
            items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    product_sku=product.sku,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    total_price=total,
                    notes=line.notes,
                )
            )

        promo_code = None
        promo_discount = 0.0
        if payload.promo_code:
            result = await self.promo.validate(payload.promo_code, user_id, subtotal)
            if result.valid:
                promo_code = payload.promo_code.upper()
                promo_discount = float(result.discount_amount or 0)
            else:
                logger.debug("Promo code %s not applied: %s", payload.promo_code, result.reason)

        bonus = 0.0
        user = None
        if payload.use_points and user_id:
            user = await self.users.get_user_by_id(user_id, for_update=True)
            bonus = apply_bonus(subtotal, promo_discount, payload.use_points, user.points_balance if user else 0)
            if user and bonus:
                user.points_balance -= int(bonus)

        sequence = await self.repo.count_orders() + 1
        order = Order(
            order_number=format_order_number(utcnow().year, sequence),
            user_id=user_id,
            machine_id=payload.machine_id,
            status="pending",
            payment_status="pending",
            payment_method=payload.payment_method.value if payload.payment_method else None,
            subtotal_amount=subtotal,
            discount_amount=promo_discount,
            bonus_amount=bonus,
            total_amount=max(0.0, subtotal - promo_discount - bonus),
            promo_code=promo_code,
            promo_discount=promo_discount,
            points_used=int(bonus),
            notes=payload.notes,
        )
        order.items = items
        order = await self.repo.save(order)
        logger.info("Order created: %s total=%s", order.order_number, order.total_amount)
        await self._notify("order.created", order)
        return order

    # PUBLIC_INTERFACE
    async def get(self, order_id: UUID) -> Order:
        order = await self.repo.get(order_id)
        if not order:
            raise not_found("Order not found")
        return order

    # PUBLIC_INTERFACE
    async def get_by_number(self, order_number: str) -> Order:
        order = await self.repo.get_by_number(order_number)
        if not order:
            raise not_found("Order not found")
        return order

    # PUBLIC_INTERFACE
    async def list_orders(self, *, limit: int = 20, offset: int = 0, **filters) -> Tuple[List[Order], int]:
        return await self.repo.list_orders(limit=limit, offset=offset, **filters)

    # PUBLIC_INTERFACE
    async def user_orders(self, user_id: UUID, limit: int = 20, offset: int = 0) -> Tuple[List[Order], int]:
        return await self.repo.list_orders(user_id=user_id, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def update_status(self, order_id: UUID, new_status: str, reason: Optional[str] = None) -> Order:
        order = await self.get(order_id)
        previous = order.status
        if not can_transition(previous, new_status):
            raise bad_request(f"Invalid status transition from {previous} to {new_status}")
        order.status = new_status
        column = STATUS_TIMESTAMPS.get(new_status)
        if column:
            setattr(order, column, utcnow())
        if new_status == "cancelled":
            order.cancellation_reason = reason
        order = await self.repo.save(order)
        logger.info("Order %s: %s -> %s", order.order_number, previous, new_status)
        await self._notify("order.status_changed", order, previous_status=previous)
        return order

    # PUBLIC_INTERFACE
    async def update_payment_status(
        self, order_id: UUID, payment_status: str, payment_method: Optional[str] = None
    ) -> Order:
        order = await self.get(order_id)
        order.payment_status = payment_status
        if payment_method:
            order.payment_method = payment_method
        if payment_status == "paid":
            order.paid_at = utcnow()
        return await self.repo.save(order)

    # PUBLIC_INTERFACE
    async def stats(self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> OrderStats:
        counts = await self.repo.status_counts(date_from, date_to)
        by_method = await self.repo.paid_revenue_by_method(date_from, date_to)
        completed = counts.get("completed", 0)
        revenue = round(sum(by_method.values()), 2)
        return OrderStats(
            total_orders=sum(counts.values()),
            pending_orders=sum(counts.get(s, 0) for s in OPEN_STATUSES),
            completed_orders=completed,
            cancelled_orders=counts.get("cancelled", 0),
            total_revenue=revenue,
            average_order_value=round(revenue / completed, 2) if completed else 0,
            revenue_by_payment_method=by_method,
        )
