from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import MONEY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class Order(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Customer order placed at (or for) a machine."""
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_order_number"),
    )

    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    machine_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending", index=True)
    payment_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    payment_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subtotal_amount: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    discount_amount: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    bonus_amount: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    promo_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    promo_discount: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    points_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    prepared_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        primaryjoin="Order.id==OrderItem.order_id",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )


class OrderItem(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "order_items"

    order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_sku: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    total_price: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
