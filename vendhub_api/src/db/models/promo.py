from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import MONEY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class PromoCode(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Discount or loyalty-bonus code redeemable on orders."""
    __tablename__ = "promo_codes"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_promo_codes_tenant_code"),
    )

    code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[float] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft", server_default="draft")
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    max_total_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_uses_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    current_total_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    min_order_amount: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    max_discount_amount: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    created_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)


class PromoCodeRedemption(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "promo_code_redemptions"

    promo_code_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_user_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    discount_applied: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    loyalty_points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order_amount: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"), nullable=False)
