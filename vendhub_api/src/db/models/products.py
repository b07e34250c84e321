from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import MONEY, QUANTITY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class Product(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Sellable product or ingredient stocked in warehouses and machines."""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
    )

    sku: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(Text, nullable=False, default="other", server_default="other")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active")
    unit_of_measure: Mapped[str] = mapped_column(Text, nullable=False, default="pcs", server_default="pcs")
    is_ingredient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    barcode: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    purchase_price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    selling_price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="UZS", server_default="UZS")
    # Fiscal classification codes required on receipts.
    ikpu_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    package_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vat_rate: Mapped[float] = mapped_column(MONEY, nullable=False, default=12, server_default=text("12"))
    min_stock_level: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    max_stock_level: Mapped[Optional[float]] = mapped_column(QUANTITY, nullable=True)
    shelf_life_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ProductPriceHistory(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "product_price_history"

    product_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purchase_price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    selling_price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_to: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
