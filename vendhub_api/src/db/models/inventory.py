from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, ForeignKey, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import MONEY, QUANTITY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class WarehouseInventory(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Level 1: central warehouse stock per product."""
    __tablename__ = "warehouse_inventory"
    __table_args__ = (
        UniqueConstraint("tenant_id", "product_id", name="uq_warehouse_inventory_tenant_product"),
    )

    product_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    current_quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    reserved_quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    min_stock_level: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    max_stock_level: Mapped[Optional[float]] = mapped_column(QUANTITY, nullable=True)
    avg_purchase_price: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    last_purchase_price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    last_restocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    location_in_warehouse: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def available_quantity(self) -> float:
        return float(self.current_quantity or 0) - float(self.reserved_quantity or 0)


class OperatorInventory(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Level 2: stock carried by a field operator."""
    __tablename__ = "operator_inventory"
    __table_args__ = (
        UniqueConstraint("tenant_id", "operator_id", "product_id", name="uq_operator_inventory_tenant_operator_product"),
    )

    operator_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    current_quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    reserved_quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    last_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class MachineInventory(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Level 3: stock loaded into a machine slot."""
    __tablename__ = "machine_inventory"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "machine_id", "product_id", "slot_number",
            name="uq_machine_inventory_tenant_machine_product_slot",
        ),
    )

    machine_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    slot_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    current_quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    min_stock_level: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    max_capacity: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    total_sold: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=0, server_default=text("0"))
    last_refilled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def needs_refill(self) -> bool:
        return float(self.current_quantity or 0) <= float(self.min_stock_level or 0)

    @property
    def fill_percentage(self) -> int:
        if not self.max_capacity or self.max_capacity <= 0:
            return 100
        return round(float(self.current_quantity) / float(self.max_capacity) * 100)


class InventoryMovement(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Ledger entry for every stock change across the three levels."""
    __tablename__ = "inventory_movements"

    movement_type: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    product_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[float] = mapped_column(QUANTITY, nullable=False)
    operator_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    machine_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True
    )
    performed_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    operation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"), nullable=False)
    unit_cost: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    total_cost: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes.
    details: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
