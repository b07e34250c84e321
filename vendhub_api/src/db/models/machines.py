from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import MONEY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class Machine(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Vending machine installed at a location."""
    __tablename__ = "machines"
    __table_args__ = (
        UniqueConstraint("tenant_id", "machine_number", name="uq_machines_tenant_machine_number"),
    )

    machine_number: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    serial_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="coffee", server_default="coffee")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active", index=True)
    connection_status: Mapped[str] = mapped_column(Text, nullable=False, default="unknown", server_default="unknown")
    manufacturer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    firmware_version: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    contract_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    last_refill_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_maintenance_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_ping_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    telemetry: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class MachineSlot(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Product slot (spiral, canister) inside a machine."""
    __tablename__ = "machine_slots"
    __table_args__ = (
        UniqueConstraint("tenant_id", "machine_id", "slot_number", name="uq_machine_slots_tenant_machine_slot"),
    )

    machine_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_number: Mapped[str] = mapped_column(Text, nullable=False)
    product_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    current_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    cost_price: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    total_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    last_refilled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def needs_refill(self) -> bool:
        return self.capacity > 0 and self.current_quantity <= self.min_quantity

    @property
    def fill_percentage(self) -> int:
        if not self.capacity or self.capacity <= 0:
            return 0
        return round(self.current_quantity / self.capacity * 100)


class MachineErrorLog(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Error reported by a machine or an operator."""
    __tablename__ = "machine_error_logs"

    machine_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    error_code: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(Text, nullable=False, default="error", server_default="error")
    context: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text("now()"), nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
