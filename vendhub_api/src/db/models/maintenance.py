from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import MONEY, QUANTITY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class MaintenanceRequest(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Maintenance work on a machine, from draft through verification."""
    __tablename__ = "maintenance_requests"
    __table_args__ = (
        UniqueConstraint("tenant_id", "request_number", name="uq_maintenance_requests_tenant_request_number"),
    )

    request_number: Mapped[str] = mapped_column(Text, nullable=False)
    machine_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    maintenance_type: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="normal", server_default="normal")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft", server_default="draft", index=True)
    created_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    assigned_technician_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actual_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    downtime_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    downtime_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    downtime_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    parts_cost: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    labor_cost: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    total_cost: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    sla_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    root_cause: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actions_taken: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recommendations: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    verified_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    maintenance_schedule_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("maintenance_schedules.id", ondelete="SET NULL"), nullable=True
    )

    parts: Mapped[list["MaintenancePart"]] = relationship(
        "MaintenancePart",
        primaryjoin="MaintenanceRequest.id==MaintenancePart.maintenance_request_id",
        lazy="selectin",
        order_by="MaintenancePart.created_at",
        viewonly=True,
    )
    work_logs: Mapped[list["MaintenanceWorkLog"]] = relationship(
        "MaintenanceWorkLog",
        primaryjoin="MaintenanceRequest.id==MaintenanceWorkLog.maintenance_request_id",
        lazy="selectin",
        order_by="MaintenanceWorkLog.created_at",
        viewonly=True,
    )


class MaintenancePart(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "maintenance_parts"

    maintenance_request_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    part_name: Mapped[str] = mapped_column(Text, nullable=False)
    part_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity_needed: Mapped[float] = mapped_column(QUANTITY, nullable=False, default=1)
    quantity_used: Mapped[Optional[float]] = mapped_column(QUANTITY, nullable=True)
    unit_price: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    total_price: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class MaintenanceWorkLog(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "maintenance_work_logs"

    maintenance_request_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("maintenance_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    technician_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(Text, nullable=False)
    end_time: Mapped[str] = mapped_column(Text, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    hourly_rate: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    labor_cost: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    description: Mapped[str] = mapped_column(Text, nullable=False)


class MaintenanceSchedule(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Recurring maintenance plan that spawns requests when due."""
    __tablename__ = "maintenance_schedules"

    machine_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    maintenance_type: Mapped[str] = mapped_column(Text, nullable=False, default="preventive")
    frequency_type: Mapped[str] = mapped_column(Text, nullable=False)
    frequency_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=text("1"))
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    next_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_executed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    times_executed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    auto_create_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    estimated_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    estimated_cost: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
