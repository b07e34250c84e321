from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import MONEY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class FiscalDevice(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Online cash register (MultiKassa terminal) that fiscalizes receipts."""
    __tablename__ = "fiscal_devices"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    provider: Mapped[str] = mapped_column(Text, nullable=False, default="multikassa", server_default="multikassa")
    serial_number: Mapped[str] = mapped_column(Text, nullable=False)
    terminal_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # {"login", "password", "company_tin"}
    credentials: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # {"base_url", "default_cashier", "auto_open_shift"}
    config: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    sandbox_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="inactive", server_default="inactive")
    machine_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True
    )


class FiscalShift(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "fiscal_shifts"

    device_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("fiscal_devices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_shift_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shift_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="open", server_default="open")
    cashier_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    z_report_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    z_report_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_sales: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    total_refunds: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    total_cash: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    total_card: Mapped[float] = mapped_column(MONEY, nullable=False, default=0, server_default=text("0"))
    receipts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    vat_summary: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)


class FiscalReceipt(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "fiscal_receipts"

    device_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("fiscal_devices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shift_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("fiscal_shifts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    order_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="sale", server_default="sale")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending", index=True)
    items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    payment: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    total: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    vat_total: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    external_receipt_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fiscal_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fiscal_sign: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qr_code_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receipt_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fiscalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)


class FiscalQueueItem(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Provider operation awaiting (re)delivery with exponential backoff."""
    __tablename__ = "fiscal_queue"

    device_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("fiscal_devices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    operation: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending", index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=5, server_default=text("5"))
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
