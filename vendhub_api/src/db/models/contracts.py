from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import MONEY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class Contractor(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Counterparty: location owner, service company or supplier."""
    __tablename__ = "contractors"

    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_person: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    inn: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    service_type: Mapped[str] = mapped_column(Text, nullable=False, default="location_owner", server_default="location_owner")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Contract(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Agreement with a contractor defining how commission on machine revenue is paid."""
    __tablename__ = "contracts"
    __table_args__ = (
        UniqueConstraint("tenant_id", "contract_number", name="uq_contracts_tenant_contract_number"),
    )

    contractor_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contractors.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    contract_number: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="draft", server_default="draft")
    commission_type: Mapped[str] = mapped_column(Text, nullable=False, default="percentage", server_default="percentage")
    commission_rate: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    commission_fixed_amount: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    # [{"min_revenue": 0, "max_revenue": 1000000, "rate": 10}, ...]
    commission_tiers: Mapped[Optional[list]] = mapped_column(JSONB, nullable=True)
    commission_hybrid_fixed: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    commission_hybrid_rate: Mapped[Optional[float]] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="UZS", server_default="UZS")
    payment_term_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30, server_default=text("30"))
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CommissionCalculation(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Commission owed under a contract for one revenue period."""
    __tablename__ = "commission_calculations"

    contract_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_revenue: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    commission_amount: Mapped[float] = mapped_column(MONEY, nullable=False, default=0)
    commission_type: Mapped[str] = mapped_column(Text, nullable=False)
    calculation_details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    payment_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    payment_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_transaction_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    calculated_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
