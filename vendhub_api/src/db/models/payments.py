from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import MONEY, Base, UUIDPkMixin, TimestampMixin, TenantMixin


class PaymentTransaction(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Payment attempt through a provider (Payme, Click, Uzum, cash, ...)."""
    __tablename__ = "payment_transactions"

    provider: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    amount: Mapped[float] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="UZS", server_default="UZS")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending", index=True)
    # Merchant-side order reference sent to providers (order number or QR payment id).
    order_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    machine_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True, index=True
    )
    client_user_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    provider_tx_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    raw_request: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    raw_response: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    details: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)

    refunds: Mapped[list["PaymentRefund"]] = relationship(
        "PaymentRefund",
        primaryjoin="PaymentTransaction.id==PaymentRefund.payment_transaction_id",
        lazy="selectin",
        order_by="PaymentRefund.created_at",
    )


class PaymentRefund(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    __tablename__ = "payment_refunds"

    payment_transaction_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payment_transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[float] = mapped_column(MONEY, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="customer_request")
    reason_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    provider_refund_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_by_user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
