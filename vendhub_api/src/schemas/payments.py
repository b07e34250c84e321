from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PaymentProvider(str, Enum):
    PAYME = "payme"
    CLICK = "click"
    UZUM = "uzum"
    CASH = "cash"
    WALLET = "wallet"
    TELEGRAM_STARS = "telegram_stars"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class RefundReason(str, Enum):
    CUSTOMER_REQUEST = "customer_request"
    MACHINE_ERROR = "machine_error"
    DUPLICATE = "duplicate"
    FRAUD = "fraud"
    OTHER = "other"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RefundRead(BaseModel):
    id: UUID
    payment_transaction_id: UUID
    amount: float
    reason: str
    reason_note: Optional[str] = None
    status: str
    provider_refund_id: Optional[str] = None
    error_message: Optional[str] = None
    processed_by_user_id: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionRead(BaseModel):
    """Payment transaction read model."""
    id: UUID = Field(...)
    provider: str = Field(...)
    amount: float = Field(...)
    currency: str = Field(...)
    status: str = Field(...)
    order_id: Optional[str] = Field(None, description="Merchant order reference sent to the provider")
    machine_id: Optional[UUID] = Field(None)
    client_user_id: Optional[UUID] = Field(None)
    provider_tx_id: Optional[str] = Field(None)
    error_message: Optional[str] = Field(None)
    processed_at: Optional[datetime] = Field(None)
    details: Dict[str, Any] = Field(default_factory=dict)
    refunds: List[RefundRead] = Field(default_factory=list)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class CheckoutRequest(BaseModel):
    """Start a provider checkout for an order."""
    amount: float = Field(..., gt=0, description="Amount in UZS")
    order_id: str = Field(..., description="Merchant order reference")
    machine_id: Optional[UUID] = Field(None)
    client_user_id: Optional[UUID] = Field(None)
    return_url: Optional[str] = Field(None, description="Uzum only: where to send the customer afterwards")


class PaymentResult(BaseModel):
    provider: str
    status: str
    amount: float
    order_id: str
    transaction_id: Optional[UUID] = None
    checkout_url: Optional[str] = None


class QrPaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    machine_id: UUID = Field(...)


class QrPaymentResult(BaseModel):
    qr_code: str = Field(..., description="base64 JSON {v, id, a, m, exp}")
    payment_id: str
    amount: float
    machine_id: UUID
    expires_at: datetime
    checkout_urls: Dict[str, str] = Field(default_factory=dict)


class RefundCreate(BaseModel):
    payment_transaction_id: UUID = Field(...)
    amount: Optional[float] = Field(None, gt=0, description="Defaults to the full transaction amount")
    reason: RefundReason = Field(RefundReason.CUSTOMER_REQUEST)
    reason_note: Optional[str] = Field(None)


class TransactionStats(BaseModel):
    total_revenue: float = 0
    total_transactions: int = 0
    by_provider: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    by_status: Dict[str, int] = Field(default_factory=dict)


class PaymeRequest(BaseModel):
    """Payme merchant API JSON-RPC call."""
    model_config = ConfigDict(extra="allow")

    method: str
    params: Dict[str, Any] = Field(default_factory=dict)
    id: Optional[int] = None


class ClickRequest(BaseModel):
    """Click prepare/complete callback (form or JSON)."""
    model_config = ConfigDict(extra="allow")

    click_trans_id: str
    service_id: str
    click_paydoc_id: Optional[str] = None
    merchant_trans_id: str
    merchant_prepare_id: Optional[str] = None
    amount: float
    action: int
    error: int = 0
    error_note: Optional[str] = None
    sign_time: str
    sign_string: str


class UzumRequest(BaseModel):
    """Uzum Bank status callback."""
    model_config = ConfigDict(extra="allow")

    transactionId: str
    orderId: str
    amount: float
    status: str
    signature: str
