from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class DeviceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    ERROR = "error"


class ReceiptType(str, Enum):
    SALE = "sale"
    REFUND = "refund"


class ReceiptStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class QueueOperation(str, Enum):
    RECEIPT_SALE = "receipt_sale"
    RECEIPT_REFUND = "receipt_refund"
    SHIFT_OPEN = "shift_open"
    SHIFT_CLOSE = "shift_close"
    X_REPORT = "x_report"


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    RETRY = "retry"


class DeviceCredentials(BaseModel):
    login: str = Field(...)
    password: str = Field(...)
    company_tin: Optional[str] = Field(None, description="Company taxpayer id (INN)")


class DeviceConfig(BaseModel):
    base_url: Optional[str] = Field(None, description="Provider API root; defaults to MULTIKASSA_DEFAULT_BASE_URL")
    default_cashier: Optional[str] = Field(None)
    auto_open_shift: bool = Field(False, description="Open a shift automatically when a receipt needs one")


class DeviceRead(BaseModel):
    """Fiscal device read model. Credentials are never returned."""
    id: UUID
    name: str
    provider: str
    serial_number: str
    terminal_id: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    sandbox_mode: bool
    status: str
    machine_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DeviceCreate(BaseModel):
    name: str = Field(...)
    provider: str = Field("multikassa")
    serial_number: str = Field(...)
    terminal_id: Optional[str] = Field(None)
    credentials: DeviceCredentials = Field(...)
    config: DeviceConfig = Field(default_factory=DeviceConfig)
    sandbox_mode: bool = Field(True)
    machine_id: Optional[UUID] = Field(None)


class DeviceUpdate(BaseModel):
    """Partial update; credentials and config are merged into the stored values."""
    name: Optional[str] = Field(None)
    terminal_id: Optional[str] = Field(None)
    credentials: Optional[Dict[str, Any]] = Field(None)
    config: Optional[Dict[str, Any]] = Field(None)
    sandbox_mode: Optional[bool] = Field(None)
    machine_id: Optional[UUID] = Field(None)


class ShiftRead(BaseModel):
    id: UUID
    device_id: UUID
    external_shift_id: Optional[str] = None
    shift_number: int
    status: str
    cashier_name: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    z_report_number: Optional[str] = None
    z_report_url: Optional[str] = None
    total_sales: float
    total_refunds: float
    total_cash: float
    total_card: float
    receipts_count: int
    vat_summary: List[Any] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ShiftOpen(BaseModel):
    cashier_name: str = Field(..., description="Cashier printed on receipts")


class XReport(BaseModel):
    total_sales: float = 0
    total_refunds: float = 0
    total_cash: float = 0
    total_card: float = 0
    receipts_count: int = 0
    vat_summary: List[Any] = Field(default_factory=list)


class ReceiptItemIn(BaseModel):
    name: str = Field(...)
    ikpu_code: Optional[str] = Field(None, description="17 to 20 digit product classification code")
    package_code: Optional[str] = Field(None)
    quantity: float = Field(..., gt=0)
    price: float = Field(..., ge=0, description="Gross unit price in UZS")
    vat_rate: float = Field(12, ge=0, le=100)
    unit: Optional[str] = Field(None)


class ReceiptPayment(BaseModel):
    cash: float = Field(0, ge=0)
    card: float = Field(0, ge=0)


class ReceiptCreate(BaseModel):
    device_id: UUID = Field(...)
    type: ReceiptType = Field(ReceiptType.SALE)
    items: List[ReceiptItemIn] = Field(..., min_length=1)
    payment: ReceiptPayment = Field(default_factory=ReceiptPayment)
    order_id: Optional[str] = Field(None)
    transaction_id: Optional[UUID] = Field(None)
    operator_name: Optional[str] = Field(None)


class ReceiptRead(BaseModel):
    id: UUID
    device_id: UUID
    shift_id: Optional[UUID] = None
    order_id: Optional[str] = None
    transaction_id: Optional[UUID] = None
    type: str
    status: str
    items: List[Dict[str, Any]] = Field(default_factory=list)
    payment: Dict[str, Any] = Field(default_factory=dict)
    total: float
    vat_total: float
    external_receipt_id: Optional[str] = None
    fiscal_number: Optional[str] = None
    fiscal_sign: Optional[str] = None
    qr_code_url: Optional[str] = None
    receipt_url: Optional[str] = None
    fiscalized_at: Optional[datetime] = None
    retry_count: int
    last_error: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class QueueItemRead(BaseModel):
    id: UUID
    device_id: UUID
    operation: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: str
    priority: int
    retry_count: int
    max_retries: int
    next_retry_at: Optional[datetime] = None
    last_error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DeviceStatistics(BaseModel):
    device_name: str
    device_status: str
    current_shift: Optional[Dict[str, Any]] = None
    today: Dict[str, float] = Field(default_factory=dict)
    queue: Dict[str, int] = Field(default_factory=dict)


class QueueItemCreate(BaseModel):
    device_id: UUID = Field(...)
    operation: QueueOperation = Field(...)
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(0, description="Higher runs first")
