from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    PAYME = "payme"
    CLICK = "click"
    UZUM = "uzum"
    WALLET = "wallet"
    BONUS = "bonus"


class OrderItemRead(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    product_sku: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    """Order read model with its line items."""
    id: UUID = Field(...)
    order_number: str = Field(..., description="ORD-{year}-{n}")
    user_id: Optional[UUID] = Field(None)
    machine_id: Optional[UUID] = Field(None)
    status: str = Field(...)
    payment_status: str = Field(...)
    payment_method: Optional[str] = Field(None)
    subtotal_amount: float = Field(...)
    discount_amount: float = Field(...)
    bonus_amount: float = Field(...)
    total_amount: float = Field(...)
    promo_code: Optional[str] = Field(None)
    promo_discount: float = Field(0)
    points_used: int = Field(0)
    notes: Optional[str] = Field(None)
    confirmed_at: Optional[datetime] = Field(None)
    prepared_at: Optional[datetime] = Field(None)
    completed_at: Optional[datetime] = Field(None)
    cancelled_at: Optional[datetime] = Field(None)
    cancellation_reason: Optional[str] = Field(None)
    refunded_at: Optional[datetime] = Field(None)
    paid_at: Optional[datetime] = Field(None)
    items: List[OrderItemRead] = Field(default_factory=list)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class OrderItemCreate(BaseModel):
    product_id: UUID = Field(...)
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = Field(None)


class OrderCreate(BaseModel):
    """Create order payload. Prices come from the catalog."""
    machine_id: Optional[UUID] = Field(None)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    payment_method: Optional[PaymentMethod] = Field(None)
    promo_code: Optional[str] = Field(None)
    use_points: Optional[int] = Field(None, ge=0, description="Loyalty points to spend, 1 point = 1 UZS")
    notes: Optional[str] = Field(None)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus = Field(...)
    reason: Optional[str] = Field(None, description="Cancellation reason")


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus = Field(...)
    payment_method: Optional[PaymentMethod] = Field(None)


class OrderStats(BaseModel):
    total_orders: int = 0
    pending_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    total_revenue: float = 0
    average_order_value: float = 0
    revenue_by_payment_method: Dict[str, float] = Field(default_factory=dict)
