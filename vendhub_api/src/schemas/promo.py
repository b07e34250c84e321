from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PromoType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    LOYALTY_BONUS = "loyalty_bonus"


class PromoStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"


class PromoCodeRead(BaseModel):
    """Promo code read model."""
    id: UUID = Field(...)
    code: str = Field(...)
    name: str = Field(...)
    description: Optional[str] = Field(None)
    type: str = Field(...)
    value: float = Field(...)
    status: str = Field(...)
    valid_from: datetime = Field(...)
    valid_until: Optional[datetime] = Field(None)
    max_total_uses: Optional[int] = Field(None)
    max_uses_per_user: int = Field(...)
    current_total_uses: int = Field(...)
    min_order_amount: Optional[float] = Field(None)
    max_discount_amount: Optional[float] = Field(None)
    created_by_user_id: Optional[UUID] = Field(None)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class PromoCodeCreate(BaseModel):
    """Create promo code payload. New codes start as draft."""
    code: str = Field(..., min_length=2, max_length=50, description="Stored uppercase")
    name: str = Field(...)
    description: Optional[str] = Field(None)
    type: PromoType = Field(...)
    value: float = Field(..., ge=0)
    valid_from: datetime = Field(...)
    valid_until: Optional[datetime] = Field(None)
    max_total_uses: Optional[int] = Field(None, ge=1)
    max_uses_per_user: int = Field(1, ge=1)
    min_order_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)

    @field_validator("code")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()


class PromoCodeUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=2, max_length=50)
    name: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    type: Optional[PromoType] = Field(None)
    value: Optional[float] = Field(None, ge=0)
    status: Optional[PromoStatus] = Field(None)
    valid_from: Optional[datetime] = Field(None)
    valid_until: Optional[datetime] = Field(None)
    max_total_uses: Optional[int] = Field(None, ge=1)
    max_uses_per_user: Optional[int] = Field(None, ge=1)
    min_order_amount: Optional[float] = Field(None, ge=0)
    max_discount_amount: Optional[float] = Field(None, ge=0)

    @field_validator("code")
    @classmethod
    def _upper(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class PromoValidateRequest(BaseModel):
    code: str = Field(...)
    client_user_id: Optional[UUID] = Field(None)
    order_amount: Optional[float] = Field(None, ge=0)


class PromoValidationResult(BaseModel):
    valid: bool = Field(...)
    reason: Optional[str] = Field(None, description="Why the code cannot be used")
    discount_amount: Optional[float] = Field(None)
    promo_code_id: Optional[UUID] = Field(None)
    type: Optional[str] = Field(None)


class PromoRedeemRequest(BaseModel):
    code: str = Field(...)
    client_user_id: UUID = Field(...)
    order_id: Optional[UUID] = Field(None)
    order_amount: Optional[float] = Field(None, ge=0)


class RedemptionRead(BaseModel):
    id: UUID
    promo_code_id: UUID
    client_user_id: UUID
    order_id: Optional[UUID] = None
    discount_applied: float
    loyalty_points_awarded: int
    order_amount: Optional[float] = None
    redeemed_at: datetime

    class Config:
        from_attributes = True


class PromoStats(BaseModel):
    total_uses: int = 0
    total_discount_given: float = 0
    total_loyalty_points_awarded: int = 0
    average_discount: float = 0
