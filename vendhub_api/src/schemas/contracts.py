from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ServiceType(str, Enum):
    LOCATION_OWNER = "location_owner"
    MAINTENANCE = "maintenance"
    SUPPLIER = "supplier"
    LOGISTICS = "logistics"
    OTHER = "other"


class ContractStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    TIERED = "tiered"
    HYBRID = "hybrid"


class CommissionPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ContractorRead(BaseModel):
    id: UUID
    company_name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    inn: Optional[str] = None
    address: Optional[str] = None
    service_type: str
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ContractorCreate(BaseModel):
    company_name: str = Field(...)
    contact_person: Optional[str] = Field(None)
    phone: Optional[str] = Field(None)
    email: Optional[str] = Field(None)
    inn: Optional[str] = Field(None, description="Taxpayer id")
    address: Optional[str] = Field(None)
    service_type: ServiceType = Field(ServiceType.LOCATION_OWNER)
    is_active: bool = Field(True)
    notes: Optional[str] = Field(None)


class ContractorUpdate(BaseModel):
    company_name: Optional[str] = Field(None)
    contact_person: Optional[str] = Field(None)
    phone: Optional[str] = Field(None)
    email: Optional[str] = Field(None)
    inn: Optional[str] = Field(None)
    address: Optional[str] = Field(None)
    service_type: Optional[ServiceType] = Field(None)
    is_active: Optional[bool] = Field(None)
    notes: Optional[str] = Field(None)


class CommissionTier(BaseModel):
    min_revenue: float = Field(..., ge=0)
    max_revenue: Optional[float] = Field(None, description="Open-ended when null")
    rate: float = Field(..., ge=0, le=100)


class ContractRead(BaseModel):
    """Contract read model."""
    id: UUID
    contractor_id: UUID
    contract_number: str
    start_date: date
    end_date: Optional[date] = None
    status: str
    commission_type: str
    commission_rate: Optional[float] = None
    commission_fixed_amount: Optional[float] = None
    commission_tiers: Optional[List[Dict[str, Any]]] = None
    commission_hybrid_fixed: Optional[float] = None
    commission_hybrid_rate: Optional[float] = None
    currency: str
    payment_term_days: int
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ContractCreate(BaseModel):
    contractor_id: UUID = Field(...)
    contract_number: str = Field(...)
    start_date: date = Field(...)
    end_date: Optional[date] = Field(None)
    commission_type: CommissionType = Field(CommissionType.PERCENTAGE)
    commission_rate: Optional[float] = Field(None, ge=0, le=100)
    commission_fixed_amount: Optional[float] = Field(None, ge=0)
    commission_tiers: Optional[List[CommissionTier]] = Field(None)
    commission_hybrid_fixed: Optional[float] = Field(None, ge=0)
    commission_hybrid_rate: Optional[float] = Field(None, ge=0, le=100)
    currency: str = Field("UZS")
    payment_term_days: int = Field(30, ge=0)
    notes: Optional[str] = Field(None)

    @model_validator(mode="after")
    def _dates(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ContractUpdate(BaseModel):
    end_date: Optional[date] = Field(None)
    commission_type: Optional[CommissionType] = Field(None)
    commission_rate: Optional[float] = Field(None, ge=0, le=100)
    commission_fixed_amount: Optional[float] = Field(None, ge=0)
    commission_tiers: Optional[List[CommissionTier]] = Field(None)
    commission_hybrid_fixed: Optional[float] = Field(None, ge=0)
    commission_hybrid_rate: Optional[float] = Field(None, ge=0, le=100)
    payment_term_days: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = Field(None)


class CommissionCalculate(BaseModel):
    period_start: date = Field(...)
    period_end: date = Field(...)

    @model_validator(mode="after")
    def _period(self):
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class CommissionRead(BaseModel):
    id: UUID
    contract_id: UUID
    period_start: date
    period_end: date
    total_revenue: float
    transaction_count: int
    commission_amount: float
    commission_type: str
    calculation_details: Dict[str, Any] = Field(default_factory=dict)
    payment_status: str
    payment_due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    payment_transaction_id: Optional[UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CommissionPay(BaseModel):
    payment_transaction_id: Optional[UUID] = Field(None)
