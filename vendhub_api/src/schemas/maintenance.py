from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class MaintenanceType(str, Enum):
    PREVENTIVE = "preventive"
    CORRECTIVE = "corrective"
    PREDICTIVE = "predictive"
    EMERGENCY = "emergency"
    INSPECTION = "inspection"
    CALIBRATION = "calibration"
    CLEANING = "cleaning"
    UPGRADE = "upgrade"


class MaintenancePriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class MaintenanceStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    AWAITING_PARTS = "awaiting_parts"
    COMPLETED = "completed"
    VERIFIED = "verified"
    CANCELLED = "cancelled"


class FrequencyType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class PartRead(BaseModel):
    id: UUID
    maintenance_request_id: UUID
    product_id: Optional[UUID] = None
    part_name: str
    part_number: Optional[str] = None
    quantity_needed: float
    quantity_used: Optional[float] = None
    unit_price: float
    total_price: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class PartCreate(BaseModel):
    product_id: Optional[UUID] = Field(None)
    part_name: str = Field(...)
    part_number: Optional[str] = Field(None)
    quantity_needed: float = Field(1, gt=0)
    unit_price: float = Field(0, ge=0)
    notes: Optional[str] = Field(None)


class PartUpdate(BaseModel):
    part_name: Optional[str] = Field(None)
    part_number: Optional[str] = Field(None)
    quantity_needed: Optional[float] = Field(None, gt=0)
    quantity_used: Optional[float] = Field(None, ge=0)
    unit_price: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None)


class WorkLogRead(BaseModel):
    id: UUID
    maintenance_request_id: UUID
    technician_id: Optional[UUID] = None
    work_date: date
    start_time: str
    end_time: str
    duration_minutes: int
    hourly_rate: Optional[float] = None
    labor_cost: float
    is_billable: bool
    description: str

    class Config:
        from_attributes = True


class WorkLogCreate(BaseModel):
    technician_id: Optional[UUID] = Field(None, description="Defaults to the current user")
    work_date: date = Field(...)
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    hourly_rate: Optional[float] = Field(None, ge=0)
    is_billable: bool = Field(True)
    description: str = Field(...)

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        if not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class WorkLogUpdate(BaseModel):
    work_date: Optional[date] = Field(None)
    start_time: Optional[str] = Field(None)
    end_time: Optional[str] = Field(None)
    hourly_rate: Optional[float] = Field(None, ge=0)
    is_billable: Optional[bool] = Field(None)
    description: Optional[str] = Field(None)

    @field_validator("start_time", "end_time")
    @classmethod
    def _hhmm(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _HHMM.match(v):
            raise ValueError("Time must be in HH:MM format")
        return v


class MaintenanceRequestRead(BaseModel):
    """Maintenance request with its parts and work logs."""
    id: UUID
    request_number: str
    machine_id: UUID
    title: str
    description: Optional[str] = None
    maintenance_type: str
    priority: str
    status: str
    created_by_user_id: Optional[UUID] = None
    assigned_technician_id: Optional[UUID] = None
    scheduled_date: Optional[datetime] = None
    approved_by_user_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None
    downtime_start: Optional[datetime] = None
    downtime_end: Optional[datetime] = None
    downtime_minutes: Optional[int] = None
    estimated_cost: Optional[float] = None
    parts_cost: float
    labor_cost: float
    total_cost: float
    sla_due_date: Optional[datetime] = None
    sla_breached: bool
    rejection_reason: Optional[str] = None
    completion_notes: Optional[str] = None
    root_cause: Optional[str] = None
    actions_taken: Optional[str] = None
    recommendations: Optional[str] = None
    verified_by_user_id: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    maintenance_schedule_id: Optional[UUID] = None
    parts: List[PartRead] = Field(default_factory=list)
    work_logs: List[WorkLogRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MaintenanceRequestCreate(BaseModel):
    machine_id: UUID = Field(...)
    title: str = Field(...)
    description: Optional[str] = Field(None)
    maintenance_type: MaintenanceType = Field(MaintenanceType.CORRECTIVE)
    priority: MaintenancePriority = Field(MaintenancePriority.NORMAL)
    scheduled_date: Optional[datetime] = Field(None)
    estimated_duration: Optional[int] = Field(None, ge=0, description="Minutes")
    estimated_cost: Optional[float] = Field(None, ge=0)


class MaintenanceRequestUpdate(BaseModel):
    title: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    maintenance_type: Optional[MaintenanceType] = Field(None)
    priority: Optional[MaintenancePriority] = Field(None)
    scheduled_date: Optional[datetime] = Field(None)
    estimated_duration: Optional[int] = Field(None, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)


class ApproveRequest(BaseModel):
    estimated_cost: Optional[float] = Field(None, ge=0)


class RejectRequest(BaseModel):
    reason: str = Field(...)


class AssignTechnician(BaseModel):
    technician_id: UUID = Field(...)
    scheduled_date: Optional[datetime] = Field(None)


class StartWork(BaseModel):
    downtime_start: Optional[datetime] = Field(None)


class CompleteWork(BaseModel):
    completion_notes: Optional[str] = Field(None)
    root_cause: Optional[str] = Field(None)
    actions_taken: Optional[str] = Field(None)
    recommendations: Optional[str] = Field(None)
    downtime_end: Optional[datetime] = Field(None)


class VerifyWork(BaseModel):
    passed: bool = Field(...)
    notes: Optional[str] = Field(None)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None)


class ScheduleRead(BaseModel):
    id: UUID
    machine_id: UUID
    name: str
    description: Optional[str] = None
    maintenance_type: str
    frequency_type: str
    frequency_value: int
    day_of_month: Optional[int] = None
    next_due_date: Optional[date] = None
    last_executed_date: Optional[date] = None
    times_executed: int
    auto_create_request: bool
    is_active: bool
    estimated_duration: Optional[int] = None
    estimated_cost: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ScheduleCreate(BaseModel):
    machine_id: UUID = Field(...)
    name: str = Field(...)
    description: Optional[str] = Field(None)
    maintenance_type: MaintenanceType = Field(MaintenanceType.PREVENTIVE)
    frequency_type: FrequencyType = Field(...)
    frequency_value: int = Field(1, ge=1)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    next_due_date: Optional[date] = Field(None)
    auto_create_request: bool = Field(True)
    is_active: bool = Field(True)
    estimated_duration: Optional[int] = Field(None, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)


class ScheduleUpdate(BaseModel):
    name: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    maintenance_type: Optional[MaintenanceType] = Field(None)
    frequency_type: Optional[FrequencyType] = Field(None)
    frequency_value: Optional[int] = Field(None, ge=1)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    next_due_date: Optional[date] = Field(None)
    auto_create_request: Optional[bool] = Field(None)
    is_active: Optional[bool] = Field(None)
    estimated_duration: Optional[int] = Field(None, ge=0)
    estimated_cost: Optional[float] = Field(None, ge=0)


class MaintenanceStats(BaseModel):
    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
    sla_breached: int = 0
    average_completion_minutes: float = 0
    total_cost: float = 0
