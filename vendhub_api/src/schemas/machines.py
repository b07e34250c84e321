from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class MachineType(str, Enum):
    COFFEE = "coffee"
    SNACK = "snack"
    DRINK = "drink"
    COMBO = "combo"
    FRESH = "fresh"
    ICE_CREAM = "ice_cream"
    WATER = "water"


class MachineStatus(str, Enum):
    ACTIVE = "active"
    LOW_STOCK = "low_stock"
    ERROR = "error"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"
    DISABLED = "disabled"


class ConnectionStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNSTABLE = "unstable"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class MachineRead(BaseModel):
    """Machine read model."""
    id: UUID = Field(..., description="Machine id")
    machine_number: str = Field(..., description="Operator-facing machine number, e.g. VM-0001")
    name: str = Field(...)
    serial_number: Optional[str] = Field(None)
    type: str = Field(...)
    status: str = Field(...)
    connection_status: str = Field(...)
    manufacturer: Optional[str] = Field(None)
    model: Optional[str] = Field(None)
    firmware_version: Optional[str] = Field(None)
    address: Optional[str] = Field(None)
    latitude: Optional[float] = Field(None)
    longitude: Optional[float] = Field(None)
    contract_id: Optional[UUID] = Field(None)
    last_refill_date: Optional[datetime] = Field(None)
    last_maintenance_date: Optional[datetime] = Field(None)
    last_ping_at: Optional[datetime] = Field(None)
    telemetry: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class MachineCreate(BaseModel):
    """Create machine payload."""
    machine_number: str = Field(..., description="Unique within the tenant")
    name: str = Field(...)
    serial_number: Optional[str] = Field(None)
    type: MachineType = Field(MachineType.COFFEE)
    status: MachineStatus = Field(MachineStatus.ACTIVE)
    manufacturer: Optional[str] = Field(None)
    model: Optional[str] = Field(None)
    firmware_version: Optional[str] = Field(None)
    address: Optional[str] = Field(None)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    contract_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)


class MachineUpdate(BaseModel):
    """Partial machine update; omitted fields are left unchanged."""
    machine_number: Optional[str] = Field(None)
    name: Optional[str] = Field(None)
    serial_number: Optional[str] = Field(None)
    type: Optional[MachineType] = Field(None)
    manufacturer: Optional[str] = Field(None)
    model: Optional[str] = Field(None)
    firmware_version: Optional[str] = Field(None)
    address: Optional[str] = Field(None)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    contract_id: Optional[UUID] = Field(None)
    notes: Optional[str] = Field(None)


class MachineStatusUpdate(BaseModel):
    status: MachineStatus = Field(...)


class TelemetryUpdate(BaseModel):
    telemetry: Dict[str, Any] = Field(..., description="Keys merged into the stored telemetry")


class MachineStats(BaseModel):
    total: int = Field(0)
    by_status: Dict[str, int] = Field(default_factory=dict)
    online: int = Field(0)


class MachineMapPoint(BaseModel):
    id: UUID
    machine_number: str
    name: str
    status: str
    connection_status: str
    address: Optional[str] = None
    latitude: float
    longitude: float

    class Config:
        from_attributes = True


class SlotRead(BaseModel):
    """Machine slot read model with derived refill indicators."""
    id: UUID = Field(...)
    machine_id: UUID = Field(...)
    slot_number: str = Field(...)
    product_id: Optional[UUID] = Field(None)
    capacity: int = Field(...)
    current_quantity: int = Field(...)
    min_quantity: int = Field(...)
    price: Optional[float] = Field(None)
    cost_price: Optional[float] = Field(None)
    is_active: bool = Field(...)
    total_sold: int = Field(...)
    last_refilled_at: Optional[datetime] = Field(None)
    needs_refill: bool = Field(...)
    fill_percentage: int = Field(...)

    class Config:
        from_attributes = True


class SlotCreate(BaseModel):
    slot_number: str = Field(..., description="Slot label, unique per machine")
    product_id: Optional[UUID] = Field(None)
    capacity: int = Field(0, ge=0)
    current_quantity: int = Field(0, ge=0)
    min_quantity: int = Field(0, ge=0)
    price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    is_active: bool = Field(True)


class SlotUpdate(BaseModel):
    product_id: Optional[UUID] = Field(None)
    capacity: Optional[int] = Field(None, ge=0)
    current_quantity: Optional[int] = Field(None, ge=0)
    min_quantity: Optional[int] = Field(None, ge=0)
    price: Optional[float] = Field(None, ge=0)
    cost_price: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = Field(None)


class SlotRefill(BaseModel):
    quantity: int = Field(..., gt=0, description="Units added to the slot")


class ErrorLogRead(BaseModel):
    id: UUID
    machine_id: UUID
    error_code: str
    message: str
    severity: str
    context: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime
    resolved_at: Optional[datetime] = None
    resolved_by_user_id: Optional[UUID] = None
    resolution: Optional[str] = None

    class Config:
        from_attributes = True


class ErrorLogCreate(BaseModel):
    error_code: str = Field(...)
    message: str = Field(...)
    severity: ErrorSeverity = Field(ErrorSeverity.ERROR)
    context: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: Optional[datetime] = Field(None, description="Defaults to now")


class ErrorResolve(BaseModel):
    resolution: str = Field(..., description="What was done to fix the error")
