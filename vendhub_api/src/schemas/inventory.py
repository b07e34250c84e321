from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class MovementType(str, Enum):
    WAREHOUSE_IN = "warehouse_in"
    WAREHOUSE_OUT = "warehouse_out"
    WAREHOUSE_TO_OPERATOR = "warehouse_to_operator"
    OPERATOR_TO_WAREHOUSE = "operator_to_warehouse"
    OPERATOR_TO_MACHINE = "operator_to_machine"
    MACHINE_TO_OPERATOR = "machine_to_operator"
    MACHINE_SALE = "machine_sale"
    ADJUSTMENT = "adjustment"
    WRITE_OFF = "write_off"


class InventoryLevel(str, Enum):
    WAREHOUSE = "warehouse"
    OPERATOR = "operator"
    MACHINE = "machine"


class WarehouseStockRead(BaseModel):
    """Read model for warehouse (level 1) stock."""
    id: UUID = Field(..., description="Row ID")
    product_id: UUID = Field(..., description="Product ID")
    current_quantity: float = Field(..., description="Quantity on hand")
    reserved_quantity: float = Field(..., description="Quantity reserved for pending transfers")
    available_quantity: float = Field(..., description="current - reserved")
    min_stock_level: float = Field(...)
    max_stock_level: Optional[float] = Field(None)
    avg_purchase_price: float = Field(..., description="Weighted average unit cost")
    last_purchase_price: Optional[float] = Field(None)
    last_restocked_at: Optional[datetime] = Field(None)
    location_in_warehouse: Optional[str] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class OperatorStockRead(BaseModel):
    """Read model for stock carried by an operator (level 2)."""
    id: UUID = Field(..., description="Row ID")
    operator_id: UUID = Field(..., description="Operator user ID")
    product_id: UUID = Field(..., description="Product ID")
    current_quantity: float = Field(...)
    reserved_quantity: float = Field(...)
    last_received_at: Optional[datetime] = Field(None)
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class MachineStockRead(BaseModel):
    """Read model for stock loaded in a machine (level 3)."""
    id: UUID = Field(..., description="Row ID")
    machine_id: UUID = Field(..., description="Machine ID")
    product_id: UUID = Field(..., description="Product ID")
    slot_number: Optional[str] = Field(None)
    current_quantity: float = Field(...)
    min_stock_level: float = Field(...)
    max_capacity: float = Field(...)
    total_sold: float = Field(...)
    last_refilled_at: Optional[datetime] = Field(None)
    needs_refill: bool = Field(...)
    fill_percentage: int = Field(...)
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class MovementRead(BaseModel):
    """Read model for an inventory movement."""
    id: UUID = Field(..., description="Movement ID")
    movement_type: str = Field(...)
    product_id: UUID = Field(...)
    quantity: float = Field(..., description="Quantity moved; signed for adjustments")
    operator_id: Optional[UUID] = Field(None)
    machine_id: Optional[UUID] = Field(None)
    performed_by_user_id: Optional[UUID] = Field(None)
    operation_date: datetime = Field(...)
    unit_cost: Optional[float] = Field(None)
    total_cost: Optional[float] = Field(None)
    notes: Optional[str] = Field(None)
    details: dict = Field(default_factory=dict, description="Additional details")
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True


class StockIn(BaseModel):
    """Receive stock into the warehouse."""
    product_id: UUID = Field(...)
    quantity: float = Field(..., gt=0)
    unit_cost: Optional[float] = Field(None, ge=0, description="Purchase price per unit")
    notes: Optional[str] = Field(None)


class TransferToOperator(BaseModel):
    product_id: UUID = Field(...)
    operator_id: UUID = Field(...)
    quantity: float = Field(..., gt=0)
    notes: Optional[str] = Field(None)


class TransferToMachine(BaseModel):
    product_id: UUID = Field(...)
    operator_id: UUID = Field(...)
    machine_id: UUID = Field(...)
    slot_number: Optional[str] = Field(None)
    quantity: float = Field(..., gt=0)
    notes: Optional[str] = Field(None)


class ReturnToWarehouse(BaseModel):
    product_id: UUID = Field(...)
    operator_id: UUID = Field(...)
    quantity: float = Field(..., gt=0)
    notes: Optional[str] = Field(None)


class MachineSale(BaseModel):
    product_id: UUID = Field(...)
    machine_id: UUID = Field(...)
    slot_number: Optional[str] = Field(None)
    quantity: float = Field(1, gt=0)
    notes: Optional[str] = Field(None)


class InventoryAdjustment(BaseModel):
    """Set the counted quantity at one level; the difference is recorded."""
    level: InventoryLevel = Field(...)
    product_id: UUID = Field(...)
    operator_id: Optional[UUID] = Field(None, description="Required for level=operator")
    machine_id: Optional[UUID] = Field(None, description="Required for level=machine")
    slot_number: Optional[str] = Field(None)
    new_quantity: float = Field(..., ge=0)
    notes: Optional[str] = Field(None)
