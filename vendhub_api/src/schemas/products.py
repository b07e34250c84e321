from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ProductCategory(str, Enum):
    COFFEE_BEANS = "coffee_beans"
    COFFEE_INSTANT = "coffee_instant"
    TEA = "tea"
    CHOCOLATE = "chocolate"
    MILK = "milk"
    SUGAR = "sugar"
    CREAM = "cream"
    SYRUP = "syrup"
    WATER = "water"
    HOT_DRINKS = "hot_drinks"
    COLD_DRINKS = "cold_drinks"
    SNACKS = "snacks"
    SANDWICHES = "sandwiches"
    SALADS = "salads"
    ICE_CREAM = "ice_cream"
    CUPS = "cups"
    LIDS = "lids"
    STIRRERS = "stirrers"
    NAPKINS = "napkins"
    OTHER = "other"


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"
    OUT_OF_STOCK = "out_of_stock"


class UnitOfMeasure(str, Enum):
    G = "g"
    KG = "kg"
    ML = "ml"
    L = "l"
    PCS = "pcs"
    PACK = "pack"
    BOX = "box"


class ProductRead(BaseModel):
    """Product read model."""
    id: UUID = Field(..., description="Product id")
    sku: str = Field(...)
    name: str = Field(...)
    description: Optional[str] = Field(None)
    category: str = Field(...)
    status: str = Field(...)
    unit_of_measure: str = Field(...)
    is_ingredient: bool = Field(...)
    barcode: Optional[str] = Field(None)
    purchase_price: Optional[float] = Field(None)
    selling_price: Optional[float] = Field(None)
    currency: str = Field(...)
    ikpu_code: Optional[str] = Field(None, description="Fiscal product classification code")
    package_code: Optional[str] = Field(None)
    vat_rate: float = Field(...)
    min_stock_level: float = Field(...)
    max_stock_level: Optional[float] = Field(None)
    shelf_life_days: Optional[int] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    """Create product payload."""
    sku: str = Field(..., description="Stock keeping unit, unique within the tenant")
    name: str = Field(...)
    description: Optional[str] = Field(None)
    category: ProductCategory = Field(ProductCategory.OTHER)
    status: ProductStatus = Field(ProductStatus.ACTIVE)
    unit_of_measure: UnitOfMeasure = Field(UnitOfMeasure.PCS)
    is_ingredient: bool = Field(False)
    barcode: Optional[str] = Field(None)
    purchase_price: Optional[float] = Field(None, ge=0)
    selling_price: Optional[float] = Field(None, ge=0)
    currency: str = Field("UZS")
    ikpu_code: Optional[str] = Field(None)
    package_code: Optional[str] = Field(None)
    vat_rate: float = Field(12, ge=0, le=100)
    min_stock_level: float = Field(0, ge=0)
    max_stock_level: Optional[float] = Field(None, ge=0)
    shelf_life_days: Optional[int] = Field(None, ge=0)


class ProductUpdate(BaseModel):
    """Partial product update. Prices change through the price endpoint."""
    sku: Optional[str] = Field(None)
    name: Optional[str] = Field(None)
    description: Optional[str] = Field(None)
    category: Optional[ProductCategory] = Field(None)
    status: Optional[ProductStatus] = Field(None)
    unit_of_measure: Optional[UnitOfMeasure] = Field(None)
    is_ingredient: Optional[bool] = Field(None)
    barcode: Optional[str] = Field(None)
    ikpu_code: Optional[str] = Field(None)
    package_code: Optional[str] = Field(None)
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    min_stock_level: Optional[float] = Field(None, ge=0)
    max_stock_level: Optional[float] = Field(None, ge=0)
    shelf_life_days: Optional[int] = Field(None, ge=0)


class PriceUpdate(BaseModel):
    purchase_price: Optional[float] = Field(None, ge=0)
    selling_price: Optional[float] = Field(None, ge=0)
    change_reason: Optional[str] = Field(None)


class PriceHistoryRead(BaseModel):
    id: UUID
    product_id: UUID
    purchase_price: Optional[float] = None
    selling_price: Optional[float] = None
    effective_from: datetime
    effective_to: Optional[datetime] = None
    change_reason: Optional[str] = None
    changed_by_user_id: Optional[UUID] = None

    class Config:
        from_attributes = True
