from typing import Optional
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field
from backoffice.models.shared.enums import UnitStatus

class ProductUnitBase(BaseModel):
    serial_number: str = Field(..., min_length=1, max_length=100)
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    color: Optional[str] = None
    storage: Optional[int] = None
    ram: Optional[int] = None
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    status: UnitStatus = UnitStatus.AVAILABLE

class ProductUnitCreate(ProductUnitBase):
    supplier_id: Optional[int] = None

class ProductUnitUpdate(BaseModel):
    serial_number: Optional[str] = Field(None, min_length=1, max_length=100)
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    color: Optional[str] = None
    storage: Optional[int] = None
    ram: Optional[int] = None
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0)
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    status: Optional[UnitStatus] = None

class ProductUnitResponse(ProductUnitBase):
    id: int
    product_id: int
    barcode: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_transaction_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ProductPurgeResult(BaseModel):
    product_id: int
    units_deleted: int
    registry_entries_deleted: int
