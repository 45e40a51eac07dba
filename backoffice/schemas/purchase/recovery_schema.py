from typing import Optional, List, Dict, Any
from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field
from backoffice.models.shared.enums import OrphanType

class OrphanedUnit(BaseModel):
    id: int
    product_id: int
    serial_number: str
    price: Decimal = Decimal("0")
    purchase_price: Optional[Decimal] = None
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    created_at: Optional[datetime] = None
    product_brand: str
    product_model: str
    orphan_type: OrphanType

class RecoveryTransactionCreate(BaseModel):
    supplier_id: int
    unit_ids: List[int] = Field(..., min_length=1)
    estimated_purchase_price: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None

class UnitRecoveryError(BaseModel):
    unit_id: int
    reason: str

class RecoveryResult(BaseModel):
    success: bool
    transaction_id: Optional[int] = None
    transaction_number: Optional[str] = None
    total_amount: Decimal = Decimal("0")
    linked_unit_ids: List[int] = Field(default_factory=list)
    errors: List[UnitRecoveryError] = Field(default_factory=list)

class RecoveryDraftItem(BaseModel):
    quantity: int = 0
    unit_cost: Decimal = Decimal("0")
    unit_prices: List[Decimal] = Field(default_factory=list)

class RecoveryDraft(BaseModel):
    """Abandoned acquisition form state"""
    supplier_id: Optional[int] = None
    notes: Optional[str] = None
    items: List[RecoveryDraftItem] = Field(default_factory=list)

class SuggestedRecovery(BaseModel):
    supplier_id: Optional[int] = None
    estimated_purchase_price: Optional[Decimal] = None
    notes: Optional[str] = None
