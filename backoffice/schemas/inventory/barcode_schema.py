from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field
from backoffice.models.shared.enums import EntityType, BarcodeType, BarcodeFormat

class BarcodeGenerationOptions(BaseModel):
    prefix: Optional[str] = Field(None, pattern=r"^[A-Z]{1,10}$")
    metadata: Dict[str, Any] = Field(default_factory=dict)

class ParsedBarcode(BaseModel):
    prefix: str
    type: str  # unit, product, gtin
    counter: Optional[int] = None

class BarcodeValidationResult(BaseModel):
    is_valid: bool
    format: BarcodeFormat
    errors: List[str] = Field(default_factory=list)
    parsed: Optional[ParsedBarcode] = None

class BarcodeSource(BaseModel):
    """Entity a barcode is expected to identify"""
    entity_type: EntityType
    entity_id: int

class BarcodeRecordResponse(BaseModel):
    id: int
    barcode: str
    barcode_type: BarcodeType
    entity_type: EntityType
    entity_id: int
    format: BarcodeFormat
    generation_metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BarcodeValidateRequest(BaseModel):
    barcode: str

class BarcodeResolveRequest(BaseModel):
    entity_type: EntityType
    entity_id: int
    barcode_type: BarcodeType
    options: Optional[BarcodeGenerationOptions] = None

class BarcodeResolveResponse(BaseModel):
    entity_type: EntityType
    entity_id: int
    barcode: str

class BarcodeVerifyRequest(BaseModel):
    barcode: str
    expected_source: Optional[BarcodeSource] = None

class BarcodeVerifyResponse(BaseModel):
    barcode: str
    verified: bool

class BulkBarcodeRequest(BaseModel):
    entity_id: int
    type: BarcodeType
    options: Optional[BarcodeGenerationOptions] = None
