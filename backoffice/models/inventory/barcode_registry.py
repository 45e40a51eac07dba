from sqlalchemy import Column, Integer, String, JSON, Enum as SQLEnum, Index
from backoffice.db.base import BaseModel
from backoffice.models.shared.enums import EntityType, BarcodeType, BarcodeFormat

class BarcodeRegistry(BaseModel):
    __tablename__ = 'barcode_registry'
    __table_args__ = (
        Index('ix_barcode_registry_entity', 'entity_type', 'entity_id'),
    )

    # Not declared unique: uniqueness is owned by the barcode authority and
    # drift from legacy imports must stay detectable.
    barcode = Column(String(100), nullable=False, index=True)
    barcode_type = Column(SQLEnum(BarcodeType), nullable=False)
    entity_type = Column(SQLEnum(EntityType), nullable=False)
    entity_id = Column(Integer, nullable=False)  # Weak reference, no FK
    format = Column(SQLEnum(BarcodeFormat), default=BarcodeFormat.CODE128, nullable=False)
    generation_metadata = Column(JSON)
