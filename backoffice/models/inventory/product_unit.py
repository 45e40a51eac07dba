from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from backoffice.db.base import BaseModel
from backoffice.models.shared.enums import UnitStatus

class ProductUnit(BaseModel):
    __tablename__ = 'product_units'
    __table_args__ = (
        UniqueConstraint('product_id', 'serial_number', name='uq_product_units_product_serial'),
    )

    product_id = Column(Integer, ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    serial_number = Column(String(100), nullable=False)
    barcode = Column(String(100), index=True)
    battery_level = Column(Integer)
    color = Column(String(50))
    storage = Column(Integer)  # GB
    ram = Column(Integer)  # GB
    purchase_price = Column(Numeric(10, 2))
    price = Column(Numeric(10, 2))
    min_price = Column(Numeric(10, 2))
    max_price = Column(Numeric(10, 2))
    status = Column(SQLEnum(UnitStatus), default=UnitStatus.AVAILABLE, nullable=False)
    supplier_id = Column(Integer, ForeignKey('suppliers.id'), nullable=True)
    supplier_transaction_id = Column(Integer, ForeignKey('supplier_transactions.id', ondelete='SET NULL'), nullable=True)

    # Relationships
    product = relationship("Product", back_populates="units")
    supplier = relationship("Supplier", back_populates="product_units")
    supplier_transaction = relationship("SupplierTransaction", back_populates="product_units")
