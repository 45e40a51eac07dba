from sqlalchemy import Column, Integer, String, Boolean, Numeric
from sqlalchemy.orm import relationship
from backoffice.db.base import BaseModel

class Product(BaseModel):
    __tablename__ = 'products'

    brand = Column(String(100), nullable=False)
    model = Column(String(150), nullable=False)
    category = Column(String(100))
    price = Column(Numeric(10, 2), default=0)
    min_price = Column(Numeric(10, 2))
    max_price = Column(Numeric(10, 2))
    stock = Column(Integer, default=0)
    threshold = Column(Integer, default=0)
    has_serial = Column(Boolean, default=False, nullable=False)
    barcode = Column(String(100), index=True)

    # Relationships
    units = relationship("ProductUnit", back_populates="product", cascade="all, delete-orphan")
    transaction_items = relationship("SupplierTransactionItem", back_populates="product")
