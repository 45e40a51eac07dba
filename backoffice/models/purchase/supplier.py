from sqlalchemy import Column, String, Boolean, Text
from sqlalchemy.orm import relationship
from backoffice.db.base import BaseModel

class Supplier(BaseModel):
    __tablename__ = 'suppliers'

    name = Column(String(200), nullable=False)
    contact_person = Column(String(100))
    email = Column(String(100))
    phone = Column(String(20))
    address = Column(Text)
    is_active = Column(Boolean, default=True)

    # Relationships
    transactions = relationship("SupplierTransaction", back_populates="supplier")
    product_units = relationship("ProductUnit", back_populates="supplier")
