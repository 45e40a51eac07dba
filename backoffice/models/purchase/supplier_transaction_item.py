from sqlalchemy import Column, Integer, Numeric, ForeignKey, JSON
from sqlalchemy.orm import relationship
from backoffice.db.base import BaseModel

class SupplierTransactionItem(BaseModel):
    __tablename__ = 'supplier_transaction_items'

    transaction_id = Column(Integer, ForeignKey('supplier_transactions.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_cost = Column(Numeric(10, 2), nullable=False, default=0)
    total_cost = Column(Numeric(12, 2), nullable=False, default=0)
    product_unit_ids = Column(JSON, default=list)  # Serialized products only
    unit_details = Column(JSON)

    # Relationships
    transaction = relationship("SupplierTransaction", back_populates="items")
    product = relationship("Product", back_populates="transaction_items")
