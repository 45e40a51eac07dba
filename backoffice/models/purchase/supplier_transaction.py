from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.db.base import BaseModel
from backoffice.models.shared.enums import TransactionType, TransactionStatus

class SupplierTransaction(BaseModel):
    __tablename__ = 'supplier_transactions'

    transaction_number = Column(String(50), unique=True, nullable=False)
    supplier_id = Column(Integer, ForeignKey('suppliers.id'), nullable=False, index=True)
    type = Column(SQLEnum(TransactionType), default=TransactionType.PURCHASE, nullable=False)
    status = Column(SQLEnum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)
    total_amount = Column(Numeric(12, 2), default=0, nullable=False)
    transaction_date = Column(DateTime(timezone=True), server_default=func.now())
    notes = Column(Text)

    # Relationships
    supplier = relationship("Supplier", back_populates="transactions")
    items = relationship("SupplierTransactionItem", back_populates="transaction", cascade="all, delete-orphan")
    product_units = relationship("ProductUnit", back_populates="supplier_transaction")
