from sqlalchemy import Column, Integer, String
from backoffice.db.base import BaseModel

class BarcodeCounter(BaseModel):
    __tablename__ = 'barcode_counters'

    counter_type = Column(String(20), unique=True, nullable=False)  # unit, product
    value = Column(Integer, nullable=False, default=0)
