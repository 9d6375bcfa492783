# FILE: pharmacy_pos/models/returns.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

Money = Numeric(12, 2)


class ReturnType(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"


class SaleReturn(Base):
    """Reversal against exactly one bill. Immutable once written."""
    __tablename__ = "returns"

    id = Column(Integer, primary_key=True, index=True)
    return_number = Column(String(50), unique=True, nullable=False, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    processed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    return_date = Column(DateTime, nullable=False)
    refund_amount = Column(Money, nullable=False)
    return_type = Column(Enum(ReturnType, name="return_type"), nullable=False)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    bill = relationship("Bill", back_populates="returns")
    processed_by = relationship("User")
    items = relationship("SaleReturnItem",
                         back_populates="sale_return",
                         cascade="all, delete-orphan",
                         order_by="SaleReturnItem.id")


class SaleReturnItem(Base):
    __tablename__ = "return_items"

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(Integer, ForeignKey("returns.id"), nullable=False, index=True)
    bill_item_id = Column(Integer, ForeignKey("bill_items.id"), nullable=False, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False)
    batch_number = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    refund_amount = Column(Money, nullable=False)

    sale_return = relationship("SaleReturn", back_populates="items")
    bill_item = relationship("BillItem")
    medicine = relationship("Medicine")
    batch = relationship("Batch")
