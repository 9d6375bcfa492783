# FILE: pharmacy_pos/models/billing.py
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Enum, Index,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

Money = Numeric(12, 2)


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class PaymentMode(str, enum.Enum):
    CASH = "CASH"
    UPI = "UPI"
    CARD = "CARD"


class PaymentRecordStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Bill(Base):
    """
    One sale. Sole owner of its items and payments: children are written
    and deleted only through the bill.
    """
    __tablename__ = "bills"
    __table_args__ = (
        Index("idx_bill_date", "bill_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_number = Column(String(50), unique=True, nullable=False, index=True)
    bill_date = Column(DateTime, nullable=False)

    operator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_name = Column(String(200), nullable=True)
    customer_phone = Column(String(20), nullable=True)

    subtotal = Column(Money, nullable=False, default=0)
    total_gst = Column(Money, nullable=False, default=0)
    total_amount = Column(Money, nullable=False, default=0)

    # last committed fact; reads go through billing_math.effective_payment_status
    payment_status = Column(Enum(PaymentStatus, name="bill_payment_status"),
                            nullable=False,
                            default=PaymentStatus.PENDING)
    cancelled = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    operator = relationship("User")
    items = relationship("BillItem",
                         back_populates="bill",
                         cascade="all, delete-orphan",
                         order_by="BillItem.id")
    payments = relationship("Payment",
                            back_populates="bill",
                            cascade="all, delete-orphan",
                            order_by="Payment.id")
    returns = relationship("SaleReturn", back_populates="bill", order_by="SaleReturn.id")


class BillItem(Base):
    __tablename__ = "bill_items"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False, index=True)

    # snapshots taken at sale time
    batch_number = Column(String(50), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    gst_percentage = Column(Numeric(5, 2), nullable=False)
    gst_amount = Column(Money, nullable=False)
    total_amount = Column(Money, nullable=False)

    bill = relationship("Bill", back_populates="items")
    medicine = relationship("Medicine")
    batch = relationship("Batch")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index("idx_payment_date", "payment_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False, index=True)
    payment_reference = Column(String(100), unique=True, nullable=False)
    mode = Column(Enum(PaymentMode, name="payment_mode"), nullable=False)
    amount = Column(Money, nullable=False)
    status = Column(Enum(PaymentRecordStatus, name="payment_record_status"),
                    nullable=False,
                    default=PaymentRecordStatus.COMPLETED)
    payment_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    bill = relationship("Bill", back_populates="payments")


class BillNumberSeries(Base):
    """Daily bill counter. The row is locked while a bill number is drawn."""
    __tablename__ = "bill_number_series"
    __table_args__ = (
        UniqueConstraint("prefix", "date_key", name="uq_bill_number_series_prefix_date"),
    )

    id = Column(Integer, primary_key=True)
    prefix = Column(String(20), nullable=False)      # BILL
    date_key = Column(Integer, nullable=False)      # YYYYMMDD
    next_seq = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
