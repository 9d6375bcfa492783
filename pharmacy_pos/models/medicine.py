# FILE: pharmacy_pos/models/medicine.py
from __future__ import annotations

import enum
from datetime import datetime, date

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Numeric,
    ForeignKey, Enum, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from pharmacy_pos.db.base import Base

Money = Numeric(10, 2)
Percent = Numeric(5, 2)


class MedicineStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DISCONTINUED = "DISCONTINUED"


class Medicine(Base):
    __tablename__ = "medicines"
    __table_args__ = (
        Index("idx_medicine_name", "name"),
        Index("idx_medicine_status", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    manufacturer = Column(String(200), nullable=False, default="")
    category = Column(String(100), nullable=True)

    # GTIN/EAN: identifies the product, never an individual unit
    barcode = Column(String(50), unique=True, nullable=True, index=True)
    hsn_code = Column(String(20), unique=True, nullable=False)

    gst_percentage = Column(Percent, nullable=False, default=0)
    prescription_required = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(MedicineStatus, name="medicine_status"),
                    nullable=False,
                    default=MedicineStatus.ACTIVE)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    batches = relationship("Batch", back_populates="medicine")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == MedicineStatus.ACTIVE


class Batch(Base):
    """
    Dated, priced lot of one medicine.
    quantity_available is written only by services.stock_ledger (sales/returns)
    or by a versioned catalog edit.
    """
    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("quantity_available >= 0", name="ck_batch_qty_non_negative"),
        Index("idx_batch_medicine_expiry", "medicine_id", "expiry_date"),
        Index("idx_batch_number", "batch_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    medicine_id = Column(Integer, ForeignKey("medicines.id"), nullable=False, index=True)

    batch_number = Column(String(50), nullable=False)
    expiry_date = Column(Date, nullable=False)
    purchase_price = Column(Money, nullable=False)
    selling_price = Column(Money, nullable=False)
    quantity_available = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    medicine = relationship("Medicine", back_populates="batches")
    units = relationship("StockUnit",
                         back_populates="batch",
                         cascade="all, delete-orphan",
                         order_by="StockUnit.id")

    __mapper_args__ = {"version_id_col": version}

    def is_expired(self, today: date) -> bool:
        return self.expiry_date < today

    def is_sellable(self, today: date) -> bool:
        return not self.is_expired(today) and (self.quantity_available or 0) > 0

    def has_stock(self, quantity: int) -> bool:
        return (self.quantity_available or 0) >= quantity


class StockUnit(Base):
    """
    Optional per-unit tracking. For a tracked batch:
    count(sold) == count(units) - batch.quantity_available
    """
    __tablename__ = "stock_units"

    id = Column(Integer, primary_key=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=False, index=True)
    scan_code = Column(String(100), unique=True, nullable=False, index=True)
    sold = Column(Boolean, nullable=False, default=False)
    sold_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    batch = relationship("Batch", back_populates="units")
