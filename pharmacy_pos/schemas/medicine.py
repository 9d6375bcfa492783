# FILE: pharmacy_pos/schemas/medicine.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, condecimal, field_validator

from pharmacy_pos.models.medicine import MedicineStatus

Money = condecimal(max_digits=10, decimal_places=2)
Percent = condecimal(ge=0, le=100, max_digits=5, decimal_places=2)


# ---------- Medicines ----------


class MedicineBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    manufacturer: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    barcode: Optional[str] = Field(None, max_length=50)
    hsn_code: str = Field(..., min_length=1, max_length=20)
    gst_percentage: Percent = 0
    prescription_required: bool = False

    @field_validator("barcode")
    @classmethod
    def _blank_barcode(cls, v):
        v = (v or "").strip()
        return v or None


class MedicineCreate(MedicineBase):
    # optional first batch
    initial_stock: Optional[int] = Field(None, ge=0)
    batch_number: Optional[str] = None
    expiry_date: Optional[date] = None
    purchase_price: Optional[Money] = None
    selling_price: Optional[Money] = None


class MedicineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    manufacturer: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = None
    barcode: Optional[str] = Field(None, max_length=50)
    hsn_code: Optional[str] = Field(None, min_length=1, max_length=20)
    gst_percentage: Optional[Percent] = None
    prescription_required: Optional[bool] = None
    expected_version: Optional[int] = None


class MedicineStatusIn(BaseModel):
    status: MedicineStatus


class MedicineOut(BaseModel):
    id: int
    name: str
    manufacturer: str
    category: Optional[str] = None
    barcode: Optional[str] = None
    hsn_code: str
    gst_percentage: Decimal
    prescription_required: bool
    status: MedicineStatus
    version: int
    total_stock: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------- Batches ----------


class BatchCreate(BaseModel):
    medicine_id: int
    batch_number: str = Field(..., min_length=1, max_length=50)
    expiry_date: date
    purchase_price: Money = Field(..., gt=0)
    selling_price: Money = Field(..., gt=0)
    quantity: int = Field(..., ge=0)
    # one scan code per physical unit; when given, len must equal quantity
    scan_codes: Optional[List[str]] = None


class BatchUpdate(BaseModel):
    batch_number: Optional[str] = Field(None, min_length=1, max_length=50)
    expiry_date: Optional[date] = None
    purchase_price: Optional[Money] = Field(None, gt=0)
    selling_price: Optional[Money] = Field(None, gt=0)
    expected_version: int


class BatchStockIn(BaseModel):
    quantity: int = Field(..., ge=0)
    expected_version: int
    reason: Optional[str] = None


class BatchOut(BaseModel):
    id: int
    medicine_id: int
    medicine_name: Optional[str] = None
    batch_number: str
    expiry_date: date
    purchase_price: Decimal
    selling_price: Decimal
    quantity_available: int
    version: int
    expired: bool = False
    unit_tracked: bool = False

    model_config = ConfigDict(from_attributes=True)


class StockUnitOut(BaseModel):
    id: int
    scan_code: str
    sold: bool
    sold_at: Optional[datetime] = None
    batch: BatchOut
    medicine: MedicineOut


class BatchUnitsIn(BaseModel):
    scan_codes: List[str] = Field(..., min_length=1)


class BatchUnitsDeleteIn(BaseModel):
    unit_ids: List[int] = Field(..., min_length=1)


class BatchUnitOut(BaseModel):
    id: int
    batch_id: int
    scan_code: str
    sold: bool
    sold_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
