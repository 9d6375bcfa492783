# FILE: pharmacy_pos/schemas/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, condecimal

from pharmacy_pos.models.billing import PaymentMode, PaymentStatus, PaymentRecordStatus

Money = condecimal(max_digits=12, decimal_places=2)


class BillLineIn(BaseModel):
    medicine_id: Optional[int] = None
    barcode: Optional[str] = None
    quantity: int = Field(..., gt=0)


class PaymentIn(BaseModel):
    mode: PaymentMode
    amount: Money
    reference: Optional[str] = Field(None, max_length=100)


class BillCreate(BaseModel):
    customer_name: Optional[str] = Field(None, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=20)
    items: List[BillLineIn] = Field(default_factory=list)
    payments: List[PaymentIn] = Field(default_factory=list)


class BillCancelIn(BaseModel):
    reason: str


class BillItemOut(BaseModel):
    id: int
    medicine_id: int
    medicine_name: str
    batch_id: int
    batch_number: str
    quantity: int
    unit_price: Decimal
    gst_percentage: Decimal
    gst_amount: Decimal
    total_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: int
    payment_reference: str
    mode: PaymentMode
    amount: Decimal
    status: PaymentRecordStatus
    payment_date: datetime

    model_config = ConfigDict(from_attributes=True)


class BillOut(BaseModel):
    id: int
    bill_number: str
    bill_date: datetime
    operator_id: int
    operator_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    subtotal: Decimal
    total_gst: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    payment_status: PaymentStatus
    cancelled: bool
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    items: List[BillItemOut] = Field(default_factory=list)
    payments: List[PaymentOut] = Field(default_factory=list)


class BillSummaryOut(BaseModel):
    id: int
    bill_number: str
    bill_date: datetime
    customer_name: Optional[str] = None
    total_amount: Decimal
    payment_status: PaymentStatus
    cancelled: bool
