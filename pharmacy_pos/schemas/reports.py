# FILE: pharmacy_pos/schemas/reports.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DailySales(BaseModel):
    day: date
    bills: int
    total_amount: Decimal


class SalesReportOut(BaseModel):
    start: date
    end: date
    bill_count: int
    subtotal: Decimal
    total_gst: Decimal
    total_amount: Decimal
    collected: Decimal
    by_mode: Dict[str, Decimal] = Field(default_factory=dict)
    refunds: Decimal
    daily: List[DailySales] = Field(default_factory=list)
    # set on the per-cashier report
    operator_id: Optional[int] = None
    operator_name: Optional[str] = None


class GstRow(BaseModel):
    hsn_code: str
    gst_percentage: Decimal
    taxable_value: Decimal
    gst_amount: Decimal
    cgst: Decimal
    sgst: Decimal


class GstReportOut(BaseModel):
    start: date
    end: date
    rows: List[GstRow] = Field(default_factory=list)
    taxable_value: Decimal
    gst_amount: Decimal


class StockReportOut(BaseModel):
    total_medicines: int
    active_medicines: int
    total_batches: int
    total_units: int
    low_stock_batches: int
    expired_batches: int
    expiring_batches: int
