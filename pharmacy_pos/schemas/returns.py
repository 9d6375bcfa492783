# FILE: pharmacy_pos/schemas/returns.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict

from pharmacy_pos.models.returns import ReturnType


class ReturnLineIn(BaseModel):
    bill_item_id: int
    quantity: int = Field(..., gt=0)


class ReturnCreate(BaseModel):
    bill_id: int
    reason: Optional[str] = Field(None, max_length=500)
    items: List[ReturnLineIn] = Field(default_factory=list)


class ReturnItemOut(BaseModel):
    id: int
    bill_item_id: int
    medicine_id: int
    batch_id: int
    batch_number: str
    quantity: int
    refund_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class ReturnOut(BaseModel):
    id: int
    return_number: str
    bill_id: int
    processed_by_id: int
    return_date: datetime
    refund_amount: Decimal
    return_type: ReturnType
    reason: Optional[str] = None
    items: List[ReturnItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
