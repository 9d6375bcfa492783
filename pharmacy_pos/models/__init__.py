# pharmacy_pos/models/__init__.py
from .user import User
from .medicine import Medicine, MedicineStatus, Batch, StockUnit
from .billing import (
    Bill,
    BillItem,
    BillNumberSeries,
    Payment,
    PaymentStatus,
    PaymentMode,
    PaymentRecordStatus,
)
from .returns import SaleReturn, SaleReturnItem, ReturnType
from .audit import AuditLog, ActionType

__all__ = [
    "User",
    "Medicine",
    "MedicineStatus",
    "Batch",
    "StockUnit",
    "Bill",
    "BillItem",
    "BillNumberSeries",
    "Payment",
    "PaymentStatus",
    "PaymentMode",
    "PaymentRecordStatus",
    "SaleReturn",
    "SaleReturnItem",
    "ReturnType",
    "AuditLog",
    "ActionType",
]
