# FILE: pharmacy_pos/services/report_service.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import InvalidInput, NotFound
from pharmacy_pos.models.billing import Bill, BillItem, Payment, PaymentRecordStatus
from pharmacy_pos.models.medicine import Batch, Medicine, MedicineStatus
from pharmacy_pos.models.returns import SaleReturn
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.reports import (
    DailySales,
    GstReportOut,
    GstRow,
    SalesReportOut,
    StockReportOut,
)
from pharmacy_pos.services.billing_math import ZERO, D, money2
from pharmacy_pos.utils.timezone import day_bounds, today_ist


def _window(start: Optional[date], end: Optional[date]):
    end = end or today_ist()
    start = start or end
    if start > end:
        raise InvalidInput("Start date must not be after end date")
    return start, end, day_bounds(start, end)


def _as_date(val: Any) -> date:
    # func.date() gives a date on MySQL and an ISO string on SQLite
    if isinstance(val, date):
        return val
    return date.fromisoformat(str(val)[:10])


def sales_report(db: Session, start: Optional[date] = None, end: Optional[date] = None,
                 operator_id: Optional[int] = None) -> SalesReportOut:
    start, end, (lo, hi) = _window(start, end)
    in_range = [Bill.bill_date >= lo, Bill.bill_date < hi, Bill.cancelled.is_(False)]
    if operator_id is not None:
        in_range.append(Bill.operator_id == operator_id)

    totals = (db.query(
        func.count(Bill.id),
        func.coalesce(func.sum(Bill.subtotal), 0),
        func.coalesce(func.sum(Bill.total_gst), 0),
        func.coalesce(func.sum(Bill.total_amount), 0),
    ).filter(*in_range).one())

    by_mode_rows = (db.query(Payment.mode, func.coalesce(func.sum(Payment.amount), 0))
                    .join(Bill, Bill.id == Payment.bill_id)
                    .filter(*in_range, Payment.status == PaymentRecordStatus.COMPLETED)
                    .group_by(Payment.mode)
                    .all())
    by_mode: Dict[str, Any] = {}
    for mode, amt in by_mode_rows:
        by_mode[mode.value if hasattr(mode, "value") else str(mode)] = money2(amt)

    refunds_q = (db.query(func.coalesce(func.sum(SaleReturn.refund_amount), 0))
                 .filter(SaleReturn.return_date >= lo, SaleReturn.return_date < hi))
    if operator_id is not None:
        # refunds against the cashier's own bills
        refunds_q = refunds_q.join(Bill, Bill.id == SaleReturn.bill_id).filter(Bill.operator_id == operator_id)
    refunds = refunds_q.scalar()

    day_col = func.date(Bill.bill_date)
    daily_rows = (db.query(day_col.label("day"),
                           func.count(Bill.id),
                           func.coalesce(func.sum(Bill.total_amount), 0))
                  .filter(*in_range)
                  .group_by(day_col)
                  .order_by(day_col)
                  .all())

    return SalesReportOut(
        start=start,
        end=end,
        bill_count=int(totals[0] or 0),
        subtotal=money2(totals[1]),
        total_gst=money2(totals[2]),
        total_amount=money2(totals[3]),
        collected=money2(sum((D(v) for v in by_mode.values()), ZERO)),
        by_mode=by_mode,
        refunds=money2(refunds),
        daily=[DailySales(day=_as_date(d), bills=int(n), total_amount=money2(t)) for d, n, t in daily_rows],
    )


def cashier_sales_report(db: Session, cashier_id: int, start: Optional[date] = None,
                         end: Optional[date] = None) -> SalesReportOut:
    cashier = db.get(User, cashier_id)
    if not cashier:
        raise NotFound(f"User not found with id: {cashier_id}")
    out = sales_report(db, start, end, operator_id=cashier.id)
    out.operator_id = cashier.id
    out.operator_name = cashier.name
    return out


def gst_report(db: Session, start: Optional[date] = None, end: Optional[date] = None) -> GstReportOut:
    """Taxable value and GST per HSN code. CGST is half the GST rounded; SGST takes the remainder."""
    start, end, (lo, hi) = _window(start, end)

    rows = (db.query(Medicine.hsn_code,
                     BillItem.gst_percentage,
                     func.coalesce(func.sum(BillItem.total_amount - BillItem.gst_amount), 0),
                     func.coalesce(func.sum(BillItem.gst_amount), 0))
            .join(Bill, Bill.id == BillItem.bill_id)
            .join(Medicine, Medicine.id == BillItem.medicine_id)
            .filter(Bill.bill_date >= lo, Bill.bill_date < hi, Bill.cancelled.is_(False))
            .group_by(Medicine.hsn_code, BillItem.gst_percentage)
            .order_by(Medicine.hsn_code)
            .all())

    out_rows = []
    taxable_total = ZERO
    gst_total = ZERO
    for hsn, pct, taxable, gst in rows:
        taxable = money2(taxable)
        gst = money2(gst)
        cgst = money2(gst / 2)
        out_rows.append(GstRow(
            hsn_code=hsn,
            gst_percentage=D(pct),
            taxable_value=taxable,
            gst_amount=gst,
            cgst=cgst,
            sgst=gst - cgst,
        ))
        taxable_total += taxable
        gst_total += gst

    return GstReportOut(start=start, end=end, rows=out_rows,
                        taxable_value=money2(taxable_total), gst_amount=money2(gst_total))


def stock_report(db: Session) -> StockReportOut:
    today = today_ist()
    alert_until = today + timedelta(days=settings.EXPIRY_ALERT_DAYS)

    def count(q):
        return int(q.scalar() or 0)

    return StockReportOut(
        total_medicines=count(db.query(func.count(Medicine.id))),
        active_medicines=count(db.query(func.count(Medicine.id))
                               .filter(Medicine.status == MedicineStatus.ACTIVE)),
        total_batches=count(db.query(func.count(Batch.id))),
        total_units=count(db.query(func.coalesce(func.sum(Batch.quantity_available), 0))
                          .filter(Batch.expiry_date >= today)),
        low_stock_batches=count(db.query(func.count(Batch.id))
                                .filter(Batch.quantity_available < settings.LOW_STOCK_THRESHOLD,
                                        Batch.expiry_date >= today)),
        expired_batches=count(db.query(func.count(Batch.id))
                              .filter(Batch.expiry_date < today, Batch.quantity_available > 0)),
        expiring_batches=count(db.query(func.count(Batch.id))
                               .filter(Batch.expiry_date >= today,
                                       Batch.expiry_date <= alert_until,
                                       Batch.quantity_available > 0)),
    )
