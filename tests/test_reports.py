# tests/test_reports.py
from decimal import Decimal

import pytest

from pharmacy_pos.core.errors import NotFound
from pharmacy_pos.models import User
from pharmacy_pos.schemas.billing import BillCreate, BillLineIn, PaymentIn
from pharmacy_pos.services import billing_service, report_service
from pharmacy_pos.services.pdf_bill import render_bill_pdf
from pharmacy_pos.utils.timezone import today_ist


def _sell(db, operator, med, qty, payments):
    return billing_service.create_bill(db, BillCreate(
        items=[BillLineIn(medicine_id=med.id, quantity=qty)],
        payments=[PaymentIn(**p) for p in payments],
    ), operator)


def test_sales_and_gst_reports(db, operator, make_medicine, make_batch):
    m12 = make_medicine(name="Azee 500", gst="12")
    m5 = make_medicine(name="ORS", gst="5")
    make_batch(m12, 20, price="10.00")
    make_batch(m5, 20, price="2.00")

    _sell(db, operator, m12, 2, [{"mode": "CASH", "amount": "22.40"}])
    _sell(db, operator, m5, 3, [{"mode": "UPI", "amount": "3"}, {"mode": "CARD", "amount": "3.30"}])
    cancelled = _sell(db, operator, m12, 1, [{"mode": "CASH", "amount": "1"}])
    billing_service.cancel_bill(db, cancelled.id, "duplicate", operator)

    sales = report_service.sales_report(db, today_ist(), today_ist())
    assert sales.bill_count == 2
    assert sales.subtotal == Decimal("26.00")
    assert sales.total_gst == Decimal("2.70")
    assert sales.total_amount == Decimal("28.70")
    assert sales.by_mode == {"CASH": Decimal("22.40"), "UPI": Decimal("3.00"), "CARD": Decimal("3.30")}
    assert sales.collected == Decimal("28.70")
    assert [d.bills for d in sales.daily] == [2]

    gst = report_service.gst_report(db, today_ist(), today_ist())
    by_hsn = {r.hsn_code: r for r in gst.rows}
    row12 = by_hsn[m12.hsn_code]
    assert row12.taxable_value == Decimal("20.00")
    assert row12.gst_amount == Decimal("2.40")
    assert (row12.cgst, row12.sgst) == (Decimal("1.20"), Decimal("1.20"))
    row5 = by_hsn[m5.hsn_code]
    # 0.30 splits 0.15 / 0.15; odd paise go to SGST
    assert row5.cgst + row5.sgst == row5.gst_amount
    assert gst.gst_amount == Decimal("2.70")


def test_cashier_sales_report_only_counts_own_bills(db, operator, make_medicine, make_batch):
    other = User(name="Counter 2", email="cashier2@store.test", password_hash="x", is_active=True)
    db.add(other)
    db.commit()
    med = make_medicine(gst="0")
    make_batch(med, 20, price="10.00")

    _sell(db, operator, med, 2, [{"mode": "CASH", "amount": "20"}])
    _sell(db, other, med, 1, [{"mode": "UPI", "amount": "10"}])
    _sell(db, other, med, 3, [{"mode": "CASH", "amount": "30"}])

    report = report_service.cashier_sales_report(db, other.id, today_ist(), today_ist())
    assert (report.operator_id, report.operator_name) == (other.id, "Counter 2")
    assert report.bill_count == 2
    assert report.total_amount == Decimal("40.00")
    assert report.by_mode == {"UPI": Decimal("10.00"), "CASH": Decimal("30.00")}

    assert report_service.sales_report(db, today_ist(), today_ist()).bill_count == 3
    with pytest.raises(NotFound):
        report_service.cashier_sales_report(db, 9999)


def test_stock_report(db, medicine, make_batch):
    make_batch(medicine, 3, expires_in_days=300)
    make_batch(medicine, 40, expires_in_days=30)
    make_batch(medicine, 5, expires_in_days=-1)

    rep = report_service.stock_report(db)
    assert rep.total_medicines == 1
    assert rep.total_batches == 3
    assert rep.total_units == 43
    assert rep.low_stock_batches == 1
    assert rep.expired_batches == 1
    assert rep.expiring_batches == 1


def test_bill_pdf_renders(db, operator, medicine, make_batch):
    make_batch(medicine, 5)
    out = _sell(db, operator, medicine, 2, [{"mode": "CASH", "amount": "5"}])
    pdf = render_bill_pdf(out)
    assert pdf.startswith(b"%PDF")
