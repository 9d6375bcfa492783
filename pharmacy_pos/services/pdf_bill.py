# FILE: pharmacy_pos/services/pdf_bill.py
from __future__ import annotations
from io import BytesIO
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from pharmacy_pos.core.config import settings
from pharmacy_pos.schemas.billing import BillOut

X0 = 18 * mm
# item table: name, batch, qty, rate, gst %, gst, total
COLS_MM = (62, 26, 12, 20, 14, 20, 24)
HEADERS = ("Medicine", "Batch", "Qty", "Rate", "GST %", "GST", "Amount")
RIGHT_ALIGNED = {2, 3, 4, 5, 6}


def _fmt_dt(dt: Any) -> str:
    if isinstance(dt, datetime):
        return dt.strftime("%d-%m-%Y %H:%M")
    return str(dt or "")


def _money(v: Any) -> str:
    return f"{Decimal(str(v or 0)):,.2f}"


def _draw_header(c: canvas.Canvas, bill: BillOut) -> float:
    w, h = A4
    y = h - 20 * mm
    c.setFont("Helvetica-Bold", 14)
    c.drawString(X0, y, settings.PROJECT_NAME)

    y -= 7 * mm
    c.setFont("Helvetica-Bold", 11)
    c.drawString(X0, y, "TAX INVOICE" if not bill.cancelled else "TAX INVOICE (CANCELLED)")
    c.setFont("Helvetica", 9)
    c.drawRightString(w - X0, y, f"Bill No: {bill.bill_number}")

    y -= 5 * mm
    c.drawString(X0, y, f"Date: {_fmt_dt(bill.bill_date)}")
    c.drawRightString(w - X0, y, f"Billed by: {bill.operator_name or bill.operator_id}")

    if bill.customer_name or bill.customer_phone:
        y -= 5 * mm
        who = " / ".join(v for v in (bill.customer_name, bill.customer_phone) if v)
        c.drawString(X0, y, f"Customer: {who}")

    y -= 4 * mm
    c.setStrokeColor(colors.grey)
    c.setLineWidth(0.6)
    c.line(X0, y, w - X0, y)
    return y - 6 * mm


def _draw_row(c: canvas.Canvas, y: float, cells: Sequence[str], bold: bool = False) -> None:
    c.setFont("Helvetica-Bold" if bold else "Helvetica", 9)
    x = X0
    for i, (txt, wmm) in enumerate(zip(cells, COLS_MM)):
        width = wmm * mm
        if i in RIGHT_ALIGNED:
            c.drawRightString(x + width - 2 * mm, y, txt)
        else:
            c.drawString(x, y, txt[:34])
        x += width


def render_bill_pdf(bill: BillOut) -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(bill.bill_number)

    y = _draw_header(c, bill)
    _draw_row(c, y, HEADERS, bold=True)
    y -= 6 * mm

    for it in bill.items:
        if y < 40 * mm:
            c.showPage()
            y = _draw_header(c, bill)
            _draw_row(c, y, HEADERS, bold=True)
            y -= 6 * mm
        _draw_row(c, y, (
            it.medicine_name,
            it.batch_number,
            str(it.quantity),
            _money(it.unit_price),
            f"{it.gst_percentage:g}",
            _money(it.gst_amount),
            _money(it.total_amount),
        ))
        y -= 5 * mm

    w, _ = A4
    c.line(X0, y, w - X0, y)
    y -= 6 * mm

    totals: List[tuple] = [
        ("Subtotal", bill.subtotal),
        ("GST", bill.total_gst),
        ("Grand Total", bill.total_amount),
        ("Paid", bill.paid_amount),
    ]
    for label, val in totals:
        c.setFont("Helvetica-Bold" if label == "Grand Total" else "Helvetica", 10)
        c.drawString(w - X0 - 70 * mm, y, label)
        c.drawRightString(w - X0, y, _money(val))
        y -= 5 * mm

    c.setFont("Helvetica", 9)
    c.drawString(X0, y, f"Payment status: {bill.payment_status.value}")
    for p in bill.payments:
        y -= 4 * mm
        c.drawString(X0, y, f"{p.mode.value} {_money(p.amount)}  ref {p.payment_reference}")

    if bill.cancelled:
        y -= 6 * mm
        c.setFillColor(colors.red)
        c.drawString(X0, y, f"Cancelled: {bill.cancellation_reason or ''}")
        c.setFillColor(colors.black)

    c.showPage()
    c.save()
    return buf.getvalue()
