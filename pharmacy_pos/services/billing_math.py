# pharmacy_pos/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable

from pharmacy_pos.models.billing import Bill, PaymentStatus, PaymentRecordStatus

Q2 = Decimal("0.01")
ZERO = Decimal("0")


def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x or 0))


def money2(x) -> Decimal:
    return D(x).quantize(Q2, rounding=ROUND_HALF_UP)


def compute_line_amounts(qty, unit_price, gst_rate) -> Dict[str, Decimal]:
    """
    subtotal = unit_price * qty
    tax      = round_half_up(subtotal * gst / 100, 2)
    total    = subtotal + tax   (frozen on the bill item)
    """
    subtotal = D(unit_price) * D(qty)
    tax_amount = money2(subtotal * D(gst_rate) / Decimal("100"))
    return {
        "subtotal": money2(subtotal),
        "tax_amount": tax_amount,
        "total": money2(subtotal + tax_amount),
    }


def per_unit_refund(line_total, original_qty: int) -> Decimal:
    return (D(line_total) / D(original_qty)).quantize(Q2, rounding=ROUND_HALF_UP)


def line_refund(line_total, original_qty: int, returned_qty: int) -> Decimal:
    # per-unit amount is rounded first, then multiplied
    return money2(per_unit_refund(line_total, original_qty) * D(returned_qty))


def derive_payment_status(total_paid, grand_total) -> PaymentStatus:
    # overpayment still resolves to PAID; no change is issued here
    if D(total_paid) < D(grand_total):
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PAID


def completed_total(payments: Iterable) -> Decimal:
    return sum(
        (D(p.amount) for p in payments if p.status == PaymentRecordStatus.COMPLETED),
        ZERO,
    )


def effective_payment_status(bill: Bill) -> PaymentStatus:
    """
    Read-side status. Cancelled bills keep their stored status, and so does a
    refunded bill; everything else is recomputed from completed payments.
    """
    if bill.cancelled or bill.payment_status == PaymentStatus.REFUNDED:
        return bill.payment_status
    return derive_payment_status(completed_total(bill.payments), bill.total_amount)
