# FILE: pharmacy_pos/services/billing_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import Conflict, InvalidInput, NotFound, StateInvariantViolation
from pharmacy_pos.db import row_locks
from pharmacy_pos.db.session import supports_row_locks, use_isolation_level
from pharmacy_pos.models.audit import ActionType
from pharmacy_pos.models.billing import (
    Bill,
    BillItem,
    Payment,
    PaymentRecordStatus,
    PaymentStatus,
)
from pharmacy_pos.models.medicine import Medicine
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.billing import (
    BillCreate,
    BillItemOut,
    BillOut,
    BillSummaryOut,
    PaymentIn,
    PaymentOut,
)
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.audit_logger import log_audit
from pharmacy_pos.services.batch_allocator import select_batch
from pharmacy_pos.services.billing_math import (
    ZERO,
    D,
    completed_total,
    compute_line_amounts,
    derive_payment_status,
    effective_payment_status,
    money2,
)
from pharmacy_pos.services.billing_numbers import next_bill_number, new_payment_reference
from pharmacy_pos.services.catalog import get_gst_rate, get_medicine_by_barcode, get_medicine_by_id
from pharmacy_pos.utils.timezone import day_bounds, now_ist

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Read view
# ---------------------------------------------------------------------
def bill_to_out(bill: Bill) -> BillOut:
    """Stable read view. payment_status is always the effective one."""
    return BillOut(
        id=bill.id,
        bill_number=bill.bill_number,
        bill_date=bill.bill_date,
        operator_id=bill.operator_id,
        operator_name=bill.operator.name if bill.operator else None,
        customer_name=bill.customer_name,
        customer_phone=bill.customer_phone,
        subtotal=money2(bill.subtotal),
        total_gst=money2(bill.total_gst),
        total_amount=money2(bill.total_amount),
        paid_amount=money2(completed_total(bill.payments)),
        payment_status=effective_payment_status(bill),
        cancelled=bool(bill.cancelled),
        cancellation_reason=bill.cancellation_reason,
        cancelled_at=bill.cancelled_at,
        items=[
            BillItemOut(
                id=it.id,
                medicine_id=it.medicine_id,
                medicine_name=it.medicine.name if it.medicine else "",
                batch_id=it.batch_id,
                batch_number=it.batch_number,
                quantity=it.quantity,
                unit_price=money2(it.unit_price),
                gst_percentage=D(it.gst_percentage),
                gst_amount=money2(it.gst_amount),
                total_amount=money2(it.total_amount),
            ) for it in bill.items
        ],
        payments=[PaymentOut.model_validate(p, from_attributes=True) for p in bill.payments],
    )


def bill_to_summary(bill: Bill) -> BillSummaryOut:
    return BillSummaryOut(
        id=bill.id,
        bill_number=bill.bill_number,
        bill_date=bill.bill_date,
        customer_name=bill.customer_name,
        total_amount=money2(bill.total_amount),
        payment_status=effective_payment_status(bill),
        cancelled=bool(bill.cancelled),
    )


def _bill_query(db: Session):
    return db.query(Bill).options(
        selectinload(Bill.items).selectinload(BillItem.medicine),
        selectinload(Bill.payments),
        selectinload(Bill.operator),
    )


def get_bill(db: Session, bill_id: int) -> Bill:
    bill = _bill_query(db).filter(Bill.id == bill_id).first()
    if not bill:
        raise NotFound(f"Bill not found with id: {bill_id}")
    return bill


def lock_bill(db: Session, bill_id: int) -> Bill:
    """
    Exclusive lock on the bill row for the rest of the caller's transaction.
    Cancellation, returns and payments take it before reading any bill state,
    so two of them on the same bill run one after the other.
    """
    if not supports_row_locks(db):
        row_locks.acquire(db, "bill", int(bill_id))

    bill = db.execute(
        select(Bill)
        .where(Bill.id == bill_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not bill:
        raise NotFound(f"Bill not found with id: {bill_id}")
    # payments may have been added since the collection was loaded
    db.expire(bill, ["payments"])
    return bill


def get_bill_by_number(db: Session, bill_number: str) -> Bill:
    bill = _bill_query(db).filter(Bill.bill_number == (bill_number or "").strip()).first()
    if not bill:
        raise NotFound(f"Bill not found with number: {bill_number}")
    return bill


def list_bills(
    db: Session,
    start: Optional[date] = None,
    end: Optional[date] = None,
    include_cancelled: bool = True,
    limit: int = 100,
    offset: int = 0,
) -> List[Bill]:
    q = _bill_query(db)
    if start:
        q = q.filter(Bill.bill_date >= day_bounds(start, start)[0])
    if end:
        q = q.filter(Bill.bill_date < day_bounds(end, end)[1])
    if not include_cancelled:
        q = q.filter(Bill.cancelled.is_(False))
    return q.order_by(Bill.bill_date.desc(), Bill.id.desc()).offset(offset).limit(limit).all()


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
def _resolve_medicine(db: Session, medicine_id: Optional[int], barcode: Optional[str]) -> Medicine:
    if barcode and barcode.strip():
        return get_medicine_by_barcode(db, barcode)
    if medicine_id is not None:
        return get_medicine_by_id(db, medicine_id)
    raise InvalidInput("Either medicine_id or barcode must be provided")


def _build_payment(p: PaymentIn, when) -> Payment:
    amount = money2(p.amount)
    if amount <= ZERO:
        raise InvalidInput("Payment amount must be greater than zero")
    ref = (p.reference or "").strip() or new_payment_reference(p.mode)
    return Payment(
        payment_reference=ref,
        mode=p.mode,
        amount=amount,
        status=PaymentRecordStatus.COMPLETED,
        payment_date=when,
    )


def create_bill(db: Session, data: BillCreate, operator: User, ip: Optional[str] = None) -> BillOut:
    """
    Sale transaction.

    Lines are priced from a FIFO-by-expiry batch that is locked and re-checked.
    The bill, its items and payments are flushed together; only then is stock
    deducted line by line. Everything commits at once, so a failed deduction
    leaves neither a bill nor a stock change behind.
    """
    if not data.items:
        raise InvalidInput("Bill must have at least one item")

    try:
        use_isolation_level(db, settings.BILLING_ISOLATION_LEVEL)

        now = now_ist()
        bill = Bill(
            bill_number=next_bill_number(db, now.date()),
            bill_date=now,
            operator_id=operator.id,
            customer_name=(data.customer_name or "").strip() or None,
            customer_phone=(data.customer_phone or "").strip() or None,
        )

        subtotal = ZERO
        total_gst = ZERO
        for line in data.items:
            if line.quantity is None or line.quantity <= 0:
                raise InvalidInput("Quantity must be greater than zero")
            med = _resolve_medicine(db, line.medicine_id, line.barcode)
            if not med.is_active:
                raise InvalidInput(f"Medicine is discontinued: {med.name}")

            picked = select_batch(db, med, line.quantity)
            batch = stock_ledger.lock_batch(db, picked.id)
            if not batch.has_stock(line.quantity):
                raise stock_ledger.insufficient(batch, line.quantity)

            gst_rate = get_gst_rate(med)
            amt = compute_line_amounts(line.quantity, batch.selling_price, gst_rate)
            bill.items.append(BillItem(
                medicine_id=med.id,
                batch_id=batch.id,
                batch_number=batch.batch_number,
                quantity=line.quantity,
                unit_price=money2(batch.selling_price),
                gst_percentage=gst_rate,
                gst_amount=amt["tax_amount"],
                total_amount=amt["total"],
            ))
            subtotal += amt["subtotal"]
            total_gst += amt["tax_amount"]

        bill.subtotal = money2(subtotal)
        bill.total_gst = money2(total_gst)
        bill.total_amount = money2(subtotal + total_gst)

        total_paid = ZERO
        for p in data.payments:
            pay = _build_payment(p, now)
            bill.payments.append(pay)
            total_paid += pay.amount

        if total_paid <= ZERO:
            raise InvalidInput("Total payment amount must be greater than zero")

        bill.payment_status = derive_payment_status(total_paid, bill.total_amount)

        if not bill.items or len(bill.items) != len(data.items):
            raise StateInvariantViolation("Bill lost its items before persistence")

        db.add(bill)
        try:
            db.flush()
        except IntegrityError as e:
            raise Conflict(f"Bill {bill.bill_number} could not be saved: number or payment reference "
                           f"already in use") from e

        for item in bill.items:
            stock_ledger.deduct(db, item.batch_id, item.quantity)

        db.commit()
    except Exception:
        db.rollback()
        raise

    bill = get_bill(db, bill.id)
    out = bill_to_out(bill)
    logger.info("bill %s created: total=%s status=%s items=%s",
                out.bill_number, out.total_amount, out.payment_status.value, len(out.items))

    log_audit(ActionType.BILL_CREATED, actor_id=operator.id, entity_type="Bill", entity_id=bill.id,
              description=f"Created bill {bill.bill_number}",
              new_value={"bill_number": bill.bill_number, "total_amount": out.total_amount,
                         "payment_status": out.payment_status.value},
              ip_address=ip)
    return out


# ---------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------
def cancel_bill(db: Session, bill_id: int, reason: str, user: User, ip: Optional[str] = None) -> BillOut:
    reason = (reason or "").strip()
    if not reason:
        raise InvalidInput("Cancellation reason is required")

    try:
        use_isolation_level(db, settings.BILLING_ISOLATION_LEVEL)
        lock_bill(db, bill_id)
        bill = get_bill(db, bill_id)
        if bill.cancelled:
            raise Conflict(f"Bill {bill.bill_number} is already cancelled")
        status = effective_payment_status(bill)
        if status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise Conflict(f"Bill {bill.bill_number} is {status.value}; process a return instead")

        old_status = bill.payment_status
        bill.cancelled = True
        bill.cancellation_reason = reason
        bill.cancelled_at = now_ist()
        bill.payment_status = status

        for item in bill.items:
            stock_ledger.restore(db, item.batch_id, item.quantity)

        db.commit()
    except Exception:
        db.rollback()
        raise

    out = bill_to_out(bill)
    logger.info("bill %s cancelled", bill.bill_number)

    log_audit(ActionType.BILL_CANCELLED, actor_id=user.id, entity_type="Bill", entity_id=bill.id,
              description=f"Cancelled bill {bill.bill_number}: {reason}",
              old_value={"cancelled": False, "payment_status": old_status},
              new_value={"cancelled": True, "reason": reason},
              ip_address=ip)
    return out


# ---------------------------------------------------------------------
# Additional payment
# ---------------------------------------------------------------------
def record_payment(db: Session, bill_id: int, payment: PaymentIn, user: User,
                   ip: Optional[str] = None) -> BillOut:
    try:
        use_isolation_level(db, settings.BILLING_ISOLATION_LEVEL)
        lock_bill(db, bill_id)
        bill = get_bill(db, bill_id)
        if bill.cancelled:
            raise Conflict(f"Bill {bill.bill_number} is cancelled")
        if bill.payment_status == PaymentStatus.REFUNDED:
            raise Conflict(f"Bill {bill.bill_number} is refunded")

        pay = _build_payment(payment, now_ist())
        bill.payments.append(pay)
        bill.payment_status = derive_payment_status(completed_total(bill.payments), bill.total_amount)
        try:
            db.flush()
        except IntegrityError as e:
            raise Conflict(f"Payment reference already used: {pay.payment_reference}") from e
        db.commit()
    except Exception:
        db.rollback()
        raise

    out = bill_to_out(bill)
    logger.info("payment %s of %s recorded on bill %s", pay.payment_reference, pay.amount, bill.bill_number)

    log_audit(ActionType.PAYMENT_RECEIVED, actor_id=user.id, entity_type="Payment", entity_id=pay.id,
              description=f"Payment {pay.payment_reference} on bill {bill.bill_number}",
              new_value={"mode": pay.mode, "amount": pay.amount, "payment_status": out.payment_status.value},
              ip_address=ip)
    return out
