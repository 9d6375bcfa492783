from __future__ import annotations

import logging
import time
import uuid
from datetime import date

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_pos.core.errors import Conflict
from pharmacy_pos.db import row_locks
from pharmacy_pos.db.session import supports_row_locks
from pharmacy_pos.models.billing import Bill, BillNumberSeries, PaymentMode

logger = logging.getLogger(__name__)

BILL_PREFIX = "BILL"
RETURN_PREFIX = "RET"
SEQ_PADDING = 4
MAX_SEQ = 10 ** SEQ_PADDING - 1


def _date_key(d: date) -> str:
    return d.strftime("%Y%m%d")


def bill_prefix(on_date: date) -> str:
    return f"{BILL_PREFIX}{_date_key(on_date)}"


def _max_sequence(db: Session, prefix: str) -> int:
    """Highest daily sequence already used. Only well-formed numbers count, so
    the string max is also the numeric max."""
    last = db.execute(
        select(func.max(Bill.bill_number)).where(
            Bill.bill_number.like(f"{prefix}%"),
            func.length(Bill.bill_number) == len(prefix) + SEQ_PADDING,
        )
    ).scalar_one_or_none()
    if not last:
        return 0
    return int(last[len(prefix):])


def _locked_series(db: Session, on_date: date) -> BillNumberSeries:
    """
    Today's counter row, locked until the caller's transaction ends.
    Created on first use, seeded from the bills already numbered that day.
    """
    date_key = int(_date_key(on_date))
    if not supports_row_locks(db):
        row_locks.acquire(db, "bill_series", (BILL_PREFIX, date_key), label="Bill number series")

    stmt = (
        select(BillNumberSeries)
        .where(BillNumberSeries.prefix == BILL_PREFIX, BillNumberSeries.date_key == date_key)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    row = db.execute(stmt).scalar_one_or_none()
    if row:
        return row

    row = BillNumberSeries(prefix=BILL_PREFIX, date_key=date_key,
                           next_seq=_max_sequence(db, bill_prefix(on_date)) + 1)
    if not supports_row_locks(db):
        # no other creator can get past the mutex
        db.add(row)
        db.flush()
        return row

    try:
        with db.begin_nested():
            db.add(row)
    except IntegrityError:
        # another transaction created the row first; wait for its lock
        row = db.execute(stmt).scalar_one_or_none()
        if not row:
            raise
    return row


def next_bill_number(db: Session, on_date: date) -> str:
    """
    BILL + YYYYMMDD + 4-digit daily sequence, drawn from a locked daily counter.

    The counter row stays locked until the caller commits or rolls back, so
    concurrent sales take numbers one after another. If the counter cannot
    be read a wall-clock pseudo-sequence is used instead; that value is not
    unique and the UNIQUE constraint on bills.bill_number rejects a collision.
    """
    prefix = bill_prefix(on_date)
    try:
        row = _locked_series(db, on_date)
    except SQLAlchemyError:
        seq = int(time.time() * 1000) % (MAX_SEQ + 1)
        logger.warning("bill sequence lookup failed for %s, using fallback %04d",
                       prefix, seq, exc_info=True)
        return f"{prefix}{seq:0{SEQ_PADDING}d}"

    seq = int(row.next_seq or 1)
    if seq > MAX_SEQ:
        logger.error("bill sequence exhausted for %s", prefix)
        raise Conflict(f"Bill numbers for {on_date:%Y-%m-%d} are exhausted ({MAX_SEQ} per day)")
    row.next_seq = seq + 1
    db.flush()
    return f"{prefix}{seq:0{SEQ_PADDING}d}"


def _token() -> str:
    return uuid.uuid4().hex[:8].upper()


def new_return_number(on_date: date) -> str:
    return f"{RETURN_PREFIX}{_date_key(on_date)}-{_token()}"


def new_payment_reference(mode: PaymentMode) -> str:
    name = mode.value if hasattr(mode, "value") else str(mode)
    return f"{name[:1].upper()}-{_token()}"
