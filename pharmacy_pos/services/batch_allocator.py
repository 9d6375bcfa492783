# FILE: pharmacy_pos/services/batch_allocator.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.orm import Session

from pharmacy_pos.core.errors import InsufficientStock, InvalidInput, NotFound
from pharmacy_pos.models.medicine import Batch, Medicine
from pharmacy_pos.utils.timezone import today_ist


def _eligible(medicine_id: int, today: date):
    return and_(
        Batch.medicine_id == medicine_id,
        Batch.expiry_date > today,
        Batch.quantity_available > 0,
    )


def _has_unexpired(db: Session, medicine_id: int, today: date) -> bool:
    return db.execute(
        select(Batch.id)
        .where(Batch.medicine_id == medicine_id, Batch.expiry_date > today)
        .limit(1)
    ).first() is not None


def eligible_batches(db: Session, medicine_id: int, today: Optional[date] = None) -> List[Batch]:
    """Non-expired batches with stock, earliest expiry first (id breaks ties)."""
    today = today or today_ist()
    return list(db.execute(
        select(Batch)
        .where(_eligible(medicine_id, today))
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
    ).scalars().all())


def total_available(db: Session, medicine_id: int, today: Optional[date] = None) -> int:
    today = today or today_ist()
    total = db.execute(
        select(func.coalesce(func.sum(Batch.quantity_available), 0))
        .where(_eligible(medicine_id, today))
    ).scalar_one()
    return int(total or 0)


def select_batch(
    db: Session,
    medicine: Medicine,
    quantity: int,
    today: Optional[date] = None,
) -> Batch:
    """
    FIFO-by-expiry: the earliest-expiring eligible batch that can cover the
    whole quantity on its own. One line is never split across batches.

    A medicine with no unexpired batch at all is NotFound; one whose unexpired
    batches are all empty is InsufficientStock with available=0.

    Read-only. The returned batch may be stale by the time it is used;
    stock_ledger.deduct re-checks under the row lock.
    """
    if quantity is None or int(quantity) <= 0:
        raise InvalidInput("Quantity must be greater than zero")
    quantity = int(quantity)
    today = today or today_ist()

    batches = eligible_batches(db, medicine.id, today)
    for batch in batches:
        if batch.has_stock(quantity):
            return batch

    if not batches and not _has_unexpired(db, medicine.id, today):
        raise NotFound(f"No available batches found for medicine: {medicine.name}")

    available = sum(int(b.quantity_available or 0) for b in batches)
    if available < quantity:
        raise InsufficientStock(
            f"Insufficient stock for medicine: {medicine.name}. "
            f"Available: {available}, Required: {quantity}",
            available=available,
            required=quantity,
        )

    largest = max(int(b.quantity_available or 0) for b in batches)
    raise InsufficientStock(
        f"Insufficient stock in single batch for medicine: {medicine.name}. "
        f"Largest batch: {largest}, Required: {quantity} (total across batches: {available})",
        available=largest,
        required=quantity,
    )
