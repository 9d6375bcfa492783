# FILE: pharmacy_pos/services/stock_ledger.py
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pharmacy_pos.core.errors import (
    Conflict,
    InsufficientStock,
    InvalidInput,
    NotFound,
    StateInvariantViolation,
)
from pharmacy_pos.db import row_locks
from pharmacy_pos.db.session import supports_row_locks
from pharmacy_pos.models.medicine import Batch, StockUnit
from pharmacy_pos.utils.timezone import now_ist

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# Ledger operations
# ---------------------------------------------------------------------
def _require_positive(quantity) -> int:
    if quantity is None or int(quantity) <= 0:
        raise InvalidInput("Quantity must be greater than zero")
    return int(quantity)


def lock_batch(db: Session, batch_id: int) -> Batch:
    """
    Exclusive lock on one batch row for the rest of the caller's transaction.
    The row is always re-read from the database, never served from the identity map.
    """
    if not supports_row_locks(db):
        row_locks.acquire(db, "batch", int(batch_id))

    batch = db.execute(
        select(Batch)
        .where(Batch.id == batch_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not batch:
        raise NotFound(f"Batch not found with id: {batch_id}")
    return batch


def _is_unit_tracked(db: Session, batch_id: int) -> bool:
    n = db.execute(
        select(func.count(StockUnit.id)).where(StockUnit.batch_id == batch_id)
    ).scalar_one()
    return int(n or 0) > 0


def _flush(db: Session, batch: Batch) -> None:
    try:
        db.flush()
    except StaleDataError as e:
        logger.warning("batch %s changed underneath a locked update", batch.id)
        raise Conflict(f"Batch {batch.batch_number} was modified concurrently") from e


def insufficient(batch: Batch, quantity: int) -> InsufficientStock:
    available = int(batch.quantity_available or 0)
    logger.warning("stock re-check failed for batch %s (%s): available=%s required=%s",
                   batch.id, batch.batch_number, available, quantity)
    return InsufficientStock(
        f"Insufficient stock in batch: {batch.batch_number}. "
        f"Available: {available}, Required: {quantity}",
        available=available,
        required=quantity,
    )


def deduct(db: Session, batch_id: int, quantity: int) -> Batch:
    """
    Lock, re-check and decrement. The check and the write happen under the
    same lock, so concurrent deductions can never take a batch below zero.
    Flushes but does not commit.
    """
    quantity = _require_positive(quantity)
    batch = lock_batch(db, batch_id)

    available = int(batch.quantity_available or 0)
    if available < quantity:
        raise insufficient(batch, quantity)

    batch.quantity_available = available - quantity

    if _is_unit_tracked(db, batch.id):
        units = db.execute(
            select(StockUnit)
            .where(StockUnit.batch_id == batch.id, StockUnit.sold.is_(False))
            .order_by(StockUnit.id.asc())
            .limit(quantity)
        ).scalars().all()
        if len(units) < quantity:
            raise StateInvariantViolation(
                f"Batch {batch.batch_number} has {len(units)} unsold units for {available} in stock")
        sold_at = now_ist()
        for u in units:
            u.sold = True
            u.sold_at = sold_at

    _flush(db, batch)
    return batch


def restore(db: Session, batch_id: int, quantity: int) -> Batch:
    """Lock and increment. Used by cancellation and returns. Flushes, does not commit."""
    quantity = _require_positive(quantity)
    batch = lock_batch(db, batch_id)

    batch.quantity_available = int(batch.quantity_available or 0) + quantity

    if _is_unit_tracked(db, batch.id):
        units = db.execute(
            select(StockUnit)
            .where(StockUnit.batch_id == batch.id, StockUnit.sold.is_(True))
            .order_by(StockUnit.id.desc())
            .limit(quantity)
        ).scalars().all()
        if len(units) < quantity:
            raise StateInvariantViolation(
                f"Batch {batch.batch_number} has only {len(units)} sold units to restore {quantity}")
        for u in units:
            u.sold = False
            u.sold_at = None

    _flush(db, batch)
    return batch
