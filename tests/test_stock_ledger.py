# tests/test_stock_ledger.py
import gc
import threading

import pytest

from pharmacy_pos.core.errors import InsufficientStock, InvalidInput, NotFound
from pharmacy_pos.db import row_locks
from pharmacy_pos.db.session import SessionLocal
from pharmacy_pos.models import StockUnit
from pharmacy_pos.services import stock_ledger


def test_deduct_and_restore_do_not_commit(db, medicine, make_batch, qty_of):
    batch = make_batch(medicine, 10)

    stock_ledger.deduct(db, batch.id, 4)
    db.rollback()
    assert qty_of(batch.id) == 10

    stock_ledger.deduct(db, batch.id, 4)
    db.commit()
    assert qty_of(batch.id) == 6

    stock_ledger.restore(db, batch.id, 4)
    db.commit()
    assert qty_of(batch.id) == 10


def test_deduct_rechecks_under_lock(db, medicine, make_batch, qty_of):
    batch = make_batch(medicine, 3)
    with pytest.raises(InsufficientStock) as exc:
        stock_ledger.deduct(db, batch.id, 4)
    db.rollback()
    assert (exc.value.available, exc.value.required) == (3, 4)
    assert qty_of(batch.id) == 3


def test_two_deductions_in_one_transaction_see_each_other(db, medicine, make_batch, qty_of):
    batch = make_batch(medicine, 5)
    stock_ledger.deduct(db, batch.id, 3)
    with pytest.raises(InsufficientStock):
        stock_ledger.deduct(db, batch.id, 3)
    db.rollback()
    assert qty_of(batch.id) == 5


def test_restore_has_no_upper_bound(db, medicine, make_batch, qty_of):
    batch = make_batch(medicine, 1)
    stock_ledger.restore(db, batch.id, 100)
    db.commit()
    assert qty_of(batch.id) == 101


def test_bad_arguments(db, medicine, make_batch):
    batch = make_batch(medicine, 1)
    with pytest.raises(InvalidInput):
        stock_ledger.deduct(db, batch.id, 0)
    with pytest.raises(InvalidInput):
        stock_ledger.restore(db, batch.id, -1)
    with pytest.raises(NotFound):
        stock_ledger.deduct(db, 9999, 1)
    db.rollback()


def test_unit_tracked_batch_marks_units(db, medicine, make_batch):
    batch = make_batch(medicine, 3)
    for code in ("U1", "U2", "U3"):
        db.add(StockUnit(batch_id=batch.id, scan_code=code))
    db.commit()

    stock_ledger.deduct(db, batch.id, 2)
    db.commit()
    sold = [u.scan_code for u in db.query(StockUnit).filter(StockUnit.sold.is_(True)).order_by(StockUnit.id)]
    assert sold == ["U1", "U2"]

    stock_ledger.restore(db, batch.id, 1)
    db.commit()
    sold = [u.scan_code for u in db.query(StockUnit).filter(StockUnit.sold.is_(True)).order_by(StockUnit.id)]
    assert sold == ["U1"]


def test_concurrent_deductions_never_oversell(engine, medicine, make_batch, qty_of):
    # k * q in stock, N > k contenders
    q, k, n = 2, 5, 8
    batch = make_batch(medicine, k * q)
    barrier = threading.Barrier(n)
    results = []
    guard = threading.Lock()

    def sell():
        s = SessionLocal()
        try:
            barrier.wait()
            stock_ledger.deduct(s, batch.id, q)
            s.commit()
            outcome = "ok"
        except InsufficientStock:
            s.rollback()
            outcome = "short"
        finally:
            s.close()
        with guard:
            results.append(outcome)

    threads = [threading.Thread(target=sell) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert results.count("ok") == k
    assert results.count("short") == n - k
    assert qty_of(batch.id) == 0


def test_lock_is_released_on_rollback(db, engine, medicine, make_batch, qty_of):
    batch = make_batch(medicine, 4)
    stock_ledger.lock_batch(db, batch.id)
    db.rollback()

    other = SessionLocal()
    try:
        stock_ledger.deduct(other, batch.id, 1)
        other.commit()
    finally:
        other.close()
    assert qty_of(batch.id) == 3


def test_released_batch_mutexes_are_dropped(db, medicine, make_batch):
    batches = [make_batch(medicine, 5, expires_in_days=30 + i) for i in range(3)]
    gc.collect()
    before = row_locks.registered_count()

    for b in batches:
        stock_ledger.lock_batch(db, b.id)
    stock_ledger.lock_batch(db, batches[0].id)  # re-entrant
    assert row_locks.registered_count() == before + 3

    db.commit()
    gc.collect()
    assert row_locks.registered_count() == before
