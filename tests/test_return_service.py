# tests/test_return_service.py
import threading
from decimal import Decimal

import pytest

from pharmacy_pos.core.errors import Conflict, InvalidInput, NotFound
from pharmacy_pos.db.session import SessionLocal
from pharmacy_pos.models import ActionType, AuditLog, PaymentStatus, ReturnType
from pharmacy_pos.schemas.billing import BillCreate, BillLineIn, PaymentIn
from pharmacy_pos.schemas.returns import ReturnCreate, ReturnLineIn
from pharmacy_pos.services import billing_service, return_service
from pharmacy_pos.services.billing_math import line_refund, per_unit_refund


@pytest.fixture()
def paid_bill(db, operator, make_medicine, make_batch):
    """Two-line PAID bill: 3 x 10.00 @12% and 2 x 25.00 @5%."""
    m1 = make_medicine(name="Amoxicillin", gst="12")
    m2 = make_medicine(name="Pantoprazole", gst="5")
    b1 = make_batch(m1, 10, price="10.00", number="AMX1")
    b2 = make_batch(m2, 10, price="25.00", number="PAN1")
    out = billing_service.create_bill(db, BillCreate(
        items=[BillLineIn(medicine_id=m1.id, quantity=3), BillLineIn(medicine_id=m2.id, quantity=2)],
        payments=[PaymentIn(mode="CASH", amount="86.10")],
    ), operator)
    assert out.payment_status == PaymentStatus.PAID
    return out, b1, b2


def _req(bill_id, *lines, reason="damaged strip"):
    return ReturnCreate(bill_id=bill_id, reason=reason,
                        items=[ReturnLineIn(bill_item_id=i, quantity=q) for i, q in lines])


def test_refund_rounds_per_unit_before_multiplying():
    assert per_unit_refund(Decimal("100.00"), 3) == Decimal("33.33")
    assert line_refund(Decimal("100.00"), 3, 1) == Decimal("33.33")
    # 100 * 2 / 3 would round to 66.67
    assert line_refund(Decimal("100.00"), 3, 2) == Decimal("66.66")


def test_partial_return_keeps_bill_paid(db, operator, paid_bill, qty_of):
    bill, b1, b2 = paid_bill
    line1 = bill.items[0]

    out = return_service.process_return(db, _req(bill.id, (line1.id, 1)), operator)

    assert out.payment_status == PaymentStatus.PAID
    assert qty_of(b1.id) == 8
    ret = return_service.returns_for_bill(db, bill.id)[0]
    assert ret.return_type == ReturnType.PARTIAL
    # line total 33.60 over 3 units
    assert ret.refund_amount == Decimal("11.20")
    assert ret.items[0].batch_id == b1.id


def test_full_return_refunds_bill_and_restores_exact_batches(db, operator, paid_bill, make_batch, qty_of):
    bill, b1, b2 = paid_bill
    # an earlier-expiring batch appears after the sale; restore must ignore FIFO
    early = make_batch(b1.medicine, 1, expires_in_days=2, number="EARLY")

    out = return_service.process_return(
        db, _req(bill.id, (bill.items[0].id, 3), (bill.items[1].id, 2)), operator)

    assert out.payment_status == PaymentStatus.REFUNDED
    assert (qty_of(b1.id), qty_of(b2.id), qty_of(early.id)) == (10, 10, 1)
    ret = return_service.returns_for_bill(db, bill.id)[0]
    assert ret.return_type == ReturnType.FULL
    assert ret.refund_amount == Decimal("86.10")
    assert db.query(AuditLog).filter(AuditLog.action == ActionType.REFUND_PROCESSED).count() == 1

    with pytest.raises(Conflict):
        return_service.process_return(db, _req(bill.id, (bill.items[0].id, 1)), operator)


def test_cumulative_returns_become_full(db, operator, paid_bill):
    bill, _, _ = paid_bill
    l1, l2 = bill.items

    return_service.process_return(db, _req(bill.id, (l1.id, 3)), operator)
    out = return_service.process_return(db, _req(bill.id, (l2.id, 2)), operator)

    assert out.payment_status == PaymentStatus.REFUNDED
    types = [r.return_type for r in return_service.returns_for_bill(db, bill.id)]
    assert types == [ReturnType.PARTIAL, ReturnType.FULL]


def test_over_return_is_rejected_before_any_restore(db, operator, paid_bill, qty_of):
    bill, b1, b2 = paid_bill
    l1, l2 = bill.items

    with pytest.raises(Conflict):
        return_service.process_return(db, _req(bill.id, (l1.id, 1), (l2.id, 3)), operator)
    assert (qty_of(b1.id), qty_of(b2.id)) == (7, 8)

    return_service.process_return(db, _req(bill.id, (l1.id, 2)), operator)
    with pytest.raises(Conflict):
        return_service.process_return(db, _req(bill.id, (l1.id, 2)), operator)
    assert qty_of(b1.id) == 9


def test_invalid_return_requests(db, operator, paid_bill):
    bill, _, _ = paid_bill
    l1 = bill.items[0]

    with pytest.raises(InvalidInput):
        return_service.process_return(db, ReturnCreate(bill_id=bill.id, items=[]), operator)
    with pytest.raises(InvalidInput):
        return_service.process_return(db, _req(bill.id, (l1.id, 1), (l1.id, 1)), operator)
    with pytest.raises(NotFound):
        return_service.process_return(db, _req(bill.id, (99999, 1)), operator)
    with pytest.raises(NotFound):
        return_service.process_return(db, _req(424242, (l1.id, 1)), operator)


def test_unpaid_or_cancelled_bill_cannot_be_returned(db, operator, medicine, make_batch):
    make_batch(medicine, 10, price="100.00")
    out = billing_service.create_bill(db, BillCreate(
        items=[BillLineIn(medicine_id=medicine.id, quantity=1)],
        payments=[PaymentIn(mode="CASH", amount="10")],
    ), operator)
    line = out.items[0]

    with pytest.raises(Conflict):
        return_service.process_return(db, _req(out.id, (line.id, 1)), operator)

    billing_service.cancel_bill(db, out.id, "wrong item", operator)
    with pytest.raises(Conflict):
        return_service.process_return(db, _req(out.id, (line.id, 1)), operator)


def test_concurrent_returns_cannot_exceed_sold_quantity(db, operator, paid_bill, qty_of):
    bill, b1, _ = paid_bill
    line1 = bill.items[0]  # 3 sold, batch left at 7
    barrier = threading.Barrier(2)
    results = []
    guard = threading.Lock()

    def give_back():
        s = SessionLocal()
        try:
            barrier.wait()
            return_service.process_return(s, _req(bill.id, (line1.id, 2)), operator)
            outcome = "ok"
        except Conflict:
            outcome = "conflict"
        finally:
            s.close()
        with guard:
            results.append(outcome)

    threads = [threading.Thread(target=give_back) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(results) == ["conflict", "ok"]
    assert qty_of(b1.id) == 9
    returned = sum(i.quantity for r in return_service.returns_for_bill(db, bill.id) for i in r.items)
    assert returned == 2
