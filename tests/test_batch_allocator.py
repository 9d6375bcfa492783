# tests/test_batch_allocator.py
import pytest

from pharmacy_pos.core.errors import InsufficientStock, InvalidInput, NotFound
from pharmacy_pos.services.batch_allocator import eligible_batches, select_batch, total_available


def test_earliest_expiry_wins_even_if_later_batch_is_bigger(db, medicine, make_batch):
    early = make_batch(medicine, 5, expires_in_days=10, number="A")
    make_batch(medicine, 500, expires_in_days=40, number="B")

    assert select_batch(db, medicine, 3).id == early.id


def test_skips_batches_that_cannot_cover_the_line(db, medicine, make_batch):
    make_batch(medicine, 2, expires_in_days=10, number="A")
    later = make_batch(medicine, 20, expires_in_days=40, number="B")

    assert select_batch(db, medicine, 4).id == later.id


def test_expired_and_empty_batches_are_not_eligible(db, medicine, make_batch):
    make_batch(medicine, 50, expires_in_days=-1, number="OLD")
    make_batch(medicine, 50, expires_in_days=0, number="TODAY")
    make_batch(medicine, 0, expires_in_days=5, number="EMPTY")
    ok = make_batch(medicine, 3, expires_in_days=30, number="OK")

    assert [b.batch_number for b in eligible_batches(db, medicine.id)] == ["OK"]
    assert total_available(db, medicine.id) == 3
    assert select_batch(db, medicine, 3).id == ok.id


def test_same_expiry_breaks_tie_by_id(db, medicine, make_batch):
    first = make_batch(medicine, 5, expires_in_days=20, number="X1")
    make_batch(medicine, 5, expires_in_days=20, number="X2")

    assert select_batch(db, medicine, 5).id == first.id


def test_total_covers_but_no_single_batch_does(db, medicine, make_batch):
    make_batch(medicine, 2, expires_in_days=10, number="A")
    make_batch(medicine, 3, expires_in_days=40, number="B")

    with pytest.raises(InsufficientStock) as exc:
        select_batch(db, medicine, 4)
    assert "single batch" in exc.value.message
    assert exc.value.required == 4


def test_total_shortfall_reports_available_and_required(db, medicine, make_batch):
    make_batch(medicine, 2, expires_in_days=10)
    make_batch(medicine, 3, expires_in_days=40)

    with pytest.raises(InsufficientStock) as exc:
        select_batch(db, medicine, 10)
    assert exc.value.available == 5
    assert exc.value.required == 10


def test_no_eligible_batch_is_not_found(db, medicine, make_batch):
    make_batch(medicine, 10, expires_in_days=-3)
    with pytest.raises(NotFound):
        select_batch(db, medicine, 1)


def test_sold_out_medicine_is_insufficient_not_missing(db, medicine, make_batch):
    make_batch(medicine, 0)
    make_batch(medicine, 10, expires_in_days=-3, number="OLD")
    with pytest.raises(InsufficientStock) as exc:
        select_batch(db, medicine, 2)
    assert (exc.value.available, exc.value.required) == (0, 2)


@pytest.mark.parametrize("qty", [0, -2])
def test_non_positive_quantity_rejected(db, medicine, make_batch, qty):
    make_batch(medicine, 10)
    with pytest.raises(InvalidInput):
        select_batch(db, medicine, qty)
