# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - every test gets its own SQLite file under tmp_path
# - SessionLocal is rebound to that file, so services and log_audit
#   (which opens its own session) all see the same database
# - fixtures build rows directly through the ORM
# ---------------------------------------------------------------------
from __future__ import annotations

import os
import tempfile
from datetime import timedelta
from decimal import Decimal

# must be set before pharmacy_pos.core.config is imported
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "pharmacy_pos_import.db"),
)
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest

import pharmacy_pos.models  # noqa: F401
from pharmacy_pos.db.base import Base
from pharmacy_pos.db.session import SessionLocal, make_engine
from pharmacy_pos.models import Batch, Medicine, MedicineStatus, User
from pharmacy_pos.utils.timezone import today_ist


@pytest.fixture()
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'pos.db'}")
    Base.metadata.create_all(bind=eng)
    SessionLocal.configure(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def db(engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def operator(db) -> User:
    # bcrypt hashing is slow; routes_auth tests hash for real
    user = User(name="Counter 1", email="cashier@store.test", password_hash="x",
                is_active=True, is_admin=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def make_medicine(db):
    seq = {"n": 0}

    def _make(name="Paracetamol 500", gst="12", barcode=None, status=MedicineStatus.ACTIVE) -> Medicine:
        seq["n"] += 1
        med = Medicine(
            name=name,
            manufacturer="Acme Pharma",
            hsn_code=f"3004{seq['n']:04d}",
            barcode=barcode,
            gst_percentage=Decimal(gst),
            status=status,
        )
        db.add(med)
        db.commit()
        return med

    return _make


@pytest.fixture()
def make_batch(db):
    def _make(medicine: Medicine, qty: int, expires_in_days: int = 180, price="10.00",
              number=None) -> Batch:
        batch = Batch(
            medicine_id=medicine.id,
            batch_number=number or f"B{medicine.id}-{expires_in_days}",
            expiry_date=today_ist() + timedelta(days=expires_in_days),
            purchase_price=Decimal(price) / 2,
            selling_price=Decimal(price),
            quantity_available=qty,
        )
        db.add(batch)
        db.commit()
        return batch

    return _make


@pytest.fixture()
def medicine(make_medicine):
    return make_medicine()


@pytest.fixture()
def qty_of(engine):
    """Read a batch quantity through a brand-new session."""
    def _read(batch_id: int) -> int:
        s = SessionLocal()
        try:
            return s.get(Batch, batch_id).quantity_available
        finally:
            s.close()

    return _read
