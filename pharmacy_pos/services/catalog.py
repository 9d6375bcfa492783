# FILE: pharmacy_pos/services/catalog.py
from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import Conflict, InvalidInput, NotFound, StateInvariantViolation
from pharmacy_pos.models.audit import ActionType
from pharmacy_pos.models.billing import BillItem
from pharmacy_pos.models.medicine import Batch, Medicine, MedicineStatus, StockUnit
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.medicine import (
    BatchCreate,
    BatchOut,
    BatchUpdate,
    MedicineCreate,
    MedicineOut,
    MedicineUpdate,
)
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.audit_logger import log_audit
from pharmacy_pos.utils.timezone import today_ist

logger = logging.getLogger(__name__)


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning("optimistic version conflict on %s", what)
        raise Conflict(f"{what} was modified by another user, reload and retry") from e
    except IntegrityError as e:
        db.rollback()
        raise Conflict(f"{what} conflicts with existing data") from e


def _check_version(obj, expected_version: Optional[int], what: str) -> None:
    if expected_version is not None and int(expected_version) != int(obj.version):
        logger.warning("stale version for %s: expected=%s current=%s", what, expected_version, obj.version)
        raise Conflict(f"{what} was modified by another user, reload and retry")


def _snapshot(obj, *fields) -> dict:
    return {f: getattr(obj, f) for f in fields}


# ---------------------------------------------------------------------
# Medicines
# ---------------------------------------------------------------------
def get_medicine_by_id(db: Session, medicine_id: int) -> Medicine:
    med = db.get(Medicine, medicine_id)
    if not med:
        raise NotFound(f"Medicine not found with id: {medicine_id}")
    return med


def get_medicine_by_barcode(db: Session, barcode: str) -> Medicine:
    code = (barcode or "").strip()
    if not code:
        raise InvalidInput("Barcode is required")
    med = db.query(Medicine).filter(Medicine.barcode == code).first()
    if not med:
        raise NotFound(f"Medicine not found with barcode: {code}")
    return med


def get_gst_rate(medicine: Medicine) -> Decimal:
    return Decimal(str(medicine.gst_percentage or 0))


def _ensure_unique_codes(db: Session, hsn_code: Optional[str], barcode: Optional[str],
                         exclude_id: Optional[int] = None) -> None:
    if hsn_code:
        q = db.query(Medicine.id).filter(Medicine.hsn_code == hsn_code)
        if exclude_id:
            q = q.filter(Medicine.id != exclude_id)
        if q.first():
            raise Conflict(f"Medicine with HSN code {hsn_code} already exists")
    if barcode:
        q = db.query(Medicine.id).filter(Medicine.barcode == barcode)
        if exclude_id:
            q = q.filter(Medicine.id != exclude_id)
        if q.first():
            raise Conflict(f"Medicine with barcode {barcode} already exists")


def create_medicine(db: Session, data: MedicineCreate, user: User, ip: Optional[str] = None) -> Medicine:
    _ensure_unique_codes(db, data.hsn_code, data.barcode)

    med = Medicine(
        name=data.name.strip(),
        manufacturer=data.manufacturer.strip(),
        category=data.category,
        barcode=data.barcode,
        hsn_code=data.hsn_code.strip(),
        gst_percentage=data.gst_percentage,
        prescription_required=data.prescription_required,
        status=MedicineStatus.ACTIVE,
    )
    db.add(med)

    if data.initial_stock:
        missing = [f for f in ("batch_number", "expiry_date", "purchase_price", "selling_price")
                   if getattr(data, f) in (None, "")]
        if missing:
            db.rollback()
            raise InvalidInput(f"Initial stock needs: {', '.join(missing)}")
        if data.expiry_date < today_ist():
            db.rollback()
            raise InvalidInput("Expiry date cannot be in the past")
        med.batches.append(Batch(
            batch_number=data.batch_number.strip(),
            expiry_date=data.expiry_date,
            purchase_price=data.purchase_price,
            selling_price=data.selling_price,
            quantity_available=int(data.initial_stock),
        ))

    _commit(db, "Medicine")
    db.refresh(med)
    logger.info("medicine %s added (hsn=%s)", med.id, med.hsn_code)

    log_audit(ActionType.MEDICINE_ADDED, actor_id=user.id, entity_type="Medicine", entity_id=med.id,
              description=f"Added medicine: {med.name}",
              new_value=_snapshot(med, "name", "hsn_code", "barcode", "gst_percentage"),
              ip_address=ip)
    return med


def update_medicine(db: Session, medicine_id: int, data: MedicineUpdate, user: User,
                    ip: Optional[str] = None) -> Medicine:
    med = get_medicine_by_id(db, medicine_id)
    _check_version(med, data.expected_version, "Medicine")

    changes = data.model_dump(exclude_unset=True, exclude={"expected_version"})
    if "barcode" in changes:
        changes["barcode"] = (changes["barcode"] or "").strip() or None
    _ensure_unique_codes(db, changes.get("hsn_code"), changes.get("barcode"), exclude_id=med.id)

    old = _snapshot(med, *changes.keys())
    for k, v in changes.items():
        setattr(med, k, v)

    _commit(db, "Medicine")
    db.refresh(med)

    log_audit(ActionType.MEDICINE_UPDATED, actor_id=user.id, entity_type="Medicine", entity_id=med.id,
              description=f"Updated medicine: {med.name}",
              old_value=old, new_value=_snapshot(med, *changes.keys()), ip_address=ip)
    return med


def update_medicine_status(db: Session, medicine_id: int, status: MedicineStatus, user: User,
                           ip: Optional[str] = None) -> Medicine:
    med = get_medicine_by_id(db, medicine_id)
    old = med.status
    med.status = status
    _commit(db, "Medicine")
    db.refresh(med)

    log_audit(ActionType.MEDICINE_UPDATED, actor_id=user.id, entity_type="Medicine", entity_id=med.id,
              description=f"Changed status of {med.name}",
              old_value={"status": old}, new_value={"status": med.status}, ip_address=ip)
    return med


def delete_medicine(db: Session, medicine_id: int, user: User, ip: Optional[str] = None) -> None:
    med = get_medicine_by_id(db, medicine_id)
    if db.query(Batch.id).filter(Batch.medicine_id == med.id).first():
        raise Conflict(f"Cannot delete {med.name} while it has batches; delete the batches first")
    if db.query(BillItem.id).filter(BillItem.medicine_id == med.id).first():
        raise Conflict(f"Cannot delete {med.name}: it appears on bills")

    snapshot = _snapshot(med, "name", "manufacturer", "hsn_code", "barcode", "gst_percentage")
    db.delete(med)
    _commit(db, "Medicine")
    logger.info("medicine %s deleted", medicine_id)

    log_audit(ActionType.MEDICINE_DELETED, actor_id=user.id, entity_type="Medicine", entity_id=medicine_id,
              description=f"Deleted medicine: {snapshot['name']}",
              old_value=snapshot, ip_address=ip)


def search_medicines(db: Session, q: str, limit: int = 50) -> List[Medicine]:
    term = (q or "").strip()
    if not term:
        return list_medicines(db, limit=limit)
    like = f"%{term}%"
    return (db.query(Medicine)
            .filter(or_(Medicine.name.ilike(like),
                        Medicine.manufacturer.ilike(like),
                        Medicine.barcode == term,
                        Medicine.hsn_code == term))
            .order_by(Medicine.name.asc())
            .limit(limit)
            .all())


def search_by_unit_prefix(db: Session, prefix: str, limit: int = 20) -> List[Medicine]:
    """Medicines with at least one unsold unit whose scan code starts with prefix (scan-as-you-type)."""
    term = (prefix or "").strip()
    if not term:
        return []
    ids = (select(Batch.medicine_id)
           .join(StockUnit, StockUnit.batch_id == Batch.id)
           .where(StockUnit.scan_code.like(f"{term}%"), StockUnit.sold.is_(False)))
    return (db.query(Medicine)
            .filter(Medicine.id.in_(ids))
            .order_by(Medicine.name.asc())
            .limit(limit)
            .all())


def list_medicines(db: Session, status: Optional[MedicineStatus] = None, limit: int = 200) -> List[Medicine]:
    q = db.query(Medicine)
    if status:
        q = q.filter(Medicine.status == status)
    return q.order_by(Medicine.name.asc()).limit(limit).all()


def total_stock(db: Session, medicine_id: int) -> int:
    n = (db.query(func.coalesce(func.sum(Batch.quantity_available), 0))
         .filter(Batch.medicine_id == medicine_id)
         .scalar())
    return int(n or 0)


def medicine_to_out(db: Session, med: Medicine) -> MedicineOut:
    out = MedicineOut.model_validate(med, from_attributes=True)
    out.total_stock = total_stock(db, med.id)
    return out


# ---------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------
def get_batch(db: Session, batch_id: int) -> Batch:
    b = db.get(Batch, batch_id)
    if not b:
        raise NotFound(f"Batch not found with id: {batch_id}")
    return b


def is_unit_tracked(db: Session, batch_id: int) -> bool:
    return db.query(StockUnit.id).filter(StockUnit.batch_id == batch_id).first() is not None


def batch_to_out(db: Session, b: Batch) -> BatchOut:
    out = BatchOut.model_validate(b, from_attributes=True)
    out.medicine_name = b.medicine.name if b.medicine else None
    out.expired = b.is_expired(today_ist())
    out.unit_tracked = is_unit_tracked(db, b.id)
    return out


def create_batch(db: Session, data: BatchCreate, user: User, ip: Optional[str] = None) -> Batch:
    med = get_medicine_by_id(db, data.medicine_id)
    if not med.is_active:
        raise InvalidInput(f"Cannot add batch to discontinued medicine: {med.name}")
    if data.expiry_date < today_ist():
        raise InvalidInput("Expiry date cannot be in the past")

    codes: List[str] = []
    if data.scan_codes is not None:
        codes = [(c or "").strip() for c in data.scan_codes]
        if any(not c for c in codes):
            raise InvalidInput("Scan codes cannot be blank")
        if len(codes) != data.quantity:
            raise InvalidInput(
                f"Scan code count ({len(codes)}) must equal quantity ({data.quantity})")
        if len(set(codes)) != len(codes):
            raise Conflict("Duplicate scan codes in request")
        taken = db.query(StockUnit.scan_code).filter(StockUnit.scan_code.in_(codes)).first()
        if taken:
            raise Conflict(f"Scan code already registered: {taken[0]}")

    batch = Batch(
        medicine_id=med.id,
        batch_number=data.batch_number.strip(),
        expiry_date=data.expiry_date,
        purchase_price=data.purchase_price,
        selling_price=data.selling_price,
        quantity_available=data.quantity,
    )
    for c in codes:
        batch.units.append(StockUnit(scan_code=c))
    db.add(batch)

    _commit(db, "Batch")
    db.refresh(batch)
    logger.info("batch %s (%s) added for medicine %s, qty=%s",
                batch.id, batch.batch_number, med.id, batch.quantity_available)

    log_audit(ActionType.BATCH_ADDED, actor_id=user.id, entity_type="Batch", entity_id=batch.id,
              description=f"Added batch {batch.batch_number} for {med.name}",
              new_value={"quantity": batch.quantity_available, "expiry_date": batch.expiry_date,
                         "units": len(codes)},
              ip_address=ip)
    return batch


def update_batch(db: Session, batch_id: int, data: BatchUpdate, user: User,
                 ip: Optional[str] = None) -> Batch:
    batch = get_batch(db, batch_id)
    _check_version(batch, data.expected_version, f"Batch {batch.batch_number}")

    changes = data.model_dump(exclude_unset=True, exclude={"expected_version"})
    if "expiry_date" in changes and changes["expiry_date"] is not None \
            and changes["expiry_date"] < today_ist():
        raise InvalidInput("Expiry date cannot be in the past")

    old = _snapshot(batch, *changes.keys())
    for k, v in changes.items():
        if v is not None:
            setattr(batch, k, v)

    _commit(db, f"Batch {batch.batch_number}")
    db.refresh(batch)
    logger.info("batch %s updated to version %s", batch.id, batch.version)

    log_audit(ActionType.BATCH_UPDATED, actor_id=user.id, entity_type="Batch", entity_id=batch.id,
              description=f"Updated batch {batch.batch_number}",
              old_value=old, new_value=_snapshot(batch, *changes.keys()), ip_address=ip)
    return batch


def update_batch_stock(db: Session, batch_id: int, quantity: int, expected_version: int, user: User,
                       ip: Optional[str] = None, reason: Optional[str] = None) -> Batch:
    """Administrative stock correction. Sales and returns never come through here."""
    if quantity is None or int(quantity) < 0:
        raise InvalidInput("Quantity cannot be negative")
    batch = get_batch(db, batch_id)
    if is_unit_tracked(db, batch.id):
        raise InvalidInput(
            f"Batch {batch.batch_number} is tracked per unit; adjust it by adding or selling units")
    _check_version(batch, expected_version, f"Batch {batch.batch_number}")

    old_qty = batch.quantity_available
    batch.quantity_available = int(quantity)
    _commit(db, f"Batch {batch.batch_number}")
    db.refresh(batch)
    logger.info("batch %s stock set %s -> %s", batch.id, old_qty, batch.quantity_available)

    log_audit(ActionType.STOCK_UPDATED, actor_id=user.id, entity_type="Batch", entity_id=batch.id,
              description=reason or f"Stock corrected for batch {batch.batch_number}",
              old_value={"quantity": old_qty}, new_value={"quantity": batch.quantity_available},
              ip_address=ip)
    return batch


def delete_batch(db: Session, batch_id: int, user: User, ip: Optional[str] = None) -> None:
    batch = get_batch(db, batch_id)
    if int(batch.quantity_available or 0) > 0:
        raise Conflict(f"Batch {batch.batch_number} still has stock")
    if db.query(BillItem.id).filter(BillItem.batch_id == batch.id).first():
        raise Conflict(f"Batch {batch.batch_number} is referenced by bills")

    snapshot = {"batch_number": batch.batch_number, "medicine_id": batch.medicine_id}
    db.delete(batch)
    _commit(db, f"Batch {batch.batch_number}")

    log_audit(ActionType.BATCH_DELETED, actor_id=user.id, entity_type="Batch", entity_id=batch_id,
              description=f"Deleted batch {snapshot['batch_number']}",
              old_value=snapshot, ip_address=ip)


def list_batches(db: Session, medicine_id: int) -> List[Batch]:
    get_medicine_by_id(db, medicine_id)
    return (db.query(Batch)
            .filter(Batch.medicine_id == medicine_id)
            .order_by(Batch.expiry_date.asc(), Batch.id.asc())
            .all())


def list_all_batches(db: Session, limit: int = 500, offset: int = 0) -> List[Batch]:
    return (db.query(Batch)
            .options(joinedload(Batch.medicine))
            .order_by(Batch.created_at.desc(), Batch.id.desc())
            .offset(offset)
            .limit(limit)
            .all())


def expired_batches(db: Session, today: Optional[date] = None) -> List[Batch]:
    today = today or today_ist()
    return (db.query(Batch)
            .filter(Batch.expiry_date < today, Batch.quantity_available > 0)
            .order_by(Batch.expiry_date.asc())
            .all())


def low_stock_batches(db: Session, threshold: Optional[int] = None) -> List[Batch]:
    threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
    return (db.query(Batch)
            .filter(Batch.quantity_available < threshold, Batch.expiry_date >= today_ist())
            .order_by(Batch.quantity_available.asc(), Batch.id.asc())
            .all())


def expiring_batches(db: Session, days: Optional[int] = None, today: Optional[date] = None) -> List[Batch]:
    today = today or today_ist()
    days = settings.EXPIRY_ALERT_DAYS if days is None else days
    return (db.query(Batch)
            .filter(Batch.expiry_date >= today,
                    Batch.expiry_date <= today + timedelta(days=days),
                    Batch.quantity_available > 0)
            .order_by(Batch.expiry_date.asc())
            .all())


def find_unit(db: Session, scan_code: str) -> StockUnit:
    code = (scan_code or "").strip()
    if not code:
        raise InvalidInput("Scan code is required")
    unit = (db.query(StockUnit)
            .options(joinedload(StockUnit.batch).joinedload(Batch.medicine))
            .filter(StockUnit.scan_code == code)
            .first())
    if not unit:
        raise NotFound(f"No stock unit with scan code: {code}")
    return unit


# ---------------------------------------------------------------------
# Stock units on an existing batch
# ---------------------------------------------------------------------
def list_units(db: Session, batch_id: int, sold: Optional[bool] = None) -> List[StockUnit]:
    get_batch(db, batch_id)
    q = db.query(StockUnit).filter(StockUnit.batch_id == batch_id)
    if sold is not None:
        q = q.filter(StockUnit.sold.is_(sold))
    return q.order_by(StockUnit.id.asc()).all()


def _clean_codes(codes: List[str]) -> List[str]:
    cleaned = [(c or "").strip() for c in codes or []]
    if not cleaned:
        raise InvalidInput("At least one scan code is required")
    if any(not c for c in cleaned):
        raise InvalidInput("Scan codes cannot be blank")
    if len(set(cleaned)) != len(cleaned):
        raise Conflict("Duplicate scan codes in request")
    return cleaned


def add_units(db: Session, batch_id: int, scan_codes: List[str], user: User,
              ip: Optional[str] = None) -> List[StockUnit]:
    """
    Register new physical units on a batch. Each unit adds one to the
    batch quantity, under the same lock sales take.
    """
    codes = _clean_codes(scan_codes)
    try:
        batch = stock_ledger.lock_batch(db, batch_id)
        if not is_unit_tracked(db, batch.id) and int(batch.quantity_available or 0) > 0:
            raise InvalidInput(
                f"Batch {batch.batch_number} holds stock without scan codes; units cannot be added")
        taken = db.query(StockUnit.scan_code).filter(StockUnit.scan_code.in_(codes)).first()
        if taken:
            raise Conflict(f"Scan code already registered: {taken[0]}")

        old_qty = int(batch.quantity_available or 0)
        units = [StockUnit(batch_id=batch.id, scan_code=c) for c in codes]
        db.add_all(units)
        batch.quantity_available = old_qty + len(units)
    except Exception:
        db.rollback()
        raise
    _commit(db, f"Batch {batch.batch_number}")
    logger.info("batch %s: %s units added, qty %s -> %s",
                batch.id, len(units), old_qty, batch.quantity_available)

    log_audit(ActionType.STOCK_UPDATED, actor_id=user.id, entity_type="Batch", entity_id=batch.id,
              description=f"Added {len(units)} units to batch {batch.batch_number}",
              old_value={"quantity": old_qty}, new_value={"quantity": batch.quantity_available},
              ip_address=ip)
    return units


def delete_units(db: Session, batch_id: int, unit_ids: List[int], user: User,
                 ip: Optional[str] = None) -> int:
    """Remove unsold units from a batch. Sold units and other batches' units are left alone."""
    if not unit_ids:
        raise InvalidInput("At least one unit id is required")
    try:
        batch = stock_ledger.lock_batch(db, batch_id)
        units = (db.query(StockUnit)
                 .filter(StockUnit.id.in_(unit_ids),
                         StockUnit.batch_id == batch.id,
                         StockUnit.sold.is_(False))
                 .all())
        if not units:
            raise InvalidInput("No unsold units of this batch among the given ids")

        old_qty = int(batch.quantity_available or 0)
        if len(units) > old_qty:
            raise StateInvariantViolation(
                f"Batch {batch.batch_number} has {len(units)} unsold units for {old_qty} in stock")
        for u in units:
            db.delete(u)
        batch.quantity_available = old_qty - len(units)
    except Exception:
        db.rollback()
        raise
    _commit(db, f"Batch {batch.batch_number}")
    logger.info("batch %s: %s units removed, qty %s -> %s",
                batch.id, len(units), old_qty, batch.quantity_available)

    log_audit(ActionType.STOCK_UPDATED, actor_id=user.id, entity_type="Batch", entity_id=batch.id,
              description=f"Removed {len(units)} units from batch {batch.batch_number}",
              old_value={"quantity": old_qty}, new_value={"quantity": batch.quantity_available},
              ip_address=ip)
    return len(units)
