# FILE: pharmacy_pos/api/routes_batches.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, current_user, client_ip
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.medicine import (
    BatchCreate,
    BatchOut,
    BatchStockIn,
    BatchUnitOut,
    BatchUnitsDeleteIn,
    BatchUnitsIn,
    BatchUpdate,
    StockUnitOut,
)
from pharmacy_pos.services import catalog

router = APIRouter()


def _many(db: Session, batches) -> List[BatchOut]:
    return [catalog.batch_to_out(db, b) for b in batches]


@router.post("", response_model=BatchOut, status_code=201)
def create_batch(payload: BatchCreate, request: Request,
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.batch_to_out(db, catalog.create_batch(db, payload, user, client_ip(request)))


@router.get("", response_model=List[BatchOut])
def list_batches(medicine_id: Optional[int] = Query(None),
                 limit: int = Query(500, ge=1, le=2000),
                 offset: int = Query(0, ge=0),
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    if medicine_id is None:
        return _many(db, catalog.list_all_batches(db, limit=limit, offset=offset))
    return _many(db, catalog.list_batches(db, medicine_id))


@router.get("/expired", response_model=List[BatchOut])
def expired(db: Session = Depends(get_db), user: User = Depends(current_user)):
    return _many(db, catalog.expired_batches(db))


@router.get("/low-stock", response_model=List[BatchOut])
def low_stock(threshold: Optional[int] = Query(None, ge=0),
              db: Session = Depends(get_db), user: User = Depends(current_user)):
    return _many(db, catalog.low_stock_batches(db, threshold))


@router.get("/expiring", response_model=List[BatchOut])
def expiring(days: Optional[int] = Query(None, ge=0),
             db: Session = Depends(get_db), user: User = Depends(current_user)):
    return _many(db, catalog.expiring_batches(db, days))


@router.get("/units/{scan_code}", response_model=StockUnitOut)
def unit_lookup(scan_code: str, db: Session = Depends(get_db), user: User = Depends(current_user)):
    unit = catalog.find_unit(db, scan_code)
    return StockUnitOut(
        id=unit.id,
        scan_code=unit.scan_code,
        sold=unit.sold,
        sold_at=unit.sold_at,
        batch=catalog.batch_to_out(db, unit.batch),
        medicine=catalog.medicine_to_out(db, unit.batch.medicine),
    )


@router.get("/{batch_id}", response_model=BatchOut)
def get_batch(batch_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.batch_to_out(db, catalog.get_batch(db, batch_id))


@router.put("/{batch_id}", response_model=BatchOut)
def update_batch(batch_id: int, payload: BatchUpdate, request: Request,
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.batch_to_out(db, catalog.update_batch(db, batch_id, payload, user, client_ip(request)))


@router.patch("/{batch_id}/stock", response_model=BatchOut)
def update_stock(batch_id: int, payload: BatchStockIn, request: Request,
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    batch = catalog.update_batch_stock(db, batch_id, payload.quantity, payload.expected_version, user,
                                       client_ip(request), reason=payload.reason)
    return catalog.batch_to_out(db, batch)


@router.delete("/{batch_id}", status_code=204)
def delete_batch(batch_id: int, request: Request,
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    catalog.delete_batch(db, batch_id, user, client_ip(request))
    return Response(status_code=204)


@router.get("/{batch_id}/units", response_model=List[BatchUnitOut])
def list_units(batch_id: int, sold: Optional[bool] = Query(None),
               db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.list_units(db, batch_id, sold)


@router.post("/{batch_id}/units", response_model=List[BatchUnitOut], status_code=201)
def add_units(batch_id: int, payload: BatchUnitsIn, request: Request,
              db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.add_units(db, batch_id, payload.scan_codes, user, client_ip(request))


@router.delete("/{batch_id}/units", status_code=204)
def delete_units(batch_id: int, payload: BatchUnitsDeleteIn, request: Request,
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    catalog.delete_units(db, batch_id, payload.unit_ids, user, client_ip(request))
    return Response(status_code=204)
