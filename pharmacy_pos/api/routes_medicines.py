# FILE: pharmacy_pos/api/routes_medicines.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, current_user, client_ip
from pharmacy_pos.models.medicine import MedicineStatus
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.medicine import (
    BatchOut,
    MedicineCreate,
    MedicineOut,
    MedicineStatusIn,
    MedicineUpdate,
)
from pharmacy_pos.services import catalog

router = APIRouter()


@router.get("", response_model=List[MedicineOut])
def list_medicines(
        q: Optional[str] = Query(None, description="Name, manufacturer, barcode or HSN code"),
        status: Optional[MedicineStatus] = Query(None),
        limit: int = Query(100, ge=1, le=500),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    if q:
        meds = catalog.search_medicines(db, q, limit=limit)
    else:
        meds = catalog.list_medicines(db, status=status, limit=limit)
    return [catalog.medicine_to_out(db, m) for m in meds]


@router.post("", response_model=MedicineOut, status_code=201)
def create_medicine(
        payload: MedicineCreate,
        request: Request,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    med = catalog.create_medicine(db, payload, user, client_ip(request))
    return catalog.medicine_to_out(db, med)


@router.get("/barcode/{barcode}", response_model=MedicineOut)
def get_by_barcode(barcode: str, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.medicine_to_out(db, catalog.get_medicine_by_barcode(db, barcode))


@router.get("/scan-prefix/{prefix}", response_model=List[MedicineOut])
def by_scan_prefix(prefix: str, limit: int = Query(20, ge=1, le=100),
                   db: Session = Depends(get_db), user: User = Depends(current_user)):
    return [catalog.medicine_to_out(db, m) for m in catalog.search_by_unit_prefix(db, prefix, limit=limit)]


@router.get("/{medicine_id}", response_model=MedicineOut)
def get_medicine(medicine_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return catalog.medicine_to_out(db, catalog.get_medicine_by_id(db, medicine_id))


@router.get("/{medicine_id}/batches", response_model=List[BatchOut])
def medicine_batches(medicine_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return [catalog.batch_to_out(db, b) for b in catalog.list_batches(db, medicine_id)]


@router.put("/{medicine_id}", response_model=MedicineOut)
def update_medicine(
        medicine_id: int,
        payload: MedicineUpdate,
        request: Request,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    med = catalog.update_medicine(db, medicine_id, payload, user, client_ip(request))
    return catalog.medicine_to_out(db, med)


@router.patch("/{medicine_id}/status", response_model=MedicineOut)
def update_status(
        medicine_id: int,
        payload: MedicineStatusIn,
        request: Request,
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    med = catalog.update_medicine_status(db, medicine_id, payload.status, user, client_ip(request))
    return catalog.medicine_to_out(db, med)


@router.delete("/{medicine_id}", status_code=204)
def delete_medicine(medicine_id: int, request: Request,
                    db: Session = Depends(get_db), user: User = Depends(current_user)):
    catalog.delete_medicine(db, medicine_id, user, client_ip(request))
    return Response(status_code=204)
