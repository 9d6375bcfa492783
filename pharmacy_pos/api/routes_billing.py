# FILE: pharmacy_pos/api/routes_billing.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, current_user, client_ip
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.billing import (
    BillCancelIn,
    BillCreate,
    BillOut,
    BillSummaryOut,
    PaymentIn,
)
from pharmacy_pos.services import billing_service
from pharmacy_pos.services.pdf_bill import render_bill_pdf

router = APIRouter()


@router.post("/bills", response_model=BillOut, status_code=201)
def create_bill(payload: BillCreate, request: Request,
                db: Session = Depends(get_db), user: User = Depends(current_user)):
    return billing_service.create_bill(db, payload, user, client_ip(request))


@router.get("/bills", response_model=List[BillSummaryOut])
def list_bills(
        start: Optional[date] = Query(None),
        end: Optional[date] = Query(None),
        include_cancelled: bool = Query(True),
        limit: int = Query(100, ge=1, le=500),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
        user: User = Depends(current_user),
):
    bills = billing_service.list_bills(db, start, end, include_cancelled, limit, offset)
    return [billing_service.bill_to_summary(b) for b in bills]


@router.get("/bills/number/{bill_number}", response_model=BillOut)
def get_by_number(bill_number: str, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return billing_service.bill_to_out(billing_service.get_bill_by_number(db, bill_number))


@router.get("/bills/{bill_id}", response_model=BillOut)
def get_bill(bill_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return billing_service.bill_to_out(billing_service.get_bill(db, bill_id))


@router.post("/bills/{bill_id}/cancel", response_model=BillOut)
def cancel_bill(bill_id: int, payload: BillCancelIn, request: Request,
                db: Session = Depends(get_db), user: User = Depends(current_user)):
    return billing_service.cancel_bill(db, bill_id, payload.reason, user, client_ip(request))


@router.post("/bills/{bill_id}/payments", response_model=BillOut)
def add_payment(bill_id: int, payload: PaymentIn, request: Request,
                db: Session = Depends(get_db), user: User = Depends(current_user)):
    return billing_service.record_payment(db, bill_id, payload, user, client_ip(request))


@router.get("/bills/{bill_id}/pdf")
def bill_pdf(bill_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    out = billing_service.bill_to_out(billing_service.get_bill(db, bill_id))
    pdf = render_bill_pdf(out)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{out.bill_number}.pdf"'},
    )
