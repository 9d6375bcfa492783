# FILE: pharmacy_pos/api/routes_returns.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, current_user, client_ip
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.billing import BillOut
from pharmacy_pos.schemas.returns import ReturnCreate, ReturnOut
from pharmacy_pos.services import return_service

router = APIRouter()


@router.post("", response_model=BillOut, status_code=201)
def process_return(payload: ReturnCreate, request: Request,
                   db: Session = Depends(get_db), user: User = Depends(current_user)):
    return return_service.process_return(db, payload, user, client_ip(request))


@router.get("", response_model=List[ReturnOut])
def list_returns(limit: int = Query(100, ge=1, le=500), offset: int = Query(0, ge=0),
                 db: Session = Depends(get_db), user: User = Depends(current_user)):
    return [ReturnOut.model_validate(r, from_attributes=True)
            for r in return_service.list_returns(db, limit, offset)]


@router.get("/bill/{bill_id}", response_model=List[ReturnOut])
def returns_for_bill(bill_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return [ReturnOut.model_validate(r, from_attributes=True)
            for r in return_service.returns_for_bill(db, bill_id)]


@router.get("/{return_id}", response_model=ReturnOut)
def get_return(return_id: int, db: Session = Depends(get_db), user: User = Depends(current_user)):
    return ReturnOut.model_validate(return_service.get_return(db, return_id), from_attributes=True)
