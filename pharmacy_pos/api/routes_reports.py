# FILE: pharmacy_pos/api/routes_reports.py
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, current_user
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.reports import GstReportOut, SalesReportOut, StockReportOut
from pharmacy_pos.services import report_service

router = APIRouter()


@router.get("/sales", response_model=SalesReportOut)
def sales(start: Optional[date] = Query(None), end: Optional[date] = Query(None),
          db: Session = Depends(get_db), user: User = Depends(current_user)):
    return report_service.sales_report(db, start, end)


@router.get("/sales/cashier/{cashier_id}", response_model=SalesReportOut)
def cashier_sales(cashier_id: int, start: Optional[date] = Query(None), end: Optional[date] = Query(None),
                  db: Session = Depends(get_db), user: User = Depends(current_user)):
    return report_service.cashier_sales_report(db, cashier_id, start, end)


@router.get("/gst", response_model=GstReportOut)
def gst(start: Optional[date] = Query(None), end: Optional[date] = Query(None),
        db: Session = Depends(get_db), user: User = Depends(current_user)):
    return report_service.gst_report(db, start, end)


@router.get("/stock", response_model=StockReportOut)
def stock(db: Session = Depends(get_db), user: User = Depends(current_user)):
    return report_service.stock_report(db)
