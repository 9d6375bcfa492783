# pharmacy_pos/api/router.py
from fastapi import APIRouter
from pharmacy_pos.api import (
    routes_auth,
    routes_medicines,
    routes_batches,
    routes_billing,
    routes_returns,
    routes_reports,
    routes_audit_logs,
)

api_router = APIRouter()
api_router.include_router(routes_auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(routes_medicines.router, prefix="/medicines", tags=["Medicines"])
api_router.include_router(routes_batches.router, prefix="/batches", tags=["Batches"])
api_router.include_router(routes_billing.router, prefix="/billing", tags=["Billing"])
api_router.include_router(routes_returns.router, prefix="/returns", tags=["Returns"])
api_router.include_router(routes_reports.router, prefix="/reports", tags=["Reports"])
api_router.include_router(routes_audit_logs.router, prefix="/audit-logs", tags=["Audit Logs"])
