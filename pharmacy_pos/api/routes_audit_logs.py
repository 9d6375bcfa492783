# FILE: pharmacy_pos/api/routes_audit_logs.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, require_admin
from pharmacy_pos.models.audit import ActionType
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.audit import AuditLogOut
from pharmacy_pos.services.audit_logger import list_audit_logs

router = APIRouter()


@router.get("", response_model=List[AuditLogOut])
def audit_logs(
        entity_type: Optional[str] = Query(None, description="e.g. 'Bill', 'Batch'"),
        entity_id: Optional[str] = Query(None),
        user_id: Optional[int] = Query(None, description="Who performed the action"),
        action: Optional[ActionType] = Query(None),
        from_date: Optional[date] = Query(None),
        to_date: Optional[date] = Query(None),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
        user: User = Depends(require_admin),
):
    """
    GET /api/audit-logs

    Example:
      /api/audit-logs?entity_type=Bill&entity_id=12
    """
    logs = list_audit_logs(db, user_id=user_id, action=action, entity_type=entity_type,
                           entity_id=entity_id, from_date=from_date, to_date=to_date,
                           limit=limit, offset=offset)
    return [AuditLogOut.model_validate(l, from_attributes=True) for l in logs]
