import json
import logging
from datetime import date
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy_pos.db.session import SessionLocal
from pharmacy_pos.models.audit import AuditLog, ActionType
from pharmacy_pos.utils.timezone import day_bounds, now_ist

logger = logging.getLogger(__name__)


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value, default=str, sort_keys=True)


def log_audit(
    action: ActionType,
    *,
    actor_id: Optional[int],
    entity_type: str,
    entity_id: Any = None,
    description: Optional[str] = None,
    old_value: Any = None,
    new_value: Any = None,
    ip_address: Optional[str] = None,
) -> None:
    """
    Persist one audit event in its own session and transaction.

    Call only after the business transaction has committed. A failure here
    never undoes or fails the business operation; the entry goes to the
    error log instead.
    """
    entry = dict(
        user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=None if entity_id is None else str(entity_id),
        description=description,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        ip_address=ip_address,
    )
    db = SessionLocal()
    try:
        db.add(AuditLog(created_at=now_ist(), **entry))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("failed to persist audit entry: %s", entry)
    finally:
        db.close()


def list_audit_logs(
    db: Session,
    *,
    user_id: Optional[int] = None,
    action: Optional[ActionType] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[AuditLog]:
    stmt = select(AuditLog)
    if user_id is not None:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if entity_type:
        stmt = stmt.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == str(entity_id))
    if from_date:
        stmt = stmt.where(AuditLog.created_at >= day_bounds(from_date, from_date)[0])
    if to_date:
        stmt = stmt.where(AuditLog.created_at < day_bounds(to_date, to_date)[1])

    stmt = stmt.order_by(AuditLog.id.desc()).offset(offset).limit(limit)
    return list(db.execute(stmt).scalars().all())
