from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    Enum,
    Index,
)

from pharmacy_pos.db.base import Base


class ActionType(str, enum.Enum):
    BILL_CREATED = "BILL_CREATED"
    BILL_CANCELLED = "BILL_CANCELLED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    REFUND_PROCESSED = "REFUND_PROCESSED"
    STOCK_UPDATED = "STOCK_UPDATED"
    MEDICINE_ADDED = "MEDICINE_ADDED"
    MEDICINE_UPDATED = "MEDICINE_UPDATED"
    MEDICINE_DELETED = "MEDICINE_DELETED"
    BATCH_ADDED = "BATCH_ADDED"
    BATCH_UPDATED = "BATCH_UPDATED"
    BATCH_DELETED = "BATCH_DELETED"
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"


class AuditLog(Base):
    """
    Every state-changing action writes here, in its own transaction,
    after the business transaction has committed.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_user", "user_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_date", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, nullable=True)  # system jobs may be null
    action = Column(Enum(ActionType, name="audit_action"), nullable=False)

    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(100), nullable=True)  # generic pk, stored as string
    description = Column(Text, nullable=True)

    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)

    ip_address = Column(String(45), nullable=True)  # IPv4/IPv6

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
