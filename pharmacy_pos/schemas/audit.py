# FILE: pharmacy_pos/schemas/audit.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from pharmacy_pos.models.audit import ActionType


class AuditLogOut(BaseModel):
    id: int
    user_id: Optional[int]
    action: ActionType
    entity_type: str
    entity_id: Optional[str] = None
    description: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
