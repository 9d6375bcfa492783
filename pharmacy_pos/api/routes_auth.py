# pharmacy_pos/api/routes_auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pharmacy_pos.api.deps import get_db, current_user, client_ip
from pharmacy_pos.core.security import verify_password
from pharmacy_pos.models.audit import ActionType
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.auth import LoginIn, TokenOut, UserOut
from pharmacy_pos.services.audit_logger import log_audit
from pharmacy_pos.utils.jwt import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="User inactive")

    token = create_access_token(user.email, user.id)

    log_audit(ActionType.USER_LOGIN, actor_id=user.id, entity_type="User", entity_id=user.id,
              description=f"{user.email} logged in", ip_address=client_ip(request))
    return TokenOut(access_token=token)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(current_user)):
    return UserOut.model_validate(user, from_attributes=True)


@router.post("/logout")
def logout(request: Request, user: User = Depends(current_user)):
    # tokens are stateless; the audit trail is the only effect
    log_audit(ActionType.USER_LOGOUT, actor_id=user.id, entity_type="User", entity_id=user.id,
              description=f"{user.email} logged out", ip_address=client_ip(request))
    return {"message": "Logged out"}
