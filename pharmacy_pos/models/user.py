from sqlalchemy import Column, Integer, String, Boolean
from pharmacy_pos.db.base import Base


class User(Base):
    """Operator identity (cashier / pharmacist). Administered outside this service."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(191), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)

    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)
