# pharmacy_pos/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All POS tables (catalog, stock, billing, returns, audit) inherit from this."""
    pass
