# pharmacy_pos/db/session.py
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pharmacy_pos.core.config import settings

logger = logging.getLogger(__name__)


def make_engine(db_uri: str) -> Engine:
    if db_uri.startswith("sqlite"):
        # one file shared by request threads; row locks are emulated in stock_ledger
        return create_engine(
            db_uri,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=settings.SQL_ECHO,
            future=True,
        )
    return create_engine(
        db_uri,
        pool_pre_ping=True,
        pool_recycle=280,
        pool_size=10,
        max_overflow=20,
        echo=settings.SQL_ECHO,
        future=True,
    )


engine: Engine = make_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    future=True,
)


def supports_row_locks(db: Session) -> bool:
    """SQLite silently ignores FOR UPDATE."""
    return db.get_bind().dialect.name != "sqlite"


def use_isolation_level(db: Session, level: str) -> None:
    """
    Pin the isolation level for the session's next transaction.
    A read-only transaction already open on the session (e.g. the auth lookup)
    is ended first; one with pending writes keeps its level.
    SQLite is serializable already and rejects REPEATABLE READ, so it is skipped.
    """
    if not level or not supports_row_locks(db):
        return
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            logger.warning("isolation level %s not applied: transaction has pending writes", level)
            return
        db.commit()
    db.connection(execution_options={"isolation_level": level})
