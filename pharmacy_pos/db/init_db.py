# pharmacy_pos/db/init_db.py
from __future__ import annotations

import argparse
import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.security import get_password_hash
from pharmacy_pos.db.base import Base
from pharmacy_pos.db.session import engine

# Import all models so metadata is complete
import pharmacy_pos.models  # noqa: F401
from pharmacy_pos.models import User

logger = logging.getLogger(__name__)


def seed_admin(db: Session) -> User:
    """Create the configured operator if missing; safe to run multiple times."""
    email = settings.ADMIN_EMAIL.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        name=settings.ADMIN_NAME,
        email=email,
        password_hash=get_password_hash(settings.ADMIN_PASSWORD),
        is_active=True,
        is_admin=True,
    )
    db.add(user)
    db.flush()
    return user


def run(fresh: bool = False, bind: Engine = engine) -> None:
    if fresh:
        logger.warning("dropping ALL tables (dev only)")
        Base.metadata.drop_all(bind=bind)

    Base.metadata.create_all(bind=bind)
    logger.info("tables: %s", sorted(inspect(bind).get_table_names()))

    try:
        with Session(bind) as db:
            user = seed_admin(db)
            db.commit()
            logger.info("operator %s ready", user.email)
    except SQLAlchemyError:
        logger.exception("seeding failed")
        raise


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL,
                        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s")
    parser = argparse.ArgumentParser(
        description="Initialize DB (create tables, seed the admin operator).")
    parser.add_argument(
        "--fresh",
        action="store_true",
        help="Drop & recreate all tables (DEV ONLY).",
    )
    args = parser.parse_args()
    run(fresh=args.fresh)
