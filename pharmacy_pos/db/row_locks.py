# pharmacy_pos/db/row_locks.py
# ---------------------------------------------------------------------
# In-process row mutexes for databases without SELECT ... FOR UPDATE
# (SQLite). A mutex taken through acquire() is held until the owning
# session's root transaction ends, which is what a row lock gives us on
# MySQL. Mutexes nobody holds or waits on are dropped from the registry.
# ---------------------------------------------------------------------
from __future__ import annotations

import logging
import threading
import weakref
from typing import Dict, Hashable, Tuple

from sqlalchemy import event
from sqlalchemy.orm import Session

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import Conflict

logger = logging.getLogger(__name__)

_HELD_KEY = "pos_row_locks"

LockKey = Tuple[str, str, Hashable]


class _RowMutex:
    def __init__(self):
        self.lock = threading.Lock()


_registry_guard = threading.Lock()
_registry: "weakref.WeakValueDictionary[LockKey, _RowMutex]" = weakref.WeakValueDictionary()


def _mutex_for(key: LockKey) -> _RowMutex:
    with _registry_guard:
        mx = _registry.get(key)
        if mx is None:
            mx = _RowMutex()
            _registry[key] = mx
        return mx


def registered_count() -> int:
    with _registry_guard:
        return len(_registry)


def acquire(db: Session, kind: str, ident: Hashable, label: str = "") -> None:
    """
    Take the mutex for (database, kind, ident) for the rest of the session's
    transaction. Re-entrant within one session. Raises Conflict on timeout.
    """
    key: LockKey = (str(db.get_bind().url), kind, ident)
    held: Dict[LockKey, _RowMutex] = db.info.setdefault(_HELD_KEY, {})
    if key in held:
        return

    mx = _mutex_for(key)
    if not mx.lock.acquire(timeout=settings.BATCH_LOCK_TIMEOUT):
        logger.warning("%s %s lock wait exceeded %.1fs", kind, ident, settings.BATCH_LOCK_TIMEOUT)
        raise Conflict(f"{label or kind.title()} {ident} is busy, please retry")
    # the session keeps the mutex alive while it is held
    held[key] = mx


def release_all(session: Session) -> None:
    held = session.info.pop(_HELD_KEY, None)
    if not held:
        return
    for mx in held.values():
        if mx.lock.locked():
            mx.lock.release()


@event.listens_for(Session, "after_transaction_end")
def _release_on_transaction_end(session, transaction):
    # savepoints end inside the outer transaction; only the root releases
    if transaction.parent is None:
        release_all(session)
