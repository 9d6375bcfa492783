# tests/test_audit.py
import logging

from pharmacy_pos.models import ActionType, AuditLog
from pharmacy_pos.services.audit_logger import list_audit_logs, log_audit
from pharmacy_pos.utils.timezone import today_ist


def test_log_audit_commits_in_its_own_session(db, operator):
    log_audit(ActionType.STOCK_UPDATED, actor_id=operator.id, entity_type="Batch", entity_id=7,
              description="manual count", old_value={"quantity": 3}, new_value={"quantity": 5},
              ip_address="10.0.0.9")

    # the caller's session has nothing pending, yet the row is there
    assert not db.new
    entry = db.query(AuditLog).one()
    assert entry.entity_id == "7"
    assert entry.old_value == '{"quantity": 3}'
    assert entry.ip_address == "10.0.0.9"


def test_caller_rollback_does_not_remove_entry(db, operator):
    log_audit(ActionType.USER_LOGIN, actor_id=operator.id, entity_type="User", entity_id=operator.id)
    db.rollback()
    assert db.query(AuditLog).count() == 1


def test_failed_write_is_logged_not_raised(db, operator, caplog):
    with caplog.at_level(logging.ERROR, logger="pharmacy_pos.services.audit_logger"):
        # entity_type is NOT NULL
        log_audit(ActionType.BILL_CREATED, actor_id=operator.id, entity_type=None, entity_id=1,
                  description="lost entry")

    assert db.query(AuditLog).count() == 0
    assert "failed to persist audit entry" in caplog.text
    assert "lost entry" in caplog.text


def test_filters(db, operator):
    log_audit(ActionType.BATCH_ADDED, actor_id=operator.id, entity_type="Batch", entity_id=1)
    log_audit(ActionType.BILL_CREATED, actor_id=operator.id, entity_type="Bill", entity_id=2)
    log_audit(ActionType.BILL_CREATED, actor_id=None, entity_type="Bill", entity_id=3)

    assert len(list_audit_logs(db, action=ActionType.BILL_CREATED)) == 2
    assert [l.entity_id for l in list_audit_logs(db, entity_type="Bill", user_id=operator.id)] == ["2"]
    assert len(list_audit_logs(db, from_date=today_ist(), to_date=today_ist())) == 3
    # newest first
    assert [l.entity_id for l in list_audit_logs(db, limit=2)] == ["3", "2"]
