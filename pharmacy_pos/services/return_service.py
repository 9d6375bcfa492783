# FILE: pharmacy_pos/services/return_service.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from pharmacy_pos.core.config import settings
from pharmacy_pos.core.errors import Conflict, InvalidInput, NotFound
from pharmacy_pos.db.session import use_isolation_level
from pharmacy_pos.models.audit import ActionType
from pharmacy_pos.models.billing import BillItem, PaymentStatus
from pharmacy_pos.models.returns import ReturnType, SaleReturn, SaleReturnItem
from pharmacy_pos.models.user import User
from pharmacy_pos.schemas.billing import BillOut
from pharmacy_pos.schemas.returns import ReturnCreate
from pharmacy_pos.services import stock_ledger
from pharmacy_pos.services.audit_logger import log_audit
from pharmacy_pos.services.billing_math import ZERO, effective_payment_status, line_refund, money2
from pharmacy_pos.services.billing_numbers import new_return_number
from pharmacy_pos.services.billing_service import bill_to_out, get_bill, lock_bill
from pharmacy_pos.utils.timezone import now_ist

logger = logging.getLogger(__name__)


def _returned_so_far(db: Session, bill_item_ids: List[int]) -> Dict[int, int]:
    if not bill_item_ids:
        return {}
    rows = (db.query(SaleReturnItem.bill_item_id, func.coalesce(func.sum(SaleReturnItem.quantity), 0))
            .filter(SaleReturnItem.bill_item_id.in_(bill_item_ids))
            .group_by(SaleReturnItem.bill_item_id)
            .all())
    return {int(bid): int(q or 0) for bid, q in rows}


def process_return(db: Session, data: ReturnCreate, user: User, ip: Optional[str] = None) -> BillOut:
    """
    Refund part or all of a paid bill.

    The bill row is locked first, so concurrent returns against one bill
    see each other's quantities in the cumulative check.
    Every requested line is validated before any stock moves. Stock goes
    back to the batch each line was sold from. The refund per line is the
    per-unit amount rounded to paise first, then multiplied.
    """
    if not data.items:
        raise InvalidInput("Return must have at least one item")

    try:
        use_isolation_level(db, settings.BILLING_ISOLATION_LEVEL)
        lock_bill(db, data.bill_id)
        bill = get_bill(db, data.bill_id)
        if bill.cancelled:
            raise Conflict(f"Cannot return against cancelled bill {bill.bill_number}")
        status = effective_payment_status(bill)
        if status != PaymentStatus.PAID:
            raise Conflict(f"Bill {bill.bill_number} is {status.value}; only PAID bills can be returned")

        by_id: Dict[int, BillItem] = {it.id: it for it in bill.items}
        already = _returned_so_far(db, list(by_id.keys()))

        seen = set()
        planned = []
        for line in data.items:
            if line.quantity is None or line.quantity <= 0:
                raise InvalidInput("Return quantity must be greater than zero")
            if line.bill_item_id in seen:
                raise InvalidInput(f"Bill item {line.bill_item_id} appears more than once")
            seen.add(line.bill_item_id)

            item = by_id.get(line.bill_item_id)
            if not item:
                raise NotFound(f"Bill item {line.bill_item_id} not found on bill {bill.bill_number}")

            prior = already.get(item.id, 0)
            if prior + line.quantity > item.quantity:
                raise Conflict(
                    f"Return quantity for {item.batch_number} exceeds sold quantity: "
                    f"sold {item.quantity}, returned {prior}, requested {line.quantity}")
            planned.append((item, line.quantity))

        ret = SaleReturn(
            return_number=new_return_number(now_ist().date()),
            bill_id=bill.id,
            processed_by_id=user.id,
            return_date=now_ist(),
            reason=(data.reason or "").strip() or None,
        )
        refund_total = ZERO
        for item, qty in planned:
            refund = line_refund(item.total_amount, item.quantity, qty)
            ret.items.append(SaleReturnItem(
                bill_item_id=item.id,
                medicine_id=item.medicine_id,
                batch_id=item.batch_id,
                batch_number=item.batch_number,
                quantity=qty,
                refund_amount=refund,
            ))
            refund_total += refund
            already[item.id] = already.get(item.id, 0) + qty

        fully_returned = all(already.get(it.id, 0) >= it.quantity for it in bill.items)
        ret.return_type = ReturnType.FULL if fully_returned else ReturnType.PARTIAL
        ret.refund_amount = money2(refund_total)
        db.add(ret)

        for item, qty in planned:
            stock_ledger.restore(db, item.batch_id, qty)

        if ret.return_type == ReturnType.FULL:
            bill.payment_status = PaymentStatus.REFUNDED

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("return %s on bill %s: %s refund=%s",
                ret.return_number, bill.bill_number, ret.return_type.value, ret.refund_amount)

    log_audit(ActionType.REFUND_PROCESSED, actor_id=user.id, entity_type="Return", entity_id=ret.id,
              description=f"{ret.return_type.value} return {ret.return_number} on bill {bill.bill_number}",
              new_value={"refund_amount": ret.refund_amount, "return_type": ret.return_type.value,
                         "lines": [{"bill_item_id": i.bill_item_id, "quantity": i.quantity} for i in ret.items]},
              ip_address=ip)
    return bill_to_out(get_bill(db, bill.id))


def _return_query(db: Session):
    return db.query(SaleReturn).options(selectinload(SaleReturn.items))


def get_return(db: Session, return_id: int) -> SaleReturn:
    ret = _return_query(db).filter(SaleReturn.id == return_id).first()
    if not ret:
        raise NotFound(f"Return not found with id: {return_id}")
    return ret


def list_returns(db: Session, limit: int = 100, offset: int = 0) -> List[SaleReturn]:
    return (_return_query(db)
            .order_by(SaleReturn.return_date.desc(), SaleReturn.id.desc())
            .offset(offset)
            .limit(limit)
            .all())


def returns_for_bill(db: Session, bill_id: int) -> List[SaleReturn]:
    get_bill(db, bill_id)
    return (_return_query(db)
            .filter(SaleReturn.bill_id == bill_id)
            .order_by(SaleReturn.id.asc())
            .all())
