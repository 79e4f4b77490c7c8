"""Status transitions for loan requests and the stock movements they imply.

Each operation runs as one session transaction built from conditional writes:

* the request row is claimed with ``UPDATE ... WHERE status = <expected>``,
  so two approvers racing on the same request cannot both win;
* per-equipment demand is summed and applied in sorted id order, each row is
  re-read inside the transaction, and the decrement itself is a
  compare-and-set (``WHERE available_quantity >= n``), never a write-back of
  a value read earlier.

Any failure rolls the session back, so callers see either the whole
transition or nothing. Store contention surfaces as ``TransactionConflict``;
``run_with_retry`` is the bounded retry callers wrap around these calls.
"""
from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

import crud
from crud import utcnow
from errors import (
    AlreadyProcessed,
    EquipmentMissing,
    InsufficientStock,
    LoanError,
    NotFound,
    NotRequester,
    NotReturnable,
    TransactionConflict,
)
from models import AdminCredential, LoanRequest
from orm import EquipmentORM, LoanRequestItemORM, LoanRequestORM

logger = logging.getLogger("app.approvals")

TX_RETRIES = int(os.getenv("APP_TX_RETRIES", "3"))
TX_RETRY_DELAY = float(os.getenv("APP_TX_RETRY_DELAY", "0.05"))

T = TypeVar("T")


@contextmanager
def _transaction(db: Session, op: str, request_id: str) -> Iterator[None]:
    try:
        yield
        db.commit()
    except LoanError as exc:
        db.rollback()
        logger.info("%s refused request_id=%s code=%s", op, request_id, exc.code)
        raise
    except OperationalError as exc:
        db.rollback()
        logger.warning("%s conflict request_id=%s error=%s", op, request_id, exc.orig)
        raise TransactionConflict(
            "the store could not commit this change, try again", request_id=request_id
        ) from exc
    except Exception:
        db.rollback()
        raise


def _current_status(db: Session, request_id: str) -> Optional[str]:
    return db.execute(
        select(LoanRequestORM.status).where(LoanRequestORM.id == request_id)
    ).scalar_one_or_none()


def _claim(
    db: Session,
    request_id: str,
    *,
    expected: str,
    new_status: str,
    wrong_status: type[LoanError],
    **values,
) -> None:
    result = db.execute(
        update(LoanRequestORM)
        .where(LoanRequestORM.id == request_id, LoanRequestORM.status == expected)
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    status = _current_status(db, request_id)
    if status is None:
        raise NotFound("loan request not found", request_id=request_id)
    raise wrong_status(
        f"loan request is {status}, expected {expected}",
        request_id=request_id,
        status=status,
    )


def _demand(db: Session, request_id: str) -> list[tuple[str, int, str]]:
    """(equipment_id, total quantity, snapshot name) per equipment, sorted by id."""
    rows = db.execute(
        select(
            LoanRequestItemORM.equipment_id,
            func.sum(LoanRequestItemORM.quantity),
            func.max(LoanRequestItemORM.equipment_name),
        )
        .where(LoanRequestItemORM.request_id == request_id)
        .group_by(LoanRequestItemORM.equipment_id)
        .order_by(LoanRequestItemORM.equipment_id.asc())
    ).all()
    return [(r[0], int(r[1]), r[2]) for r in rows]


def _lock_equipment(db: Session, equipment_id: str) -> Optional[EquipmentORM]:
    return db.execute(
        select(EquipmentORM)
        .where(EquipmentORM.id == equipment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _adjust_stock(db: Session, equipment_id: str, delta: int) -> bool:
    stmt = update(EquipmentORM).where(EquipmentORM.id == equipment_id)
    if delta < 0:
        stmt = stmt.where(EquipmentORM.available_quantity >= -delta)
    result = db.execute(
        stmt.values(
            available_quantity=EquipmentORM.available_quantity + delta,
            updated_at=utcnow(),
        ).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _insufficient(equipment_id: str, name: str, requested: int, remaining: int) -> InsufficientStock:
    return InsufficientStock(
        f"not enough stock of {name} (remaining {remaining})",
        equipment_id=equipment_id,
        equipment_name=name,
        requested=requested,
        remaining=remaining,
    )


def _missing(equipment_id: str, name: str) -> EquipmentMissing:
    return EquipmentMissing(
        f"equipment not found: {name or equipment_id}",
        equipment_id=equipment_id,
        equipment_name=name,
    )


def approve_request(db: Session, request_id: str, credential: AdminCredential) -> LoanRequest:
    with _transaction(db, "approve", request_id):
        _claim(
            db,
            request_id,
            expected="pending",
            wrong_status=AlreadyProcessed,
            new_status="approved",
            approved_by_uid=credential.uid,
            approved_at=utcnow(),
        )

        demand = _demand(db, request_id)

        # every referenced row must exist before any stock is looked at
        locked = {}
        for equipment_id, _qty, snapshot_name in demand:
            eq = _lock_equipment(db, equipment_id)
            if eq is None:
                raise _missing(equipment_id, snapshot_name)
            locked[equipment_id] = eq

        for equipment_id, qty, snapshot_name in demand:
            eq = locked[equipment_id]
            if eq.available_quantity < qty:
                raise _insufficient(equipment_id, eq.name, qty, eq.available_quantity)

            if not _adjust_stock(db, equipment_id, -qty):
                # stale read: on sqlite the claim's write lock rules this out,
                # on row-locking backends the CAS predicate is the last word
                eq = _lock_equipment(db, equipment_id)
                if eq is None:
                    raise _missing(equipment_id, snapshot_name)
                raise _insufficient(equipment_id, eq.name, qty, eq.available_quantity)

    logger.info("approved request_id=%s by=%s", request_id, credential.uid)
    return crud.get_request(db, request_id)


def reject_request(db: Session, request_id: str, credential: AdminCredential) -> LoanRequest:
    with _transaction(db, "reject", request_id):
        _claim(
            db,
            request_id,
            expected="pending",
            wrong_status=AlreadyProcessed,
            new_status="rejected",
            approved_by_uid=credential.uid,
            approved_at=utcnow(),
        )

    logger.info("rejected request_id=%s by=%s", request_id, credential.uid)
    return crud.get_request(db, request_id)


def cancel_request(db: Session, request_id: str, requester_uid: str) -> LoanRequest:
    with _transaction(db, "cancel", request_id):
        owner = db.execute(
            select(LoanRequestORM.created_by_uid).where(LoanRequestORM.id == request_id)
        ).scalar_one_or_none()
        if owner is None:
            raise NotFound("loan request not found", request_id=request_id)
        if owner != requester_uid:
            raise NotRequester("only the requester may cancel this request", request_id=request_id)

        _claim(
            db,
            request_id,
            expected="pending",
            wrong_status=AlreadyProcessed,
            new_status="cancelled",
            cancelled_at=utcnow(),
        )

    logger.info("cancelled request_id=%s by=%s", request_id, requester_uid)
    return crud.get_request(db, request_id)


def return_request(db: Session, request_id: str, credential: AdminCredential) -> LoanRequest:
    """Mark an approved request as returned and put its quantities back in stock."""
    with _transaction(db, "return", request_id):
        _claim(
            db,
            request_id,
            expected="approved",
            wrong_status=NotReturnable,
            new_status="returned",
            returned_at=utcnow(),
        )

        for equipment_id, qty, snapshot_name in _demand(db, request_id):
            if _lock_equipment(db, equipment_id) is None or not _adjust_stock(db, equipment_id, qty):
                raise _missing(equipment_id, snapshot_name)

    logger.info("returned request_id=%s by=%s", request_id, credential.uid)
    return crud.get_request(db, request_id)


def run_with_retry(
    fn: Callable[[], T],
    *,
    retries: Optional[int] = None,
    delay: Optional[float] = None,
) -> T:
    """Call ``fn`` again on TransactionConflict, at most ``retries`` extra times."""
    retries = TX_RETRIES if retries is None else retries
    delay = TX_RETRY_DELAY if delay is None else delay

    attempt = 0
    while True:
        try:
            return fn()
        except TransactionConflict:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning("transaction conflict, retrying attempt=%s of=%s", attempt, retries)
            time.sleep(delay * attempt)
