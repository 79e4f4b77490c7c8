"""Creating new loan requests.

The stock check here is advisory: it reads the current quantities without
holding any lock, so stock can still run out before an admin approves. The
authoritative check happens in ``approvals.approve_request``.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

import crud
from errors import (
    EmptyRequest,
    InsufficientStockAtSubmission,
    InvalidQuantity,
    MissingMetadata,
    UnknownOrInactiveEquipment,
)
from models import Caller, LineItem, LoanRequest, LoanRequestIn

logger = logging.getLogger("app.submissions")

REQUIRED_METADATA = (
    ("academic_year_code", "academic year code"),
    ("request_date", "request date"),
    ("department_code", "department code"),
)


def _demand_by_equipment(body: LoanRequestIn) -> dict[str, int]:
    demand: dict[str, int] = {}
    for it in body.items:
        demand[it.equipment_id] = demand.get(it.equipment_id, 0) + it.quantity
    return demand


def validate_request(db: Session, body: LoanRequestIn) -> list[LineItem]:
    """Check a draft request and return its line items with snapshots filled in."""
    for field, label in REQUIRED_METADATA:
        if not (getattr(body, field) or "").strip():
            raise MissingMetadata(f"{label} is required", field=field)

    if not body.items:
        raise EmptyRequest("at least one line item is required")

    for idx, it in enumerate(body.items):
        if it.quantity <= 0:
            raise InvalidQuantity(
                f"quantity must be greater than 0 (line {idx + 1})",
                line=idx + 1,
                quantity=it.quantity,
            )

    demand = _demand_by_equipment(body)
    equipment = crud.get_equipment_many(db, list(demand))

    for equipment_id in demand:
        eq = equipment.get(equipment_id)
        if eq is None or not eq.is_active:
            raise UnknownOrInactiveEquipment(
                "equipment is unknown or inactive",
                equipment_id=equipment_id,
            )

    for equipment_id, qty in demand.items():
        eq = equipment[equipment_id]
        if qty > eq.available_quantity:
            raise InsufficientStockAtSubmission(
                f"requested {qty} exceeds remaining stock of {eq.name} ({eq.available_quantity})",
                equipment_id=eq.id,
                equipment_name=eq.name,
                requested=qty,
                remaining=eq.available_quantity,
            )

    return [
        LineItem(
            equipment_id=it.equipment_id,
            equipment_name=equipment[it.equipment_id].name,
            code=equipment[it.equipment_id].code,
            unit=equipment[it.equipment_id].unit,
            quantity=it.quantity,
        )
        for it in body.items
    ]


def submit_request(
    db: Session, caller: Caller, body: LoanRequestIn, *, commit: bool = True
) -> LoanRequest:
    items = validate_request(db, body)

    created = crud.insert_request(
        db,
        created_by_uid=caller.uid,
        created_by_email=caller.email or "",
        items=items,
        reason=(body.reason or "").strip(),
        expected_return_date=body.expected_return_date,
        academic_year_code=body.academic_year_code.strip(),
        request_date=body.request_date.strip(),
        department_code=body.department_code.strip(),
        commit=commit,
    )
    logger.info(
        "request submitted request_id=%s uid=%s items=%s",
        created.id,
        caller.uid,
        len(items),
    )
    return created
