from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from typing import Optional
from uuid import uuid4

from sqlalchemy import select, delete, func, or_
from sqlalchemy.orm import Session, selectinload

from models import Equipment, EquipmentIn, EquipmentUpdate, LineItem, LoanRequest
from orm import EquipmentORM, LoanRequestORM, LoanRequestItemORM

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def persist(db: Session, *, commit: bool) -> None:
    if commit:
        db.commit()
    else:
        db.flush()

def _equipment_to_schema(e: EquipmentORM) -> Equipment:
    return Equipment(
        id=e.id,
        name=e.name,
        code=e.code,
        unit=e.unit,
        available_quantity=e.available_quantity,
        is_active=e.is_active,
        created_at=e.created_at,
        updated_at=e.updated_at,
    )

def _request_to_schema(r: LoanRequestORM) -> LoanRequest:
    return LoanRequest(
        id=r.id,
        created_by_uid=r.created_by_uid,
        created_by_email=r.created_by_email,
        status=r.status,  # type: ignore
        items=[
            LineItem(
                equipment_id=it.equipment_id,
                equipment_name=it.equipment_name,
                code=it.code,
                unit=it.unit,
                quantity=it.quantity,
            )
            for it in r.items
        ],
        reason=r.reason,
        expected_return_date=r.expected_return_date,
        created_at=r.created_at,
        approved_by_uid=r.approved_by_uid,
        approved_at=r.approved_at,
        cancelled_at=r.cancelled_at,
        returned_at=r.returned_at,
        academic_year_code=r.academic_year_code,
        request_date=r.request_date,
        department_code=r.department_code,
    )


# ---------- Equipment ----------
def get_equipment(db: Session, equipment_id: str) -> Optional[Equipment]:
    row = db.get(EquipmentORM, equipment_id)
    return _equipment_to_schema(row) if row else None


def get_equipment_many(db: Session, equipment_ids: list[str]) -> dict[str, Equipment]:
    if not equipment_ids:
        return {}
    rows = db.execute(
        select(EquipmentORM).where(EquipmentORM.id.in_(set(equipment_ids)))
    ).scalars().all()
    return {e.id: _equipment_to_schema(e) for e in rows}


def list_active_equipment(db: Session) -> list[Equipment]:
    rows = db.execute(
        select(EquipmentORM)
        .where(EquipmentORM.is_active.is_(True))
        .order_by(EquipmentORM.name.asc(), EquipmentORM.code.asc())
    ).scalars().all()
    return [_equipment_to_schema(e) for e in rows]


def create_equipment(db: Session, body: EquipmentIn, *, commit: bool = True) -> Equipment:
    if body.available_quantity < 0:
        raise ValueError("available_quantity must be >= 0")

    now = utcnow()
    e = EquipmentORM(
        id=str(uuid4()),
        name=body.name.strip(),
        code=body.code.strip(),
        unit=body.unit.strip(),
        available_quantity=body.available_quantity,
        is_active=body.is_active,
        created_at=now,
        updated_at=now,
    )
    db.add(e)
    persist(db, commit=commit)
    if commit:
        db.refresh(e)
    return _equipment_to_schema(e)


def update_equipment_details(
    db: Session, equipment_id: str, body: EquipmentUpdate, *, commit: bool = True
) -> Optional[Equipment]:
    # available_quantity is not part of EquipmentUpdate: stock only moves through approvals
    e = db.get(EquipmentORM, equipment_id)
    if not e:
        return None

    # None means "leave as is"; every column here is NOT NULL
    data = body.model_dump(exclude_unset=True, exclude_none=True)
    for k, v in data.items():
        setattr(e, k, v)
    e.updated_at = utcnow()

    persist(db, commit=commit)
    if commit:
        db.refresh(e)
    return _equipment_to_schema(e)


def delete_equipment(db: Session, equipment_id: str, *, commit: bool = True) -> bool:
    result = db.execute(delete(EquipmentORM).where(EquipmentORM.id == equipment_id))
    persist(db, commit=commit)
    return result.rowcount > 0


# ---------- LoanRequest ----------
def get_request(db: Session, request_id: str) -> Optional[LoanRequest]:
    row = db.execute(
        select(LoanRequestORM)
        .options(selectinload(LoanRequestORM.items))
        .where(LoanRequestORM.id == request_id)
        .execution_options(populate_existing=True)
    ).scalars().first()
    return _request_to_schema(row) if row else None


def insert_request(
    db: Session,
    *,
    created_by_uid: str,
    created_by_email: str,
    items: list[LineItem],
    reason: str,
    expected_return_date: Optional[date],
    academic_year_code: str,
    request_date: str,
    department_code: str,
    commit: bool = True,
) -> LoanRequest:
    r = LoanRequestORM(
        id=str(uuid4()),
        created_by_uid=created_by_uid,
        created_by_email=created_by_email,
        status="pending",
        reason=reason,
        expected_return_date=expected_return_date,
        created_at=utcnow(),
        academic_year_code=academic_year_code,
        request_date=request_date,
        department_code=department_code,
    )
    r.items = [
        LoanRequestItemORM(
            position=pos,
            equipment_id=it.equipment_id,
            equipment_name=it.equipment_name,
            code=it.code,
            unit=it.unit,
            quantity=it.quantity,
        )
        for pos, it in enumerate(items)
    ]
    db.add(r)
    persist(db, commit=commit)
    if commit:
        db.refresh(r)
    return _request_to_schema(r)


# ---------- Queries ----------
def _with_items(stmt):
    return stmt.options(selectinload(LoanRequestORM.items))


def list_pending_requests(db: Session) -> list[LoanRequest]:
    rows = db.execute(
        _with_items(select(LoanRequestORM))
        .where(LoanRequestORM.status == "pending")
        .order_by(LoanRequestORM.created_at.asc())
    ).scalars().all()
    return [_request_to_schema(r) for r in rows]


def list_requests_for_user(db: Session, uid: str) -> list[LoanRequest]:
    rows = db.execute(
        _with_items(select(LoanRequestORM))
        .where(LoanRequestORM.created_by_uid == uid)
        .order_by(LoanRequestORM.created_at.desc())
    ).scalars().all()
    return [_request_to_schema(r) for r in rows]


def _contains(text: str) -> str:
    """ILIKE pattern matching ``text`` literally anywhere; pair with escape='\\'."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_requests_query(
    *,
    status: str | None,
    academic_year: str | None,
    department: str | None,
    date_from: date | None,
    date_to: date | None,
    q: str | None,
):
    stmt = select(LoanRequestORM)

    if status:
        stmt = stmt.where(LoanRequestORM.status == status)

    if academic_year:
        stmt = stmt.where(LoanRequestORM.academic_year_code.ilike(_contains(academic_year), escape="\\"))

    if department:
        stmt = stmt.where(LoanRequestORM.department_code.ilike(_contains(department), escape="\\"))

    # whole days, both ends inclusive
    if date_from:
        stmt = stmt.where(LoanRequestORM.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        stmt = stmt.where(
            LoanRequestORM.created_at < datetime.combine(date_to + timedelta(days=1), time.min)
        )

    if q:
        like = _contains(q)
        stmt = stmt.where(
            or_(
                LoanRequestORM.created_by_email.ilike(like, escape="\\"),
                LoanRequestORM.created_by_uid.ilike(like, escape="\\"),
                LoanRequestORM.reason.ilike(like, escape="\\"),
                LoanRequestORM.academic_year_code.ilike(like, escape="\\"),
                LoanRequestORM.department_code.ilike(like, escape="\\"),
                LoanRequestORM.request_date.ilike(like, escape="\\"),
                LoanRequestORM.items.any(
                    or_(
                        LoanRequestItemORM.equipment_name.ilike(like, escape="\\"),
                        LoanRequestItemORM.code.ilike(like, escape="\\"),
                    )
                ),
            )
        )

    return stmt


def count_requests_filtered(db: Session, **filters) -> int:
    stmt = build_requests_query(**filters)
    count_stmt = select(func.count()).select_from(stmt.subquery())
    return int(db.execute(count_stmt).scalar_one())


def requests_meta(db: Session, *, limit: int, offset: int, **filters) -> dict:
    total = count_requests_filtered(db, **filters)
    total_pages = max(1, (total + limit - 1) // limit)

    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "total_pages": total_pages,
    }


def list_requests_filtered(db: Session, *, limit: int, offset: int, **filters) -> list[LoanRequest]:
    stmt = _with_items(build_requests_query(**filters))
    stmt = stmt.order_by(LoanRequestORM.created_at.desc()).limit(limit).offset(offset)
    rows = db.execute(stmt).scalars().all()
    return [_request_to_schema(r) for r in rows]
