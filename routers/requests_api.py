from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import approvals
import crud
import submissions
from dependencies import get_caller, get_db, require_admin
from filter_helpers import (
    blank_to_none,
    normalize_date_range,
    normalize_limit,
    normalize_offset,
    normalize_status,
)
from models import AdminCredential, Caller, LoanRequest, LoanRequestIn, RequestsMeta

router = APIRouter()


def _filters(
    status: Optional[str],
    academic_year: Optional[str],
    department: Optional[str],
    date_from: Optional[date],
    date_to: Optional[date],
    q: Optional[str],
) -> dict:
    date_from, date_to = normalize_date_range(date_from, date_to)
    return {
        "status": normalize_status(status),
        "academic_year": blank_to_none(academic_year),
        "department": blank_to_none(department),
        "date_from": date_from,
        "date_to": date_to,
        "q": blank_to_none(q),
    }


@router.post("/requests", response_model=LoanRequest, status_code=201)
def submit_request_api(
    body: LoanRequestIn,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return submissions.submit_request(db, caller, body)


@router.get("/requests/mine", response_model=list[LoanRequest])
def my_requests_api(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return crud.list_requests_for_user(db, caller.uid)


@router.get("/requests/pending", response_model=list[LoanRequest])
def pending_requests_api(
    admin: AdminCredential = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return crud.list_pending_requests(db)


@router.get("/requests", response_model=list[LoanRequest])
def list_requests_api(
    status: Optional[str] = None,
    academic_year: Optional[str] = None,
    department: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    admin: AdminCredential = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return crud.list_requests_filtered(
        db,
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
        **_filters(status, academic_year, department, date_from, date_to, q),
    )


@router.get("/requests/meta", response_model=RequestsMeta)
def requests_meta_api(
    status: Optional[str] = None,
    academic_year: Optional[str] = None,
    department: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    q: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    admin: AdminCredential = Depends(require_admin),
    db: Session = Depends(get_db),
):
    meta = crud.requests_meta(
        db,
        limit=normalize_limit(limit),
        offset=normalize_offset(offset),
        **_filters(status, academic_year, department, date_from, date_to, q),
    )
    return RequestsMeta(**meta)


@router.get("/requests/{request_id}", response_model=LoanRequest)
def get_request_api(
    request_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    req = crud.get_request(db, request_id)
    if not req:
        raise HTTPException(status_code=404, detail="loan request not found")
    if caller.role != "admin" and req.created_by_uid != caller.uid:
        raise HTTPException(status_code=403, detail="not your request")
    return req


@router.post("/requests/{request_id}/approve", response_model=LoanRequest)
def approve_request_api(
    request_id: str,
    admin: AdminCredential = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return approvals.run_with_retry(lambda: approvals.approve_request(db, request_id, admin))


@router.post("/requests/{request_id}/reject", response_model=LoanRequest)
def reject_request_api(
    request_id: str,
    admin: AdminCredential = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return approvals.run_with_retry(lambda: approvals.reject_request(db, request_id, admin))


@router.post("/requests/{request_id}/cancel", response_model=LoanRequest)
def cancel_request_api(
    request_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return approvals.run_with_retry(lambda: approvals.cancel_request(db, request_id, caller.uid))


@router.post("/requests/{request_id}/return", response_model=LoanRequest)
def return_request_api(
    request_id: str,
    admin: AdminCredential = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return approvals.run_with_retry(lambda: approvals.return_request(db, request_id, admin))
