from collections.abc import Generator
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from db import SessionLocal
from models import AdminCredential, Caller


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# identity is established upstream by the identity provider / gateway;
# these headers are trusted as-is
def get_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Caller:
    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(status_code=401, detail="missing caller identity")
    role = "admin" if (x_user_role or "").strip().lower() == "admin" else "staff"
    return Caller(uid=uid, email=(x_user_email or "").strip(), role=role)


def require_admin(caller: Caller = Depends(get_caller)) -> AdminCredential:
    if caller.role != "admin":
        raise HTTPException(status_code=403, detail="admin role required")
    return AdminCredential(uid=caller.uid)
