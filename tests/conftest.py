import os
import tempfile
from pathlib import Path

# ---- テスト用DBパス（db を import する前に設定）----
_TMP_DIR = Path(tempfile.mkdtemp(prefix="equip_loan_"))
os.environ["APP_DB_PATH"] = str(_TMP_DIR / "test_loans.db")
os.environ.setdefault("APP_TX_RETRY_DELAY", "0")

import pytest
from fastapi.testclient import TestClient


@pytest.fixture(scope="session")
def app_module():
    import main

    return main


@pytest.fixture()
def client(app_module):
    # get_db を override（テスト用SessionLocalを使う）
    def _get_db_override():
        db = app_module.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app_module.app.dependency_overrides[app_module.get_db] = _get_db_override
    with TestClient(app_module.app) as c:
        yield c
    app_module.app.dependency_overrides.clear()


@pytest.fixture()
def db_session(app_module):
    db = app_module.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db(app_module, db_session):
    # 各テスト前にテーブルを全消し（順序注意：items -> requests -> equipment）
    from sqlalchemy import delete
    from orm import EquipmentORM, LoanRequestItemORM, LoanRequestORM

    db_session.execute(delete(LoanRequestItemORM))
    db_session.execute(delete(LoanRequestORM))
    db_session.execute(delete(EquipmentORM))
    db_session.commit()
    yield


@pytest.fixture()
def make_equipment(db_session):
    import crud
    from models import EquipmentIn

    def _make(name="Projector", code="EQ-001", unit="pcs", qty=5, active=True):
        return crud.create_equipment(
            db_session,
            EquipmentIn(name=name, code=code, unit=unit, available_quantity=qty, is_active=active),
        )

    return _make


@pytest.fixture()
def make_request(db_session):
    import submissions
    from models import Caller, LoanRequestIn

    def _make(items, uid="staff-1", email="staff@example.com", reason="field trip", **meta):
        body = LoanRequestIn(
            items=[{"equipment_id": eid, "quantity": qty} for eid, qty in items],
            reason=reason,
            academic_year_code=meta.get("academic_year_code", "2569"),
            request_date=meta.get("request_date", "2026-10-19"),
            department_code=meta.get("department_code", "SCI"),
        )
        return submissions.submit_request(db_session, Caller(uid=uid, email=email), body)

    return _make


@pytest.fixture()
def admin():
    from models import AdminCredential

    return AdminCredential(uid="admin-1")
