import crud
import submissions
from models import Caller, EquipmentIn, EquipmentUpdate, LoanRequestIn


def test_create_equipment_commit_false_requires_manual_commit(db_session):
    body = EquipmentIn(name="Tablet", code="T-001", unit="pcs", available_quantity=3)
    created = crud.create_equipment(db_session, body, commit=False)

    db_session.commit()
    db_session.expire_all()

    loaded = crud.get_equipment(db_session, created.id)
    assert loaded is not None
    assert loaded.code == "T-001"
    assert loaded.available_quantity == 3


def test_create_equipment_commit_false_rollback_discards_change(db_session):
    body = EquipmentIn(name="Tablet", code="T-002")
    created = crud.create_equipment(db_session, body, commit=False)

    db_session.rollback()
    db_session.expire_all()

    loaded = crud.get_equipment(db_session, created.id)
    assert loaded is None


def test_update_equipment_commit_false_rollback_discards_change(db_session, make_equipment):
    e = make_equipment(name="Cable", qty=4)

    updated = crud.update_equipment_details(
        db_session, e.id, EquipmentUpdate(name="Adapter", is_active=False), commit=False
    )
    assert updated is not None
    assert updated.name == "Adapter"

    db_session.rollback()
    db_session.expire_all()

    loaded = crud.get_equipment(db_session, e.id)
    assert loaded.name == "Cable"
    assert loaded.is_active is True


def test_update_equipment_never_changes_stock(db_session, make_equipment):
    e = make_equipment(qty=4)
    crud.update_equipment_details(db_session, e.id, EquipmentUpdate(unit="box"))

    db_session.expire_all()
    loaded = crud.get_equipment(db_session, e.id)
    assert loaded.unit == "box"
    assert loaded.available_quantity == 4


def test_delete_equipment_commit_false_requires_manual_commit(db_session, make_equipment):
    e = make_equipment()

    assert crud.delete_equipment(db_session, e.id, commit=False) is True

    db_session.commit()
    db_session.expire_all()

    assert crud.get_equipment(db_session, e.id) is None
    assert crud.delete_equipment(db_session, e.id) is False


def test_submit_request_commit_false_rollback_discards_request(db_session, make_equipment):
    e = make_equipment(qty=5)
    body = LoanRequestIn(
        items=[{"equipment_id": e.id, "quantity": 1}],
        academic_year_code="2569",
        request_date="2026-10-19",
        department_code="SCI",
    )
    created = submissions.submit_request(db_session, Caller(uid="staff-1"), body, commit=False)

    db_session.rollback()
    db_session.expire_all()

    assert crud.get_request(db_session, created.id) is None


def test_submit_request_commit_false_requires_manual_commit(db_session, make_equipment):
    e = make_equipment(qty=5)
    body = LoanRequestIn(
        items=[{"equipment_id": e.id, "quantity": 2}],
        academic_year_code="2569",
        request_date="2026-10-19",
        department_code="SCI",
    )
    created = submissions.submit_request(db_session, Caller(uid="staff-1"), body, commit=False)

    db_session.commit()
    db_session.expire_all()

    loaded = crud.get_request(db_session, created.id)
    assert loaded is not None
    assert loaded.status == "pending"
    assert loaded.items[0].quantity == 2


def test_update_equipment_ignores_explicit_none(db_session, make_equipment):
    e = make_equipment(name="Speaker", code="SP-1", qty=2)
    updated = crud.update_equipment_details(
        db_session, e.id, EquipmentUpdate(name=None, code=None, unit="set")
    )
    assert updated.name == "Speaker"

    db_session.expire_all()
    loaded = crud.get_equipment(db_session, e.id)
    assert loaded.name == "Speaker"
    assert loaded.code == "SP-1"
    assert loaded.unit == "set"
