from datetime import datetime, timedelta, timezone

import approvals
import crud


def _filters(**overrides):
    base = {
        "status": None,
        "academic_year": None,
        "department": None,
        "date_from": None,
        "date_to": None,
        "q": None,
    }
    base.update(overrides)
    return base


def _ids(rows):
    return {r.id for r in rows}


def test_pending_list_excludes_decided_requests(db_session, make_equipment, make_request, admin):
    e = make_equipment(qty=10)
    r1 = make_request([(e.id, 1)])
    r2 = make_request([(e.id, 1)])
    r3 = make_request([(e.id, 1)])
    approvals.approve_request(db_session, r1.id, admin)
    approvals.reject_request(db_session, r2.id, admin)

    pending = crud.list_pending_requests(db_session)
    assert _ids(pending) == {r3.id}
    assert pending[0].items[0].quantity == 1


def test_requests_for_user_only_returns_own(db_session, make_equipment, make_request):
    e = make_equipment(qty=10)
    mine = make_request([(e.id, 1)], uid="staff-1")
    make_request([(e.id, 1)], uid="staff-2")

    rows = crud.list_requests_for_user(db_session, "staff-1")
    assert _ids(rows) == {mine.id}


def test_filter_by_status_and_metadata(db_session, make_equipment, make_request, admin):
    e = make_equipment(qty=10)
    sci = make_request([(e.id, 1)], academic_year_code="2569", department_code="SCI-01")
    eng = make_request([(e.id, 1)], academic_year_code="2568", department_code="ENG")
    approvals.approve_request(db_session, eng.id, admin)

    def run(**kw):
        return _ids(crud.list_requests_filtered(db_session, limit=50, offset=0, **_filters(**kw)))

    assert run() == {sci.id, eng.id}
    assert run(status="approved") == {eng.id}
    assert run(status="pending") == {sci.id}
    assert run(department="sci") == {sci.id}
    assert run(academic_year="68") == {eng.id}


def test_search_text_matches_items_and_requester(db_session, make_equipment, make_request):
    cam = make_equipment(name="Camera", code="CAM-9", qty=10)
    mic = make_equipment(name="Microphone", code="MIC-1", qty=10)
    r_cam = make_request([(cam.id, 1)], email="alice@example.com", reason="photo club")
    r_mic = make_request([(mic.id, 1)], email="bob@example.com", reason="podcast")

    def run(q):
        return _ids(crud.list_requests_filtered(db_session, limit=50, offset=0, **_filters(q=q)))

    assert run("camera") == {r_cam.id}
    assert run("mic-1") == {r_mic.id}
    assert run("BOB@") == {r_mic.id}
    assert run("podcast") == {r_mic.id}
    assert run("nothing-matches") == set()


def test_date_range_is_inclusive_whole_days(db_session, make_equipment, make_request):
    e = make_equipment(qty=10)
    r = make_request([(e.id, 1)])
    today = datetime.now(timezone.utc).date()

    def run(**kw):
        return _ids(crud.list_requests_filtered(db_session, limit=50, offset=0, **_filters(**kw)))

    assert run(date_from=today, date_to=today) == {r.id}
    assert run(date_to=today - timedelta(days=1)) == set()
    assert run(date_from=today + timedelta(days=1)) == set()


def test_meta_and_paging(db_session, make_equipment, make_request):
    e = make_equipment(qty=10)
    for _ in range(5):
        make_request([(e.id, 1)])

    meta = crud.requests_meta(db_session, limit=2, offset=0, **_filters())
    assert meta == {"total": 5, "limit": 2, "offset": 0, "total_pages": 3}

    page = crud.list_requests_filtered(db_session, limit=2, offset=4, **_filters())
    assert len(page) == 1


def test_like_wildcards_in_search_text_match_literally(db_session, make_equipment, make_request):
    e = make_equipment(name="Tripod", code="TR-1", qty=10)
    plain = make_request([(e.id, 1)], department_code="SCIX01", reason="open day")
    underscored = make_request([(e.id, 1)], department_code="SCI_01", reason="100% booked")

    def run(**kw):
        return _ids(crud.list_requests_filtered(db_session, limit=50, offset=0, **_filters(**kw)))

    assert run(department="SCI_01") == {underscored.id}
    assert run(department="_") == {underscored.id}
    assert run(q="%") == {underscored.id}
    assert run(q="_") == {underscored.id}
    assert run(q="\\") == set()
    assert run(department="SCI") == {plain.id, underscored.id}
