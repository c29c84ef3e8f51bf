from io import BytesIO

import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

import app as portal
from record_specs import TEACHER_RECORDS
from conftest import PDF_BYTES, journal_payload, lookup_id

JOURNALS = "/api/teacher/publication/journals"


def create_journal(client, db, **overrides):
    resp = client.post(JOURNALS, json={"journal": journal_payload(db, **overrides)})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["journalId"]


def test_create_and_list_journal(teacher_client, mockdb):
    journal_id = create_journal(teacher_client, mockdb)

    resp = teacher_client.get(JOURNALS)
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store"
    journals = resp.get_json()["journals"]
    assert len(journals) == 1
    journal = journals[0]
    assert journal["id"] == journal_id
    assert journal["journalId"] == journal_id
    assert journal["submit_date"] == "2024-03-05"
    assert journal["impact_factor"] == 2.9
    assert journal["peer_reviewed"] is True
    assert journal["level_name"] == "International"
    assert "_id" not in journal


def test_missing_required_fields(teacher_client, mockdb):
    payload = journal_payload(mockdb)
    del payload["authors"]
    resp = teacher_client.post(JOURNALS, json={"journal": payload})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Title, authors, author type, level, and type are required"


def test_missing_body_key(teacher_client):
    resp = teacher_client.post(JOURNALS, json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Journal data is required"


def test_unknown_lookup_value(teacher_client, mockdb):
    resp = teacher_client.post(JOURNALS, json={"journal": journal_payload(mockdb, level=999)})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid reference: level"


def test_non_numeric_value(teacher_client, mockdb):
    resp = teacher_client.post(JOURNALS, json={"journal": journal_payload(mockdb, impact_factor="high")})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "impact_factor must be a number"


@pytest.mark.parametrize("value", ["nan", "inf", "-Infinity", "1e400", "99999999999999999999"])
def test_non_finite_number(teacher_client, mockdb, value):
    resp = teacher_client.post(JOURNALS, json={"journal": journal_payload(mockdb, impact_factor=value)})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "impact_factor must be a number"
    assert mockdb.journals.count_documents({}) == 0


def test_numeric_dates_read_day_first(teacher_client, mockdb):
    journal_id = create_journal(teacher_client, mockdb, submit_date="05/06/2024")
    assert mockdb.journals.find_one({"id": journal_id})["submit_date"] == "2024-06-05"

    journal_id = create_journal(teacher_client, mockdb, title="US style", submit_date="06/28/2024")
    assert mockdb.journals.find_one({"id": journal_id})["submit_date"] == "2024-06-28"

    resp = teacher_client.post(JOURNALS, json={"journal": journal_payload(mockdb, submit_date="31/02/2024")})
    assert resp.status_code == 400


def test_bad_date(teacher_client, mockdb):
    resp = teacher_client.post(JOURNALS, json={"journal": journal_payload(mockdb, submit_date="someday")})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid date for submit_date. Expected YYYY-MM-DD"


def test_teacher_cannot_touch_another_teacher(teacher_client, mockdb, other_teacher_user):
    other_id = other_teacher_user["role_id"]
    resp = teacher_client.get(f"{JOURNALS}?teacherId={other_id}")
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Forbidden - User ID mismatch"

    resp = teacher_client.post(JOURNALS, json={"teacherId": other_id, "journal": journal_payload(mockdb)})
    assert resp.status_code == 403


def test_admin_acts_for_any_teacher(admin_client, teacher_client, teacher_user, mockdb):
    resp = admin_client.post(JOURNALS, json={"teacherId": teacher_user["role_id"], "journal": journal_payload(mockdb)})
    assert resp.status_code == 201
    assert len(teacher_client.get(JOURNALS).get_json()["journals"]) == 1

    assert admin_client.get(JOURNALS).status_code == 400


def test_department_reads_but_cannot_write(dept_client, teacher_client, teacher_user, other_teacher_user, mockdb):
    create_journal(teacher_client, mockdb)
    tid = teacher_user["role_id"]

    resp = dept_client.get(f"{JOURNALS}?teacherId={tid}")
    assert resp.status_code == 200
    assert len(resp.get_json()["journals"]) == 1

    resp = dept_client.post(JOURNALS, json={"teacherId": tid, "journal": journal_payload(mockdb)})
    assert resp.status_code == 403

    # teacher from another department
    resp = dept_client.get(f"{JOURNALS}?teacherId={other_teacher_user['role_id']}")
    assert resp.status_code == 403


def test_faculty_reads_teachers_in_faculty(faculty_client, teacher_user, other_teacher_user):
    assert faculty_client.get(f"{JOURNALS}?teacherId={teacher_user['role_id']}").status_code == 200
    assert faculty_client.get(f"{JOURNALS}?teacherId={other_teacher_user['role_id']}").status_code == 403


def test_update_and_patch(teacher_client, mockdb):
    journal_id = create_journal(teacher_client, mockdb)

    updated = journal_payload(mockdb, title="Revised title")
    resp = teacher_client.put(JOURNALS, json={"journalId": journal_id, "journal": updated})
    assert resp.status_code == 200

    resp = teacher_client.patch(JOURNALS, json={"journalId": journal_id, "journal": {"volume_num": "12"}})
    assert resp.status_code == 200

    journal = teacher_client.get(JOURNALS).get_json()["journals"][0]
    assert journal["title"] == "Revised title"
    assert journal["volume_num"] == "12"
    assert journal["authors"] == "A. Mehta, R. Shah"

    resp = teacher_client.put(JOURNALS, json={"journalId": 9999, "journal": updated})
    assert resp.status_code == 404


def test_delete_removes_attached_document(teacher_client, teacher_user, mockdb):
    tid = teacher_user["role_id"]
    resp = teacher_client.post("/api/documents/upload", data={
        "file": (BytesIO(PDF_BYTES), "article.pdf", "application/pdf"),
        "folder": "journal-articles", "userId": str(tid), "recordId": "77",
    }, content_type="multipart/form-data")
    path = resp.get_json()["virtualPath"]
    journal_id = create_journal(teacher_client, mockdb, Image=path)
    assert portal.load_document(path) is not None

    resp = teacher_client.delete(f"{JOURNALS}?journalId={journal_id}")
    assert resp.status_code == 200
    assert portal.load_document(path) is None

    resp = teacher_client.delete(f"{JOURNALS}?journalId={journal_id}")
    assert resp.status_code == 404


def test_mutations_are_logged(teacher_client, teacher_user, mockdb):
    journal_id = create_journal(teacher_client, mockdb)
    teacher_client.delete(f"{JOURNALS}?journalId={journal_id}",
                          headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1", "User-Agent": "pytest"})

    logs = list(mockdb.activity_logs.find({"entity_name": "Journal"}))
    assert sorted(l["action_type"] for l in logs) == ["CREATE", "DELETE"]
    delete_log = next(l for l in logs if l["action_type"] == "DELETE")
    assert delete_log["ip_address"] == "203.0.113.9"
    assert delete_log["user_agent"] == "pytest"
    assert delete_log["performed_by_id"] == str(teacher_user["_id"])
    assert delete_log["entity_id"] == str(journal_id)


def test_refresher_year_filter(teacher_client, mockdb):
    url = "/api/teacher/talks-events/refresher-details"
    course = lookup_id(mockdb, "refresherTypes", "Refresher Course")
    for start in ["2023-05-10", "2024-01-15"]:
        resp = teacher_client.post(url, json={"refresherDetail": {
            "name": f"Course {start}", "refresher_type": course, "startdate": start,
        }})
        assert resp.status_code == 201

    assert len(teacher_client.get(url).get_json()["refresherDetails"]) == 2
    filtered = teacher_client.get(f"{url}?year=2024").get_json()["refresherDetails"]
    assert [r["startdate"] for r in filtered] == ["2024-01-15"]
    assert teacher_client.get(f"{url}?year=abc").status_code == 400


def test_recommendation_without_document(teacher_client):
    url = "/api/teacher/academic-recommendations/magazines"
    resp = teacher_client.post(url, json={"magazine": {"title": "Physics Today", "price": "1,200",
                                                       "is_additional_attachment": "no"}})
    assert resp.status_code == 201
    magazine = teacher_client.get(url).get_json()["magazines"][0]
    assert magazine["price"] == 1200
    assert magazine["is_additional_attachment"] is False


@pytest.mark.parametrize("path", sorted(TEACHER_RECORDS))
def test_every_kind_reports_its_required_fields(teacher_client, path):
    spec = TEACHER_RECORDS[path]
    resp = teacher_client.post(f"/api/teacher/{path}", json={spec["body_key"]: {}})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == spec["required_message"]


def test_database_outage_returns_503(teacher_client, mockdb, monkeypatch):
    def unreachable(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("localhost:27017: connection refused")

    original_find = mongomock.collection.Collection.find
    monkeypatch.setattr(mongomock.collection.Collection, "find", unreachable)
    resp = teacher_client.get(JOURNALS)
    assert resp.status_code == 503
    assert resp.get_json() == {"success": False, "error": "Database connection failed"}

    monkeypatch.setattr(mongomock.collection.Collection, "find", original_find)
    monkeypatch.setattr(mongomock.collection.Collection, "insert_one", unreachable)
    resp = teacher_client.post(JOURNALS, json={"journal": journal_payload(mockdb)})
    assert resp.status_code == 503
    assert resp.get_json()["error"] == "Database connection failed"


def test_admin_edits_show_on_teacher_dashboard(admin_client, teacher_client, teacher_user, mockdb):
    tid = teacher_user["role_id"]
    resp = admin_client.post(JOURNALS, json={"teacherId": tid, "journal": journal_payload(mockdb)})
    assert resp.status_code == 201

    log = mockdb.activity_logs.find_one({"action_type": "CREATE", "entity_name": "Journal"})
    assert log["performed_by_type"] == "admin"
    assert log["teacher_id"] == tid
    assert log["dept_id"] == 101

    activities = teacher_client.get("/api/teacher/dashboard").get_json()["recentActivities"]
    assert [a["performed_by_type"] for a in activities] == ["admin"]
