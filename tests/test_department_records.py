import pytest

from record_specs import DEPARTMENT_RECORDS
from conftest import lookup_id

EVENTS = "/api/department/events/dept-events"


def event_payload(**overrides):
    payload = {"deptid": 101, "ename": "National Science Day", "date": "2024-02-28", "place": "Seminar Hall",
               "No_Participant": "120", "speaker_name": "Dr. Rao"}
    payload.update(overrides)
    return payload


def test_event_crud(dept_client):
    resp = dept_client.post(EVENTS, json=event_payload())
    assert resp.status_code == 201
    eid = resp.get_json()["eid"]

    resp = dept_client.get(f"{EVENTS}?deptId=101")
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, s-maxage=120, stale-while-revalidate=240"
    events = resp.get_json()["events"]
    assert events[0]["eid"] == eid
    assert events[0]["No_Participant"] == 120

    resp = dept_client.put(EVENTS, json=event_payload(eid=eid, ename="Science Day 2024"))
    assert resp.status_code == 200
    assert dept_client.get(f"{EVENTS}?deptId=101").get_json()["events"][0]["ename"] == "Science Day 2024"

    assert dept_client.delete(f"{EVENTS}?id={eid}&deptId=101").status_code == 200
    assert dept_client.delete(f"{EVENTS}?id={eid}&deptId=101").status_code == 404


def test_event_validation(dept_client):
    resp = dept_client.post(EVENTS, json=event_payload(deptid="abc"))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Valid department ID is required"

    resp = dept_client.post(EVENTS, json=event_payload(ename=""))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Event name is required"

    payload = event_payload()
    del payload["date"]
    resp = dept_client.post(EVENTS, json=payload)
    assert resp.get_json()["error"] == "Event date is required"

    resp = dept_client.put(EVENTS, json=event_payload())
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "eid is required"


def test_department_cannot_write_other_department(dept_client):
    resp = dept_client.post(EVENTS, json=event_payload(deptid=102))
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Forbidden - Department ID mismatch"

    resp = dept_client.get(f"{EVENTS}?deptId=102")
    assert resp.status_code == 403


def test_teacher_reads_own_department_only(dept_client, teacher_client):
    dept_client.post(EVENTS, json=event_payload())

    resp = teacher_client.get(EVENTS)
    assert resp.status_code == 200
    assert len(resp.get_json()["events"]) == 1

    assert teacher_client.post(EVENTS, json=event_payload()).status_code == 403
    assert teacher_client.get(f"{EVENTS}?deptId=201").status_code == 403


def test_unknown_department(admin_client):
    resp = admin_client.get(f"{EVENTS}?deptId=999")
    assert resp.status_code == 404


def test_funding_numeric_message(dept_client):
    url = "/api/department/profile/funding"
    resp = dept_client.post(url, json={"deptId": 101, "fundingAgency": "DST-FIST", "dateofRecog": "2023-08-01",
                                       "fundsSancttioned": "lots"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Funds sanctioned must be a valid number"

    resp = dept_client.post(url, json={"deptId": 101, "fundingAgency": "DST-FIST", "dateofRecog": "2023-08-01",
                                       "fundsSancttioned": "2500000"})
    assert resp.status_code == 201
    funding = dept_client.get(f"{url}?deptId=101").get_json()["funding"]
    assert funding[0]["fundsSancttioned"] == 2500000


def test_student_body_event_level_lookup(dept_client, mockdb):
    url = "/api/department/events/student-body-events"
    resp = dept_client.post(url, json={"deptid": 101, "title": "Quiz", "date": "2024-09-10", "level": 77})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid reference: level"

    level = lookup_id(mockdb, "eventStudentBodyLevels", "Department")
    resp = dept_client.post(url, json={"deptid": 101, "title": "Quiz", "date": "2024-09-10", "level": level})
    assert resp.status_code == 201
    assert dept_client.get(url).get_json()["events"][0]["level_name"] == "Department"


def test_department_profile_upsert(dept_client):
    url = "/api/department/profile"
    payload = {"deptid": 101, "year": "2024-25", "intro": "Founded in 1949.", "submit_date": "2025-04-30"}
    resp = dept_client.post(url, json=payload)
    assert resp.status_code == 201

    payload["intro"] = "Founded in 1949 as part of the Faculty of Science."
    resp = dept_client.put(url, json=payload)
    assert resp.status_code == 200

    resp = dept_client.get(f"{url}?deptId=101&year=2024-25")
    assert resp.headers["Cache-Control"] == "public, s-maxage=300, stale-while-revalidate=600"
    profile = resp.get_json()["profile"]
    assert profile["intro"].startswith("Founded in 1949 as part")
    assert profile["submit_date"] == "2025-04-30"

    assert dept_client.post(url, json={"deptid": 101}).status_code == 400
    assert dept_client.post(url, json={"year": "2024-25"}).status_code == 400


@pytest.mark.parametrize("path", sorted(DEPARTMENT_RECORDS))
def test_every_kind_requires_a_department(dept_client, path):
    resp = dept_client.post(f"/api/department/{path}", json={})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Valid department ID is required"
