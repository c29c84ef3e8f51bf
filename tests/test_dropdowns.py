from record_specs import LOOKUP_SEED


def test_dropdown_all(teacher_client):
    resp = teacher_client.get("/api/shared/dropdown/all")
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, s-maxage=1800, stale-while-revalidate=3600"
    body = resp.get_json()
    assert {"Fid": 1, "Fname": "Faculty of Science"} in body["faculties"]
    for category in LOOKUP_SEED:
        assert category in body
    assert body["projectStatuses"][0] == {"id": 1, "name": "Submitted"}


def test_single_category(teacher_client):
    resp = teacher_client.get("/api/shared/dropdown/patentStatuses")
    names = [o["name"] for o in resp.get_json()["patentStatuses"]]
    assert names == ["Filed", "Published", "Granted", "Commercialised"]

    assert teacher_client.get("/api/shared/dropdown/unknownThing").status_code == 404


def test_departments_of_faculty(teacher_client):
    resp = teacher_client.get("/api/shared/dropdown/department?fid=1")
    names = [d["name"] for d in resp.get_json()["departments"]]
    assert names == ["Physics", "Chemistry", "Mathematics", "Botany"]

    assert teacher_client.get("/api/shared/dropdown/department").status_code == 400
    assert teacher_client.get("/api/department?facultyId=abc").status_code == 400

    resp = teacher_client.get("/api/department?facultyId=4")
    assert [d["Deptid"] for d in resp.get_json()["departments"]] == [401, 402]


def test_faculty_and_user_types(teacher_client):
    faculties = teacher_client.get("/api/faculty").get_json()["faculties"]
    assert len(faculties) == 4
    types = teacher_client.get("/api/shared/dropdown/user-types").get_json()["userTypes"]
    assert [t["name"] for t in types] == ["admin", "faculty", "department", "teacher"]


def test_student_body_levels(teacher_client):
    resp = teacher_client.get("/api/shared/dept-dropdowns/event-student-body-level")
    assert [l["name"] for l in resp.get_json()["levels"]][:2] == ["International", "National"]


def test_dropdowns_need_login(client):
    assert client.get("/api/shared/dropdown/all").status_code == 401


def test_seeding_is_idempotent(mockdb):
    import app as portal

    before = mockdb.lookups.count_documents({})
    portal.seed_reference_data()
    assert mockdb.lookups.count_documents({}) == before
    assert mockdb.departments.count_documents({}) == 12
