import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")

import mongomock
import mongomock.gridfs
import pytest

mongomock.gridfs.enable_gridfs_integration()

import app as portal

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def mockdb(monkeypatch):
    client = mongomock.MongoClient()
    db = client["AnnualReportTest"]
    monkeypatch.setattr(portal, "db", db)
    portal.ensure_indexes()
    portal.seed_reference_data()
    return db


@pytest.fixture
def flask_app(mockdb):
    portal.app.config.update(TESTING=True)
    portal.limiter.enabled = False
    return portal.app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def sent_emails(monkeypatch):
    outbox = []

    def fake_send_email(to_email, subject, body):
        outbox.append({"to": to_email, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(portal, "send_email", fake_send_email)
    return outbox


def create_user(db, email, password="password123", user_type="teacher", **extra):
    user = {
        "email": email,
        "password": portal.hash_password(password),
        "user_type": user_type,
        "display_name": extra.pop("display_name", email.split("@")[0]),
        "active": extra.pop("active", True),
    }
    user.update(extra)
    user["_id"] = db.users.insert_one(user).inserted_id
    return user


def create_teacher(db, email, dept_id=101, fname="Asha", lname="Mehta", password="password123"):
    tid = portal.next_id("teachers")
    db.teachers.insert_one({
        "Tid": tid, "fname": fname, "mname": None, "lname": lname,
        "email_id": email, "phone_no": "9999999999", "deptid": dept_id,
        "designation": 3, "DOB": "1985-04-12", "H_INDEX": 7, "i10_INDEX": 4, "CITIATIONS": 120,
    })
    return create_user(
        db, email, password, "teacher",
        display_name=f"{fname} {lname}",
        role_id=tid, dept_id=dept_id, faculty_id=portal.department_faculty(dept_id),
    )


def session_client(flask_app, user):
    client = flask_app.test_client()
    with client.session_transaction() as sess:
        sess["user_id"] = str(user["_id"])
        sess["email"] = user["email"]
        sess["user_type"] = user["user_type"]
        sess["role_id"] = user.get("role_id")
        sess["dept_id"] = user.get("dept_id")
        sess["faculty_id"] = user.get("faculty_id")
    return client


@pytest.fixture
def admin_user(mockdb):
    return create_user(mockdb, "admin@example.com", user_type="admin")


@pytest.fixture
def teacher_user(mockdb):
    return create_teacher(mockdb, "teacher@example.com", dept_id=101)


@pytest.fixture
def other_teacher_user(mockdb):
    return create_teacher(mockdb, "other@example.com", dept_id=201, fname="Ravi", lname="Shah")


@pytest.fixture
def dept_user(mockdb):
    return create_user(mockdb, "physics@example.com", user_type="department", dept_id=101, faculty_id=1)


@pytest.fixture
def faculty_user(mockdb):
    return create_user(mockdb, "science@example.com", user_type="faculty", faculty_id=1)


@pytest.fixture
def admin_client(flask_app, admin_user):
    return session_client(flask_app, admin_user)


@pytest.fixture
def teacher_client(flask_app, teacher_user):
    return session_client(flask_app, teacher_user)


@pytest.fixture
def other_teacher_client(flask_app, other_teacher_user):
    return session_client(flask_app, other_teacher_user)


@pytest.fixture
def dept_client(flask_app, dept_user):
    return session_client(flask_app, dept_user)


@pytest.fixture
def faculty_client(flask_app, faculty_user):
    return session_client(flask_app, faculty_user)


def lookup_id(db, category, name):
    return db.lookups.find_one({"category": category, "name": name})["id"]


def journal_payload(db, **overrides):
    journal = {
        "title": "Phonon transport in thin films",
        "authors": "A. Mehta, R. Shah",
        "author_type": lookup_id(db, "journalAuthorTypes", "First Author"),
        "level": lookup_id(db, "resPubLevels", "International"),
        "type": lookup_id(db, "journalEditedTypes", "Journal Article"),
        "journal_name": "Journal of Applied Physics",
        "impact_factor": "2.9",
        "peer_reviewed": "yes",
        "month_year": "2024-03",
        "submit_date": "5 March 2024",
    }
    journal.update(overrides)
    return journal
