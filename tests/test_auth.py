import base64
import hashlib
from datetime import datetime, timedelta, timezone

import app as portal
from conftest import create_user, create_teacher


def test_login_requires_email_and_password(client):
    resp = client.post("/api/auth/login", json={"email": "someone@example.com"})
    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "error": "Email and password are required."}


def test_login_and_session(client, mockdb):
    create_teacher(mockdb, "asha@example.com", password="secret-pass")

    resp = client.post("/api/auth/login", json={"email": "Asha@Example.com", "password": "secret-pass"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["user"]["user_type"] == "teacher"
    assert body["user"]["department"] == "Physics"
    assert body["user"]["faculty"] == "Faculty of Science"

    resp = client.get("/api/auth/session")
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == "asha@example.com"


def test_login_wrong_password(client, mockdb):
    create_user(mockdb, "user@example.com", password="right-password")
    resp = client.post("/api/auth/login", json={"email": "user@example.com", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid email or password."


def test_login_inactive_account(client, mockdb):
    create_user(mockdb, "gone@example.com", password="password123", active=False)
    resp = client.post("/api/auth/login", json={"email": "gone@example.com", "password": "password123"})
    assert resp.status_code == 401


def test_legacy_hash_is_upgraded_on_login(client, mockdb):
    salt = b"0123456789abcdef"
    derived = hashlib.pbkdf2_hmac("sha1", b"legacy-pass", salt, 1000, dklen=32)
    legacy = f"1000:{base64.b64encode(salt).decode()}:{base64.b64encode(derived).decode()}"
    mockdb.users.insert_one({"email": "old@example.com", "password": legacy, "user_type": "admin", "active": True})

    resp = client.post("/api/auth/login", json={"email": "old@example.com", "password": "legacy-pass"})
    assert resp.status_code == 200

    stored = mockdb.users.find_one({"email": "old@example.com"})["password"]
    assert bytes(stored).startswith(b"$2")
    assert portal.verify_password("legacy-pass", stored)


def test_verify_password_rejects_malformed_hashes():
    assert portal.verify_password("x", "not:a:hash") is False
    assert portal.verify_password("x", "") is False
    assert portal.verify_password("x", b"plainbytes") is False


def test_unauthenticated_request_is_rejected(client):
    resp = client.get("/api/teacher/profile")
    assert resp.status_code == 401
    assert resp.get_json() == {"success": False, "error": "Unauthorized - Invalid or expired session"}


def test_preflight_passes_without_session(client):
    resp = client.options("/api/teacher/publication/journals")
    assert resp.status_code == 200


def test_logout_clears_session(teacher_client):
    assert teacher_client.get("/api/auth/session").status_code == 200
    assert teacher_client.post("/api/auth/logout").status_code == 200
    assert teacher_client.get("/api/auth/session").status_code == 401


def test_signup_creates_teacher_profile(client, mockdb):
    resp = client.post("/api/auth/signup", json={
        "email": "new@example.com", "password": "longenough", "user_type": "teacher",
        "fname": "Neha", "lname": "Patel", "deptid": 201,
    })
    assert resp.status_code == 201
    user = resp.get_json()["user"]
    teacher = mockdb.teachers.find_one({"Tid": user["role_id"]})
    assert teacher["fname"] == "Neha"
    assert teacher["deptid"] == 201
    assert user["faculty_id"] == 2


def test_signup_duplicate_email(client, mockdb):
    create_user(mockdb, "taken@example.com")
    resp = client.post("/api/auth/signup", json={
        "email": "taken@example.com", "password": "longenough", "fname": "X", "deptid": 101,
    })
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Email ID already exists."


def test_signup_rejects_short_password_and_admin_role(client):
    resp = client.post("/api/auth/signup", json={"email": "a@example.com", "password": "short"})
    assert resp.status_code == 400

    resp = client.post("/api/auth/signup", json={
        "email": "b@example.com", "password": "longenough", "user_type": "admin",
    })
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid user type"


def test_forgot_password_is_generic_for_unknown_email(client, sent_emails):
    resp = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "If the email exists, a reset link will be sent."
    assert sent_emails == []


def test_password_reset_flow(client, mockdb, sent_emails):
    create_user(mockdb, "reset@example.com", password="old-password")

    resp = client.post("/api/auth/forgot-password", json={"email": "reset@example.com"})
    assert resp.status_code == 200
    assert len(sent_emails) == 1
    token = sent_emails[0]["body"].split("token=")[1].split()[0]

    resp = client.post("/api/auth/reset-password", json={"token": token, "new_password": "short"})
    assert resp.status_code == 400

    resp = client.post("/api/auth/reset-password", json={"token": token, "new_password": "brand-new-pass"})
    assert resp.status_code == 200

    # the link stops working once the password has changed
    resp = client.post("/api/auth/reset-password", json={"token": token, "new_password": "another-pass"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid reset link"

    resp = client.post("/api/auth/login", json={"email": "reset@example.com", "password": "brand-new-pass"})
    assert resp.status_code == 200


def test_reset_password_with_garbage_token(client):
    resp = client.post("/api/auth/reset-password", json={"token": "garbage", "new_password": "whatever123"})
    assert resp.status_code == 400


def test_otp_login(client, mockdb, sent_emails):
    create_user(mockdb, "otp@example.com")

    assert client.post("/api/auth/send-otp", json={"email": "ghost@example.com"}).status_code == 404

    resp = client.post("/api/auth/send-otp", json={"email": "otp@example.com"})
    assert resp.status_code == 200
    otp = mockdb.otps.find_one({"email": "otp@example.com"})["otp"]
    assert otp in sent_emails[0]["body"]
    assert len(otp) == 6 and otp.isdigit()

    wrong = "000000" if otp != "000000" else "111111"
    resp = client.post("/api/auth/verify-otp", json={"email": "otp@example.com", "otp": wrong})
    assert resp.status_code == 400

    resp = client.post("/api/auth/verify-otp", json={"email": "otp@example.com", "otp": otp})
    assert resp.status_code == 200
    assert mockdb.otps.count_documents({"email": "otp@example.com"}) == 0
    assert client.get("/api/auth/session").status_code == 200


def test_expired_otp(client, mockdb):
    create_user(mockdb, "late@example.com")
    mockdb.otps.insert_one({
        "email": "late@example.com", "purpose": "login", "otp": "123456",
        "expiry": datetime.now(timezone.utc) - timedelta(minutes=1),
    })
    resp = client.post("/api/auth/verify-otp", json={"email": "late@example.com", "otp": "123456"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "OTP has expired"


def test_send_otp_reports_mail_failure(client, mockdb, monkeypatch):
    create_user(mockdb, "fail@example.com")
    monkeypatch.setattr(portal, "send_email", lambda *args: False)
    resp = client.post("/api/auth/send-otp", json={"email": "fail@example.com"})
    assert resp.status_code == 500


def test_change_password(teacher_client, mockdb):
    resp = teacher_client.post("/api/auth/change-password", json={
        "current_password": "wrong", "new_password": "new-password-1",
    })
    assert resp.status_code == 400

    resp = teacher_client.post("/api/auth/change-password", json={
        "current_password": "password123", "new_password": "new-password-1",
    })
    assert resp.status_code == 200
    stored = mockdb.users.find_one({"email": "teacher@example.com"})["password"]
    assert portal.verify_password("new-password-1", stored)


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.data == b"ok"


def test_unknown_api_path_returns_json_404(teacher_client):
    resp = teacher_client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_unexpected_error_returns_json_500(flask_app, teacher_client, monkeypatch):
    def broken():
        raise RuntimeError("session store exploded")

    monkeypatch.setitem(flask_app.config, "PROPAGATE_EXCEPTIONS", False)
    monkeypatch.setattr(portal, "current_user", broken)
    resp = teacher_client.get("/api/auth/session")
    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "Internal Server Error"}
