from coursework.core.config import settings
from coursework.models.notification import Notification
from coursework.models.user import User
from tests.conftest import MUTED_STUDENT, PASSWORD, PENDING_STUDENT, STAFF, STUDENT


def login(client, email: str, password: str = PASSWORD) -> str:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def submit(client, token: str, assignment_id: int, data: bytes):
    return client.post(
        f"/assignments/{assignment_id}/submissions",
        headers=auth_header(token),
        files={"file": ("answer.pdf", data, "application/pdf")},
    )


def test_register_creates_pending_student(client, db, mailer):
    r = client.post(
        "/auth/register",
        json={"email": "new@x.edu", "password": PASSWORD, "full_name": "New Student"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["role"] == "student"
    assert body["approved"] is False
    assert body["muted"] is False

    kinds = [n.kind for n in db.query(Notification).filter(Notification.recipient_email == "new@x.edu")]
    assert kinds == ["registration_pending"]
    assert mailer.to("new@x.edu")[0][1] == "Registration pending"

    staff = login(client, STAFF)
    pending = client.get("/students/pending", headers=auth_header(staff)).json()
    assert "new@x.edu" in [s["email"] for s in pending]


def test_register_duplicate_email(client):
    r = client.post("/auth/register", json={"email": STUDENT, "password": PASSWORD})
    assert r.status_code == 400


def test_me_returns_current_user(client):
    token = login(client, STUDENT)
    r = client.get("/auth/me", headers=auth_header(token))
    assert r.status_code == 200
    assert r.json()["email"] == STUDENT


def test_bad_password_is_rejected(client):
    r = client.post("/auth/login", json={"email": STUDENT, "password": "wrong-password"})
    assert r.status_code == 401


def test_approval_lets_student_submit(client, assignment_id, pdf_bytes, mailer):
    student = login(client, PENDING_STUDENT)
    staff = login(client, STAFF)

    r = submit(client, student, assignment_id, pdf_bytes)
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_APPROVED"

    r = client.post(f"/students/{PENDING_STUDENT}/approve", headers=auth_header(staff))
    assert r.status_code == 200
    assert r.json()["approved"] is True
    assert [m[1] for m in mailer.to(PENDING_STUDENT)] == ["Registration approved"]

    # takes effect on the very next attempt, with the same token
    r = submit(client, student, assignment_id, pdf_bytes)
    assert r.status_code == 201, r.text


def test_approving_twice_notifies_once(client, mailer):
    staff = login(client, STAFF)
    for _ in range(2):
        r = client.post(f"/students/{PENDING_STUDENT}/approve", headers=auth_header(staff))
        assert r.status_code == 200
    assert len(mailer.to(PENDING_STUDENT)) == 1


def test_mute_and_unmute(client, assignment_id, pdf_bytes):
    student = login(client, STUDENT)
    staff = login(client, STAFF)

    r = client.post(f"/students/{STUDENT}/mute", headers=auth_header(staff))
    assert r.status_code == 200
    assert r.json()["muted"] is True

    muted = client.get("/students/muted", headers=auth_header(staff)).json()
    assert sorted(s["email"] for s in muted) == sorted([STUDENT, MUTED_STUDENT])

    r = submit(client, student, assignment_id, pdf_bytes)
    assert r.status_code == 403
    assert r.json()["code"] == "MUTED"

    r = client.post(f"/students/{STUDENT}/unmute", headers=auth_header(staff))
    assert r.status_code == 200
    assert r.json()["muted"] is False

    r = submit(client, student, assignment_id, pdf_bytes)
    assert r.status_code == 201, r.text

    kinds = [n["kind"] for n in client.get("/notifications", headers=auth_header(student)).json()]
    assert kinds == ["submission_received", "account_unmuted", "account_muted"]


def test_unknown_student(client):
    staff = login(client, STAFF)
    r = client.post("/students/nobody@x.edu/mute", headers=auth_header(staff))
    assert r.status_code == 404


def test_students_cannot_moderate(client):
    token = login(client, STUDENT)
    assert client.get("/students/pending", headers=auth_header(token)).status_code == 403
    assert client.post(f"/students/{MUTED_STUDENT}/unmute", headers=auth_header(token)).status_code == 403


def test_staff_registers_with_invitation_code(client, db, monkeypatch):
    monkeypatch.setattr(settings, "STAFF_INVITE_CODE", "TA2025")

    r = client.post(
        "/auth/register",
        json={"email": "ta@example.com", "password": PASSWORD, "full_name": "New TA", "invite_code": "TA2025"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["role"] == "staff"
    assert body["approved"] is True

    assert db.query(Notification).filter(Notification.recipient_email == "ta@example.com").count() == 0

    token = login(client, "ta@example.com")
    assert client.get("/students/pending", headers=auth_header(token)).status_code == 200


def test_staff_registration_with_wrong_code(client, db, monkeypatch):
    monkeypatch.setattr(settings, "STAFF_INVITE_CODE", "TA2025")

    r = client.post(
        "/auth/register",
        json={"email": "ta@example.com", "password": PASSWORD, "invite_code": "guess"},
    )
    assert r.status_code == 403
    assert db.query(User).filter(User.email == "ta@example.com").first() is None


def test_staff_registration_disabled_without_configured_code(client, monkeypatch):
    monkeypatch.setattr(settings, "STAFF_INVITE_CODE", "")

    r = client.post(
        "/auth/register",
        json={"email": "ta@example.com", "password": PASSWORD, "invite_code": ""},
    )
    assert r.status_code == 403


def test_reject_pending_registration(client, db, mailer):
    staff = login(client, STAFF)

    r = client.post(f"/students/{PENDING_STUDENT}/reject", headers=auth_header(staff))
    assert r.status_code == 200
    assert r.json() == {"message": "Student registration rejected"}

    assert db.query(User).filter(User.email == PENDING_STUDENT).first() is None
    r = client.post("/auth/login", json={"email": PENDING_STUDENT, "password": PASSWORD})
    assert r.status_code == 401

    kinds = [n.kind for n in db.query(Notification).filter(Notification.recipient_email == PENDING_STUDENT)]
    assert kinds == ["registration_rejected"]
    assert [m[1] for m in mailer.to(PENDING_STUDENT)] == ["Registration rejected"]


def test_only_pending_registrations_can_be_rejected(client, db):
    staff = login(client, STAFF)

    r = client.post(f"/students/{STUDENT}/reject", headers=auth_header(staff))
    assert r.status_code == 404
    assert db.query(User).filter(User.email == STUDENT).first() is not None

    r = client.post("/students/nobody@x.edu/reject", headers=auth_header(staff))
    assert r.status_code == 404


def test_students_cannot_reject(client):
    token = login(client, STUDENT)
    r = client.post(f"/students/{PENDING_STUDENT}/reject", headers=auth_header(token))
    assert r.status_code == 403
