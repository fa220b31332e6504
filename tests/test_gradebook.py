import csv
import io

from coursework.models.user import User
from coursework.services.grade_report import CSV_HEADER, assignment_stats, export_grades_csv
from coursework.services.grading import feedback_url
from tests.conftest import PASSWORD, STAFF, STUDENT


def login(client, email: str, password: str = PASSWORD) -> str:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _grade_two(db, store, workflow, assignment_id, pdf_bytes, annotation_png):
    db.add(User(email="t@x.edu", full_name="Second Student", role="student",
                approved=True, muted=False, hashed_password="x"))
    db.commit()

    first = store.submit(assignment_id, STUDENT, pdf_bytes, filename="answer.pdf")
    second = store.submit(assignment_id, "t@x.edu", pdf_bytes, filename="answer.pdf")
    workflow.grade(assignment_id, first.id, 80, "Solid work,\nminor slips", annotation_png)
    return first, second


def test_stats_average_counts_graded_only(db, store, workflow, assignment_id, pdf_bytes, annotation_png):
    _grade_two(db, store, workflow, assignment_id, pdf_bytes, annotation_png)

    [row] = assignment_stats(db)
    assert row == {
        "assignment_id": assignment_id,
        "title": "A1",
        "submitted": 2,
        "graded": 1,
        "average": 80.0,
    }


def test_stats_without_submissions(db, assignment_id):
    [row] = assignment_stats(db)
    assert row["submitted"] == 0
    assert row["graded"] == 0
    assert row["average"] is None


def test_export_csv(db, store, workflow, assignment_id, pdf_bytes, annotation_png):
    first, second = _grade_two(db, store, workflow, assignment_id, pdf_bytes, annotation_png)

    rows = list(csv.reader(io.StringIO(export_grades_csv(db))))
    assert rows[0] == CSV_HEADER

    by_email = {r[3]: r for r in rows[1:]}
    graded = by_email[STUDENT]
    assert graded[1] == "A1"
    assert graded[2] == "Student One"
    assert graded[5] == "yes"
    assert graded[6] == "80"
    assert graded[7] == "Solid work, minor slips"
    assert graded[8] == feedback_url(first.id)

    ungraded = by_email["t@x.edu"]
    assert ungraded[5] == "no"
    assert ungraded[6] == ""
    assert ungraded[8] == ""


def test_export_is_staff_only(client):
    student = login(client, STUDENT)
    assert client.get("/assignments/export/grades.csv", headers=auth_header(student)).status_code == 403

    staff = login(client, STAFF)
    r = client.get("/assignments/export/grades.csv", headers=auth_header(staff))
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert r.text.splitlines()[0] == ",".join(CSV_HEADER)


def test_stats_endpoint(client, assignment_id):
    token = login(client, STAFF)
    r = client.get("/assignments/stats", headers=auth_header(token))
    assert r.status_code == 200
    assert r.json() == [
        {"assignment_id": assignment_id, "title": "A1", "submitted": 0, "graded": 0, "average": None}
    ]
