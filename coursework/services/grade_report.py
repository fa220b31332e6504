import csv
import io

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from coursework.models.assignment import Assignment
from coursework.models.submission import Submission
from coursework.models.user import User
from coursework.services.grading import feedback_url

CSV_HEADER = [
    "assignment_id",
    "assignment_title",
    "student_name",
    "student_email",
    "uploaded_at",
    "graded",
    "grade",
    "comments",
    "feedback_url",
]


def assignment_stats(db: Session) -> list[dict]:
    """Average grade among graded submissions, per assignment."""
    rows = (
        db.query(
            Assignment.id.label("assignment_id"),
            Assignment.title.label("title"),
            func.count(Submission.id).label("submitted"),
            func.sum(case((Submission.graded.is_(True), 1), else_=0)).label("graded"),
            func.avg(case((Submission.graded.is_(True), Submission.grade), else_=None)).label("average"),
        )
        .outerjoin(Submission, Submission.assignment_id == Assignment.id)
        .group_by(Assignment.id, Assignment.title)
        .order_by(Assignment.id.asc())
        .all()
    )

    return [
        {
            "assignment_id": r.assignment_id,
            "title": r.title,
            "submitted": int(r.submitted or 0),
            "graded": int(r.graded or 0),
            "average": float(r.average) if r.average is not None else None,
        }
        for r in rows
    ]


def _flatten(text: str | None) -> str:
    return " ".join((text or "").splitlines())


def export_grades_csv(db: Session) -> str:
    rows = (
        db.query(Submission, Assignment.title, User.full_name)
        .join(Assignment, Assignment.id == Submission.assignment_id)
        .outerjoin(User, User.email == Submission.student_email)
        .order_by(Submission.assignment_id.asc(), Submission.student_email.asc())
        .all()
    )

    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADER)
    for sub, title, full_name in rows:
        writer.writerow(
            [
                sub.assignment_id,
                title,
                full_name or "",
                sub.student_email,
                sub.uploaded_at.isoformat() if sub.uploaded_at else "",
                "yes" if sub.graded else "no",
                f"{sub.grade:g}" if sub.grade is not None else "",
                _flatten(sub.comments),
                feedback_url(sub.id) if sub.feedback_key else "",
            ]
        )
    return buf.getvalue()
