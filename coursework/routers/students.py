import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from coursework.core.deps import get_db, get_fanout
from coursework.core.permissions import require_staff
from coursework.models.user import ROLE_STUDENT, User
from coursework.schemas.user import UserRead
from coursework.services.notifications import EventKind, NotificationFanout, render_event

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_student(db: Session, email: str) -> User:
    student = (
        db.query(User)
        .filter(User.email == email, User.role == ROLE_STUDENT)
        .first()
    )
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


def _set_flag(
    db: Session,
    fanout: NotificationFanout,
    email: str,
    field: str,
    value: bool,
    kind: EventKind,
) -> User:
    student = _get_student(db, email)
    if getattr(student, field) == value:
        return student

    setattr(student, field, value)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(student)

    logger.info("student %s: %s=%s by staff", email, field, value)
    # no event key: every real state change is its own event
    fanout.try_emit(kind, student.email, render_event(kind, name=student.full_name))
    return student


@router.get("/pending", response_model=list[UserRead])
def pending_students(
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return (
        db.query(User)
        .filter(User.role == ROLE_STUDENT, User.approved.is_(False))
        .order_by(User.email.asc())
        .all()
    )


@router.get("/muted", response_model=list[UserRead])
def muted_students(
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return (
        db.query(User)
        .filter(User.role == ROLE_STUDENT, User.muted.is_(True))
        .order_by(User.email.asc())
        .all()
    )


@router.post("/{email}/approve", response_model=UserRead)
def approve_student(
    email: str,
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_fanout),
    staff: User = Depends(require_staff),
):
    return _set_flag(db, fanout, email, "approved", True, EventKind.REGISTRATION_APPROVED)


@router.post("/{email}/reject")
def reject_student(
    email: str,
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_fanout),
    staff: User = Depends(require_staff),
):
    student = (
        db.query(User)
        .filter(User.email == email, User.role == ROLE_STUDENT, User.approved.is_(False))
        .first()
    )
    if not student:
        raise HTTPException(status_code=404, detail="Pending student not found")

    name = student.full_name
    db.delete(student)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("registration of %s rejected by staff", email)
    # the account is gone, the notification is still addressed by email
    fanout.try_emit(
        EventKind.REGISTRATION_REJECTED,
        email,
        render_event(EventKind.REGISTRATION_REJECTED, name=name),
    )
    return {"message": "Student registration rejected"}


@router.post("/{email}/mute", response_model=UserRead)
def mute_student(
    email: str,
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_fanout),
    staff: User = Depends(require_staff),
):
    return _set_flag(db, fanout, email, "muted", True, EventKind.ACCOUNT_MUTED)


@router.post("/{email}/unmute", response_model=UserRead)
def unmute_student(
    email: str,
    db: Session = Depends(get_db),
    fanout: NotificationFanout = Depends(get_fanout),
    staff: User = Depends(require_staff),
):
    return _set_flag(db, fanout, email, "muted", False, EventKind.ACCOUNT_UNMUTED)
