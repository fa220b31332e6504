from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session

from coursework.models.user import ROLE_STUDENT, User


@dataclass(frozen=True)
class StudentRecord:
    email: str
    full_name: str | None
    approved: bool
    muted: bool


class Directory(Protocol):
    def get_student(self, email: str) -> StudentRecord | None: ...


class SqlDirectory:
    """Reads student approval/mute state from the ``users`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get_student(self, email: str) -> StudentRecord | None:
        user = (
            self.db.query(User)
            .filter(User.email == email, User.role == ROLE_STUDENT)
            .first()
        )
        if user is None:
            return None
        # always read the committed row, mute/approval can change between requests
        self.db.refresh(user)
        return StudentRecord(
            email=user.email,
            full_name=user.full_name,
            approved=user.approved,
            muted=user.muted,
        )
