import enum
import logging
from dataclasses import dataclass

from coursework.core.errors import AccessDenied
from coursework.services.directory import Directory

logger = logging.getLogger(__name__)


class DenyReason(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    NOT_APPROVED = "NOT_APPROVED"
    MUTED = "MUTED"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DenyReason | None = None


class AccessGate:
    """Decides whether a student may submit or comment right now.

    The directory is consulted on every call; decisions are never cached.
    """

    def __init__(self, directory: Directory):
        self.directory = directory

    def can_act(self, student_email: str) -> AccessDecision:
        student = self.directory.get_student(student_email)
        if student is None:
            return AccessDecision(False, DenyReason.NOT_FOUND)
        if not student.approved:
            return AccessDecision(False, DenyReason.NOT_APPROVED)
        if student.muted:
            return AccessDecision(False, DenyReason.MUTED)
        return AccessDecision(True)

    def ensure_can_act(self, student_email: str) -> None:
        decision = self.can_act(student_email)
        if not decision.allowed:
            logger.info("access denied for %s: %s", student_email, decision.reason.value)
            raise AccessDenied(decision.reason.value)
