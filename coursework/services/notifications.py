"""Notification fan-out: one durable in-app record plus a best-effort email.

The in-app record is the channel of record. Email is handed to a scheduler
(``BackgroundTasks.add_task`` inside a request) and delivery errors are only
logged, so a slow or broken mail server never affects the caller.
"""
import enum
import logging
import smtplib
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Callable, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coursework.core.config import settings
from coursework.core.errors import NotificationNotFound
from coursework.models.notification import Notification

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    SUBMISSION_RECEIVED = "submission_received"
    GRADE_POSTED = "grade_posted"
    REGISTRATION_PENDING = "registration_pending"
    REGISTRATION_APPROVED = "registration_approved"
    REGISTRATION_REJECTED = "registration_rejected"
    ACCOUNT_MUTED = "account_muted"
    ACCOUNT_UNMUTED = "account_unmuted"


@dataclass(frozen=True)
class RenderedEvent:
    subject: str
    body: str


def _format_grade(value: float) -> str:
    return f"{value:g}"


def render_event(kind: EventKind, name: str | None = None, **ctx) -> RenderedEvent:
    greeting = f"Dear {name or 'student'},\n\n"

    if kind is EventKind.SUBMISSION_RECEIVED:
        return RenderedEvent(
            subject="Assignment submission received",
            body=greeting
            + f"Your submission for assignment \"{ctx['assignment_title']}\" has been received.",
        )

    if kind is EventKind.GRADE_POSTED:
        body = (
            greeting
            + "Your assignment has been graded.\n"
            + f"Grade: {_format_grade(ctx['grade'])}\n"
            + f"Comments: {ctx.get('comments') or ''}\n"
            + f"\nView the assignment: {settings.PUBLIC_BASE_URL}{ctx['assignment_ref']}\n"
        )
        if ctx.get("feedback_url"):
            body += f"You can download your feedback file here: {ctx['feedback_url']}\n"
        return RenderedEvent(
            subject=f"Assignment \"{ctx['assignment_title']}\" graded",
            body=body,
        )

    if kind is EventKind.REGISTRATION_PENDING:
        return RenderedEvent(
            subject="Registration pending",
            body=greeting + "Your student account is awaiting approval by the teaching staff.",
        )

    if kind is EventKind.REGISTRATION_APPROVED:
        return RenderedEvent(
            subject="Registration approved",
            body=greeting
            + "Your account has been approved. You can now log in and submit assignments.",
        )

    if kind is EventKind.REGISTRATION_REJECTED:
        return RenderedEvent(
            subject="Registration rejected",
            body=greeting + "Your registration has been rejected by the teaching staff.",
        )

    if kind is EventKind.ACCOUNT_MUTED:
        return RenderedEvent(
            subject="Account muted",
            body=greeting
            + "Your account has been muted. You will not be able to post or submit "
            + "assignments until this restriction is lifted.",
        )

    if kind is EventKind.ACCOUNT_UNMUTED:
        return RenderedEvent(
            subject="Account unmuted",
            body=greeting + "Your account has been unmuted. You may post and submit assignments again.",
        )

    raise ValueError(f"Unknown event kind: {kind}")


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class ConsoleMailer:
    """Development mailer, writes the message to the log instead of sending it."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("email to=%s subject=%r\n%s", to, subject, body)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = settings.MAIL_FROM,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)


def build_mailer() -> Mailer:
    if settings.MAIL_BACKEND == "smtp":
        return SmtpMailer(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.MAIL_FROM,
        )
    return ConsoleMailer()


Scheduler = Callable[..., None]


def run_inline(fn: Callable[..., None], *args, **kwargs) -> None:
    fn(*args, **kwargs)


class NotificationFanout:
    def __init__(self, db: Session, mailer: Mailer, schedule: Scheduler = run_inline):
        self.db = db
        self.mailer = mailer
        self.schedule = schedule

    def _by_event_key(self, event_key: str) -> Notification | None:
        return self.db.query(Notification).filter(Notification.event_key == event_key).first()

    def emit(
        self,
        kind: EventKind,
        recipient_email: str,
        rendered: RenderedEvent,
        context_ref: str | None = None,
        event_key: str | None = None,
    ) -> Notification:
        event_key = event_key or f"{kind.value}:{uuid.uuid4().hex}"

        existing = self._by_event_key(event_key)
        if existing is not None:
            logger.debug("event %s already emitted as notification %s", event_key, existing.id)
            return existing

        note = Notification(
            recipient_email=recipient_email,
            kind=kind.value,
            message=rendered.subject,
            context_ref=context_ref,
            event_key=event_key,
            read=False,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(note)
        try:
            self.db.commit()
        except IntegrityError:
            # another request emitted the same event first
            self.db.rollback()
            existing = self._by_event_key(event_key)
            if existing is None:
                raise
            return existing
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(note)
        self.schedule(self._deliver, recipient_email, rendered.subject, rendered.body)
        return note

    def try_emit(self, *args, **kwargs) -> Notification | None:
        """Like ``emit`` but for use after a state change has committed.

        A failure to record the notification is logged and does not undo or
        fail the transition that triggered it.
        """
        try:
            return self.emit(*args, **kwargs)
        except SQLAlchemyError:
            logger.exception("could not record notification for %s", kwargs.get("event_key"))
            return None

    def _deliver(self, to: str, subject: str, body: str) -> None:
        try:
            self.mailer.send(to, subject, body)
        except Exception:
            logger.exception("email delivery to %s failed (subject=%r)", to, subject)

    def mark_read(self, notification_id: int, recipient_email: str | None = None) -> Notification:
        query = self.db.query(Notification).filter(Notification.id == notification_id)
        if recipient_email is not None:
            query = query.filter(Notification.recipient_email == recipient_email)
        note = query.first()
        if note is None:
            raise NotificationNotFound()

        if note.read:
            return note

        note.read = True
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(note)
        return note

    def list_for(self, recipient_email: str, unread_only: bool = False) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.recipient_email == recipient_email)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
