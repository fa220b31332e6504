"""Holds at most one submission per (assignment, student email).

Replacement before grading swaps the stored document in place; once a
submission is graded its document is frozen. The unique constraint on the
pair serializes concurrent first uploads, and a replacement only swaps the
document it read, so every released blob is released exactly once.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coursework.core.config import settings
from coursework.core.errors import (
    AlreadyGraded,
    AssignmentNotFound,
    DocumentTooLarge,
    EmptyDocument,
    SubmissionNotFound,
)
from coursework.models.assignment import Assignment
from coursework.models.submission import Submission
from coursework.services.access_gate import AccessGate
from coursework.services.blob_store import BlobStore, suffix_for
from coursework.services.notifications import EventKind, NotificationFanout, render_event

logger = logging.getLogger(__name__)


def assignment_ref(assignment_id: int) -> str:
    return f"/assignments/{assignment_id}"


class SubmissionStore:
    def __init__(
        self,
        db: Session,
        gate: AccessGate,
        blobs: BlobStore,
        fanout: NotificationFanout,
    ):
        self.db = db
        self.gate = gate
        self.blobs = blobs
        self.fanout = fanout

    def _get_assignment(self, assignment_id: int) -> Assignment:
        a = self.db.query(Assignment).filter(Assignment.id == assignment_id).first()
        if not a:
            raise AssignmentNotFound()
        return a

    def get(self, submission_id: int) -> Submission:
        sub = self.db.query(Submission).filter(Submission.id == submission_id).first()
        if not sub:
            raise SubmissionNotFound()
        return sub

    def find_one(self, assignment_id: int, student_email: str) -> Submission | None:
        return (
            self.db.query(Submission)
            .filter(
                Submission.assignment_id == assignment_id,
                Submission.student_email == student_email,
            )
            .first()
        )

    def list_by_assignment(self, assignment_id: int) -> list[Submission]:
        """Grading queue order: ungraded oldest first, then graded newest first."""
        self._get_assignment(assignment_id)

        base = self.db.query(Submission).filter(Submission.assignment_id == assignment_id)
        ungraded = (
            base.filter(Submission.graded.is_(False))
            .order_by(Submission.uploaded_at.asc(), Submission.id.asc())
            .all()
        )
        graded = (
            base.filter(Submission.graded.is_(True))
            .order_by(Submission.uploaded_at.desc(), Submission.id.desc())
            .all()
        )
        return ungraded + graded

    def submit(
        self,
        assignment_id: int,
        student_email: str,
        document: bytes,
        filename: str | None = None,
        content_type: str | None = None,
        student_name: str | None = None,
    ) -> Submission:
        assignment = self._get_assignment(assignment_id)

        # re-checked on every attempt, approval and mute state can change
        self.gate.ensure_can_act(student_email)

        if not document:
            raise EmptyDocument()
        if len(document) > settings.max_upload_bytes:
            raise DocumentTooLarge()

        existing = self.find_one(assignment_id, student_email)
        if existing is not None and existing.graded:
            raise AlreadyGraded()

        new_key = self.blobs.put(document, suffix=suffix_for(filename))
        try:
            sub, released_key = self._store(
                assignment_id, student_email, new_key, filename, content_type
            )
        except Exception:
            self.blobs.delete(new_key)
            raise

        if released_key:
            self.blobs.delete(released_key)

        logger.info(
            "submission %s for assignment %s by %s stored (revision %s)",
            sub.id,
            assignment_id,
            student_email,
            sub.upload_revision,
        )

        rendered = render_event(
            EventKind.SUBMISSION_RECEIVED,
            name=student_name,
            assignment_title=assignment.title,
        )
        self.fanout.try_emit(
            EventKind.SUBMISSION_RECEIVED,
            student_email,
            rendered,
            context_ref=assignment_ref(assignment_id),
            event_key=f"{EventKind.SUBMISSION_RECEIVED.value}:{sub.id}:{sub.upload_revision}",
        )
        return sub

    def _store(
        self,
        assignment_id: int,
        student_email: str,
        document_key: str,
        filename: str | None,
        content_type: str | None,
    ) -> tuple[Submission, str | None]:
        """Returns the stored submission and the blob key it no longer uses."""
        try:
            return self._find_or_create(
                assignment_id, student_email, document_key, filename, content_type
            )
        except IntegrityError:
            # lost the race for the first upload, replace the winner's record
            logger.info(
                "concurrent first submission for assignment %s by %s, retrying",
                assignment_id,
                student_email,
            )
            return self._find_or_create(
                assignment_id, student_email, document_key, filename, content_type
            )

    def _find_or_create(
        self,
        assignment_id: int,
        student_email: str,
        document_key: str,
        filename: str | None,
        content_type: str | None,
    ) -> tuple[Submission, str | None]:
        while True:
            now = datetime.now(timezone.utc)
            existing = (
                self.db.query(Submission)
                .filter(
                    Submission.assignment_id == assignment_id,
                    Submission.student_email == student_email,
                )
                .populate_existing()
                .with_for_update()
                .first()
            )

            if existing is None:
                sub = Submission(
                    assignment_id=assignment_id,
                    student_email=student_email,
                    document_key=document_key,
                    filename=filename,
                    content_type=content_type,
                    uploaded_at=now,
                    upload_revision=1,
                    graded=False,
                    grade_revision=0,
                )
                self.db.add(sub)
                self._commit()
                self.db.refresh(sub)
                return sub, None

            if existing.graded:
                raise AlreadyGraded()

            # only swap the document we read; the row lock is not honoured everywhere
            released_key = existing.document_key
            result = self.db.execute(
                update(Submission)
                .where(
                    Submission.id == existing.id,
                    Submission.document_key == released_key,
                    Submission.graded.is_(False),
                )
                .values(
                    document_key=document_key,
                    filename=filename,
                    content_type=content_type,
                    uploaded_at=now,
                    upload_revision=Submission.upload_revision + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self._commit()
                self.db.refresh(existing)
                return existing, released_key

            # another request replaced or graded it after we read it
            submission_id = existing.id
            self.db.rollback()
            logger.info(
                "submission %s changed while replacing it, reading it again",
                submission_id,
            )

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
