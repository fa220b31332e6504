"""Grading transition: UNGRADED -> GRADED, with regrade as a self-transition.

Regrading may change grade, comments and the feedback document. It never
touches the submitted document.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from coursework.core.config import settings
from coursework.core.errors import DocumentNotFound, MergeFailed, SubmissionNotFound
from coursework.models.submission import Submission
from coursework.services.annotation_merge import AnnotationMergeEngine, raster_is_blank
from coursework.services.blob_store import BlobStore
from coursework.services.directory import Directory
from coursework.services.notifications import EventKind, NotificationFanout, render_event
from coursework.services.submission_store import assignment_ref

logger = logging.getLogger(__name__)

_merge_pool = ThreadPoolExecutor(
    max_workers=settings.MERGE_WORKERS,
    thread_name_prefix="annotation-merge",
)


def feedback_url(submission_id: int) -> str:
    return f"{settings.PUBLIC_BASE_URL}/submissions/{submission_id}/feedback"


class GradingWorkflow:
    def __init__(
        self,
        db: Session,
        blobs: BlobStore,
        engine: AnnotationMergeEngine,
        fanout: NotificationFanout,
        directory: Directory | None = None,
        merge_timeout: float | None = None,
    ):
        self.db = db
        self.blobs = blobs
        self.engine = engine
        self.fanout = fanout
        self.directory = directory
        self.merge_timeout = merge_timeout if merge_timeout is not None else settings.MERGE_TIMEOUT_SECONDS

    def grade(
        self,
        assignment_id: int,
        submission_id: int,
        score: float,
        comments: str | None,
        annotation: bytes | None = None,
    ) -> Submission:
        sub = (
            self.db.query(Submission)
            .filter(
                Submission.id == submission_id,
                Submission.assignment_id == assignment_id,
            )
            .first()
        )
        if not sub:
            raise SubmissionNotFound()

        regrade = bool(sub.graded)

        new_feedback_key = None
        if not raster_is_blank(annotation):
            new_feedback_key = self._produce_feedback(sub, annotation)

        previous_feedback_key = sub.feedback_key

        sub.graded = True
        sub.grade = score
        sub.comments = comments
        sub.graded_at = datetime.now(timezone.utc)
        sub.grade_revision = (sub.grade_revision or 0) + 1
        if new_feedback_key:
            sub.feedback_key = new_feedback_key

        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            if new_feedback_key:
                self.blobs.delete(new_feedback_key)
            raise

        self.db.refresh(sub)

        if new_feedback_key and previous_feedback_key:
            self.blobs.delete(previous_feedback_key)

        logger.info(
            "%s submission %s: grade=%s feedback=%s",
            "regraded" if regrade else "graded",
            sub.id,
            sub.grade,
            "yes" if sub.feedback_key else "no",
        )

        self._notify(sub)
        return sub

    def _produce_feedback(self, sub: Submission, annotation: bytes) -> str | None:
        """Merge the annotation onto the stored document and store the result.

        A failed or timed out merge is not fatal to grading; it only means no
        new feedback document.
        """
        try:
            source = self.blobs.get(sub.document_key)
            merged = self._merge_with_timeout(source, annotation)
        except (MergeFailed, DocumentNotFound) as exc:
            logger.warning("no feedback document for submission %s: %s", sub.id, exc)
            return None

        return self.blobs.put(merged, suffix=".pdf")

    def _merge_with_timeout(self, source: bytes, annotation: bytes) -> bytes:
        future = _merge_pool.submit(self.engine.merge, source, annotation)
        try:
            return future.result(timeout=self.merge_timeout)
        except FutureTimeout as exc:
            future.cancel()
            raise MergeFailed(f"Merge timed out after {self.merge_timeout}s") from exc

    def _notify(self, sub: Submission) -> None:
        name = None
        if self.directory is not None:
            student = self.directory.get_student(sub.student_email)
            name = student.full_name if student else None

        rendered = render_event(
            EventKind.GRADE_POSTED,
            name=name,
            assignment_title=sub.assignment.title,
            assignment_ref=assignment_ref(sub.assignment_id),
            grade=sub.grade,
            comments=sub.comments,
            feedback_url=feedback_url(sub.id) if sub.feedback_key else None,
        )
        self.fanout.try_emit(
            EventKind.GRADE_POSTED,
            sub.student_email,
            rendered,
            context_ref=assignment_ref(sub.assignment_id),
            event_key=f"{EventKind.GRADE_POSTED.value}:{sub.id}:{sub.grade_revision}",
        )
