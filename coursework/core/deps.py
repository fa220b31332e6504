from functools import lru_cache

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from coursework.core.config import settings
from coursework.db.session import SessionLocal
from coursework.services.access_gate import AccessGate
from coursework.services.annotation_merge import AnnotationMergeEngine
from coursework.services.blob_store import BlobStore, LocalBlobStore
from coursework.services.directory import SqlDirectory
from coursework.services.grading import GradingWorkflow
from coursework.services.notifications import Mailer, NotificationFanout, build_mailer
from coursework.services.submission_store import SubmissionStore


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache()
def get_blob_store() -> BlobStore:
    return LocalBlobStore(settings.UPLOAD_DIR)


@lru_cache()
def get_mailer() -> Mailer:
    return build_mailer()


def get_merge_engine() -> AnnotationMergeEngine:
    return AnnotationMergeEngine()


def get_fanout(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> NotificationFanout:
    # email goes out after the response, the in-app record is written inline
    return NotificationFanout(db, mailer, schedule=background_tasks.add_task)


def get_access_gate(db: Session = Depends(get_db)) -> AccessGate:
    return AccessGate(SqlDirectory(db))


def get_submission_store(
    db: Session = Depends(get_db),
    gate: AccessGate = Depends(get_access_gate),
    blobs: BlobStore = Depends(get_blob_store),
    fanout: NotificationFanout = Depends(get_fanout),
) -> SubmissionStore:
    return SubmissionStore(db, gate, blobs, fanout)


def get_grading_workflow(
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    engine: AnnotationMergeEngine = Depends(get_merge_engine),
    fanout: NotificationFanout = Depends(get_fanout),
) -> GradingWorkflow:
    return GradingWorkflow(db, blobs, engine, fanout, directory=SqlDirectory(db))
