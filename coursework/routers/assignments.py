from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlalchemy.orm import Session

from coursework.core.config import settings
from coursework.core.current_user import get_current_user
from coursework.core.deps import get_blob_store, get_db
from coursework.core.errors import AssignmentNotFound, DocumentNotFound, DocumentTooLarge
from coursework.core.permissions import require_staff
from coursework.models.assignment import Assignment
from coursework.models.user import User
from coursework.schemas.assignment import AssignmentRead, AssignmentStatsRow
from coursework.services.blob_store import BlobStore, suffix_for
from coursework.services.grade_report import assignment_stats, export_grades_csv

router = APIRouter()


def _ensure_assignment_exists(db: Session, assignment_id: int) -> Assignment:
    a = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if not a:
        raise AssignmentNotFound()
    return a


@router.get("/assignments", response_model=list[AssignmentRead])
def list_assignments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return db.query(Assignment).order_by(Assignment.id.asc()).all()


@router.post(
    "/assignments",
    response_model=AssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_assignment(
    title: str = Form(..., min_length=1, max_length=255),
    description: str | None = Form(None),
    due_at: datetime | None = Form(None),
    file: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    staff: User = Depends(require_staff),
):
    document_key = None
    if file is not None:
        data = file.file.read()
        if len(data) > settings.max_upload_bytes:
            raise DocumentTooLarge()
        if data:
            document_key = blobs.put(data, suffix=suffix_for(file.filename))

    a = Assignment(
        title=title,
        description=description,
        due_at=due_at,
        source_document_key=document_key,
        source_filename=file.filename if document_key else None,
    )
    db.add(a)
    try:
        db.commit()
    except Exception:
        db.rollback()
        if document_key:
            blobs.delete(document_key)
        raise

    db.refresh(a)
    return a


@router.get("/assignments/stats", response_model=list[AssignmentStatsRow])
def grade_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return assignment_stats(db)


@router.get("/assignments/export/grades.csv")
def export_grades(
    db: Session = Depends(get_db),
    staff: User = Depends(require_staff),
):
    return Response(
        content=export_grades_csv(db),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="grades.csv"'},
    )


@router.get("/assignments/{assignment_id}", response_model=AssignmentRead)
def get_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _ensure_assignment_exists(db, assignment_id)


@router.get("/assignments/{assignment_id}/document")
def get_assignment_document(
    assignment_id: int,
    db: Session = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    a = _ensure_assignment_exists(db, assignment_id)
    if not a.source_document_key:
        raise DocumentNotFound()
    return Response(
        content=blobs.get(a.source_document_key),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{a.source_filename or "assignment.pdf"}"'},
    )
