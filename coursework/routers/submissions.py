from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status

from coursework.core.current_user import get_current_user
from coursework.core.deps import get_blob_store, get_grading_workflow, get_submission_store
from coursework.core.errors import DocumentNotFound
from coursework.core.permissions import require_staff, require_student
from coursework.models.submission import Submission
from coursework.models.user import ROLE_STAFF, User
from coursework.schemas.submission import GradeResult, SubmissionRead, SubmissionReceipt
from coursework.services.blob_store import BlobStore
from coursework.services.grading import GradingWorkflow, feedback_url
from coursework.services.submission_store import SubmissionStore

router = APIRouter()


def _ensure_can_view(sub: Submission, user: User) -> None:
    if user.role == ROLE_STAFF or sub.student_email == user.email:
        return
    raise HTTPException(status_code=403, detail="Not allowed to view this submission")


@router.post(
    "/assignments/{assignment_id}/submissions",
    response_model=SubmissionReceipt,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"description": "NOT_APPROVED, MUTED or NOT_FOUND"},
        409: {"description": "ALREADY_GRADED"},
    },
)
def submit_assignment(
    assignment_id: int,
    file: UploadFile = File(...),
    store: SubmissionStore = Depends(get_submission_store),
    me: User = Depends(require_student),
):
    sub = store.submit(
        assignment_id,
        me.email,
        file.file.read(),
        filename=file.filename,
        content_type=file.content_type,
        student_name=me.full_name,
    )
    return SubmissionReceipt(submission_id=sub.id)


@router.get(
    "/assignments/{assignment_id}/submissions",
    response_model=list[SubmissionRead],
)
def list_submissions_for_assignment(
    assignment_id: int,
    store: SubmissionStore = Depends(get_submission_store),
    staff: User = Depends(require_staff),
):
    return store.list_by_assignment(assignment_id)


@router.get(
    "/assignments/{assignment_id}/submissions/me",
    response_model=Optional[SubmissionRead],
)
def get_my_submission(
    assignment_id: int,
    store: SubmissionStore = Depends(get_submission_store),
    me: User = Depends(get_current_user),
):
    return store.find_one(assignment_id, me.email)


@router.post(
    "/assignments/{assignment_id}/submissions/{submission_id}/grade",
    response_model=GradeResult,
    responses={404: {"description": "Submission not found"}},
)
def grade_submission(
    assignment_id: int,
    submission_id: int,
    score: float = Form(..., ge=0),
    comments: str | None = Form(None),
    annotation: UploadFile | None = File(None),
    workflow: GradingWorkflow = Depends(get_grading_workflow),
    staff: User = Depends(require_staff),
):
    raster = annotation.file.read() if annotation is not None else None
    sub = workflow.grade(assignment_id, submission_id, score, comments, raster)
    return GradeResult(
        submission=SubmissionRead.model_validate(sub),
        feedback_url=feedback_url(sub.id) if sub.feedback_key else None,
    )


@router.get("/submissions/{submission_id}/document")
def download_document(
    submission_id: int,
    store: SubmissionStore = Depends(get_submission_store),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    sub = store.get(submission_id)
    _ensure_can_view(sub, current_user)
    return Response(
        content=blobs.get(sub.document_key),
        media_type=sub.content_type or "application/octet-stream",
        headers={"Content-Disposition": f'inline; filename="{sub.filename or "submission"}"'},
    )


@router.get("/submissions/{submission_id}/feedback")
def download_feedback(
    submission_id: int,
    store: SubmissionStore = Depends(get_submission_store),
    blobs: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    sub = store.get(submission_id)
    _ensure_can_view(sub, current_user)
    if not sub.feedback_key:
        raise DocumentNotFound("No feedback document for this submission")
    return Response(
        content=blobs.get(sub.feedback_key),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="feedback-{sub.id}.pdf"'},
    )
