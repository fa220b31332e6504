"""Error taxonomy for the submission and grading workflow.

Policy rejections are raised to the caller verbatim. ``MergeFailed`` is
recovered inside the grading workflow and never reaches an HTTP client.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    code = "WORKFLOW_ERROR"
    status_code = 400
    message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class AccessDenied(WorkflowError):
    status_code = 403

    MESSAGES = {
        "NOT_FOUND": "No student record exists for this account",
        "NOT_APPROVED": "Your account has not been approved yet",
        "MUTED": "Your account is muted. You cannot submit assignments.",
    }

    def __init__(self, reason: str):
        self.code = reason
        super().__init__(self.MESSAGES.get(reason, "Access denied"))


class AlreadyGraded(WorkflowError):
    code = "ALREADY_GRADED"
    status_code = 409
    message = "Submission has already been graded and cannot be replaced"


class AssignmentNotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Assignment not found"


class SubmissionNotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Submission not found"


class NotificationNotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Notification not found"


class DocumentNotFound(WorkflowError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Document not found"


class EmptyDocument(WorkflowError):
    code = "EMPTY_DOCUMENT"
    status_code = 400
    message = "No file uploaded"


class DocumentTooLarge(WorkflowError):
    code = "DOCUMENT_TOO_LARGE"
    status_code = 413
    message = "Uploaded file is too large"


class MergeFailed(WorkflowError):
    code = "MERGE_FAILED"
    status_code = 500
    message = "Annotation could not be merged onto the document"


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    if exc.status_code < 500:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
