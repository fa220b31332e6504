from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SubmissionRead(BaseModel):
    id: int
    assignment_id: int
    student_email: str
    filename: Optional[str] = None
    uploaded_at: datetime
    graded: bool
    grade: Optional[float] = None
    comments: Optional[str] = None
    feedback_key: Optional[str] = None
    graded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubmissionReceipt(BaseModel):
    message: str = "Submission received"
    submission_id: int


class GradeResult(BaseModel):
    message: str = "Grading complete"
    submission: SubmissionRead
    feedback_url: Optional[str] = None
