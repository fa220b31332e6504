from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AssignmentRead(BaseModel):
    id: int
    title: str
    description: Optional[str]
    due_at: Optional[datetime]
    has_document: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AssignmentStatsRow(BaseModel):
    assignment_id: int
    title: str
    submitted: int
    graded: int
    average: float | None
