from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, StrictFloat, StrictInt, StrictStr


class SubmissionCreate(BaseModel):
    submission: Optional[StrictStr] = None


class SubmissionRead(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    kind: Literal["text", "file"]
    content: str
    submitted_at: datetime
    grade: Optional[float] = None
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None
    status: Literal["submitted", "graded"]

    class Config:
        from_attributes = True


class SubmissionGradeUpdate(BaseModel):
    student_id: StrictInt
    # no coercion: true or "85" must not turn into a grade
    grade: StrictInt | StrictFloat
    feedback: Optional[StrictStr] = None
