from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from app.schemas.submission import SubmissionRead


class AssignmentCreate(BaseModel):
    # attachments arrive as multipart uploads, never as a client-supplied URL
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    due_date: datetime


class AssignmentRead(BaseModel):
    id: int
    course_id: int
    title: str
    description: str
    due_date: datetime
    attachment_url: str = ""
    created_at: datetime

    class Config:
        from_attributes = True


class AssignmentWithSubmissions(AssignmentRead):
    submissions: list[SubmissionRead] = []


class StudentAssignmentView(BaseModel):
    id: int
    course_id: int
    course_title: str
    title: str
    description: str
    due_date: datetime
    attachment_url: str = ""
    status: str  # "pending" | "submitted" | "graded"
    grade: Optional[float] = None
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
