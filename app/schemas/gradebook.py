from typing import Optional

from pydantic import BaseModel


class StudentGradeRow(BaseModel):
    assignment_id: int
    assignment_title: str
    course_title: str

    grade: Optional[float] = None
    feedback: Optional[str] = None
    submitted: bool = True
