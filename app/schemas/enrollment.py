from datetime import datetime

from pydantic import BaseModel, Field


class EnrollmentCreate(BaseModel):
    course_id: int = Field(gt=0)


class EnrollmentRead(BaseModel):
    id: int
    student_id: int
    course_id: int
    created_at: datetime

    class Config:
        from_attributes = True
