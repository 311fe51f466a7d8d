from datetime import datetime

from pydantic import BaseModel, Field, StrictInt


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    # admins must name the professor who owns the course
    instructor_id: int | None = None


class CourseUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class CourseRead(BaseModel):
    id: int
    title: str
    description: str | None = None
    instructor_id: int

    class Config:
        from_attributes = True


class CourseMembershipChange(BaseModel):
    # omitted: the caller acts on their own enrollment
    student_id: StrictInt | None = None


class CourseMaterialRead(BaseModel):
    id: int
    course_id: int
    title: str
    file_url: str
    uploaded_at: datetime

    class Config:
        from_attributes = True
