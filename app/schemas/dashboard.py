from pydantic import BaseModel


class ProfessorCourseStats(BaseModel):
    course_id: int
    course_title: str
    total_students: int
    total_assignments: int
    total_submissions: int
    ungraded_submissions: int


class ProfessorDashboard(BaseModel):
    total_courses: int
    total_assignments: int
    courses: list[ProfessorCourseStats]
