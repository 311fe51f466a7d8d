from sqlalchemy.orm import Session

from app.core.permissions import ROLE_ADMIN
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.user import User


def is_enrolled(db: Session, course_id: int, student_id: int) -> bool:
    return (
        db.query(Enrollment)
        .filter(Enrollment.course_id == course_id, Enrollment.student_id == student_id)
        .first()
        is not None
    )


def owns_course(db: Session, course_id: int, instructor_id: int) -> bool:
    return (
        db.query(Course)
        .filter(Course.id == course_id, Course.instructor_id == instructor_id)
        .first()
        is not None
    )


def can_manage_course(db: Session, course: Course, user: User) -> bool:
    """Course owner or any admin."""
    if user.role == ROLE_ADMIN:
        return True
    return owns_course(db, course.id, user.id)
