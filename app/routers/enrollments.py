from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.errors import Conflict, NotFound
from app.core.permissions import require_student
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.user import User
from app.schemas.enrollment import EnrollmentCreate, EnrollmentRead

router = APIRouter()


@router.post("", response_model=EnrollmentRead, status_code=status.HTTP_201_CREATED)
def enroll_me(
    payload: EnrollmentCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_student),
):
    course = db.get(Course, payload.course_id)
    if not course:
        raise NotFound("Course not found")

    enrollment = Enrollment(student_id=me.id, course_id=payload.course_id)
    db.add(enrollment)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Already enrolled in this course")

    db.refresh(enrollment)
    return enrollment


@router.get("/me", response_model=list[EnrollmentRead])
def my_enrollments(
    db: Session = Depends(get_db),
    me: User = Depends(require_student),
):
    return db.query(Enrollment).filter(Enrollment.student_id == me.id).all()
