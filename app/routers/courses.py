from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.current_user import get_current_user
from app.core.deps import get_blob_store, get_db
from app.core.errors import InvalidInput
from app.core.permissions import ROLE_ADMIN, ROLE_PROFESSOR, require_professor
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.user import User
from app.schemas.course import (
    CourseCreate,
    CourseMaterialRead,
    CourseMembershipChange,
    CourseRead,
    CourseUpdate,
)
from app.schemas.enrollment import EnrollmentRead
from app.services import courses as course_service
from app.services.blobs import LocalBlobStore

router = APIRouter()


@router.get("/", response_model=list[CourseRead])
def list_courses(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return db.query(Course).order_by(Course.id.asc()).all()


@router.post("/", response_model=CourseRead, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_db),
    me: User = Depends(require_professor),
):
    instructor_id = me.id
    if me.role == ROLE_ADMIN:
        if payload.instructor_id is None:
            raise InvalidInput("Admin must assign a professor when creating a course")
        professor = db.get(User, payload.instructor_id)
        if professor is None or professor.role != ROLE_PROFESSOR:
            raise InvalidInput("Invalid professor ID provided")
        instructor_id = professor.id

    course = Course(
        title=payload.title,
        description=payload.description,
        instructor_id=instructor_id,
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@router.get("/me", response_model=list[CourseRead])
def my_courses(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.query(Course)
        .join(Enrollment, Enrollment.course_id == Course.id)
        .filter(Enrollment.student_id == current_user.id)
        .all()
    )


@router.get("/{course_id}", response_model=CourseRead)
def get_course(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return course_service.get_course(db, course_id)


@router.put("/{course_id}", response_model=CourseRead)
def update_course(
    course_id: int,
    payload: CourseUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_professor),
):
    return course_service.update_course(
        db,
        course_id,
        me,
        title=payload.title,
        description=payload.description,
    )


@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_course(
    course_id: int,
    db: Session = Depends(get_db),
    blobs: LocalBlobStore = Depends(get_blob_store),
    me: User = Depends(require_professor),
):
    course_service.delete_course(db, blobs, course_id, me)


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentRead,
    responses={
        400: {"description": "Target user is not a student"},
        403: {"description": "Not allowed to change this enrollment"},
        404: {"description": "Course or student not found"},
    },
)
def enroll(
    course_id: int,
    payload: Optional[CourseMembershipChange] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    student_id = payload.student_id if payload else None
    return course_service.enroll(db, course_id, current_user, student_id)


@router.post("/{course_id}/unenroll", status_code=status.HTTP_204_NO_CONTENT)
def unenroll(
    course_id: int,
    payload: Optional[CourseMembershipChange] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    student_id = payload.student_id if payload else None
    course_service.unenroll(db, course_id, current_user, student_id)


@router.get("/{course_id}/materials", response_model=list[CourseMaterialRead])
def list_materials(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return course_service.list_materials(db, course_id, current_user)
