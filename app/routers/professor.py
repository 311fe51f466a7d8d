from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.deps import get_blob_store, get_db
from app.core.permissions import ROLE_ADMIN, require_professor
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.submission import Submission
from app.models.user import User
from app.schemas.assignment import AssignmentWithSubmissions
from app.schemas.course import CourseMaterialRead
from app.schemas.dashboard import ProfessorCourseStats, ProfessorDashboard
from app.schemas.submission import SubmissionGradeUpdate, SubmissionRead
from app.services import courses as course_service
from app.services import submissions as workflow
from app.services.blobs import LocalBlobStore

router = APIRouter(prefix="/professor", tags=["professor"])


@router.get("/assignments", response_model=list[AssignmentWithSubmissions])
def my_assignments(
    db: Session = Depends(get_db),
    me: User = Depends(require_professor),
):
    return workflow.list_for_instructor(db, me)


@router.post(
    "/assignments/{assignment_id}/grade",
    response_model=SubmissionRead,
    responses={
        400: {"description": "Grade out of range"},
        403: {"description": "Not the course instructor"},
        404: {"description": "Assignment or submission not found"},
    },
)
def grade_submission(
    assignment_id: int,
    payload: SubmissionGradeUpdate,
    db: Session = Depends(get_db),
    me: User = Depends(require_professor),
):
    return workflow.grade(
        db,
        assignment_id,
        me,
        student_id=payload.student_id,
        grade=payload.grade,
        feedback=payload.feedback,
    )


@router.post(
    "/courses/{course_id}/materials",
    response_model=CourseMaterialRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing title or invalid file"},
        403: {"description": "Not the course instructor"},
        404: {"description": "Course not found"},
    },
)
def upload_material(
    course_id: int,
    title: str = Form(...),
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    blobs: LocalBlobStore = Depends(get_blob_store),
    me: User = Depends(require_professor),
):
    return course_service.add_material(db, blobs, course_id, me, title=title, upload=file)


@router.get("/dashboard", response_model=ProfessorDashboard)
def professor_dashboard(
    db: Session = Depends(get_db),
    me: User = Depends(require_professor),
):
    q = db.query(Course)
    if me.role != ROLE_ADMIN:
        q = q.filter(Course.instructor_id == me.id)
    courses = q.order_by(Course.id.asc()).all()

    rows: list[ProfessorCourseStats] = []

    for course in courses:
        total_students = (
            db.query(func.count(Enrollment.id))
            .filter(Enrollment.course_id == course.id)
            .scalar()
        ) or 0

        total_assignments = (
            db.query(func.count(Assignment.id))
            .filter(Assignment.course_id == course.id)
            .scalar()
        ) or 0

        total_submissions = (
            db.query(func.count(Submission.id))
            .join(Assignment, Submission.assignment_id == Assignment.id)
            .filter(Assignment.course_id == course.id)
            .scalar()
        ) or 0

        ungraded_submissions = (
            db.query(func.count(Submission.id))
            .join(Assignment, Submission.assignment_id == Assignment.id)
            .filter(
                Assignment.course_id == course.id,
                Submission.grade.is_(None),
            )
            .scalar()
        ) or 0

        rows.append(
            ProfessorCourseStats(
                course_id=course.id,
                course_title=course.title,
                total_students=total_students,
                total_assignments=total_assignments,
                total_submissions=total_submissions,
                ungraded_submissions=ungraded_submissions,
            )
        )

    return ProfessorDashboard(
        total_courses=len(rows),
        total_assignments=sum(r.total_assignments for r in rows),
        courses=rows,
    )
