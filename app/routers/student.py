from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.core.permissions import require_student
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.submission import Submission
from app.models.user import User
from app.schemas.assignment import StudentAssignmentView
from app.schemas.gradebook import StudentGradeRow
from app.services import submissions as workflow

router = APIRouter(prefix="/student", tags=["student"])


@router.get("/assignments", response_model=list[StudentAssignmentView])
def my_assignments(
    db: Session = Depends(get_db),
    me: User = Depends(require_student),
):
    return workflow.list_for_student(db, me.id)


@router.get("/grades", response_model=list[StudentGradeRow])
def my_grades(
    db: Session = Depends(get_db),
    me: User = Depends(require_student),
):
    rows = (
        db.query(
            Assignment.id.label("assignment_id"),
            Assignment.title.label("assignment_title"),
            Course.title.label("course_title"),
            Submission.grade,
            Submission.feedback,
        )
        .join(Submission, Submission.assignment_id == Assignment.id)
        .join(Course, Course.id == Assignment.course_id)
        .filter(Submission.student_id == me.id)
        .order_by(Assignment.due_date.asc(), Assignment.id.asc())
        .all()
    )

    return [
        {
            "assignment_id": r.assignment_id,
            "assignment_title": r.assignment_title,
            "course_title": r.course_title,
            "grade": r.grade,
            "feedback": r.feedback,
            "submitted": True,
        }
        for r in rows
    ]
