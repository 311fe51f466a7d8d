"""
Assignment submission & grading workflow.

Each student has at most one submission row per assignment (unique
constraint). Rows carry a version counter, so two requests racing on the
same row cannot merge halves of each other's writes: the loser gets a
StaleDataError (or IntegrityError on a racing first insert) and its unit of
work is replayed against fresh state. Requests for different students touch
different rows and never conflict.
"""
import logging
import math
from datetime import datetime, timedelta, timezone

from fastapi import UploadFile
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import GRADE_MAX, GRADE_MIN, MAX_WRITE_ATTEMPTS
from app.core.errors import Forbidden, InvalidInput, NotFound, StorageFailure
from app.core.permissions import ROLE_ADMIN
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.submission import (
    KIND_FILE,
    KIND_TEXT,
    STATUS_GRADED,
    Submission,
    derive_status,
)
from app.models.user import User
from app.services.blobs import LocalBlobStore
from app.services.enrollment import can_manage_course, is_enrolled

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; treat as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _after(previous: datetime | None) -> datetime:
    """Current time, nudged forward so it is strictly later than ``previous``."""
    now = _now()
    previous = _as_utc(previous)
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def _get_assignment(db: Session, assignment_id: int) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFound("Assignment not found")
    return assignment


def _get_course(db: Session, assignment: Assignment) -> Course:
    course = db.get(Course, assignment.course_id)
    if course is None:
        # an assignment pointing at a missing course is a broken reference
        raise NotFound("Course not found")
    return course


def _find_submission(db: Session, assignment_id: int, student_id: int) -> Submission | None:
    return (
        db.query(Submission)
        .filter(
            Submission.assignment_id == assignment_id,
            Submission.student_id == student_id,
        )
        .first()
    )


def _resolve_content(
    blobs: LocalBlobStore,
    assignment: Assignment,
    text: str | None,
    upload: UploadFile | None,
) -> tuple[str, str]:
    """Return ``(kind, content)`` for the payload, storing the upload if any."""
    has_text = text is not None and text.strip() != ""
    if upload is not None and has_text:
        raise InvalidInput("Submit either text or a file, not both")

    if upload is not None:
        reference = blobs.store(upload, folder=f"submissions/{assignment.id}")
        return KIND_FILE, reference

    if not has_text:
        raise InvalidInput("Submission content is required")
    return KIND_TEXT, text


def _commit_or_raise(db: Session) -> None:
    try:
        db.commit()
    except (IntegrityError, StaleDataError):
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageFailure("Could not save submission") from exc


def submit(
    db: Session,
    blobs: LocalBlobStore,
    assignment_id: int,
    actor: User,
    text: str | None = None,
    upload: UploadFile | None = None,
) -> Submission:
    """Create or replace ``actor``'s submission for an assignment.

    Replacing a submission clears any previous grade and feedback.
    """
    assignment = _get_assignment(db, assignment_id)
    course = _get_course(db, assignment)

    if not is_enrolled(db, course.id, actor.id):
        raise Forbidden("Not enrolled in this course")

    kind, content = _resolve_content(blobs, assignment, text, upload)

    try:
        submission, replaced = _upsert(db, assignment_id, actor.id, kind, content)
    except Exception:
        if kind == KIND_FILE:
            blobs.delete(content)
        raise

    if replaced is not None and replaced != content:
        blobs.delete(replaced)

    logger.info(
        "student %s submitted %s for assignment %s",
        actor.id,
        kind,
        assignment_id,
    )
    return submission


def _upsert(
    db: Session,
    assignment_id: int,
    student_id: int,
    kind: str,
    content: str,
) -> tuple[Submission, str | None]:
    """Returns the stored submission and the file reference it replaced, if any."""
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        replaced = None
        submission = _find_submission(db, assignment_id, student_id)

        if submission is None:
            submission = Submission(
                assignment_id=assignment_id,
                student_id=student_id,
                kind=kind,
                content=content,
                submitted_at=_now(),
            )
            db.add(submission)
        else:
            if submission.kind == KIND_FILE:
                replaced = submission.content
            submission.kind = kind
            submission.content = content
            submission.submitted_at = _after(submission.submitted_at)

            # resubmission invalidates prior grading
            submission.grade = None
            submission.feedback = None
            submission.graded_at = None

        try:
            _commit_or_raise(db)
        except (IntegrityError, StaleDataError):
            logger.info(
                "concurrent write on submission (%s, %s), attempt %d",
                assignment_id,
                student_id,
                attempt,
            )
            continue

        db.refresh(submission)
        return submission, replaced

    raise StorageFailure("Submission was modified concurrently, please retry")


def grade(
    db: Session,
    assignment_id: int,
    actor: User,
    student_id: int,
    grade: float,
    feedback: str | None = None,
) -> Submission:
    """Set grade and feedback on a student's submission."""
    assignment = _get_assignment(db, assignment_id)
    course = _get_course(db, assignment)

    if not can_manage_course(db, course, actor):
        raise Forbidden("Only the course instructor can grade")

    if (
        isinstance(grade, bool)
        or not isinstance(grade, (int, float))
        or not math.isfinite(grade)
        or grade < GRADE_MIN
        or grade > GRADE_MAX
    ):
        raise InvalidInput(f"grade must be between {GRADE_MIN} and {GRADE_MAX}")

    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        submission = _find_submission(db, assignment_id, student_id)
        if submission is None:
            raise NotFound("Submission not found")

        submission.grade = float(grade)
        submission.feedback = feedback or ""
        submission.graded_at = _now()

        try:
            _commit_or_raise(db)
        except (IntegrityError, StaleDataError):
            logger.info(
                "concurrent write while grading (%s, %s), attempt %d",
                assignment_id,
                student_id,
                attempt,
            )
            continue

        db.refresh(submission)
        logger.info(
            "user %s graded student %s on assignment %s: %s",
            actor.id,
            student_id,
            assignment_id,
            submission.grade,
        )
        return submission

    raise StorageFailure("Submission was modified concurrently, please retry")


def list_for_student(db: Session, student_id: int) -> list[dict]:
    """Assignments of every course the student is enrolled in, earliest deadline first."""
    rows = (
        db.query(Assignment, Course.title, Submission)
        .join(Course, Course.id == Assignment.course_id)
        .join(
            Enrollment,
            and_(
                Enrollment.course_id == Assignment.course_id,
                Enrollment.student_id == student_id,
            ),
        )
        .outerjoin(
            Submission,
            and_(
                Submission.assignment_id == Assignment.id,
                Submission.student_id == student_id,
            ),
        )
        .order_by(Assignment.due_date.asc(), Assignment.id.asc())
        .all()
    )

    result: list[dict] = []
    for assignment, course_title, submission in rows:
        status_val = derive_status(submission)
        result.append(
            {
                "id": assignment.id,
                "course_id": assignment.course_id,
                "course_title": course_title,
                "title": assignment.title,
                "description": assignment.description,
                "due_date": assignment.due_date,
                "attachment_url": assignment.attachment_url,
                "status": status_val,
                "grade": submission.grade if status_val == STATUS_GRADED else None,
                "feedback": submission.feedback if status_val == STATUS_GRADED else None,
                "submitted_at": submission.submitted_at if submission else None,
            }
        )
    return result


def list_for_instructor(db: Session, actor: User) -> list[Assignment]:
    """Assignments of the actor's courses (every course for admins), with submissions."""
    q = (
        db.query(Assignment)
        .join(Course, Course.id == Assignment.course_id)
        .options(selectinload(Assignment.submissions))
    )
    if actor.role != ROLE_ADMIN:
        q = q.filter(Course.instructor_id == actor.id)
    return q.order_by(Assignment.due_date.asc(), Assignment.id.asc()).all()
