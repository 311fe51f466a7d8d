import logging
from datetime import datetime

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import Forbidden, InvalidInput, NotFound, StorageFailure
from app.core.permissions import ROLE_STUDENT
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.submission import KIND_FILE
from app.models.user import User
from app.services.blobs import LocalBlobStore
from app.services.enrollment import can_manage_course, is_enrolled

logger = logging.getLogger(__name__)


def attachment_folder(course_id: int) -> str:
    return f"assignments/{course_id}"


def submission_folder(assignment_id: int) -> str:
    return f"submissions/{assignment_id}"


def _ensure_course_exists(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFound("Course not found")
    return course


def stored_references(blobs: LocalBlobStore, assignment: Assignment) -> list[str]:
    """Files that belong to this assignment alone: its attachment and file submissions.

    Anything pointing outside the assignment's own upload folders is left alone.
    """
    references = [
        s.content
        for s in assignment.submissions
        if s.kind == KIND_FILE and blobs.is_under(s.content, submission_folder(assignment.id))
    ]
    if blobs.is_under(assignment.attachment_url, attachment_folder(assignment.course_id)):
        references.append(assignment.attachment_url)
    return references


def create_assignment(
    db: Session,
    blobs: LocalBlobStore,
    course_id: int,
    actor: User,
    title: str,
    description: str,
    due_date: datetime,
    attachment: UploadFile | None = None,
) -> Assignment:
    course = _ensure_course_exists(db, course_id)

    if not can_manage_course(db, course, actor):
        raise Forbidden("You can only create assignments for your own courses")

    if not title or not title.strip():
        raise InvalidInput("Assignment title is required")
    if not description or not description.strip():
        raise InvalidInput("Assignment description is required")

    attachment_url = ""
    if attachment is not None:
        attachment_url = blobs.store(attachment, folder=attachment_folder(course.id))

    a = Assignment(
        course_id=course.id,
        title=title.strip(),
        description=description,
        due_date=due_date,
        attachment_url=attachment_url,
    )
    db.add(a)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        if attachment_url:
            blobs.delete(attachment_url)
        raise StorageFailure("Could not create assignment") from exc

    db.refresh(a)
    logger.info("user %s created assignment %s in course %s", actor.id, a.id, course.id)
    return a


def list_course_assignments(db: Session, course_id: int, actor: User) -> list[Assignment]:
    course = _ensure_course_exists(db, course_id)

    if not can_manage_course(db, course, actor):
        if actor.role != ROLE_STUDENT or not is_enrolled(db, course.id, actor.id):
            raise Forbidden("Not enrolled in this course")

    return (
        db.query(Assignment)
        .filter(Assignment.course_id == course_id)
        .order_by(Assignment.due_date.asc(), Assignment.id.asc())
        .all()
    )


def delete_assignment(
    db: Session,
    blobs: LocalBlobStore,
    assignment_id: int,
    actor: User,
) -> None:
    """Delete an assignment with its submissions; file cleanup is best-effort."""
    assignment = db.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFound("Assignment not found")

    course = db.get(Course, assignment.course_id)
    if course is None or not can_manage_course(db, course, actor):
        raise Forbidden("Only the course instructor can delete assignments")

    references = stored_references(blobs, assignment)

    db.delete(assignment)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageFailure("Could not delete assignment") from exc

    for ref in references:
        blobs.delete(ref)

    logger.info("user %s deleted assignment %s", actor.id, assignment_id)
