"""Course lifecycle: editing, removal, membership and study materials."""
import logging

from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import Forbidden, InvalidInput, NotFound, StorageFailure
from app.core.permissions import ROLE_STUDENT
from app.models.course import Course
from app.models.course_material import CourseMaterial
from app.models.enrollment import Enrollment
from app.models.user import User
from app.services.assignments import stored_references
from app.services.blobs import LocalBlobStore
from app.services.enrollment import can_manage_course, is_enrolled

logger = logging.getLogger(__name__)


def material_folder(course_id: int) -> str:
    return f"materials/{course_id}"


def get_course(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFound("Course not found")
    return course


def _managed_course(db: Session, course_id: int, actor: User) -> Course:
    course = get_course(db, course_id)
    if not can_manage_course(db, course, actor):
        raise Forbidden("Only the course instructor or an admin can do this")
    return course


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageFailure(f"Could not {what}") from exc


def update_course(
    db: Session,
    course_id: int,
    actor: User,
    title: str | None = None,
    description: str | None = None,
) -> Course:
    course = _managed_course(db, course_id, actor)

    if title is not None:
        if not title.strip():
            raise InvalidInput("Course title cannot be blank")
        course.title = title.strip()
    if description is not None:
        course.description = description

    _commit(db, "update course")
    db.refresh(course)
    logger.info("user %s updated course %s", actor.id, course.id)
    return course


def delete_course(db: Session, blobs: LocalBlobStore, course_id: int, actor: User) -> None:
    """Delete a course with its enrollments, assignments, submissions and materials."""
    course = _managed_course(db, course_id, actor)

    references: list[str] = []
    for assignment in course.assignments:
        references.extend(stored_references(blobs, assignment))
    references.extend(
        m.file_url for m in course.materials if blobs.is_under(m.file_url, material_folder(course.id))
    )

    db.delete(course)
    _commit(db, "delete course")

    for ref in references:
        blobs.delete(ref)

    logger.info("user %s deleted course %s", actor.id, course_id)


def _membership_target(db: Session, course: Course, actor: User, student_id: int | None) -> int:
    """Resolve whose enrollment the actor is changing, enforcing who may change it."""
    target_id = actor.id if student_id is None else student_id

    if actor.role == ROLE_STUDENT:
        if target_id != actor.id:
            raise Forbidden("Students can only change their own enrollment")
    elif not can_manage_course(db, course, actor):
        raise Forbidden("Only the course instructor or an admin can do this")

    return target_id


def enroll(db: Session, course_id: int, actor: User, student_id: int | None = None) -> Enrollment:
    """Enroll a student; enrolling someone already enrolled returns the existing row."""
    course = get_course(db, course_id)
    target_id = _membership_target(db, course, actor, student_id)

    target = db.get(User, target_id)
    if target is None:
        raise NotFound("Student not found")
    if target.role != ROLE_STUDENT:
        raise InvalidInput("Only students can be enrolled")

    existing = _find_enrollment(db, course.id, target.id)
    if existing is not None:
        return existing

    enrollment = Enrollment(course_id=course.id, student_id=target.id)
    db.add(enrollment)
    try:
        db.commit()
    except IntegrityError:
        # enrolled by a concurrent request
        db.rollback()
        return _find_enrollment(db, course.id, target.id)

    db.refresh(enrollment)
    logger.info("user %s enrolled student %s in course %s", actor.id, target.id, course.id)
    return enrollment


def unenroll(db: Session, course_id: int, actor: User, student_id: int | None = None) -> None:
    course = get_course(db, course_id)
    target_id = _membership_target(db, course, actor, student_id)

    enrollment = _find_enrollment(db, course.id, target_id)
    if enrollment is None:
        return

    db.delete(enrollment)
    _commit(db, "remove enrollment")
    logger.info("user %s unenrolled student %s from course %s", actor.id, target_id, course.id)


def _find_enrollment(db: Session, course_id: int, student_id: int) -> Enrollment | None:
    return (
        db.query(Enrollment)
        .filter(Enrollment.course_id == course_id, Enrollment.student_id == student_id)
        .first()
    )


def add_material(
    db: Session,
    blobs: LocalBlobStore,
    course_id: int,
    actor: User,
    title: str,
    upload: UploadFile,
) -> CourseMaterial:
    course = _managed_course(db, course_id, actor)

    if not title or not title.strip():
        raise InvalidInput("Material title is required")

    file_url = blobs.store(upload, folder=material_folder(course.id))
    material = CourseMaterial(course_id=course.id, title=title.strip(), file_url=file_url)
    db.add(material)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        blobs.delete(file_url)
        raise StorageFailure("Could not save course material") from exc

    db.refresh(material)
    logger.info("user %s added material %s to course %s", actor.id, material.id, course.id)
    return material


def list_materials(db: Session, course_id: int, actor: User) -> list[CourseMaterial]:
    course = get_course(db, course_id)
    if not can_manage_course(db, course, actor) and not is_enrolled(db, course.id, actor.id):
        raise Forbidden("Not enrolled in this course")
    return list(course.materials)
