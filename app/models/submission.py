from sqlalchemy import Column, Integer, ForeignKey, DateTime, Float, Text, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base_class import Base

KIND_TEXT = "text"
KIND_FILE = "file"

STATUS_PENDING = "pending"
STATUS_SUBMITTED = "submitted"
STATUS_GRADED = "graded"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)

    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # "text": content is the submitted text; "file": content is a blob reference
    kind = Column(String(10), nullable=False, default=KIND_TEXT)
    content = Column(Text, nullable=False)

    submitted_at = Column(DateTime(timezone=True), nullable=False)

    # Grading fields (nullable until graded, cleared on resubmission)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("assignment_id", "student_id", name="uq_submission_assignment_student"),
    )
    __mapper_args__ = {"version_id_col": version}

    assignment = relationship("Assignment", back_populates="submissions")
    student = relationship("User", back_populates="submissions")

    @property
    def status(self) -> str:
        return derive_status(self)


def derive_status(submission) -> str:
    """Status of a student's work given their submission (or None)."""
    if submission is None:
        return STATUS_PENDING
    if submission.grade is None:
        return STATUS_SUBMITTED
    return STATUS_GRADED
