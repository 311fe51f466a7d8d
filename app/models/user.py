from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255))
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="student")

    __table_args__ = (
        CheckConstraint("role IN ('student', 'professor', 'admin')", name="ck_users_role"),
    )

    courses_taught = relationship("Course", back_populates="instructor")

    enrollments = relationship("Enrollment", back_populates="student", cascade="all, delete-orphan")

    submissions = relationship("Submission", back_populates="student", cascade="all, delete-orphan")
