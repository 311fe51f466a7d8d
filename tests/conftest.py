import os
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.deps import get_blob_store, get_db
from app.core.security import create_access_token, hash_password
from app.db.base import Base
from app.main import app
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.user import User
from app.services.blobs import LocalBlobStore

TEST_DB_FILE = "test_eduflex.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

# small ceiling so over-size uploads are cheap to produce
TEST_MAX_UPLOAD_BYTES = 1024

# bcrypt is slow; hash the shared seed password once
PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed():
    """
    Seed a clean minimal dataset for each test:
    - student1 enrolled in CS101, student2 not enrolled
    - professor1 owns CS101, professor2 owns nothing
    - admin
    - assignment HW1 in CS101, due 2024-03-01
    """
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()

        def make_user(email, role):
            return User(
                email=email,
                full_name=email.split("@")[0].title(),
                role=role,
                hashed_password=PASSWORD_HASH,
            )

        student1 = make_user("student1@example.com", "student")
        student2 = make_user("student2@example.com", "student")
        professor1 = make_user("professor1@example.com", "professor")
        professor2 = make_user("professor2@example.com", "professor")
        admin = make_user("admin@example.com", "admin")
        db.add_all([student1, student2, professor1, professor2, admin])
        db.commit()

        course = Course(
            title="CS101",
            description="Intro to programming",
            instructor_id=professor1.id,
        )
        db.add(course)
        db.commit()

        db.add(Enrollment(course_id=course.id, student_id=student1.id))
        db.commit()

        assignment = Assignment(
            course_id=course.id,
            title="HW1",
            description="First homework",
            due_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        db.add(assignment)
        db.commit()

        yield SimpleNamespace(
            student1=student1.id,
            student2=student2.id,
            professor1=professor1.id,
            professor2=professor2.id,
            admin=admin.id,
            course=course.id,
            assignment=assignment.id,
        )
    finally:
        db.close()


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def blobs(tmp_path):
    return LocalBlobStore(root=tmp_path / "uploads", max_bytes=TEST_MAX_UPLOAD_BYTES)


@pytest.fixture()
def client(blobs):
    """Test client that uses the test DB session and a temporary upload dir."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blobs
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_header():
    """auth_header(user_id) -> bearer header for that user, no login round-trip."""

    def _header(user_id: int) -> dict:
        token = create_access_token(data={"sub": str(user_id)})
        return {"Authorization": f"Bearer {token}"}

    return _header


@pytest.fixture()
def user(db):
    """user(user_id) -> User loaded in the test session."""

    def _get(user_id: int) -> User:
        return db.get(User, user_id)

    return _get


@pytest.fixture()
def session_factory():
    """Opens independent sessions, e.g. to play a second concurrent writer."""
    return TestingSessionLocal
