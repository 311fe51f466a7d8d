# import models so Base.metadata knows every table (used by init_db, alembic and tests)
from app.db.base_class import Base  # noqa: F401
from app.models import assignment, course, course_material, enrollment, submission, user  # noqa: F401
