from fastapi import Depends

from app.core.current_user import get_current_user
from app.core.errors import Forbidden
from app.models.user import User

ROLE_STUDENT = "student"
ROLE_PROFESSOR = "professor"
ROLE_ADMIN = "admin"


def require_student(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_STUDENT:
        raise Forbidden("Student role required")
    return current_user


def require_professor(current_user: User = Depends(get_current_user)) -> User:
    # admins can do everything a professor can
    if current_user.role not in (ROLE_PROFESSOR, ROLE_ADMIN):
        raise Forbidden("Professor role required")
    return current_user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ROLE_ADMIN:
        raise Forbidden("Admin role required")
    return current_user
