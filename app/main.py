import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles

from app.core.config import UPLOAD_DIR, UPLOAD_URL_PREFIX
from app.core.errors import EduFlexError, eduflex_error_handler, validation_error_handler
from app.core.logging_middleware import LoggingMiddleware
from app.db.init_db import init_db

from app.routers.admin import router as admin_router
from app.routers.assignments import router as assignments_router
from app.routers.auth import router as auth_router
from app.routers.courses import router as courses_router
from app.routers.enrollments import router as enrollments_router
from app.routers.professor import router as professor_router
from app.routers.student import router as student_router

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="EduFlex")

# Middleware
app.add_middleware(LoggingMiddleware)

# Error mapping
app.add_exception_handler(EduFlexError, eduflex_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()


# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
app.include_router(courses_router, prefix="/courses", tags=["courses"])
app.include_router(enrollments_router, prefix="/enrollments", tags=["enrollments"])
app.include_router(assignments_router, tags=["assignments"])

# Role-scoped routers (prefix defined on the router)
app.include_router(student_router)
app.include_router(professor_router)

# Uploaded files (submissions, attachments), read-only
UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=UPLOAD_DIR), name="uploads")
