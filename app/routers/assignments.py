from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from app.core.current_user import get_current_user
from app.core.deps import get_blob_store, get_db
from app.core.permissions import require_professor, require_student
from app.models.user import User
from app.schemas.assignment import AssignmentCreate, AssignmentRead
from app.schemas.submission import SubmissionCreate, SubmissionRead
from app.services import assignments as assignment_service
from app.services import submissions as workflow
from app.services.blobs import LocalBlobStore

router = APIRouter()

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def _is_form(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPES)


def _validated(model: type[BaseModel], data: Any):
    # same 400 body as a declared request model would produce
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


async def _json_payload(request: Request, model: type[BaseModel]):
    try:
        return model.model_validate_json(await request.body())
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


def _form_file(form, field: str) -> UploadFile | None:
    value = form.get(field)
    if isinstance(value, UploadFile) and value.filename:
        return value
    return None


@router.get("/courses/{course_id}/assignments", response_model=list[AssignmentRead])
def list_assignments(
    course_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return assignment_service.list_course_assignments(db, course_id, current_user)


@router.post(
    "/courses/{course_id}/assignments",
    response_model=AssignmentRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Missing fields or invalid attachment"},
        403: {"description": "Not the course instructor"},
        404: {"description": "Course not found"},
    },
)
async def create_assignment(
    course_id: int,
    request: Request,
    db: Session = Depends(get_db),
    blobs: LocalBlobStore = Depends(get_blob_store),
    professor: User = Depends(require_professor),
):
    """
    Accepts a JSON body ``{"title", "description", "due_date"}`` or a
    multipart form with the same fields and an optional ``attachment`` file.
    """
    if _is_form(request):
        async with request.form() as form:
            payload = _validated(
                AssignmentCreate,
                {k: form.get(k) for k in ("title", "description", "due_date") if isinstance(form.get(k), str)},
            )
            return await run_in_threadpool(
                assignment_service.create_assignment,
                db,
                blobs,
                course_id,
                professor,
                title=payload.title,
                description=payload.description,
                due_date=payload.due_date,
                attachment=_form_file(form, "attachment"),
            )

    payload = await _json_payload(request, AssignmentCreate)
    return await run_in_threadpool(
        assignment_service.create_assignment,
        db,
        blobs,
        course_id,
        professor,
        title=payload.title,
        description=payload.description,
        due_date=payload.due_date,
    )


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    blobs: LocalBlobStore = Depends(get_blob_store),
    professor: User = Depends(require_professor),
):
    assignment_service.delete_assignment(db, blobs, assignment_id, professor)


@router.post(
    "/assignments/{assignment_id}/submit",
    response_model=SubmissionRead,
    responses={
        400: {"description": "Missing or invalid submission content"},
        403: {"description": "Not enrolled in this course"},
        404: {"description": "Assignment not found"},
    },
)
async def submit_assignment(
    assignment_id: int,
    request: Request,
    db: Session = Depends(get_db),
    blobs: LocalBlobStore = Depends(get_blob_store),
    me: User = Depends(require_student),
):
    """
    Accepts either a JSON body ``{"submission": "<text>"}`` or a multipart
    form with a ``file`` field (or a ``submission`` text field).
    """
    if _is_form(request):
        async with request.form() as form:
            text = form.get("submission")
            if not isinstance(text, str):
                text = None
            return await run_in_threadpool(
                workflow.submit,
                db,
                blobs,
                assignment_id,
                me,
                text=text,
                upload=_form_file(form, "file"),
            )

    payload = await _json_payload(request, SubmissionCreate)
    return await run_in_threadpool(
        workflow.submit, db, blobs, assignment_id, me, text=payload.submission
    )
