from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class EduFlexError(Exception):
    """Base for workflow outcomes that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None):
        self.detail = detail or self.default_detail
        self.headers = headers
        super().__init__(self.detail)


class Unauthorized(EduFlexError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: str | None = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class NotFound(EduFlexError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Forbidden(EduFlexError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class InvalidInput(EduFlexError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class Conflict(EduFlexError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class StorageFailure(EduFlexError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Storage failure"


async def eduflex_error_handler(request: Request, exc: EduFlexError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # malformed payloads are client errors like any other invalid input
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
