import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("eduflex.requests")


class LoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request: method, path, status, duration."""

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "%s %s -> unhandled error (%.3fs)",
                request.method,
                request.url.path,
                time.monotonic() - start,
            )
            raise

        duration = time.monotonic() - start
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %s (%.3fs)",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )

        return response
