"""RFC 7807 Problem Details error handling.

Provides the application error taxonomy and the exception handlers that
render it. All errors return a consistent JSON format:

    {
        "type": "about:blank",
        "title": "Bad Gateway",
        "status": 502,
        "detail": "Statement parser failed with status 503",
        "code": "UPSTREAM_ERROR",
        "instance": "/api/v1/ingest/statements"
    }

Row-level problems inside a statement never surface here; they are counted
in the import summary instead. Only structural failures (bad upload, parser
rejection or outage, missing seed data) abort a request.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class AppError(Exception):
    """Base application error."""

    code = "INTERNAL_ERROR"

    def __init__(
        self,
        detail: str,
        status_code: int = 500,
        error_type: str = "about:blank",
        code: str | None = None,
    ):
        self.detail = detail
        self.status_code = status_code
        self.error_type = error_type
        if code is not None:
            self.code = code
        super().__init__(detail)


class ValidationError(AppError):
    """Malformed request input, caught before the import pipeline runs."""

    code = "VALIDATION_ERROR"

    def __init__(self, detail: str = "Validation failed"):
        super().__init__(detail=detail, status_code=400)


class AuthenticationError(AppError):
    """Authentication failed."""

    code = "UNAUTHENTICATED"

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(detail=detail, status_code=401)


class ForbiddenError(AppError):
    """Authenticated, but not allowed to act on the family's data."""

    code = "FORBIDDEN"

    def __init__(self, detail: str = "Forbidden"):
        super().__init__(detail=detail, status_code=403)


class RateLimitError(AppError):
    """Rate limit exceeded."""

    code = "RATE_LIMITED"

    def __init__(self, detail: str = "Rate limit exceeded", retry_after: int = 60):
        super().__init__(detail=detail, status_code=429)
        self.retry_after = retry_after


class UpstreamRejectedError(AppError):
    """The statement parser declared the file unreadable. Never retried."""

    code = "UPSTREAM_ERROR"

    def __init__(self, detail: str = "Statement parser rejected the file"):
        super().__init__(detail=detail, status_code=422)


class UpstreamUnavailableError(AppError):
    """The statement parser failed or misbehaved (5xx-equivalent)."""

    code = "UPSTREAM_ERROR"

    def __init__(self, detail: str = "Statement parser request failed", status_code: int = 502):
        super().__init__(detail=detail, status_code=status_code)


class InternalError(AppError):
    """Deployment or seed-data defect; must be fixed operationally."""

    code = "INTERNAL_ERROR"

    def __init__(self, detail: str = "Unexpected server error"):
        super().__init__(detail=detail, status_code=500)


def _build_problem_detail(
    status: int,
    title: str,
    detail: str,
    error_type: str = "about:blank",
    instance: str = "",
    request_id: str = "",
    code: str = "",
) -> dict:
    """Build RFC 7807 Problem Details response body."""
    body = {
        "type": error_type,
        "title": title,
        "status": status,
        "detail": detail,
    }
    if code:
        body["code"] = code
    if instance:
        body["instance"] = instance
    if request_id:
        body["request_id"] = request_id
    return body


# HTTP status code to title mapping
_STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    413: "Payload Too Large",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        title = _STATUS_TITLES.get(exc.status_code, "Error")
        request_id = getattr(request.state, "request_id", "")
        body = _build_problem_detail(
            status=exc.status_code,
            title=title,
            detail=exc.detail,
            error_type=exc.error_type,
            instance=str(request.url.path),
            request_id=request_id,
            code=exc.code,
        )
        headers = None
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=body, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        title = _STATUS_TITLES.get(exc.status_code, "Error")
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        request_id = getattr(request.state, "request_id", "")
        body = _build_problem_detail(
            status=exc.status_code,
            title=title,
            detail=detail,
            instance=str(request.url.path),
            request_id=request_id,
        )
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "")
        body = _build_problem_detail(
            status=500,
            title="Internal Server Error",
            detail="An unexpected error occurred",
            instance=str(request.url.path),
            request_id=request_id,
            code="INTERNAL_ERROR",
        )
        return JSONResponse(status_code=500, content=body)
