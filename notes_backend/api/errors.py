"""Error taxonomy for the notes service and its translation to HTTP."""
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class NotesError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500
    category = "internal_error"
    default_message = "An unexpected error occurred"
    # When False, only default_message ever reaches the client
    expose_message = True

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        return self.message if self.expose_message else self.default_message


class ValidationFailed(NotesError):
    status_code = 400
    category = "validation_error"
    default_message = "Please check your input and try again"

    def __init__(self, fields: List[Any], message: Optional[str] = None):
        self.fields = list(fields)
        super().__init__(message)


class EmptyFile(NotesError):
    status_code = 400
    category = "empty_file"
    default_message = "File cannot be empty"


class UnsupportedType(NotesError):
    status_code = 400
    category = "unsupported_type"
    default_message = "File type not allowed"


class InvalidPath(NotesError):
    status_code = 400
    category = "invalid_path"
    default_message = "Invalid file name"


class FileTooLarge(NotesError):
    status_code = 413
    category = "file_too_large"
    default_message = "The uploaded file exceeds the maximum allowed size"


class AuthenticationFailed(NotesError):
    status_code = 401
    category = "unauthorized"
    default_message = "Invalid username or password"


class NotFound(NotesError):
    """Missing resource, or one owned by somebody else. Both look the same."""

    status_code = 404
    category = "not_found"
    default_message = "The requested resource could not be found"
    expose_message = False


class Conflict(NotesError):
    status_code = 409
    category = "conflict"
    default_message = "Resource already exists"


class IOFailure(NotesError):
    status_code = 500
    category = "io_failure"
    default_message = "File operation failed"
    expose_message = False


_HTTP_CATEGORIES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "file_too_large",
    422: "validation_error",
}


def _request_validation_fields(exc: RequestValidationError) -> List[Dict[str, str]]:
    fields = []
    for err in exc.errors():
        # loc is ("body", "title"), ("path", "note_id"), ("body",) ...
        loc = tuple(err.get("loc", ()))
        loc = [str(part) for part in (loc[1:] or loc)]
        fields.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return fields


# PUBLIC_INTERFACE
def error_response(exc: Exception) -> Tuple[int, Dict[str, Any]]:
    """
    Translate an exception into ``(status_code, payload)``.

    The payload always has a stable ``error`` category and a human readable
    ``message``; validation failures add a ``fields`` list. Internal details
    (tracebacks, paths) never make it into the payload.
    """
    if isinstance(exc, ValidationFailed):
        payload = {
            "error": exc.category,
            "message": exc.public_message,
            "fields": [{"field": f.field, "message": f.message} for f in exc.fields],
        }
        return exc.status_code, payload
    if isinstance(exc, NotesError):
        return exc.status_code, {"error": exc.category, "message": exc.public_message}
    if isinstance(exc, RequestValidationError):
        return 400, {
            "error": "validation_error",
            "message": ValidationFailed.default_message,
            "fields": _request_validation_fields(exc),
        }
    if isinstance(exc, StarletteHTTPException):
        category = _HTTP_CATEGORIES.get(exc.status_code, "http_error")
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return exc.status_code, {"error": category, "message": message}
    return 500, {"error": "internal_error", "message": "An error occurred. Please try again later"}


def _log(exc: Exception, status_code: int) -> None:
    if status_code >= 500:
        logger.error("Request failed: %s", exc, exc_info=exc)
    else:
        logger.warning("Request rejected (%s): %s", status_code, exc)


# PUBLIC_INTERFACE
def install_error_handlers(app: FastAPI) -> None:
    """Register the single exception-to-response translation step on ``app``."""

    def handle(request: Request, exc: Exception):
        status_code, payload = error_response(exc)
        _log(exc, status_code)
        headers = getattr(exc, "headers", None) if isinstance(exc, StarletteHTTPException) else None
        return JSONResponse(status_code=status_code, content=payload, headers=headers)

    app.add_exception_handler(NotesError, handle)
    app.add_exception_handler(RequestValidationError, handle)
    app.add_exception_handler(StarletteHTTPException, handle)
    app.add_exception_handler(Exception, handle)
