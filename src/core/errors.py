"""Error taxonomy shared by services, routers and the live sync endpoint."""

from enum import StrEnum

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError


class ErrorKind(StrEnum):
    """Machine-checkable kind of a service failure."""

    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_VALIDATION = "ERR_VALIDATION"
    ERR_UNAUTHORIZED = "ERR_UNAUTHORIZED"
    ERR_FORBIDDEN = "ERR_FORBIDDEN"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_UPSTREAM = "ERR_UPSTREAM"
    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"
    ERR_STORED_DATA = "ERR_STORED_DATA"


_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UPSTREAM: 502,
}

_CODE_BY_KIND: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: ErrorCode.ERR_VALIDATION,
    ErrorKind.UNAUTHORIZED: ErrorCode.ERR_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: ErrorCode.ERR_FORBIDDEN,
    ErrorKind.NOT_FOUND: ErrorCode.ERR_NOT_FOUND,
    ErrorKind.UPSTREAM: ErrorCode.ERR_UPSTREAM,
}


class ServiceError(Exception):
    """Base class for failures surfaced to callers."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return _STATUS_BY_KIND[self.kind]


class ValidationFailed(ServiceError):
    """A required field is missing or malformed."""

    kind = ErrorKind.VALIDATION


class Unauthorized(ServiceError):
    """The caller's credential is missing or invalid."""

    kind = ErrorKind.UNAUTHORIZED


class Forbidden(ServiceError):
    """The caller is authenticated but not allowed to act on the resource."""

    kind = ErrorKind.FORBIDDEN


class NotFound(ServiceError):
    """A referenced group, list or item does not exist."""

    kind = ErrorKind.NOT_FOUND


class UpstreamError(ServiceError):
    """The store or an external collaborator failed."""

    kind = ErrorKind.UPSTREAM


class ErrorResponse(BaseModel):
    """Structured error body returned for every core failure."""

    code: str
    kind: ErrorKind
    message: str


def status_for(kind: ErrorKind) -> int:
    """Return the HTTP status used for an error kind."""
    return _STATUS_BY_KIND[kind]


def classify_error(exception: Exception) -> ErrorResponse:
    """Map any exception onto the error taxonomy.

    Service errors keep their own kind and message. Anything else is an upstream error:
    pydantic failures on stored data and network failures get their own codes.

    Args:
        exception: The exception raised while handling a request

    Returns:
        ErrorResponse with code, kind and a human-readable message
    """
    if isinstance(exception, ServiceError):
        return ErrorResponse(code=_CODE_BY_KIND[exception.kind], kind=exception.kind, message=exception.message)

    if isinstance(exception, PydanticValidationError):
        # Request bodies are validated by FastAPI, so these come from stored data.
        return ErrorResponse(
            code=ErrorCode.ERR_STORED_DATA,
            kind=ErrorKind.UPSTREAM,
            message=f"Stored data is invalid: {describe_validation_errors(exception.errors())}",
        )

    if isinstance(exception, httpx.HTTPError | ConnectionError | TimeoutError):
        return ErrorResponse(
            code=ErrorCode.ERR_NETWORK_ERROR,
            kind=ErrorKind.UPSTREAM,
            message="A backing service could not be reached. Please try again.",
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UPSTREAM,
        kind=ErrorKind.UPSTREAM,
        message="An unexpected error occurred. Please try again later.",
    )


def describe_validation_errors(errors: list) -> str:
    """Render pydantic/FastAPI validation error entries as one readable sentence."""
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid request"
