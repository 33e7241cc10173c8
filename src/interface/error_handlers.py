"""Render service failures as structured error responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from src.core.errors import (
    ErrorCode,
    ErrorKind,
    ErrorResponse,
    ServiceError,
    classify_error,
    describe_validation_errors,
    status_for,
)


logger = logging.getLogger(__name__)


def error_response(error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_for(error.kind), content=error.model_dump(mode="json"))


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    error = classify_error(exc)
    log = logger.error if error.kind is ErrorKind.UPSTREAM else logger.warning
    log("request_failed", extra={"path": request.url.path, "kind": error.kind, "error": error.message})
    return error_response(error)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    message = describe_validation_errors(list(exc.errors()))
    logger.warning("request_invalid", extra={"path": request.url.path, "error": message})
    return error_response(ErrorResponse(code=ErrorCode.ERR_VALIDATION, kind=ErrorKind.VALIDATION, message=message))


async def model_validation_handler(request: Request, exc: PydanticValidationError) -> JSONResponse:
    # Raised when stored data no longer matches the models.
    error = classify_error(exc)
    logger.error("stored_data_invalid", extra={"path": request.url.path, "error": error.message})
    return error_response(error)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = classify_error(exc)
    logger.exception("request_crashed", extra={"path": request.url.path, "error_type": type(exc).__name__})
    return error_response(error)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PydanticValidationError, model_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unexpected_error_handler)
