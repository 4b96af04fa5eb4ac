"""Uniform JSON envelope for successes and errors, plus the FastAPI handlers."""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskmaster.errors import TaskMasterError
from taskmaster.security import apply_security_headers

logger = logging.getLogger(__name__)

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def success(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict:
    """Build a success envelope. ``extra`` keys sit beside ``data`` (list metadata)."""
    payload: dict[str, Any] = {"success": True}
    if message:
        payload["message"] = message
    payload.update(extra)
    payload["data"] = data if data is not None else {}
    return payload


def error_body(message: str, errors: Optional[list[dict[str, Any]]] = None, **extra: Any) -> dict:
    payload: dict[str, Any] = {"success": False, "message": message}
    if errors:
        payload["errors"] = errors
    payload.update(extra)
    return payload


def error_response(
    status_code: int,
    message: str,
    errors: Optional[list[dict[str, Any]]] = None,
    headers: Optional[dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(message, errors, **extra),
        headers=headers,
    )


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc]
    if len(parts) > 1 and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts)


def validation_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into ``[{field, message}]``."""
    errors = []
    for err in exc.errors():
        # Malformed JSON reports the byte offset as its location.
        field = "body" if err.get("type") == "json_invalid" else _field_name(tuple(err.get("loc", ())))
        errors.append({"field": field, "message": err.get("msg", "Invalid value")})
    return errors


async def taskmaster_error_handler(request: Request, exc: TaskMasterError) -> JSONResponse:
    return error_response(exc.status_code, exc.message, exc.errors, exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = validation_errors(exc)
    logger.debug("Validation failed on %s %s: %s", request.method, request.url.path, errors)
    return error_response(400, "Validation failed", errors)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return error_response(404, "Route not found", path=request.url.path)
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the full traceback, answer with a generic 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    is_production = request.app.state.settings.is_production()
    extra = {}
    if not is_production:
        extra["error"] = str(exc)
    response = error_response(500, "Internal server error", **extra)
    return apply_security_headers(request, response, is_production)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskMasterError, taskmaster_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
