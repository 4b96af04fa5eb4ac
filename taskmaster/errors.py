"""Typed errors raised by the service layer and translated into HTTP responses."""

from typing import Any, Optional


class TaskMasterError(Exception):
    """Base error carrying the HTTP status and a client-safe message."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[list[dict[str, Any]]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors
        self.headers = headers
        super().__init__(self.message)


class ValidationFailed(TaskMasterError):
    status_code = 400
    default_message = "Validation failed"


class Unauthenticated(TaskMasterError):
    status_code = 401
    default_message = "Not authorized to access this route"


class Forbidden(TaskMasterError):
    status_code = 403
    default_message = "Not authorized to access this resource"


class NotFound(TaskMasterError):
    status_code = 404
    default_message = "Resource not found"


class RateLimited(TaskMasterError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        self.retry_after = retry_after
        super().__init__(message, headers={"Retry-After": str(retry_after)})
