"""Typed application errors.

Services raise these instead of `HTTPException` so they stay usable
outside a request. `main.py` registers a handler that turns any
`AppError` into a JSON body of the form `{"status": ..., "message": ...}`
where `status` is `fail` for client errors and `error` for server errors.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP status code."""
    status_code: int = 500
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.default_message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message}


class ValidationError(AppError):
    """Missing or invalid input (400)."""
    status_code = 400
    default_message = "Invalid input data"


class ConflictError(AppError):
    """Duplicate unique key or a state that forbids the change (409)."""
    status_code = 409
    default_message = "Resource conflict"


class NotFoundError(AppError):
    """No record matches the requested id (404)."""
    status_code = 404
    default_message = "Resource not found"


class NotFoundOrUnauthorizedError(NotFoundError):
    """Ownership-filtered lookup matched nothing.

    Deliberately indistinguishable from a plain 404 so that callers
    cannot probe for records they do not own.
    """
    default_message = "No course found or you are not authorized"


class UnauthenticatedError(AppError):
    """Missing, invalid or expired credential (401)."""
    status_code = 401
    default_message = "You are not logged in"


class UnauthorizedError(AppError):
    """Authenticated but the role is not allowed (401)."""
    status_code = 401
    default_message = "You do not have permission to perform this action"


class ServerError(AppError):
    """Persistence or filesystem failure (500)."""
    status_code = 500
    default_message = "An internal error occurred"
