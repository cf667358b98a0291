"""
Exception hierarchy shared by the services and the HTTP layer.

Every error carries the HTTP status the request boundary should answer with.
"""

from __future__ import annotations

from typing import Iterable


class CrowdSolveError(Exception):
    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def to_body(self) -> dict:
        if self.status_code >= 500:
            return {"message": "Server error", "error": self.detail or self.message}
        return {"message": self.message}


class InvalidRequest(CrowdSolveError):
    status_code = 400
    default_message = "Invalid request"


class MissingFields(InvalidRequest):
    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class InvalidField(InvalidRequest):
    pass


class Conflict(CrowdSolveError):
    status_code = 400
    default_message = "User already exists"


class InvalidCredentials(CrowdSolveError):
    status_code = 400
    default_message = "Invalid credentials"


class Unauthenticated(CrowdSolveError):
    status_code = 401
    default_message = "Access token required"


class InvalidToken(CrowdSolveError):
    status_code = 403
    default_message = "Invalid token"


class Forbidden(CrowdSolveError):
    status_code = 403
    default_message = "Not authorized"


class NotFound(CrowdSolveError):
    status_code = 404
    default_message = "Not found"


class PayloadTooLarge(CrowdSolveError):
    status_code = 413
    default_message = "Uploaded file is too large"


class UploadFailed(CrowdSolveError):
    """The asset store rejected or could not receive an upload."""


class StoreError(CrowdSolveError):
    """The record store backend failed."""


def require_fields(**values) -> None:
    """Raise MissingFields for every value that is None or an empty string."""
    missing = [name for name, value in values.items() if value is None or value == ""]
    if missing:
        raise MissingFields(missing)
