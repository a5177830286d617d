# orgcal/core/errors.py
"""Domain error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

log = logging.getLogger(__name__)


class CalendarError(Exception):
    """Base class: carries a stable code and the HTTP status it maps to."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "error": {"code": self.code, "message": self.message}}


class ValidationFailed(CalendarError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Forbidden(CalendarError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(CalendarError):
    """Also raised when an entity exists but is outside the actor's scope."""

    status_code = 404
    code = "NOT_FOUND"


class Conflict(CalendarError):
    status_code = 409
    code = "DUPLICATE_ERROR"


# Postgres SQLSTATE codes and their SQLite message fragments
_INTEGRITY_CODES: tuple[tuple[str, str, type[CalendarError], str, str], ...] = (
    ("23505", "UNIQUE constraint", Conflict, "DUPLICATE_ERROR", "The record already exists."),
    ("23503", "FOREIGN KEY constraint", ValidationFailed, "REFERENCE_ERROR", "A referenced record does not exist."),
    ("23502", "NOT NULL constraint", ValidationFailed, "NULL_ERROR", "A required value is missing."),
    ("23514", "CHECK constraint", ValidationFailed, "INVALID_TIME_RANGE", "End time must be after start time."),
)


def map_integrity_error(exc: IntegrityError) -> CalendarError:
    """Translate a storage constraint violation into a domain error."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    text = str(orig or exc)
    for state, fragment, cls, code, message in _INTEGRITY_CODES:
        if sqlstate == state or fragment in text:
            return cls(message, code=code)
    log.warning("Unmapped integrity error: %s", text)
    return Conflict("The change conflicts with existing data.", code="CONSTRAINT_ERROR")


__all__ = [
    "CalendarError", "ValidationFailed", "Forbidden", "NotFound", "Conflict",
    "map_integrity_error",
]
