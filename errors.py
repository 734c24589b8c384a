"""Error taxonomy shared by the JSON API and the HTML views.

Every failure a user can cause or observe is one of these. JSON routes let
them propagate to the app-level handler in ``main.py``; fragment routes catch
them at the call site and turn them into a flash notification.
"""

from sqlalchemy.exc import IntegrityError

# PostgreSQL SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE_VIOLATION = "SQLITE_CONSTRAINT_UNIQUE"


class BookShareError(Exception):
    status_code = 400
    title = "Error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookShareError):
    status_code = 400
    title = "Invalid input"


class AuthError(BookShareError):
    status_code = 401
    title = "Authentication failed"


class PermissionDenied(BookShareError):
    status_code = 403
    title = "Not allowed"


class NotFound(BookShareError):
    status_code = 404
    title = "Not found"


class DuplicateRequest(BookShareError):
    status_code = 409
    title = "Already Requested"


class InvalidTransition(BookShareError):
    status_code = 409
    title = "Already decided"


class StoreError(BookShareError):
    status_code = 503
    title = "Error"


def is_unique_violation(exc: IntegrityError) -> bool:
    """Tell a uniqueness conflict apart from other integrity failures."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code == PG_UNIQUE_VIOLATION
    if getattr(orig, "sqlite_errorname", None) == SQLITE_UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(orig)
