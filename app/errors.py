"""Error taxonomy shared by every component.

Components raise these; the HTTP layer renders them as structured 4xx
responses. Storage-level constraint violations are translated into the
nearest kind by :func:`from_integrity_error` before they leave the store
boundary.
"""

from sqlalchemy.exc import IntegrityError


class DomainError(Exception):
    status_code = 400
    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidInput(DomainError):
    status_code = 400
    kind = "invalid_input"


class NotFound(DomainError):
    status_code = 404
    kind = "not_found"


class Conflict(DomainError):
    status_code = 409
    kind = "conflict"


class Unauthorized(DomainError):
    status_code = 401
    kind = "unauthorized"


class Forbidden(DomainError):
    status_code = 403
    kind = "forbidden"


def from_integrity_error(exc: IntegrityError) -> DomainError:
    text = str(exc.orig).lower()
    if "unique" in text or "duplicate" in text:
        return Conflict("Record conflicts with an existing record")
    if "foreign key" in text:
        return Conflict("Record is referenced by or references missing records")
    return InvalidInput("Invalid data")
