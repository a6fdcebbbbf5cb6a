"""
Domain error taxonomy.

Every failure a caller can act on is raised as a ``DomainError`` subclass.
The API layer renders them as ``{"detail": ..., "kind": ...}`` with the
class's HTTP status; anything else is an internal error.
"""


class DomainError(Exception):
    kind = "domain_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Missing/malformed input or a business-rule violation."""

    kind = "validation_error"
    status_code = 400


class Unauthorized(DomainError):
    kind = "unauthorized"
    status_code = 401


class Forbidden(DomainError):
    """The actor may not perform this action on this resource."""

    kind = "forbidden"
    status_code = 403


class NotFound(DomainError):
    kind = "not_found"
    status_code = 404


class Conflict(DomainError):
    """Duplicate record or a transition out of the current state."""

    kind = "conflict"
    status_code = 409


class ExternalServiceError(DomainError):
    """A third-party call (payment processor, geocoder) failed."""

    kind = "external_service_error"
    status_code = 502
