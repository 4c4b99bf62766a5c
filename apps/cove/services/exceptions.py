"""
Service-layer exceptions for the matching lifecycle.

Each exception carries the HTTP status the API layer responds with, so
routers can translate any of them with a single ``except MatchingError``.
Anything that is not a ``MatchingError`` is an unexpected store or code
failure and is reported as a 500.
"""


class MatchingError(ValueError):
    """Base class for expected, caller-visible failures."""

    status_code = 400


class BadRequestError(MatchingError):
    """Raised for malformed input or a violated precondition."""

    status_code = 400


class ForbiddenError(MatchingError):
    """Raised when the caller does not own, belong to, or administer the resource."""

    status_code = 403


class NotFoundError(MatchingError):
    """Raised when a referenced user, intention or match does not exist."""

    status_code = 404


class ConflictError(MatchingError):
    """Raised on uniqueness violations (duplicate active intention, double booking)."""

    status_code = 409
