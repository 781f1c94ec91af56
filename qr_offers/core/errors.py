"""Error families shared by every component.

Each component defines its own exception classes in ``<component>/errors.py``
and inherits exactly one family below. The HTTP layer maps families to status
codes and exposes ``code`` as the machine-readable error kind.
"""


class DomainError(Exception):
    code = "E_INTERNAL"


class InvalidRequestError(DomainError):
    code = "E_INVALID_REQUEST"


class NotFoundError(DomainError):
    code = "E_NOT_FOUND"


class ConflictError(DomainError):
    code = "E_CONFLICT"


class ExpiredError(DomainError):
    code = "E_EXPIRED"


class ForbiddenError(DomainError):
    code = "E_FORBIDDEN"


class MismatchError(DomainError):
    code = "E_MISMATCH"


class RateLimitedError(DomainError):
    code = "E_RATE_LIMITED"
