"""Typed service errors.

Services raise a ServiceError subclass at the point of detection. The error
carries an ErrorKind and a user-safe message; translation to an HTTP status
happens only at the API boundary (see ledgerflow.api.app).
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Classification of service failures."""

    VALIDATION = "validation"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    SIGNATURE_INVALID = "signature_invalid"
    INTERNAL = "internal"


class ServiceError(Exception):
    """Base class for all classified service errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class ValidationError(ServiceError):
    kind = ErrorKind.VALIDATION
    default_message = "Invalid request"


class UnauthenticatedError(ServiceError):
    kind = ErrorKind.UNAUTHENTICATED
    default_message = "Unauthorized"


class ForbiddenError(ServiceError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Forbidden"


class NotFoundError(ServiceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class ConflictError(ServiceError):
    kind = ErrorKind.CONFLICT
    default_message = "Resource already exists"


class SignatureInvalidError(ServiceError):
    kind = ErrorKind.SIGNATURE_INVALID
    default_message = "Invalid signature"


class ConfigurationError(RuntimeError):
    """Raised when required secret material is missing at startup."""
