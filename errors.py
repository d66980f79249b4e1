"""
Error taxonomy shared by every upstream client and the HTTP layer.

Each failure carries a closed ``ErrorKind`` plus a stable machine-readable
``code`` so the browser client can branch on it without parsing messages.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    AUTH_EXPIRED = "auth_expired"
    VALIDATION = "validation"


class ServiceError(Exception):
    """Base class for expected failures surfaced to API callers."""

    kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE
    default_code = "INTERNAL_ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str, code: Optional[str] = None, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if retryable is not None:
            self.retryable = retryable

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "kind": self.kind.value}

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} code={self.code} message={self.message!r}>"


class NotConfigured(ServiceError):
    """A required credential or base URL is missing. Never touches the network."""

    kind = ErrorKind.NOT_CONFIGURED
    default_code = "NOT_CONFIGURED"
    http_status = 503


class UpstreamUnavailable(ServiceError):
    """Transport failure, timeout, non-2xx or an error payload from a provider."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    default_code = "UPSTREAM_ERROR"
    http_status = 500
    retryable = True


class AuthExpired(ServiceError):
    """The upstream rejected our credentials even after a fresh login."""

    kind = ErrorKind.AUTH_EXPIRED
    default_code = "AUTH_EXPIRED"
    http_status = 500


class ValidationError(ServiceError):
    kind = ErrorKind.VALIDATION
    default_code = "VALIDATION_ERROR"
    http_status = 400
