"""Domain-specific exceptions

Every failure that leaves the core is a DomainError: a closed set of kinds,
each carrying a stable code, an HTTP status hint and a caller-safe message.
Raw processor failures are represented by UpstreamError and never leave the
service layer untranslated.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    FORBIDDEN = "Forbidden"
    INVALID_INPUT = "InvalidInput"
    CAPABILITY_NOT_ENABLED = "CapabilityNotEnabled"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    RESOURCE_CONFLICT = "ResourceConflict"
    UPSTREAM_LINK_INVALID = "UpstreamLinkInvalid"
    UPSTREAM_TRANSIENT = "UpstreamTransient"
    NOT_ELIGIBLE = "NotEligible"
    UNKNOWN = "Unknown"


class DomainError(Exception):
    """Base exception for domain layer"""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_code = "error"
    default_http_hint = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        param: Optional[str] = None,
        http_hint: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.param = param
        self.http_hint = http_hint or self.default_http_hint

    def to_response(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.code:
            payload["code"] = self.code
        if self.param:
            payload["param"] = self.param
        return payload


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND
    default_code = "resource_missing"
    default_http_hint = 404


class ForbiddenError(DomainError):
    kind = ErrorKind.FORBIDDEN
    default_code = "forbidden"
    default_http_hint = 403


class InvalidInputError(DomainError):
    kind = ErrorKind.INVALID_INPUT
    default_code = "invalid_input"
    default_http_hint = 400


class CapabilityNotEnabledError(DomainError):
    kind = ErrorKind.CAPABILITY_NOT_ENABLED
    default_code = "capability_not_enabled"
    default_http_hint = 400


class InsufficientFundsError(DomainError):
    kind = ErrorKind.INSUFFICIENT_FUNDS
    default_code = "insufficient_funds"
    default_http_hint = 400


class ResourceConflictError(DomainError):
    kind = ErrorKind.RESOURCE_CONFLICT
    default_code = "resource_conflict"
    default_http_hint = 409


class UpstreamLinkInvalidError(DomainError):
    kind = ErrorKind.UPSTREAM_LINK_INVALID
    default_code = "link_expired"
    default_http_hint = 400


class UpstreamTransientError(DomainError):
    kind = ErrorKind.UPSTREAM_TRANSIENT
    default_code = "upstream_unavailable"
    default_http_hint = 503


class NotEligibleError(DomainError):
    """Operation is not legal in the account's current verification phase"""

    kind = ErrorKind.NOT_ELIGIBLE
    default_code = "not_eligible"
    default_http_hint = 403


class UnknownError(DomainError):
    kind = ErrorKind.UNKNOWN
    default_code = "internal_error"
    default_http_hint = 500


class UpstreamError(Exception):
    """Raw failure reported by the payment processor (or the network path to it)"""

    def __init__(
        self,
        message: str = "",
        code: Optional[str] = None,
        type: Optional[str] = None,
        param: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.type = type
        self.param = param
        self.status_code = status_code

    def details(self) -> Dict[str, Any]:
        return {
            "upstream_code": self.code,
            "upstream_type": self.type,
            "upstream_param": self.param,
            "upstream_status": self.status_code,
            "upstream_message": self.message,
        }
