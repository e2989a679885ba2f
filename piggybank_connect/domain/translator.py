"""Translation of raw processor failures into the closed DomainError taxonomy"""

import logging
import re
from contextlib import contextmanager
from typing import Iterator

from piggybank_connect.domain.exceptions import (
    CapabilityNotEnabledError,
    DomainError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidInputError,
    NotFoundError,
    ResourceConflictError,
    UnknownError,
    UpstreamError,
    UpstreamLinkInvalidError,
    UpstreamTransientError,
)

logger = logging.getLogger(__name__)

CAPABILITY_MESSAGE = (
    "Card issuing is not enabled for this account. "
    "Complete Issuing onboarding with the payment processor first."
)
ZIP_MESSAGE = (
    "The ZIP code doesn't match a valid US address. "
    "Please check that your ZIP code matches your state."
)
INSUFFICIENT_FUNDS_MESSAGE = "Insufficient balance for this operation."
GENERIC_MESSAGE = "Internal server error"

_PLATFORM_NOT_ONBOARDED = re.compile(
    r"platform has been onboarded|card_issuing can only be requested", re.IGNORECASE
)

_TRANSIENT_TYPES = {"api_connection_error", "rate_limit_error", "api_error"}
_TRANSIENT_CODES = {"lock_timeout", "rate_limit", "timeout"}
_INSUFFICIENT_CODES = {"insufficient_funds", "balance_insufficient"}
_LINK_CODES = {"link_expired", "account_link_expired", "url_invalid"}


def translate(error: UpstreamError) -> DomainError:
    """
    Map a raw processor error to a DomainError.

    Only capability, insufficient-funds and ZIP messages are caller-facing;
    everything else gets a message generated here, never the upstream text.
    Unrecognized shapes become Unknown and are logged with full detail.
    """
    code = error.code or ""
    param = error.param or ""

    if code == "capability_not_enabled" or (
        error.type == "invalid_request_error" and _PLATFORM_NOT_ONBOARDED.search(error.message or "")
    ):
        return CapabilityNotEnabledError(CAPABILITY_MESSAGE, code="capability_not_enabled")

    if code == "postal_code_invalid" or "postal_code" in param:
        return InvalidInputError(ZIP_MESSAGE, code="postal_code_invalid", param="zipCode")

    if code in _INSUFFICIENT_CODES:
        return InsufficientFundsError(INSUFFICIENT_FUNDS_MESSAGE, code=code)

    if code == "card_exists":
        return ResourceConflictError("You already have a virtual card.", code="card_exists")

    if code == "idempotency_key_in_use" or error.type == "idempotency_error":
        return ResourceConflictError("A request with this idempotency key is already in progress.", code=code or "idempotency_error")

    if code == "resource_missing" or error.status_code == 404:
        return NotFoundError("Requested resource not found.", code="resource_missing")

    if code in _LINK_CODES:
        return UpstreamLinkInvalidError("Link expired or invalid. Request a new onboarding link.", code=code)

    if error.type in _TRANSIENT_TYPES or code in _TRANSIENT_CODES or error.status_code == 429 or (
        error.status_code is not None and error.status_code >= 500
    ):
        return UpstreamTransientError("Payment processor temporarily unavailable. Please retry.")

    if error.type == "permission_error" or error.status_code == 403:
        return ForbiddenError("Not permitted to access this account.")

    if error.type in {"invalid_request_error", "card_error"} and param:
        return InvalidInputError(f"Invalid value for {param}.", code=code or "parameter_invalid", param=param)

    logger.error("Unrecognized processor error", extra=error.details())
    return UnknownError(GENERIC_MESSAGE)


@contextmanager
def translating(operation: str) -> Iterator[None]:
    """Route any UpstreamError raised inside the block through translate()"""
    try:
        yield
    except UpstreamError as e:
        domain_error = translate(e)
        logger.warning(
            "Processor call failed",
            extra={"operation": operation, "kind": domain_error.kind.value, "code": domain_error.code},
        )
        raise domain_error from e
