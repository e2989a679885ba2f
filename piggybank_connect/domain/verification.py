"""Verification lifecycle phase derived from a connected-account snapshot"""

from enum import Enum
from typing import FrozenSet, Optional

from piggybank_connect.domain.exceptions import NotEligibleError
from piggybank_connect.domain.models import ConnectedAccount


class VerificationState(str, Enum):
    NO_ACCOUNT = "NO_ACCOUNT"
    CREATED = "CREATED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# Phases a recorded account can be in, before or after a snapshot is read
ANY_ACCOUNT: FrozenSet[VerificationState] = frozenset(
    {
        VerificationState.CREATED,
        VerificationState.PENDING,
        VerificationState.APPROVED,
        VerificationState.REJECTED,
    }
)
APPROVED_ONLY: FrozenSet[VerificationState] = frozenset({VerificationState.APPROVED})
SUBMITTED: FrozenSet[VerificationState] = frozenset({VerificationState.PENDING, VerificationState.APPROVED})


def derive_state(account: Optional[ConnectedAccount]) -> VerificationState:
    """
    Pure transition function over a snapshot.

    REJECTED is reachable with zero outstanding requirements when details
    were never submitted; the upstream signal is binary and is not refined.
    """
    if account is None:
        return VerificationState.NO_ACCOUNT
    if account.charges_enabled and account.payouts_enabled:
        return VerificationState.APPROVED
    if account.details_submitted:
        return VerificationState.PENDING
    return VerificationState.REJECTED


def ensure_state(state: VerificationState, allowed: FrozenSet[VerificationState], operation: str) -> None:
    """Fail fast with NotEligible when `operation` is illegal in `state`"""
    if state in allowed:
        return
    if state == VerificationState.NO_ACCOUNT:
        raise NotEligibleError(
            "No connected account found. Create an account first.",
            code="account_missing",
            http_hint=404,
        )
    allowed_names = ", ".join(sorted(s.value for s in allowed))
    raise NotEligibleError(
        f"Account is {state.value}; {operation} requires {allowed_names}.",
        code="not_eligible",
    )
