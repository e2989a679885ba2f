"""Shared plumbing for the account managers"""

from typing import Any, Dict, FrozenSet, Optional, Tuple

from piggybank_connect.config import Settings, settings
from piggybank_connect.domain.exceptions import NotEligibleError, ResourceConflictError
from piggybank_connect.domain.models import AccountRecord, ConnectedAccount, IdempotencyRecord
from piggybank_connect.domain.ports import AccountRepository, OwnerLease, PaymentProcessorClient
from piggybank_connect.domain.verification import (
    ANY_ACCOUNT,
    VerificationState,
    ensure_state,
)
from piggybank_connect.services.status import AccountStatusCache

IN_FLIGHT_MESSAGE = "A request with this idempotency key is already in progress. Please retry."


class Manager:
    """Holds the injected processor, document store and lease"""

    def __init__(
        self,
        processor: PaymentProcessorClient,
        repository: AccountRepository,
        lease: OwnerLease,
        config: Settings = settings,
    ):
        self.processor = processor
        self.repository = repository
        self.lease = lease
        self.config = config
        self.status = AccountStatusCache(processor, repository)

    def _record(self, owner_id: str, operation: str) -> AccountRecord:
        """Locally recorded account, or NotEligible without touching the processor"""
        record = self.repository.get(owner_id)
        if record is None:
            ensure_state(VerificationState.NO_ACCOUNT, ANY_ACCOUNT, operation)
        return record

    async def _gate(
        self, record: AccountRecord, allowed: FrozenSet[VerificationState], operation: str
    ) -> Tuple[ConnectedAccount, VerificationState]:
        """Fresh snapshot, then fail fast if the phase does not permit `operation`"""
        snapshot, state = await self.status.refresh(record)
        ensure_state(state, allowed, operation)
        return snapshot, state

    def _require_test_mode(self) -> None:
        if not self.config.test_mode:
            raise NotEligibleError("This operation is only available in test mode.", code="test_mode_only")

    def _keyed(self, owner_id: str, operation: str, idempotency_key: Optional[str]) -> Optional[IdempotencyRecord]:
        if not idempotency_key:
            return None
        return self.repository.get_idempotency_record(owner_id, operation, idempotency_key)

    def _replay(self, owner_id: str, operation: str, idempotency_key: Optional[str]) -> Optional[Dict[str, Any]]:
        """Recorded response of a completed request with this key"""
        keyed = self._keyed(owner_id, operation, idempotency_key)
        return keyed.response if keyed else None

    def _claim(self, owner_id: str, operation: str, idempotency_key: Optional[str], request: Dict[str, Any]) -> None:
        """Record the resolved request under its key before the processor acts on it"""
        if not idempotency_key:
            return
        holder = self.repository.claim_idempotency_key(owner_id, operation, idempotency_key, request)
        if holder is not None:
            raise ResourceConflictError(IN_FLIGHT_MESSAGE, code="operation_in_progress")

    def _complete(
        self, owner_id: str, operation: str, idempotency_key: Optional[str], response: Dict[str, Any]
    ) -> None:
        if idempotency_key:
            self.repository.complete_idempotency_key(owner_id, operation, idempotency_key, response)
