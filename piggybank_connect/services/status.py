"""Read-through projection of the processor's account state"""

import logging
from typing import Optional, Tuple

from piggybank_connect.domain.exceptions import NotFoundError
from piggybank_connect.domain.models import AccountRecord, ConnectedAccount
from piggybank_connect.domain.ports import AccountRepository, PaymentProcessorClient
from piggybank_connect.domain.translator import translating
from piggybank_connect.domain.verification import VerificationState, derive_state

logger = logging.getLogger(__name__)


class AccountStatusCache:
    """
    Status reads always go to the processor.

    Verification changes asynchronously upstream, so gating decisions are
    never made from the stored projection; it is written after every read
    for dashboards and webhook reconciliation only.
    """

    def __init__(self, processor: PaymentProcessorClient, repository: AccountRepository):
        self.processor = processor
        self.repository = repository

    async def refresh(self, record: AccountRecord) -> Tuple[ConnectedAccount, VerificationState]:
        with translating("accounts.retrieve"):
            snapshot = await self.processor.retrieve_account(record.processor_account_id)
        return snapshot, self.remember(record.owner_id, snapshot)

    def remember(self, owner_id: str, snapshot: ConnectedAccount) -> VerificationState:
        """Store a snapshot obtained from any processor response"""
        state = derive_state(snapshot)
        self.repository.cache_status(owner_id, snapshot, state.value)
        return state

    async def get_status(self, owner_id: str) -> ConnectedAccount:
        record = self.repository.get(owner_id)
        if record is None:
            raise NotFoundError("No connected account found.", code="account_missing")
        snapshot, _ = await self.refresh(record)
        self.repository.commit()
        return snapshot

    async def find(self, owner_id: str) -> Tuple[Optional[ConnectedAccount], VerificationState]:
        """Snapshot and phase, or (None, NO_ACCOUNT) when nothing is recorded"""
        record = self.repository.get(owner_id)
        if record is None:
            return None, VerificationState.NO_ACCOUNT
        snapshot, state = await self.refresh(record)
        self.repository.commit()
        return snapshot, state
