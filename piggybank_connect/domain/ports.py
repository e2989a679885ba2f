"""Capabilities the core consumes: payment processor, document store, owner lease.

Managers receive these explicitly; nothing reaches for a global SDK client.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncContextManager, Dict, List, Optional, Protocol

from piggybank_connect.domain.models import (
    AccountRecord,
    Authorization,
    BankAccount,
    Balances,
    CardholderProfile,
    ConnectedAccount,
    IdempotencyRecord,
    Page,
    Payout,
    SandboxPayment,
    SpendingLimitInterval,
    TopUp,
    Transaction,
    VirtualCard,
)


class PaymentProcessorClient(Protocol):
    """Protocol for the upstream payment processor.

    Implementations raise UpstreamError for every failure, including
    timeouts, and never a DomainError.
    """

    async def create_account(self, profile: Dict[str, Any], owner_id: str, idempotency_key: Optional[str] = None) -> ConnectedAccount:
        ...

    async def retrieve_account(self, account_id: str) -> ConnectedAccount:
        ...

    async def update_account(self, account_id: str, patch: Dict[str, Any]) -> ConnectedAccount:
        ...

    async def request_capabilities(self, account_id: str, capabilities: List[str]) -> ConnectedAccount:
        ...

    async def accept_terms(self, account_id: str, ip: str, accepted_at: datetime) -> ConnectedAccount:
        ...

    async def create_account_link(self, account_id: str, return_url: str, refresh_url: str) -> str:
        ...

    async def retrieve_balances(self, account_id: str) -> Balances:
        ...

    async def create_issuing_topup(
        self, account_id: str, amount: int, currency: str, idempotency_key: Optional[str] = None
    ) -> TopUp:
        ...

    async def create_cardholder(self, account_id: str, profile: CardholderProfile) -> str:
        ...

    async def create_card(
        self,
        account_id: str,
        cardholder_id: str,
        spending_limit_amount: int,
        spending_limit_interval: SpendingLimitInterval,
        currency: str,
        idempotency_key: Optional[str] = None,
    ) -> VirtualCard:
        ...

    async def retrieve_card(self, account_id: str, card_id: str) -> VirtualCard:
        ...

    async def create_test_authorization(self, account_id: str, card_id: str, amount: int, currency: str) -> Authorization:
        ...

    async def list_transactions(self, account_id: str, limit: int, starting_after: Optional[str] = None) -> Page[Transaction]:
        ...

    async def list_payouts(self, account_id: str, limit: int, starting_after: Optional[str] = None) -> Page[Payout]:
        ...

    async def create_payout(
        self, account_id: str, amount: int, currency: str, idempotency_key: Optional[str] = None
    ) -> Payout:
        ...

    async def create_bank_account(self, account_id: str, fields: Dict[str, Any]) -> BankAccount:
        ...

    async def attach_test_verification(self, account_id: str, owner_id: str) -> ConnectedAccount:
        ...

    async def create_sandbox_payment(
        self, account_id: str, amount: int, currency: str, description: str, metadata: Dict[str, str]
    ) -> SandboxPayment:
        ...


class AccountRepository(Protocol):
    """Protocol for the document store holding per-user identifiers"""

    def get(self, owner_id: str) -> Optional[AccountRecord]:
        ...

    def get_by_processor_id(self, processor_account_id: str) -> Optional[AccountRecord]:
        ...

    def create(self, owner_id: str, processor_account_id: str) -> AccountRecord:
        ...

    def cache_status(self, owner_id: str, snapshot: ConnectedAccount, state: str) -> None:
        ...

    def set_cardholder(self, owner_id: str, cardholder_id: str) -> None:
        ...

    def set_virtual_card(self, owner_id: str, card_id: str) -> None:
        ...

    def set_terms_accepted(self, owner_id: str, accepted_at: datetime) -> None:
        ...

    def get_idempotency_record(self, owner_id: str, operation: str, key: str) -> Optional[IdempotencyRecord]:
        ...

    def claim_idempotency_key(
        self, owner_id: str, operation: str, key: str, request: Dict[str, Any]
    ) -> Optional[IdempotencyRecord]:
        ...

    def complete_idempotency_key(self, owner_id: str, operation: str, key: str, response: Dict[str, Any]) -> None:
        ...

    def commit(self) -> None:
        ...


class OwnerLease(Protocol):
    """Per-owner mutual exclusion for read-modify-write operations"""

    def hold(self, owner_id: str) -> AsyncContextManager[None]:
        ...
