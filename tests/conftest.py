"""Pytest fixtures for testing"""

import asyncio
import itertools
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional, Set, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from piggybank_connect.api.dependencies import (
    get_owner_lease,
    get_processor_client,
    get_settings,
)
from piggybank_connect.api.main import create_app
from piggybank_connect.config import Settings
from piggybank_connect.domain.exceptions import UpstreamError
from piggybank_connect.domain.models import (
    CARD_ISSUING,
    CARD_PAYMENTS,
    TRANSFERS,
    Authorization,
    BankAccount,
    Balances,
    CapabilityState,
    ConnectedAccount,
    Money,
    Page,
    PayableBalance,
    Payout,
    PayoutStatus,
    SandboxPayment,
    TopUp,
    Transaction,
    VirtualCard,
)
from piggybank_connect.infrastructure.database.models import Base
from piggybank_connect.infrastructure.database.repositories import SqlAccountRepository
from piggybank_connect.infrastructure.database.session import get_db
from piggybank_connect.infrastructure.leases import InMemoryOwnerLease
from piggybank_connect.services.balances import BalanceManager
from piggybank_connect.services.cards import CardManager
from piggybank_connect.services.onboarding import OnboardingManager
from piggybank_connect.services.payouts import PayoutManager
from piggybank_connect.services.profile import ProfileManager


class FakeProcessor:
    """
    In-memory payment processor.

    Balances are plain cents per account in one currency. Every call is
    appended to `calls` before any failure injected with `fail_next` is
    raised, so tests can assert exactly which endpoints were reached.
    """

    def __init__(self, currency: str = "usd"):
        self.currency = currency
        self.calls: List[str] = []
        self.accounts: Dict[str, ConnectedAccount] = {}
        self.payable: Dict[str, int] = {}
        self.pending: Dict[str, int] = {}
        self.issuing: Dict[str, int] = {}
        self.cards: Dict[str, VirtualCard] = {}
        self.payouts: Dict[str, List[Payout]] = {}
        self.transactions: Dict[str, List[Transaction]] = {}
        self.last_profile: Optional[Dict[str, Any]] = None
        self.last_cardholder = None
        self.failures: Dict[str, Tuple[int, UpstreamError]] = {}
        self.lost_responses: Set[str] = set()
        self.idempotent: Dict[Tuple[str, str], Any] = {}
        self.sandbox_payments: List[SandboxPayment] = []
        self._ids = itertools.count(1)

    # Test controls

    def fail_next(self, endpoint: str, error: UpstreamError, skip: int = 0) -> None:
        """Raise `error` from the call to `endpoint` after letting `skip` calls through"""
        self.failures[endpoint] = (skip, error)

    def lose_next_response(self, endpoint: str) -> None:
        """Let the next `endpoint` call take effect, then time out as if the reply was lost"""
        self.lost_responses.add(endpoint)

    def count(self, endpoint: Optional[str] = None) -> int:
        if endpoint is None:
            return len(self.calls)
        return self.calls.count(endpoint)

    def approve(self, account_id: str, issuing: bool = True) -> None:
        account = self.accounts[account_id]
        account.details_submitted = True
        account.charges_enabled = True
        account.payouts_enabled = True
        account.capabilities[CARD_PAYMENTS] = CapabilityState.ACTIVE
        account.capabilities[TRANSFERS] = CapabilityState.ACTIVE
        if issuing:
            account.capabilities[CARD_ISSUING] = CapabilityState.ACTIVE

    def submit(self, account_id: str) -> None:
        self.accounts[account_id].details_submitted = True

    def fund(self, account_id: str, available: int = 0, pending: int = 0, issuing: int = 0) -> None:
        self.payable[account_id] = self.payable.get(account_id, 0) + available
        self.pending[account_id] = self.pending.get(account_id, 0) + pending
        self.issuing[account_id] = self.issuing.get(account_id, 0) + issuing

    async def _call(self, endpoint: str) -> None:
        self.calls.append(endpoint)
        # yield like a network round-trip so concurrent callers interleave
        await asyncio.sleep(0)
        pending = self.failures.get(endpoint)
        if pending is None:
            return
        skip, error = pending
        if skip:
            self.failures[endpoint] = (skip - 1, error)
            return
        del self.failures[endpoint]
        raise error

    def _replayed(self, endpoint: str, idempotency_key: Optional[str]) -> Any:
        return self.idempotent.get((endpoint, idempotency_key)) if idempotency_key else None

    def _respond(self, endpoint: str, idempotency_key: Optional[str], result: Any) -> Any:
        if idempotency_key:
            self.idempotent[(endpoint, idempotency_key)] = result
        if endpoint in self.lost_responses:
            self.lost_responses.discard(endpoint)
            raise UpstreamError("Processor timeout", code="timeout", type="api_connection_error")
        return result

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def _account(self, account_id: str) -> ConnectedAccount:
        if account_id not in self.accounts:
            raise UpstreamError("No such account", code="resource_missing", type="invalid_request_error", status_code=404)
        return self.accounts[account_id]

    # PaymentProcessorClient

    async def create_account(self, profile, owner_id, idempotency_key=None):
        await self._call("accounts.create")
        cached = self._replayed("accounts.create", idempotency_key)
        if cached is not None:
            return replace(cached)
        self.last_profile = dict(profile)
        account_id = self._next_id("acct")
        self.accounts[account_id] = ConnectedAccount(
            processor_account_id=account_id,
            owner_id=owner_id,
            capabilities={CARD_PAYMENTS: CapabilityState.PENDING, TRANSFERS: CapabilityState.PENDING},
            created_at=datetime.now(timezone.utc),
            individual={"first_name": profile.get("first_name"), "last_name": profile.get("last_name")},
        )
        self.fund(account_id)
        return replace(self._respond("accounts.create", idempotency_key, self.accounts[account_id]))

    async def retrieve_account(self, account_id):
        await self._call("accounts.retrieve")
        return replace(self._account(account_id))

    async def update_account(self, account_id, patch):
        await self._call("accounts.update")
        account = self._account(account_id)
        individual = dict(account.individual or {})
        individual.update(patch.get("individual") or {})
        account.individual = individual
        owner_id = (patch.get("metadata") or {}).get("owner_id")
        if owner_id:
            account.owner_id = owner_id
        return replace(account)

    async def request_capabilities(self, account_id, capabilities):
        await self._call("accounts.update")
        account = self._account(account_id)
        for name in capabilities:
            if account.capability(name) == CapabilityState.INACTIVE:
                account.capabilities[name] = CapabilityState.PENDING
        return replace(account)

    async def accept_terms(self, account_id, ip, accepted_at):
        await self._call("accounts.update")
        account = self._account(account_id)
        account.terms_accepted_at = accepted_at
        return replace(account)

    async def create_account_link(self, account_id, return_url, refresh_url):
        await self._call("account_links.create")
        return f"https://connect.example.test/setup/{account_id}?return={return_url}"

    async def retrieve_balances(self, account_id):
        await self._call("balance.retrieve")
        return Balances(
            payable=PayableBalance(
                available=[Money(self.payable.get(account_id, 0), self.currency)],
                pending=[Money(self.pending.get(account_id, 0), self.currency)],
            ),
            issuing_available=Money(self.issuing.get(account_id, 0), self.currency),
        )

    async def create_issuing_topup(self, account_id, amount, currency, idempotency_key=None):
        await self._call("balance_transfers.create")
        cached = self._replayed("balance_transfers.create", idempotency_key)
        if cached is not None:
            return cached
        if self.payable.get(account_id, 0) < amount:
            raise UpstreamError("Insufficient funds", code="balance_insufficient", type="invalid_request_error")
        self.payable[account_id] -= amount
        self.issuing[account_id] = self.issuing.get(account_id, 0) + amount
        topup = TopUp(id=self._next_id("tu"), amount=amount, currency=currency, status="succeeded")
        return self._respond("balance_transfers.create", idempotency_key, topup)

    async def create_cardholder(self, account_id, profile):
        await self._call("issuing.cardholders.create")
        self.last_cardholder = profile
        return self._next_id("ich")

    async def create_card(self, account_id, cardholder_id, spending_limit_amount, spending_limit_interval, currency, idempotency_key=None):
        await self._call("issuing.cards.create")
        cached = self._replayed("issuing.cards.create", idempotency_key)
        if cached is not None:
            return cached
        card = VirtualCard(
            id=self._next_id("ic"),
            last4="4242",
            spending_limit_amount=spending_limit_amount,
            spending_limit_interval=spending_limit_interval,
            brand="Visa",
            exp_month=12,
            exp_year=2030,
        )
        self.cards[card.id] = card
        return self._respond("issuing.cards.create", idempotency_key, card)

    async def retrieve_card(self, account_id, card_id):
        await self._call("issuing.cards.retrieve")
        if card_id not in self.cards:
            raise UpstreamError("No such card", code="resource_missing", type="invalid_request_error", status_code=404)
        return self.cards[card_id]

    async def create_test_authorization(self, account_id, card_id, amount, currency):
        await self._call("test_helpers.authorizations.create")
        approved = self.issuing.get(account_id, 0) >= amount
        if approved:
            self.issuing[account_id] -= amount
        return Authorization(
            id=self._next_id("iauth"),
            amount=amount,
            currency=currency,
            approved=approved,
            status="pending" if approved else "closed",
        )

    @staticmethod
    def _page(items, limit, starting_after):
        start = 0
        if starting_after:
            ids = [item.id for item in items]
            start = ids.index(starting_after) + 1 if starting_after in ids else len(items)
        window = items[start:start + limit]
        return Page(data=window, has_more=start + limit < len(items))

    async def list_transactions(self, account_id, limit, starting_after=None):
        await self._call("balance_transactions.list")
        return self._page(self.transactions.get(account_id, []), limit, starting_after)

    async def list_payouts(self, account_id, limit, starting_after=None):
        await self._call("payouts.list")
        return self._page(self.payouts.get(account_id, []), limit, starting_after)

    async def create_payout(self, account_id, amount, currency, idempotency_key=None):
        await self._call("payouts.create")
        cached = self._replayed("payouts.create", idempotency_key)
        if cached is not None:
            return cached
        if self.payable.get(account_id, 0) < amount:
            raise UpstreamError("Insufficient funds", code="balance_insufficient", type="invalid_request_error")
        self.payable[account_id] -= amount
        account = self._account(account_id)
        payout = Payout(
            id=self._next_id("po"),
            amount=amount,
            currency=currency,
            status=PayoutStatus.PENDING,
            created_at=datetime.now(timezone.utc),
            destination=account.external_accounts[0].id if account.external_accounts else "",
        )
        self.payouts.setdefault(account_id, []).insert(0, payout)
        return self._respond("payouts.create", idempotency_key, payout)

    async def create_bank_account(self, account_id, fields):
        await self._call("external_accounts.create")
        account = self._account(account_id)
        bank = BankAccount(
            id=self._next_id("ba"),
            bank_name="STRIPE TEST BANK",
            last4=fields["account_number"][-4:],
            routing_number=fields["routing_number"],
            default_for_currency=not account.external_accounts,
        )
        account.external_accounts.append(bank)
        return bank

    async def attach_test_verification(self, account_id, owner_id):
        await self._call("tokens.create")
        await self._call("accounts.update")
        account = self._account(account_id)
        account.owner_id = owner_id
        self.approve(account_id)
        return replace(account)

    async def create_sandbox_payment(self, account_id, amount, currency, description, metadata):
        await self._call("payment_intents.create")
        self._account(account_id)
        self.fund(account_id, available=amount)
        payment = SandboxPayment(id=self._next_id("pi"), amount=amount, status="succeeded", transfer_id=self._next_id("tr"))
        self.sandbox_payments.append(payment)
        return payment


# Test database
@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database and session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def config() -> Settings:
    return Settings(
        processor_secret_key="sk_test_fake",
        processor_webhook_secret="whsec_test",
        public_base_url="https://app.example.test",
    )


@pytest.fixture
def live_config(config: Settings) -> Settings:
    return config.model_copy(update={"processor_secret_key": "sk_live_fake"})


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def repository(db: Session) -> SqlAccountRepository:
    return SqlAccountRepository(db)


@pytest.fixture
def lease() -> InMemoryOwnerLease:
    return InMemoryOwnerLease(wait_seconds=0.2)


@pytest.fixture
def onboarding(processor, repository, lease, config) -> OnboardingManager:
    return OnboardingManager(processor, repository, lease, config)


@pytest.fixture
def balances(processor, repository, lease, config) -> BalanceManager:
    return BalanceManager(processor, repository, lease, config)


@pytest.fixture
def cards(processor, repository, lease, config) -> CardManager:
    return CardManager(processor, repository, lease, config)


@pytest.fixture
def payouts(processor, repository, lease, config) -> PayoutManager:
    return PayoutManager(processor, repository, lease, config)


@pytest.fixture
def profiles(processor, repository, lease, config) -> ProfileManager:
    return ProfileManager(processor, repository, lease, config)


@pytest.fixture
def account_profile() -> Dict[str, Any]:
    """Onboarding profile as submitted by the app"""
    return {
        "first_name": "Avery",
        "last_name": "Quinn",
        "email": "avery@example.com",
        "phone": "5105551234",
        "dob": "04/15/1990",
        "address": "1 Market St",
        "city": "San Francisco",
        "state": "CA",
        "zip_code": "94105-1234",
        "country": "US",
        "ssn_last4": "0000",
    }


@pytest.fixture
def cardholder_data() -> Dict[str, Any]:
    return {
        "name": "Avery Jordan Quinn",
        "email": "avery@example.com",
        "phone": "",
        "address": {
            "line1": "1 Market St",
            "city": "San Francisco",
            "state": "CA",
            "postal_code": "94105",
        },
        "dob": {"day": 15, "month": 4, "year": 1990},
    }


@pytest.fixture
def open_account(onboarding, processor, account_profile):
    """Factory: create an owner's account and move it to the requested phase"""

    async def _open(owner_id: str = "owner_1", approve: bool = True, submit: bool = False, issuing: bool = True) -> str:
        result = await onboarding.create_account(owner_id, account_profile)
        account_id = result["processorAccountId"]
        if approve:
            processor.approve(account_id, issuing=issuing)
        elif submit:
            processor.submit(account_id)
        return account_id

    return _open


@pytest.fixture
def client(db: Session, processor: FakeProcessor, lease: InMemoryOwnerLease, config: Settings) -> TestClient:
    """Create FastAPI test client with test database and fake processor"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_processor_client] = lambda: processor
    app.dependency_overrides[get_owner_lease] = lambda: lease
    app.dependency_overrides[get_settings] = lambda: config
    return TestClient(app)
