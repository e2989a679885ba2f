"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from piggybank_connect.config import Settings, settings
from piggybank_connect.domain.exceptions import ForbiddenError
from piggybank_connect.domain.ports import AccountRepository, OwnerLease, PaymentProcessorClient
from piggybank_connect.infrastructure.clients.processor import HttpProcessorClient
from piggybank_connect.infrastructure.database.repositories import SqlAccountRepository
from piggybank_connect.infrastructure.database.session import SessionLocal, get_db
from piggybank_connect.infrastructure.leases import DatabaseOwnerLease
from piggybank_connect.services.balances import BalanceManager
from piggybank_connect.services.cards import CardManager
from piggybank_connect.services.onboarding import OnboardingManager
from piggybank_connect.services.payouts import PayoutManager
from piggybank_connect.services.profile import ProfileManager
from piggybank_connect.services.sandbox import SandboxManager
from piggybank_connect.services.webhooks import WebhookHandler


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_owner_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Caller identity, as resolved by the authenticating ingress"""
    if not x_user_id or not x_user_id.strip():
        raise ForbiddenError("Authentication required.", code="unauthenticated", http_hint=401)
    return x_user_id.strip()


def get_idempotency_key(idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")) -> Optional[str]:
    return idempotency_key or None


def get_settings() -> Settings:
    return settings


def get_processor_client() -> PaymentProcessorClient:
    """Provide payment processor API client instance"""
    return HttpProcessorClient()


def get_owner_lease() -> OwnerLease:
    return DatabaseOwnerLease(SessionLocal)


def get_repository(db: Session = Depends(get_db)) -> AccountRepository:
    return SqlAccountRepository(db)


def _manager_dependency(manager_class):
    def provide(
        processor: PaymentProcessorClient = Depends(get_processor_client),
        repository: AccountRepository = Depends(get_repository),
        lease: OwnerLease = Depends(get_owner_lease),
        config: Settings = Depends(get_settings),
    ):
        return manager_class(processor, repository, lease, config)

    provide.__name__ = f"get_{manager_class.__name__}"
    return provide


get_onboarding_manager = _manager_dependency(OnboardingManager)
get_balance_manager = _manager_dependency(BalanceManager)
get_card_manager = _manager_dependency(CardManager)
get_payout_manager = _manager_dependency(PayoutManager)
get_profile_manager = _manager_dependency(ProfileManager)
get_sandbox_manager = _manager_dependency(SandboxManager)


def get_webhook_handler(
    processor: PaymentProcessorClient = Depends(get_processor_client),
    repository: AccountRepository = Depends(get_repository),
) -> WebhookHandler:
    return WebhookHandler(processor, repository)
