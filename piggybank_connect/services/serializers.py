"""Domain objects to plain JSON-serializable response payloads"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from piggybank_connect.domain.models import (
    Authorization,
    BankAccount,
    ConnectedAccount,
    Money,
    Page,
    Payout,
    Requirements,
    Transaction,
    VirtualCard,
)

T = TypeVar("T")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def money(value: Money) -> Dict[str, Any]:
    return {"amount": value.amount, "currency": value.currency}


def money_list(values: List[Money]) -> List[Dict[str, Any]]:
    return [money(v) for v in values]


def requirements(value: Requirements) -> Dict[str, Any]:
    return {
        "pastDue": list(value.past_due),
        "currentlyDue": list(value.currently_due),
        "eventuallyDue": list(value.eventually_due),
        "pendingVerification": list(value.pending_verification),
        "disabledReason": value.disabled_reason,
    }


def bank_account(value: BankAccount) -> Dict[str, Any]:
    return {
        "id": value.id,
        "bankName": value.bank_name,
        "last4": value.last4,
        "routingNumber": value.routing_number,
        "currency": value.currency,
        "country": value.country,
        "defaultForCurrency": value.default_for_currency,
        "status": value.status,
    }


def account(value: ConnectedAccount, state: str) -> Dict[str, Any]:
    return {
        "processorAccountId": value.processor_account_id,
        "state": state,
        "capabilities": {name: cap.value for name, cap in value.capabilities.items()},
        "requirements": requirements(value.requirements),
        "chargesEnabled": value.charges_enabled,
        "payoutsEnabled": value.payouts_enabled,
        "detailsSubmitted": value.details_submitted,
        "externalAccounts": [bank_account(ea) for ea in value.external_accounts],
        "termsAcceptedAt": _iso(value.terms_accepted_at),
    }


def card(value: VirtualCard) -> Dict[str, Any]:
    return {
        "cardId": value.id,
        "last4": value.last4,
        "status": value.status,
        "brand": value.brand,
        "expMonth": value.exp_month,
        "expYear": value.exp_year,
        "spendingLimitAmount": value.spending_limit_amount,
        "spendingLimitInterval": value.spending_limit_interval.value,
    }


def transaction(value: Transaction) -> Dict[str, Any]:
    return {
        "id": value.id,
        "type": value.type,
        "amount": value.amount,
        "fee": value.fee,
        "net": value.net,
        "currency": value.currency,
        "status": value.status,
        "description": value.description,
        "createdAt": _iso(value.created_at),
        "availableOn": _iso(value.available_on),
    }


def payout(value: Payout) -> Dict[str, Any]:
    return {
        "id": value.id,
        "amount": value.amount,
        "currency": value.currency,
        "status": value.status.value,
        "createdAt": _iso(value.created_at),
        "arrivalDate": _iso(value.arrival_date),
        "destination": value.destination,
        "failureMessage": value.failure_message,
    }


def authorization(value: Authorization) -> Dict[str, Any]:
    return {
        "authorizationId": value.id,
        "amount": value.amount,
        "currency": value.currency,
        "approved": value.approved,
        "status": value.status,
    }


def page(value: Page[T], item: Callable[[T], Dict[str, Any]]) -> Dict[str, Any]:
    return {"data": [item(v) for v in value.data], "hasMore": value.has_more}
