"""Unit tests for the payment processor HTTP client"""

from urllib.parse import parse_qs

import httpx
import pytest

from piggybank_connect.domain.exceptions import UpstreamError
from piggybank_connect.domain.models import CARD_ISSUING, CapabilityState, PayoutStatus, SpendingLimitInterval
from piggybank_connect.infrastructure.clients.processor import HttpProcessorClient, encode_form

ACCOUNT = {
    "id": "acct_123",
    "object": "account",
    "charges_enabled": True,
    "payouts_enabled": False,
    "details_submitted": True,
    "capabilities": {"card_issuing": "pending", "transfers": "active"},
    "requirements": {"currently_due": ["individual.verification.document"], "disabled_reason": None},
    "external_accounts": {"data": [{"id": "ba_1", "bank_name": "TEST BANK", "last4": "6789"}]},
    "metadata": {"owner_id": "owner_1"},
    "created": 1700000000,
}


def _client(handler) -> HttpProcessorClient:
    return HttpProcessorClient(
        base_url="https://processor.test",
        secret_key="sk_test_abc",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def test_encode_form_flattens_nested_params():
    pairs = encode_form(
        {
            "amount": 500,
            "capabilities": {"transfers": {"requested": True}},
            "spending_limits": [{"amount": 100, "interval": "daily"}],
            "skip": None,
        }
    )

    assert pairs == [
        ("amount", "500"),
        ("capabilities[transfers][requested]", "true"),
        ("spending_limits[0][amount]", "100"),
        ("spending_limits[0][interval]", "daily"),
    ]


async def test_retrieve_account_parses_snapshot():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        return httpx.Response(200, json=ACCOUNT)

    account = await _client(handler).retrieve_account("acct_123")

    assert seen == {"auth": "Bearer sk_test_abc", "path": "/v1/accounts/acct_123"}
    assert account.processor_account_id == "acct_123"
    assert account.owner_id == "owner_1"
    assert account.capability(CARD_ISSUING) == CapabilityState.PENDING
    assert account.requirements.currently_due == ["individual.verification.document"]
    assert account.external_accounts[0].last4 == "6789"


async def test_topup_sends_account_and_idempotency_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["account"] = request.headers.get("Stripe-Account")
        seen["key"] = request.headers.get("Idempotency-Key")
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "bt_1", "amount": 2500, "currency": "usd", "status": "succeeded"})

    topup = await _client(handler).create_issuing_topup("acct_123", 2500, "usd", idempotency_key="k-1")

    assert seen["account"] == "acct_123"
    assert seen["key"] == "k-1"
    assert seen["form"]["destination_balance[type]"] == ["issuing"]
    assert topup.amount == 2500


async def test_balances_keep_ledgers_separate():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "available": [{"amount": 2000, "currency": "usd"}],
                "pending": [{"amount": 5000, "currency": "usd"}],
                "issuing": {"available": [{"amount": 300, "currency": "usd"}]},
            },
        )

    balances = await _client(handler).retrieve_balances("acct_123")

    assert balances.payable.available_in("usd") == 2000
    assert balances.payable.pending[0].amount == 5000
    assert balances.issuing_available.amount == 300


async def test_card_and_payout_parsing():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/v1/issuing/cards"):
            return httpx.Response(
                200,
                json={
                    "id": "ic_1",
                    "last4": "4242",
                    "status": "active",
                    "spending_controls": {"spending_limits": [{"amount": 50000, "interval": "per_authorization"}]},
                },
            )
        return httpx.Response(
            200,
            json={"data": [{"id": "po_1", "amount": 5000, "currency": "usd", "status": "pending", "created": 1700000000}], "has_more": True},
        )

    client = _client(handler)
    card = await client.retrieve_card("acct_123", "ic_1")
    page = await client.list_payouts("acct_123", limit=1)

    assert card.spending_limit_interval == SpendingLimitInterval.PER_AUTHORIZATION
    assert page.has_more is True
    assert page.data[0].status == PayoutStatus.PENDING


async def test_error_body_becomes_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"error": {"type": "invalid_request_error", "code": "postal_code_invalid", "param": "individual[address][postal_code]", "message": "bad"}},
        )

    with pytest.raises(UpstreamError) as exc_info:
        await _client(handler).update_account("acct_123", {"individual": {"email": "x@example.com"}})

    assert exc_info.value.code == "postal_code_invalid"
    assert exc_info.value.param == "individual[address][postal_code]"
    assert exc_info.value.status_code == 400


async def test_timeout_becomes_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(UpstreamError) as exc_info:
        await _client(handler).retrieve_balances("acct_123")

    assert exc_info.value.type == "api_connection_error"
    assert exc_info.value.code == "timeout"


async def test_malformed_body_is_invalid_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"object": "account"})

    with pytest.raises(UpstreamError) as exc_info:
        await _client(handler).retrieve_account("acct_123")

    assert exc_info.value.type == "invalid_response"


async def test_attach_test_verification_tokenizes_then_updates():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        seen.append((request.url.path, form))
        if request.url.path == "/v1/tokens":
            return httpx.Response(200, json={"id": "ct_1"})
        return httpx.Response(200, json=ACCOUNT)

    account = await _client(handler).attach_test_verification("acct_123", "owner_1")

    assert [path for path, _ in seen] == ["/v1/tokens", "/v1/accounts/acct_123"]
    assert seen[0][1]["account[individual][id_number]"] == ["000000000"]
    assert seen[1][1]["account_token"] == ["ct_1"]
    assert seen[1][1]["metadata[owner_id]"] == ["owner_1"]
    assert account.processor_account_id == "acct_123"


async def test_sandbox_payment_routes_funds_to_account():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["account"] = request.headers.get("Stripe-Account")
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(
            200, json={"id": "pi_1", "amount": 5000, "status": "succeeded", "transfer": {"id": "tr_1"}}
        )

    payment = await _client(handler).create_sandbox_payment(
        "acct_123", 5000, "usd", "Test balance addition", {"test_balance": "true"}
    )

    assert seen["account"] is None
    assert seen["form"]["transfer_data[destination]"] == ["acct_123"]
    assert seen["form"]["confirm"] == ["true"]
    assert payment.transfer_id == "tr_1"
