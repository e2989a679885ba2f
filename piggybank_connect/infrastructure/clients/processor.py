"""Payment processor HTTP client (Connect accounts, Issuing, payouts)"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import httpx

from piggybank_connect.config import settings
from piggybank_connect.domain.exceptions import UpstreamError
from piggybank_connect.domain.models import (
    Authorization,
    BankAccount,
    Balances,
    CapabilityState,
    CardholderProfile,
    ConnectedAccount,
    Money,
    Page,
    PayableBalance,
    Payout,
    PayoutStatus,
    Requirements,
    SandboxPayment,
    SpendingLimitInterval,
    TopUp,
    Transaction,
    VirtualCard,
)
from piggybank_connect.infrastructure.observability.metrics import (
    processor_failure_counter,
    processor_latency_histogram,
)

T = TypeVar("T")


def encode_form(params: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested params into the processor's bracketed form encoding"""
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else key
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for i, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, f"{name}[{i}]"))
                else:
                    pairs.append((f"{name}[{i}]", str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _capability(value: Any) -> CapabilityState:
    try:
        return CapabilityState(value)
    except ValueError:
        return CapabilityState.INACTIVE


def parse_account(data: Dict[str, Any]) -> ConnectedAccount:
    req = data.get("requirements") or {}
    tos = data.get("tos_acceptance") or {}
    return ConnectedAccount(
        processor_account_id=data["id"],
        owner_id=(data.get("metadata") or {}).get("owner_id"),
        capabilities={name: _capability(value) for name, value in (data.get("capabilities") or {}).items()},
        requirements=Requirements(
            past_due=req.get("past_due") or [],
            currently_due=req.get("currently_due") or [],
            eventually_due=req.get("eventually_due") or [],
            pending_verification=req.get("pending_verification") or [],
            disabled_reason=req.get("disabled_reason"),
        ),
        charges_enabled=bool(data.get("charges_enabled")),
        payouts_enabled=bool(data.get("payouts_enabled")),
        details_submitted=bool(data.get("details_submitted")),
        external_accounts=[
            parse_bank_account(ea) for ea in (data.get("external_accounts") or {}).get("data", [])
        ],
        terms_accepted_at=_timestamp(tos.get("date")),
        country=data.get("country") or "US",
        default_currency=data.get("default_currency") or settings.default_currency,
        individual=data.get("individual"),
        created_at=_timestamp(data.get("created")),
    )


def parse_bank_account(data: Dict[str, Any]) -> BankAccount:
    return BankAccount(
        id=data["id"],
        bank_name=data.get("bank_name") or "",
        last4=data.get("last4") or "",
        routing_number=data.get("routing_number") or "",
        currency=data.get("currency") or "usd",
        country=data.get("country") or "US",
        default_for_currency=bool(data.get("default_for_currency")),
        status=data.get("status") or "new",
    )


def _money_list(items: Optional[List[Dict[str, Any]]]) -> List[Money]:
    return [Money(amount=item["amount"], currency=item["currency"]) for item in items or []]


def parse_card(data: Dict[str, Any]) -> VirtualCard:
    limits = ((data.get("spending_controls") or {}).get("spending_limits")) or [{}]
    limit = limits[0]
    return VirtualCard(
        id=data["id"],
        last4=data.get("last4") or "",
        spending_limit_amount=limit.get("amount", settings.max_spending_limit_cents),
        spending_limit_interval=SpendingLimitInterval(limit.get("interval", "per_authorization")),
        status=data.get("status") or "active",
        brand=data.get("brand"),
        exp_month=data.get("exp_month"),
        exp_year=data.get("exp_year"),
    )


def parse_payout(data: Dict[str, Any]) -> Payout:
    destination = data.get("destination")
    if isinstance(destination, dict):
        destination = destination.get("id", "")
    return Payout(
        id=data["id"],
        amount=data["amount"],
        currency=data["currency"],
        status=PayoutStatus(data["status"]),
        created_at=_timestamp(data["created"]),
        arrival_date=_timestamp(data.get("arrival_date")),
        destination=destination or "",
        failure_message=data.get("failure_message"),
    )


def parse_transaction(data: Dict[str, Any]) -> Transaction:
    return Transaction(
        id=data["id"],
        type=data["type"],
        amount=data["amount"],
        fee=data.get("fee", 0),
        net=data.get("net", data["amount"]),
        status=data["status"],
        currency=data["currency"],
        created_at=_timestamp(data["created"]),
        available_on=_timestamp(data.get("available_on")),
        description=data.get("description"),
    )


def parse_topup(data: Dict[str, Any]) -> TopUp:
    return TopUp(id=data["id"], amount=data["amount"], currency=data["currency"], status=data.get("status", "succeeded"))


def parse_balances(data: Dict[str, Any]) -> Balances:
    issuing = _money_list((data.get("issuing") or {}).get("available"))
    return Balances(
        payable=PayableBalance(
            available=_money_list(data.get("available")),
            pending=_money_list(data.get("pending")),
        ),
        issuing_available=issuing[0] if issuing else Money(amount=0, currency=settings.default_currency),
    )


def parse_authorization(data: Dict[str, Any]) -> Authorization:
    return Authorization(
        id=data["id"],
        amount=data["amount"],
        currency=data["currency"],
        approved=bool(data.get("approved")),
        status=data.get("status", ""),
    )


def parse_sandbox_payment(data: Dict[str, Any]) -> SandboxPayment:
    transfer = data.get("transfer")
    if isinstance(transfer, dict):
        transfer = transfer.get("id")
    return SandboxPayment(id=data["id"], amount=data["amount"], status=data["status"], transfer_id=transfer)


def parse_page(parser: Callable[[Dict[str, Any]], T], data: Dict[str, Any]) -> Page[T]:
    return Page(data=[parser(item) for item in data.get("data", [])], has_more=bool(data.get("has_more")))


def _parsed(parser: Callable[[Dict[str, Any]], T], data: Dict[str, Any]) -> T:
    try:
        return parser(data)
    except (KeyError, ValueError, TypeError) as e:
        raise UpstreamError(f"Invalid response from processor: {e}", type="invalid_response") from e


class HttpProcessorClient:
    """Client for the payment processor REST API"""

    def __init__(
        self,
        base_url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.processor_api_base).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.processor_secret_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.transport = transport

    async def _request(
        self,
        endpoint: str,
        method: str,
        path: str,
        account_id: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one request and return the decoded JSON body.

        Raises:
            UpstreamError: On timeout, connection failure, error status, or undecodable body
        """
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        if account_id:
            headers["Stripe-Account"] = account_id
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        form = encode_form(params or {})
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with processor_latency_histogram.labels(endpoint=endpoint).time():
                    if method == "GET":
                        response = await client.get(f"{self.base_url}{path}", params=form, headers=headers)
                    else:
                        response = await client.request(method, f"{self.base_url}{path}", data=dict(form), headers=headers)
            except httpx.TimeoutException as e:
                processor_failure_counter.labels(endpoint=endpoint).inc()
                raise UpstreamError(
                    f"Processor timeout after {self.timeout}s", code="timeout", type="api_connection_error"
                ) from e
            except httpx.RequestError as e:
                processor_failure_counter.labels(endpoint=endpoint).inc()
                raise UpstreamError(f"Processor unreachable: {e}", type="api_connection_error") from e

        if response.is_error:
            processor_failure_counter.labels(endpoint=endpoint).inc()
            raise self._error_from(response)

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError("Invalid JSON from processor", type="api_error", status_code=response.status_code) from e

    @staticmethod
    def _error_from(response: httpx.Response) -> UpstreamError:
        try:
            body = response.json().get("error") or {}
        except (ValueError, AttributeError):
            body = {}
        return UpstreamError(
            body.get("message") or f"Processor error: {response.status_code}",
            code=body.get("code"),
            type=body.get("type"),
            param=body.get("param"),
            status_code=response.status_code,
        )

    async def create_account(self, profile: Dict[str, Any], owner_id: str, idempotency_key: Optional[str] = None) -> ConnectedAccount:
        individual: Dict[str, Any] = {
            "first_name": profile.get("first_name"),
            "last_name": profile.get("last_name"),
            "email": profile.get("email"),
            "phone": profile.get("phone"),
            "ssn_last_4": profile.get("ssn_last4"),
            "dob": profile.get("dob"),
            "address": {
                "line1": profile.get("address"),
                "line2": profile.get("address2"),
                "city": profile.get("city"),
                "state": profile.get("state"),
                "postal_code": profile.get("zip_code"),
                "country": profile.get("country"),
            },
        }
        data = await self._request(
            "accounts.create",
            "POST",
            "/v1/accounts",
            params={
                "type": "custom",
                "country": profile.get("country"),
                "business_type": "individual",
                "capabilities": {
                    "transfers": {"requested": True},
                    "card_payments": {"requested": True},
                },
                "business_profile": {
                    "mcc": "7399",
                    "url": profile.get("profile_url"),
                    "product_description": "Personal event fundraising and family allowance management.",
                },
                "individual": individual,
                "metadata": {"owner_id": owner_id},
            },
            idempotency_key=idempotency_key,
        )
        return _parsed(parse_account, data)

    async def retrieve_account(self, account_id: str) -> ConnectedAccount:
        data = await self._request("accounts.retrieve", "GET", f"/v1/accounts/{account_id}")
        return _parsed(parse_account, data)

    async def update_account(self, account_id: str, patch: Dict[str, Any]) -> ConnectedAccount:
        data = await self._request("accounts.update", "POST", f"/v1/accounts/{account_id}", params=patch)
        return _parsed(parse_account, data)

    async def request_capabilities(self, account_id: str, capabilities: List[str]) -> ConnectedAccount:
        return await self.update_account(
            account_id, {"capabilities": {name: {"requested": True} for name in capabilities}}
        )

    async def accept_terms(self, account_id: str, ip: str, accepted_at: datetime) -> ConnectedAccount:
        return await self.update_account(
            account_id, {"tos_acceptance": {"date": int(accepted_at.timestamp()), "ip": ip}}
        )

    async def create_account_link(self, account_id: str, return_url: str, refresh_url: str) -> str:
        data = await self._request(
            "account_links.create",
            "POST",
            "/v1/account_links",
            params={
                "account": account_id,
                "return_url": return_url,
                "refresh_url": refresh_url,
                "type": "account_onboarding",
                "collection_options": {"fields": "eventually_due"},
            },
        )
        return _parsed(lambda d: d["url"], data)

    async def retrieve_balances(self, account_id: str) -> Balances:
        data = await self._request("balance.retrieve", "GET", "/v1/balance", account_id=account_id)
        return _parsed(parse_balances, data)

    async def create_issuing_topup(
        self, account_id: str, amount: int, currency: str, idempotency_key: Optional[str] = None
    ) -> TopUp:
        data = await self._request(
            "balance_transfers.create",
            "POST",
            "/v1/balance_transfers",
            account_id=account_id,
            params={
                "amount": amount,
                "currency": currency,
                "source_balance": {"type": "payments"},
                "destination_balance": {"type": "issuing"},
                "description": "Issuing balance top-up",
            },
            idempotency_key=idempotency_key,
        )
        return _parsed(parse_topup, data)

    async def create_cardholder(self, account_id: str, profile: CardholderProfile) -> str:
        address = profile.address
        individual: Dict[str, Any] = {"first_name": profile.first_name, "last_name": profile.last_name}
        if profile.dob:
            individual["dob"] = {"day": profile.dob.day, "month": profile.dob.month, "year": profile.dob.year}
        data = await self._request(
            "issuing.cardholders.create",
            "POST",
            "/v1/issuing/cardholders",
            account_id=account_id,
            params={
                "type": "individual",
                "name": profile.name,
                "email": profile.email,
                "phone_number": profile.phone or None,
                "billing": {
                    "address": {
                        "line1": address.line1,
                        "line2": address.line2,
                        "city": address.city,
                        "state": address.state,
                        "postal_code": address.postal_code,
                        "country": address.country,
                    }
                },
                "individual": individual,
            },
        )
        return _parsed(lambda d: d["id"], data)

    async def create_card(
        self,
        account_id: str,
        cardholder_id: str,
        spending_limit_amount: int,
        spending_limit_interval: SpendingLimitInterval,
        currency: str,
        idempotency_key: Optional[str] = None,
    ) -> VirtualCard:
        data = await self._request(
            "issuing.cards.create",
            "POST",
            "/v1/issuing/cards",
            account_id=account_id,
            params={
                "cardholder": cardholder_id,
                "type": "virtual",
                "currency": currency,
                "status": "active",
                "spending_controls": {
                    "spending_limits": [
                        {"amount": spending_limit_amount, "interval": spending_limit_interval.value}
                    ]
                },
            },
            idempotency_key=idempotency_key,
        )
        return _parsed(parse_card, data)

    async def retrieve_card(self, account_id: str, card_id: str) -> VirtualCard:
        data = await self._request("issuing.cards.retrieve", "GET", f"/v1/issuing/cards/{card_id}", account_id=account_id)
        return _parsed(parse_card, data)

    async def create_test_authorization(self, account_id: str, card_id: str, amount: int, currency: str) -> Authorization:
        data = await self._request(
            "test_helpers.authorizations.create",
            "POST",
            "/v1/test_helpers/issuing/authorizations",
            account_id=account_id,
            params={"card": card_id, "amount": amount, "currency": currency},
        )
        return _parsed(parse_authorization, data)

    async def list_transactions(self, account_id: str, limit: int, starting_after: Optional[str] = None) -> Page[Transaction]:
        data = await self._request(
            "balance_transactions.list",
            "GET",
            "/v1/balance_transactions",
            account_id=account_id,
            params={"limit": limit, "starting_after": starting_after},
        )
        return _parsed(lambda d: parse_page(parse_transaction, d), data)

    async def list_payouts(self, account_id: str, limit: int, starting_after: Optional[str] = None) -> Page[Payout]:
        data = await self._request(
            "payouts.list",
            "GET",
            "/v1/payouts",
            account_id=account_id,
            params={"limit": limit, "starting_after": starting_after},
        )
        return _parsed(lambda d: parse_page(parse_payout, d), data)

    async def create_payout(
        self, account_id: str, amount: int, currency: str, idempotency_key: Optional[str] = None
    ) -> Payout:
        data = await self._request(
            "payouts.create",
            "POST",
            "/v1/payouts",
            account_id=account_id,
            params={"amount": amount, "currency": currency},
            idempotency_key=idempotency_key,
        )
        return _parsed(parse_payout, data)

    async def create_bank_account(self, account_id: str, fields: Dict[str, Any]) -> BankAccount:
        data = await self._request(
            "external_accounts.create",
            "POST",
            f"/v1/accounts/{account_id}/external_accounts",
            params={
                "external_account": {
                    "object": "bank_account",
                    "country": fields.get("country", "US"),
                    "currency": fields.get("currency", settings.default_currency),
                    "account_holder_name": fields["account_holder_name"],
                    "routing_number": fields["routing_number"],
                    "account_number": fields["account_number"],
                },
                "default_for_currency": fields.get("default_for_currency"),
            },
        )
        return _parsed(parse_bank_account, data)

    async def attach_test_verification(self, account_id: str, owner_id: str) -> ConnectedAccount:
        """Sandbox identity: the test SSN token plus the processor's always-passing ID document"""
        token = await self._request(
            "tokens.create",
            "POST",
            "/v1/tokens",
            params={"account": {"business_type": "individual", "individual": {"id_number": "000000000"}}},
        )
        return await self.update_account(
            account_id,
            {
                "account_token": _parsed(lambda d: d["id"], token),
                "individual": {"verification": {"document": {"front": "file_identity_document_success"}}},
                "metadata": {"owner_id": owner_id},
            },
        )

    async def create_sandbox_payment(
        self, account_id: str, amount: int, currency: str, description: str, metadata: Dict[str, str]
    ) -> SandboxPayment:
        """Charge the platform's test card and route the funds to the connected account"""
        data = await self._request(
            "payment_intents.create",
            "POST",
            "/v1/payment_intents",
            params={
                "amount": amount,
                "currency": currency,
                "payment_method": "pm_card_visa",
                "confirm": True,
                "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
                "transfer_data": {"destination": account_id},
                "description": description,
                "metadata": metadata,
            },
        )
        return _parsed(parse_sandbox_payment, data)
