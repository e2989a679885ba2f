"""Domain models - pure Python dataclasses representing connected-account entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class CapabilityState(str, Enum):
    INACTIVE = "inactive"
    PENDING = "pending"
    ACTIVE = "active"


CARD_PAYMENTS = "card_payments"
TRANSFERS = "transfers"
CARD_ISSUING = "card_issuing"


class SpendingLimitInterval(str, Enum):
    PER_AUTHORIZATION = "per_authorization"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ALL_TIME = "all_time"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass
class Money:
    amount: int  # cents
    currency: str


@dataclass
class Requirements:
    """Outstanding verification requirements reported by the processor"""

    past_due: List[str] = field(default_factory=list)
    currently_due: List[str] = field(default_factory=list)
    eventually_due: List[str] = field(default_factory=list)
    pending_verification: List[str] = field(default_factory=list)
    disabled_reason: Optional[str] = None


@dataclass
class BankAccount:
    """External withdrawal destination linked to a connected account"""

    id: str
    bank_name: str = ""
    last4: str = ""
    routing_number: str = ""
    currency: str = "usd"
    country: str = "US"
    default_for_currency: bool = False
    status: str = "new"


@dataclass
class ConnectedAccount:
    """Snapshot of the processor's view of one user's financial account"""

    processor_account_id: str
    owner_id: Optional[str] = None
    capabilities: Dict[str, CapabilityState] = field(default_factory=dict)
    requirements: Requirements = field(default_factory=Requirements)
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    external_accounts: List[BankAccount] = field(default_factory=list)
    terms_accepted_at: Optional[datetime] = None
    country: str = "US"
    default_currency: str = "usd"
    individual: Optional[Dict] = None
    created_at: Optional[datetime] = None

    def capability(self, name: str) -> CapabilityState:
        return self.capabilities.get(name, CapabilityState.INACTIVE)

    def capability_active(self, name: str) -> bool:
        return self.capability(name) == CapabilityState.ACTIVE


@dataclass
class Address:
    line1: str
    city: str
    state: str
    postal_code: str
    line2: Optional[str] = None
    country: str = "US"


@dataclass
class DateOfBirth:
    day: int
    month: int
    year: int


@dataclass
class CardholderProfile:
    """Normalized cardholder identity, ready to send to the processor"""

    first_name: str
    last_name: str
    email: str
    address: Address
    phone: Optional[str] = None
    dob: Optional[DateOfBirth] = None

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class VirtualCard:
    id: str
    last4: str
    spending_limit_amount: int
    spending_limit_interval: SpendingLimitInterval
    status: str = "active"
    brand: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


@dataclass
class PayableBalance:
    available: List[Money] = field(default_factory=list)
    pending: List[Money] = field(default_factory=list)

    def available_in(self, currency: str) -> int:
        return sum(m.amount for m in self.available if m.currency == currency)


@dataclass
class Balances:
    """Both ledgers as reported in a single processor balance read"""

    payable: PayableBalance
    issuing_available: Money


@dataclass
class IssuingBalance:
    available: Money
    can_create_card: bool


@dataclass
class TopUp:
    id: str
    amount: int
    currency: str
    status: str


@dataclass
class Transaction:
    """Immutable balance-transaction log entry"""

    id: str
    type: str  # "charge", "transfer" or "payout"
    amount: int  # signed cents
    fee: int
    net: int
    status: str
    currency: str
    created_at: datetime
    available_on: Optional[datetime] = None
    description: Optional[str] = None


@dataclass
class Payout:
    id: str
    amount: int
    currency: str
    status: PayoutStatus
    created_at: datetime
    arrival_date: Optional[datetime] = None
    destination: str = ""
    failure_message: Optional[str] = None


@dataclass
class Authorization:
    """Sandbox card authorization"""

    id: str
    amount: int
    currency: str
    approved: bool
    status: str


@dataclass
class SandboxPayment:
    """Platform charge routed to a connected account, test mode only"""

    id: str
    amount: int
    status: str
    transfer_id: Optional[str] = None


@dataclass
class Page(Generic[T]):
    data: List[T]
    has_more: bool = False


@dataclass
class AccountRecord:
    """Locally persisted per-user identifiers and status cache"""

    owner_id: str
    processor_account_id: str
    cardholder_id: Optional[str] = None
    virtual_card_id: Optional[str] = None
    terms_accepted_at: Optional[datetime] = None


@dataclass
class IdempotencyRecord:
    """
    A keyed mutating request.

    `request` holds the parameters resolved on the first attempt, so a retry
    sends the processor exactly what it was sent before. `response` stays
    None until the operation completes.
    """

    request: Dict[str, Any]
    response: Optional[Dict[str, Any]] = None

    @property
    def completed(self) -> bool:
        return self.response is not None
