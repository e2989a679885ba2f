"""Pydantic schemas for API request validation"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts camelCase (as sent by the app) or snake_case field names"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateAccountRequest(CamelModel):
    """Request body for POST /v1/accounts"""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: Optional[str] = None
    dob: Optional[Union[str, Dict[str, Any]]] = None
    address: str = Field(..., min_length=1, description="Street address line 1")
    address2: Optional[str] = None
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: Optional[str] = None
    country: str = "US"
    ssn_last4: Optional[str] = Field(None, alias="ssnLast4")
    routing_number: Optional[str] = None
    account_number: Optional[str] = None
    account_holder_name: Optional[str] = None
    use_test_document: bool = Field(False, description="Test mode only: attach the sandbox identity document")


class TopUpRequest(CamelModel):
    """Request body for POST /v1/issuing/topups"""

    amount_cents: int = Field(..., description="Cents to move from payable to issuing balance")


class CardholderRequest(CamelModel):
    """Request body for POST /v1/issuing/cardholders"""

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    dob: Optional[Union[str, Dict[str, Any]]] = None

    def as_profile(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "dob": self.dob,
            "address": {
                "line1": self.line1,
                "line2": self.line2,
                "city": self.city,
                "state": self.state,
                "postal_code": self.postal_code,
            },
        }


class VirtualCardRequest(CamelModel):
    """Request body for POST /v1/issuing/cards"""

    spending_limit_amount: Optional[int] = None
    spending_limit_interval: Optional[str] = None


class AuthorizationRequest(CamelModel):
    """Request body for POST /v1/issuing/test-authorizations"""

    amount: int = 1000


class SandboxAmountRequest(CamelModel):
    """Request body for the /v1/sandbox payment helpers"""

    amount: Optional[int] = None


class PayoutRequest(CamelModel):
    """Request body for POST /v1/payouts"""

    amount: Optional[int] = None
    currency: Optional[str] = None


class BankAccountRequest(CamelModel):
    """Request body for POST /v1/accounts/bank-accounts"""

    account_holder_name: Optional[str] = None
    routing_number: Optional[str] = None
    account_number: Optional[str] = None
    currency: Optional[str] = None
    country: Optional[str] = None
    default_for_currency: Optional[bool] = None


class AddressPatch(CamelModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class AccountInfoPatch(CamelModel):
    """Request body for PATCH /v1/accounts/info"""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    dob: Optional[Union[str, Dict[str, Any]]] = None
    address: Optional[AddressPatch] = None


class TermsRequest(CamelModel):
    """Request body for POST /v1/accounts/terms"""

    ip: Optional[str] = None
