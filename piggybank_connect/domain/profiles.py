"""Normalization rules for identity data sent to the processor"""

import re
from datetime import date
from typing import Any, Dict, Mapping, Optional, Tuple

from piggybank_connect.domain.exceptions import InvalidInputError
from piggybank_connect.domain.models import Address, CardholderProfile, DateOfBirth

DOB_SENTINEL = DateOfBirth(day=1, month=1, year=1990)

CARDHOLDER_REQUIRED_FIELDS = (
    "name",
    "email",
    "address.line1",
    "address.city",
    "address.state",
    "address.postal_code",
)

_US_DOB = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_ISO_DOB = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_PLACEHOLDER_DIGITS = re.compile(r"^1?0+$")


def _lookup(data: Mapping[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_missing(data: Mapping[str, Any], fields: Tuple[str, ...]) -> Optional[str]:
    for name in fields:
        if _blank(_lookup(data, name)):
            return name
    return None


def split_name(name: str) -> Tuple[str, str]:
    """First whitespace run separates first from last; a single word is both"""
    parts = name.split()
    first = parts[0]
    last = " ".join(parts[1:]) or first
    return first, last


def is_placeholder_phone(phone: Optional[str]) -> bool:
    if not phone:
        return True
    digits = re.sub(r"\D", "", phone)
    return bool(_PLACEHOLDER_DIGITS.match(digits))


def resolve_cardholder_phone(phone: Optional[str], test_mode: bool, sandbox_phone: str) -> Optional[str]:
    """Substitute the sandbox phone only in test mode and only for empty or placeholder input"""
    if test_mode and is_placeholder_phone(phone):
        return sandbox_phone
    return phone


def _valid_dob(day: int, month: int, year: int) -> Optional[DateOfBirth]:
    if not (1 <= month <= 12 and 1 <= day <= 31 and 1900 <= year <= date.today().year):
        return None
    return DateOfBirth(day=day, month=month, year=year)


def parse_dob_string(value: str) -> Optional[DateOfBirth]:
    """Accept MM/DD/YYYY or YYYY-MM-DD; anything else is None"""
    text = value.strip()
    match = _US_DOB.match(text)
    if match:
        month, day, year = (int(g) for g in match.groups())
        return _valid_dob(day, month, year)
    match = _ISO_DOB.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _valid_dob(day, month, year)
    return None


def coerce_dob(value: Any, lenient: bool) -> Optional[DateOfBirth]:
    """
    Turn a caller-supplied date of birth into a DateOfBirth.

    Lenient mode keeps the historical behavior: anything that is not an
    object becomes DOB_SENTINEL. Strict mode parses strings and rejects
    what it cannot read.
    """
    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        try:
            dob = _valid_dob(int(value["day"]), int(value["month"]), int(value["year"]))
        except (KeyError, TypeError, ValueError):
            dob = None
        if dob is None:
            if lenient:
                return DOB_SENTINEL
            raise InvalidInputError("Date of birth must have a valid day, month and year.", code="dob_invalid", param="dob")
        return dob
    if lenient:
        return DOB_SENTINEL
    dob = parse_dob_string(value) if isinstance(value, str) else None
    if dob is None:
        raise InvalidInputError("Date of birth must be in MM/DD/YYYY format.", code="dob_invalid", param="dob")
    return dob


def build_cardholder_profile(
    data: Mapping[str, Any],
    test_mode: bool,
    sandbox_phone: str,
    lenient_dob: bool = False,
) -> CardholderProfile:
    """Validate and normalize a raw cardholder payload"""
    missing = first_missing(data, CARDHOLDER_REQUIRED_FIELDS)
    if missing:
        raise InvalidInputError(f"Missing required field: {missing}", code="parameter_missing", param=missing)

    address = data["address"]
    first_name, last_name = split_name(data["name"])
    return CardholderProfile(
        first_name=first_name,
        last_name=last_name,
        email=data["email"].strip(),
        phone=resolve_cardholder_phone(data.get("phone"), test_mode, sandbox_phone),
        address=Address(
            line1=address["line1"],
            line2=address.get("line2") or None,
            city=address["city"],
            state=address["state"],
            postal_code=address["postal_code"],
        ),
        dob=coerce_dob(data.get("dob"), lenient_dob),
    )


def normalize_us_zip(zip_code: Any) -> Optional[str]:
    """Five-digit US ZIP from any input with at least five digits"""
    if zip_code is None:
        return None
    digits = re.sub(r"\D", "", str(zip_code))
    if len(digits) < 5:
        return None
    return digits[:5]


def normalize_account_profile(
    data: Mapping[str, Any],
    test_mode: bool,
    sandbox_phone: str,
    lenient_dob: bool = False,
) -> Dict[str, Any]:
    """Onboarding profile with ZIP and date of birth normalized"""
    profile = {k: v for k, v in data.items() if v is not None}
    country = profile.get("country") or "US"
    profile["country"] = country

    if country == "US":
        zip_code = normalize_us_zip(profile.get("zip_code"))
        if zip_code is None:
            raise InvalidInputError("Please enter a valid 5-digit US ZIP code.", code="postal_code_invalid", param="zipCode")
        profile["zip_code"] = zip_code
    elif profile.get("zip_code") is not None:
        profile["zip_code"] = str(profile["zip_code"]).strip()

    dob = coerce_dob(profile.pop("dob", None), lenient_dob)
    if dob is not None:
        profile["dob"] = {"day": dob.day, "month": dob.month, "year": dob.year}

    if test_mode:
        profile["phone"] = sandbox_phone
    return profile


def normalize_bank_fields(routing_number: Any, account_number: Any) -> Tuple[str, str]:
    """Digits-only routing and account numbers, validated for shape"""
    routing = re.sub(r"\D", "", str(routing_number))
    account = re.sub(r"\D", "", str(account_number))
    if len(routing) != 9:
        raise InvalidInputError("Routing number must be 9 digits.", code="routing_number_invalid", param="routing_number")
    if len(account) < 4:
        raise InvalidInputError("Account number must have at least 4 digits.", code="account_number_invalid", param="account_number")
    return routing, account
