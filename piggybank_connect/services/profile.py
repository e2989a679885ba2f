"""Bank destinations, profile fields and terms of service"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from piggybank_connect.domain.exceptions import InvalidInputError
from piggybank_connect.domain.profiles import coerce_dob, first_missing, normalize_bank_fields
from piggybank_connect.domain.translator import translating
from piggybank_connect.services import serializers
from piggybank_connect.services.base import Manager

logger = logging.getLogger(__name__)

BANK_REQUIRED_FIELDS = ("account_holder_name", "routing_number", "account_number")
INDIVIDUAL_FIELDS = ("first_name", "last_name", "email", "phone")
ADDRESS_FIELDS = ("line1", "line2", "city", "state", "postal_code")


class ProfileManager(Manager):
    async def add_bank_account(self, owner_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        missing = first_missing(fields, BANK_REQUIRED_FIELDS)
        if missing:
            raise InvalidInputError(f"Missing required field: {missing}", code="parameter_missing", param=missing)
        routing, number = normalize_bank_fields(fields["routing_number"], fields["account_number"])
        record = self._record(owner_id, "addBankAccount")

        with translating("external_accounts.create"):
            bank = await self.processor.create_bank_account(
                record.processor_account_id,
                {
                    "account_holder_name": str(fields["account_holder_name"]).strip(),
                    "routing_number": routing,
                    "account_number": number,
                    "currency": fields.get("currency") or self.config.default_currency,
                    "country": fields.get("country") or "US",
                    "default_for_currency": fields.get("default_for_currency"),
                },
            )
        logger.info("Bank account linked", extra={"owner_id": owner_id, "last4": bank.last4})
        return {"bankAccountId": bank.id, "bankName": bank.bank_name, "last4": bank.last4}

    def _individual_patch(self, patch: Mapping[str, Any]) -> Dict[str, Any]:
        individual: Dict[str, Any] = {k: patch[k] for k in INDIVIDUAL_FIELDS if patch.get(k)}
        address = patch.get("address")
        if isinstance(address, Mapping):
            cleaned = {k: address[k] for k in ADDRESS_FIELDS if address.get(k)}
            if cleaned:
                individual["address"] = cleaned
        dob = coerce_dob(patch.get("dob"), self.config.lenient_dob)
        if dob:
            individual["dob"] = {"day": dob.day, "month": dob.month, "year": dob.year}
        return individual

    async def update_account_info(self, owner_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        individual = self._individual_patch(patch)
        if not individual:
            raise InvalidInputError("Nothing to update.", code="parameter_missing")
        record = self._record(owner_id, "updateAccountInfo")

        with translating("accounts.update"):
            snapshot = await self.processor.update_account(record.processor_account_id, {"individual": individual})
        state = self.status.remember(owner_id, snapshot)
        self.repository.commit()
        return serializers.account(snapshot, state.value)

    async def accept_terms_of_service(self, owner_id: str, ip: str) -> Dict[str, Any]:
        """Record acceptance once; later calls succeed without contacting the processor"""
        if not ip:
            raise InvalidInputError("Missing required field: ip", code="parameter_missing", param="ip")
        record = self._record(owner_id, "acceptTermsOfService")
        if record.terms_accepted_at:
            return {"accepted": True}

        accepted_at = datetime.now(timezone.utc)
        with translating("accounts.update"):
            snapshot = await self.processor.accept_terms(record.processor_account_id, ip, accepted_at)
        self.repository.set_terms_accepted(owner_id, accepted_at)
        self.status.remember(owner_id, snapshot)
        self.repository.commit()
        return {"accepted": True}

    async def get_account_details(self, owner_id: str) -> Dict[str, Any]:
        record = self._record(owner_id, "getAccountDetails")
        snapshot, state = await self.status.refresh(record)
        self.repository.commit()
        return {
            **serializers.account(snapshot, state.value),
            "country": snapshot.country,
            "defaultCurrency": snapshot.default_currency,
            "individual": snapshot.individual,
            "cardholderId": record.cardholder_id,
            "virtualCardId": record.virtual_card_id,
            "createdAt": snapshot.created_at.isoformat() if snapshot.created_at else None,
        }
