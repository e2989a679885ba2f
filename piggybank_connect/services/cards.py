"""Cardholder profile and virtual card issuance"""

import logging
from typing import Any, Dict, Mapping, Optional

from piggybank_connect.domain.exceptions import (
    CapabilityNotEnabledError,
    InsufficientFundsError,
    InvalidInputError,
    NotEligibleError,
    NotFoundError,
    ResourceConflictError,
)
from piggybank_connect.domain.models import CARD_ISSUING, SpendingLimitInterval
from piggybank_connect.domain.profiles import build_cardholder_profile
from piggybank_connect.domain.translator import CAPABILITY_MESSAGE, translating
from piggybank_connect.domain.verification import APPROVED_ONLY, SUBMITTED
from piggybank_connect.services import serializers
from piggybank_connect.services.base import Manager

logger = logging.getLogger(__name__)

CARD_EXISTS_MESSAGE = "You already have a virtual card."


class CardManager(Manager):
    """At most one cardholder and one active virtual card per owner"""

    def resolve_spending_limit(self, amount: Optional[int], interval: Optional[str]) -> tuple[int, SpendingLimitInterval]:
        """Apply defaults, then clamp the amount to the configured maximum"""
        ceiling = self.config.max_spending_limit_cents
        if amount is None:
            amount = ceiling
        if amount <= 0:
            raise InvalidInputError("Spending limit must be positive.", code="parameter_invalid", param="spendingLimitAmount")
        try:
            resolved_interval = SpendingLimitInterval(interval or SpendingLimitInterval.PER_AUTHORIZATION.value)
        except ValueError as e:
            raise InvalidInputError(
                f"Unsupported spending limit interval: {interval}",
                code="parameter_invalid",
                param="spendingLimitInterval",
            ) from e
        return min(amount, ceiling), resolved_interval

    async def create_cardholder(self, owner_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        record = self._record(owner_id, "createCardholder")
        if record.cardholder_id:
            return {"cardholderId": record.cardholder_id, "existing": True}

        profile = build_cardholder_profile(
            data,
            test_mode=self.config.test_mode,
            sandbox_phone=self.config.sandbox_phone,
            lenient_dob=self.config.lenient_dob,
        )

        async with self.lease.hold(owner_id):
            record = self._record(owner_id, "createCardholder")
            if record.cardholder_id:
                return {"cardholderId": record.cardholder_id, "existing": True}
            await self._gate(record, SUBMITTED, "createCardholder")
            with translating("issuing.cardholders.create"):
                cardholder_id = await self.processor.create_cardholder(record.processor_account_id, profile)
            self.repository.set_cardholder(owner_id, cardholder_id)
            self.repository.commit()

        logger.info("Cardholder created", extra={"owner_id": owner_id})
        return {"cardholderId": cardholder_id, "existing": False}

    def _check_card_preconditions(self, record) -> None:
        if record.virtual_card_id:
            raise ResourceConflictError(CARD_EXISTS_MESSAGE, code="card_exists")
        if not record.cardholder_id:
            raise NotEligibleError(
                "Create a cardholder before issuing a card.",
                code="cardholder_missing",
                http_hint=400,
            )

    async def _check_card_funding(self, record) -> str:
        """Issuing reserve currency, once every precondition for a first card holds"""
        self._check_card_preconditions(record)
        snapshot, _ = await self._gate(record, APPROVED_ONLY, "createVirtualCard")
        if not snapshot.capability_active(CARD_ISSUING):
            raise CapabilityNotEnabledError(CAPABILITY_MESSAGE)
        with translating("balance.retrieve"):
            balances = await self.processor.retrieve_balances(record.processor_account_id)
        if balances.issuing_available.amount <= 0:
            raise InsufficientFundsError("Insufficient issuing balance. Add funds before creating a card.")
        return balances.issuing_available.currency

    async def create_virtual_card(
        self,
        owner_id: str,
        spending_limit_amount: Optional[int] = None,
        spending_limit_interval: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        amount, interval = self.resolve_spending_limit(spending_limit_amount, spending_limit_interval)
        record = self._record(owner_id, "createVirtualCard")
        replay = self._replay(owner_id, "createVirtualCard", idempotency_key)
        if replay is not None:
            return replay
        self._check_card_preconditions(record)

        async with self.lease.hold(owner_id):
            record = self._record(owner_id, "createVirtualCard")
            keyed = self._keyed(owner_id, "createVirtualCard", idempotency_key)
            if keyed is None:
                currency = await self._check_card_funding(record)
                self._claim(
                    owner_id,
                    "createVirtualCard",
                    idempotency_key,
                    {"amount": amount, "interval": interval.value, "currency": currency},
                )
            elif keyed.completed:
                return keyed.response
            else:
                amount = keyed.request["amount"]
                interval = SpendingLimitInterval(keyed.request["interval"])
                currency = keyed.request["currency"]

            with translating("issuing.cards.create"):
                card = await self.processor.create_card(
                    record.processor_account_id,
                    record.cardholder_id,
                    amount,
                    interval,
                    currency,
                    idempotency_key,
                )
            self.repository.set_virtual_card(owner_id, card.id)
            response = serializers.card(card)
            self._complete(owner_id, "createVirtualCard", idempotency_key, response)
            self.repository.commit()

        logger.info("Virtual card issued", extra={"owner_id": owner_id, "spending_limit_amount": amount})
        return response

    async def get_card_details(self, owner_id: str) -> Dict[str, Any]:
        record = self._record(owner_id, "getCardDetails")
        if not record.virtual_card_id:
            raise NotFoundError("No card found. Create a virtual card first.", code="resource_missing")
        with translating("issuing.cards.retrieve"):
            card = await self.processor.retrieve_card(record.processor_account_id, record.virtual_card_id)
        return serializers.card(card)

    async def create_test_authorization(self, owner_id: str, amount: int = 1000) -> Dict[str, Any]:
        """Sandbox-only spend against the issued card"""
        self._require_test_mode()
        if amount <= 0:
            raise InvalidInputError("Amount must be positive.", code="parameter_invalid", param="amount")
        record = self._record(owner_id, "createTestAuthorization")
        if not record.virtual_card_id:
            raise NotEligibleError(
                "No card found. Create a virtual card first.", code="no_card", http_hint=400
            )
        with translating("test_helpers.authorizations.create"):
            authorization = await self.processor.create_test_authorization(
                record.processor_account_id, record.virtual_card_id, amount, self.config.default_currency
            )
        return serializers.authorization(authorization)
