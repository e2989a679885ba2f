"""Withdrawals of Payable Balance to a linked bank account"""

import logging
from typing import Any, Dict, Optional

from piggybank_connect.domain.exceptions import InsufficientFundsError, InvalidInputError, NotEligibleError
from piggybank_connect.domain.translator import translating
from piggybank_connect.domain.verification import APPROVED_ONLY
from piggybank_connect.infrastructure.observability.metrics import payout_amount_counter
from piggybank_connect.services import serializers
from piggybank_connect.services.balances import check_page_size
from piggybank_connect.services.base import Manager

logger = logging.getLogger(__name__)

BALANCE_INSUFFICIENT_MESSAGE = "Insufficient balance for payout."


class PayoutManager(Manager):
    """Settlement timing is the processor's; payouts are created pending and only surfaced"""

    async def request_payout(
        self,
        owner_id: str,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Pay out `amount` (default: all of Payable available) to the linked bank.

        Raises:
            InvalidInputError: amount supplied and not positive, before any processor call
            NotEligibleError: account not APPROVED, or no bank account linked
            InsufficientFundsError: amount exceeds Payable available
        """
        if amount is not None and amount <= 0:
            raise InvalidInputError("Amount must be positive.", code="amount_invalid", param="amount")
        currency = (currency or self.config.default_currency).lower()

        record = self._record(owner_id, "createPayout")
        replay = self._replay(owner_id, "createPayout", idempotency_key)
        if replay is not None:
            return replay

        async with self.lease.hold(owner_id):
            keyed = self._keyed(owner_id, "createPayout", idempotency_key)
            if keyed is None:
                requested = await self._resolve_amount(record, amount, currency)
                self._claim(owner_id, "createPayout", idempotency_key, {"amount": requested, "currency": currency})
            elif keyed.completed:
                return keyed.response
            else:
                # Resend the amount resolved on the first attempt; the processor dedupes on the key
                requested, currency = keyed.request["amount"], keyed.request["currency"]
                logger.info("Resuming keyed payout", extra={"owner_id": owner_id, "amount_cents": requested})

            with translating("payouts.create"):
                payout = await self.processor.create_payout(
                    record.processor_account_id, requested, currency, idempotency_key
                )
            response = serializers.payout(payout)
            self._complete(owner_id, "createPayout", idempotency_key, response)
            self.repository.commit()

        payout_amount_counter.inc(requested)
        logger.info("Payout requested", extra={"owner_id": owner_id, "amount_cents": requested, "currency": currency})
        return response

    async def list_payouts(self, owner_id: str, limit: int = 10, starting_after: Optional[str] = None) -> Dict[str, Any]:
        check_page_size(limit)
        record = self._record(owner_id, "getPayouts")
        with translating("payouts.list"):
            page = await self.processor.list_payouts(record.processor_account_id, limit, starting_after)
        return serializers.page(page, serializers.payout)

    async def _resolve_amount(self, record, amount: Optional[int], currency: str) -> int:
        """Requested amount, defaulting to all of Payable available"""
        snapshot, _ = await self._gate(record, APPROVED_ONLY, "createPayout")
        if not snapshot.external_accounts:
            raise NotEligibleError(
                "Link a bank account before requesting a payout.",
                code="no_external_account",
                http_hint=400,
            )

        with translating("balance.retrieve"):
            balances = await self.processor.retrieve_balances(record.processor_account_id)
        available = balances.payable.available_in(currency)
        requested = available if amount is None else amount
        if requested <= 0 or requested > available:
            raise InsufficientFundsError(BALANCE_INSUFFICIENT_MESSAGE, code="balance_insufficient")
        return requested
