"""Payable and Issuing ledgers, and the one-way top-up between them"""

import logging
from typing import Any, Dict, Optional

from piggybank_connect.domain.exceptions import (
    CapabilityNotEnabledError,
    InsufficientFundsError,
    InvalidInputError,
)
from piggybank_connect.domain.models import CARD_ISSUING, IssuingBalance
from piggybank_connect.domain.translator import CAPABILITY_MESSAGE, translating
from piggybank_connect.domain.verification import APPROVED_ONLY
from piggybank_connect.infrastructure.observability.metrics import topup_amount_counter
from piggybank_connect.services import serializers
from piggybank_connect.services.base import Manager

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def check_page_size(limit: int) -> None:
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}.", code="parameter_invalid", param="limit")


class BalanceManager(Manager):
    """
    The two ledgers are never merged. Payable funds reach the Issuing
    reserve only through top_up(); nothing here replenishes it implicitly.
    """

    async def get_balance(self, owner_id: str) -> Dict[str, Any]:
        record = self._record(owner_id, "getBalance")
        with translating("balance.retrieve"):
            balances = await self.processor.retrieve_balances(record.processor_account_id)
        return {
            "available": serializers.money_list(balances.payable.available),
            "pending": serializers.money_list(balances.payable.pending),
        }

    async def get_transactions(self, owner_id: str, limit: int = 10, starting_after: Optional[str] = None) -> Dict[str, Any]:
        check_page_size(limit)
        record = self._record(owner_id, "getTransactions")
        with translating("balance_transactions.list"):
            page = await self.processor.list_transactions(record.processor_account_id, limit, starting_after)
        return serializers.page(page, serializers.transaction)

    async def issuing_balance(self, owner_id: str) -> IssuingBalance:
        record = self._record(owner_id, "getIssuingBalance")
        snapshot, _ = await self.status.refresh(record)
        with translating("balance.retrieve"):
            balances = await self.processor.retrieve_balances(record.processor_account_id)
        available = balances.issuing_available
        can_create_card = (
            available.amount > 0
            and snapshot.capability_active(CARD_ISSUING)
            and record.virtual_card_id is None
        )
        return IssuingBalance(available=available, can_create_card=can_create_card)

    async def get_issuing_balance(self, owner_id: str) -> Dict[str, Any]:
        balance = await self.issuing_balance(owner_id)
        self.repository.commit()
        return {"available": serializers.money(balance.available), "canCreateCard": balance.can_create_card}

    async def top_up(self, owner_id: str, amount_cents: int, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """
        Move amount_cents from Payable available into Issuing available.

        One atomic transfer request; no partial ledger movement is assumed
        if the processor reports failure.
        """
        if amount_cents < self.config.min_topup_cents:
            raise InvalidInputError(
                f"Amount required (minimum {self.config.min_topup_cents} cents).",
                code="amount_too_small",
                param="amount",
            )
        record = self._record(owner_id, "topUpIssuing")
        replay = self._replay(owner_id, "topUpIssuing", idempotency_key)
        if replay is not None:
            return replay

        async with self.lease.hold(owner_id):
            keyed = self._keyed(owner_id, "topUpIssuing", idempotency_key)
            if keyed is None:
                currency = self.config.default_currency
                await self._check_top_up(record, amount_cents, currency)
                self._claim(owner_id, "topUpIssuing", idempotency_key, {"amount": amount_cents, "currency": currency})
            elif keyed.completed:
                return keyed.response
            else:
                # Resend the first attempt's parameters; the processor dedupes on the key
                amount_cents, currency = keyed.request["amount"], keyed.request["currency"]
                logger.info("Resuming keyed top-up", extra={"owner_id": owner_id, "amount_cents": amount_cents})

            with translating("balance_transfers.create"):
                topup = await self.processor.create_issuing_topup(
                    record.processor_account_id, amount_cents, currency, idempotency_key
                )
            with translating("balance.retrieve"):
                after = await self.processor.retrieve_balances(record.processor_account_id)

            response = {
                "topUpId": topup.id,
                "amount": topup.amount,
                "status": topup.status,
                "available": serializers.money(after.issuing_available),
            }
            self._complete(owner_id, "topUpIssuing", idempotency_key, response)
            self.repository.commit()

        topup_amount_counter.inc(amount_cents)
        logger.info("Issuing balance topped up", extra={"owner_id": owner_id, "amount_cents": amount_cents})
        return response

    async def _check_top_up(self, record, amount_cents: int, currency: str) -> None:
        snapshot, _ = await self._gate(record, APPROVED_ONLY, "topUpIssuing")
        if not snapshot.capability_active(CARD_ISSUING):
            raise CapabilityNotEnabledError(CAPABILITY_MESSAGE)
        with translating("balance.retrieve"):
            before = await self.processor.retrieve_balances(record.processor_account_id)
        if before.payable.available_in(currency) < amount_cents:
            raise InsufficientFundsError("Insufficient payable balance for this top-up.")
