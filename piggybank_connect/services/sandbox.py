"""Test-mode helpers: force verification and fund an account with platform test payments"""

import logging
from typing import Any, Dict

from piggybank_connect.domain.exceptions import DomainError, InvalidInputError
from piggybank_connect.domain.translator import translating
from piggybank_connect.services.base import Manager

logger = logging.getLogger(__name__)

DEFAULT_BALANCE_CENTS = 5000
DEFAULT_TRANSACTION_CENTS = 2500


def _check_amount(amount: int) -> None:
    if amount <= 0:
        raise InvalidInputError("Amount must be positive.", code="parameter_invalid", param="amount")


class SandboxManager(Manager):
    """Every operation here refuses to run against a live processor key"""

    async def verify_account(self, owner_id: str) -> Dict[str, Any]:
        """Attach the sandbox identity, then report the capabilities the processor now shows"""
        self._require_test_mode()
        record = self._record(owner_id, "testVerifyAccount")
        try:
            with translating("accounts.update"):
                await self.processor.attach_test_verification(record.processor_account_id, owner_id)
        except DomainError as e:
            # best-effort; the status read below is authoritative
            logger.warning("Sandbox verification not attached", extra={"owner_id": owner_id, "code": e.code})

        snapshot, state = await self.status.refresh(record)
        self.repository.commit()
        return {
            "processorAccountId": record.processor_account_id,
            "state": state.value,
            "capabilities": {name: value.value for name, value in snapshot.capabilities.items()},
        }

    async def _pay_in(self, owner_id: str, operation: str, amount: int, description: str, tag: str) -> Dict[str, Any]:
        self._require_test_mode()
        _check_amount(amount)
        record = self._record(owner_id, operation)
        with translating("payment_intents.create"):
            payment = await self.processor.create_sandbox_payment(
                record.processor_account_id,
                amount,
                self.config.default_currency,
                description,
                {tag: "true", "owner_id": owner_id},
            )
        logger.info("Sandbox payment created", extra={"owner_id": owner_id, "amount_cents": amount, "operation": operation})
        return {
            "paymentIntentId": payment.id,
            "transferId": payment.transfer_id,
            "amount": payment.amount,
            "status": payment.status,
        }

    async def add_balance(self, owner_id: str, amount: int = DEFAULT_BALANCE_CENTS) -> Dict[str, Any]:
        return await self._pay_in(owner_id, "testAddBalance", amount, "Test balance addition", "test_balance")

    async def create_transaction(self, owner_id: str, amount: int = DEFAULT_TRANSACTION_CENTS) -> Dict[str, Any]:
        return await self._pay_in(owner_id, "testCreateTransaction", amount, "Test payment", "test_payment")
