"""Connected-account creation, hosted onboarding links and capability requests"""

import logging
from typing import Any, Dict, Optional

from piggybank_connect.domain.exceptions import DomainError
from piggybank_connect.domain.models import CARD_ISSUING, CARD_PAYMENTS, TRANSFERS
from piggybank_connect.domain.profiles import normalize_account_profile, normalize_bank_fields
from piggybank_connect.domain.translator import translating
from piggybank_connect.services import serializers
from piggybank_connect.services.base import Manager

logger = logging.getLogger(__name__)

BANK_FIELDS = ("routing_number", "account_number", "account_holder_name")


def _join_url(base: str, path: str) -> str:
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


class OnboardingManager(Manager):
    """Takes an owner from NO_ACCOUNT to a recorded processor account"""

    async def create_account(
        self, owner_id: str, profile: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create the owner's connected account, or return the one already recorded.

        ZIP and date of birth are validated before any processor call. Bank
        fields supplied with the profile are linked best-effort afterwards:
        a rejected bank account does not undo account creation.
        """
        existing = self.repository.get(owner_id)
        if existing:
            return {"processorAccountId": existing.processor_account_id, "existing": True}

        normalized = normalize_account_profile(
            profile,
            test_mode=self.config.test_mode,
            sandbox_phone=self.config.sandbox_phone,
            lenient_dob=self.config.lenient_dob,
        )
        use_test_document = bool(normalized.pop("use_test_document", False)) and self.config.test_mode
        normalized["profile_url"] = _join_url(self.config.public_base_url, f"users/{owner_id}")

        async with self.lease.hold(owner_id):
            existing = self.repository.get(owner_id)
            if existing:
                return {"processorAccountId": existing.processor_account_id, "existing": True}

            with translating("accounts.create"):
                snapshot = await self.processor.create_account(normalized, owner_id, idempotency_key)
            self.repository.create(owner_id, snapshot.processor_account_id)
            state = self.status.remember(owner_id, snapshot)
            self.repository.commit()

            if all(normalized.get(f) for f in BANK_FIELDS):
                await self._link_initial_bank_account(snapshot.processor_account_id, normalized)
            if use_test_document:
                await self._attach_test_document(snapshot.processor_account_id, owner_id)

        logger.info("Connected account created", extra={"owner_id": owner_id, "state": state.value})
        return {"processorAccountId": snapshot.processor_account_id, "existing": False, "state": state.value}

    async def _link_initial_bank_account(self, account_id: str, profile: Dict[str, Any]) -> None:
        try:
            routing, number = normalize_bank_fields(profile["routing_number"], profile["account_number"])
            with translating("external_accounts.create"):
                await self.processor.create_bank_account(
                    account_id,
                    {
                        "account_holder_name": str(profile["account_holder_name"]).strip() or "Account Holder",
                        "routing_number": routing,
                        "account_number": number,
                    },
                )
        except DomainError as e:
            logger.warning(
                "Initial bank account not linked",
                extra={"processor_account_id": account_id, "code": e.code},
            )

    async def _attach_test_document(self, account_id: str, owner_id: str) -> None:
        try:
            with translating("accounts.update"):
                await self.processor.attach_test_verification(account_id, owner_id)
        except DomainError as e:
            logger.warning(
                "Sandbox identity document not attached",
                extra={"processor_account_id": account_id, "code": e.code},
            )

    async def create_onboarding_link(self, owner_id: str) -> Dict[str, Any]:
        record = self._record(owner_id, "createOnboardingLink")
        return_url = _join_url(self.config.public_base_url, self.config.onboarding_return_path)
        refresh_url = _join_url(self.config.public_base_url, self.config.onboarding_refresh_path)
        with translating("account_links.create"):
            url = await self.processor.create_account_link(record.processor_account_id, return_url, refresh_url)
        return {"processorAccountId": record.processor_account_id, "url": url}

    async def get_account_status(self, owner_id: str) -> Dict[str, Any]:
        snapshot, state = await self.status.find(owner_id)
        if snapshot is None:
            return {"exists": False, "state": state.value}
        return {"exists": True, **serializers.account(snapshot, state.value)}

    async def update_capabilities(self, owner_id: str) -> Dict[str, Any]:
        """Request every capability the lifecycle needs; the processor decides when they activate"""
        record = self._record(owner_id, "updateCapabilities")
        with translating("accounts.update"):
            snapshot = await self.processor.request_capabilities(
                record.processor_account_id, [CARD_PAYMENTS, TRANSFERS, CARD_ISSUING]
            )
        state = self.status.remember(owner_id, snapshot)
        self.repository.commit()
        return serializers.account(snapshot, state.value)
