"""Processor event intake: signature verification and status reconciliation"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, List, Optional

from piggybank_connect.domain.exceptions import DomainError, InvalidInputError, UpstreamError
from piggybank_connect.domain.ports import AccountRepository, PaymentProcessorClient
from piggybank_connect.domain.translator import translating
from piggybank_connect.infrastructure.clients.processor import parse_account
from piggybank_connect.services.status import AccountStatusCache

logger = logging.getLogger(__name__)

SIGNATURE_MESSAGE = "Invalid webhook signature."


def _signature_parts(header: str) -> tuple[Optional[int], List[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def compute_signature(payload: bytes, timestamp: int, secret: str) -> str:
    signed = f"{timestamp}.".encode() + payload
    return hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()


def verify_signature(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance_seconds: int,
    now: Optional[float] = None,
) -> None:
    """
    Check a `t=<unix>,v1=<hex>` signature header against the raw body.

    Raises:
        InvalidInputError: header missing or malformed, no v1 signature
            matches, or the timestamp is outside the tolerance window
    """
    if not header or not secret:
        raise InvalidInputError(SIGNATURE_MESSAGE, code="signature_invalid")
    timestamp, signatures = _signature_parts(header)
    if timestamp is None or not signatures:
        raise InvalidInputError(SIGNATURE_MESSAGE, code="signature_invalid")

    expected = compute_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise InvalidInputError(SIGNATURE_MESSAGE, code="signature_invalid")

    current = time.time() if now is None else now
    if tolerance_seconds > 0 and abs(current - timestamp) > tolerance_seconds:
        raise InvalidInputError("Webhook timestamp outside the tolerance window.", code="signature_invalid")


class WebhookHandler:
    def __init__(self, processor: PaymentProcessorClient, repository: AccountRepository):
        self.processor = processor
        self.repository = repository
        self.status = AccountStatusCache(processor, repository)

    async def handle_event(self, payload: bytes) -> Dict[str, Any]:
        """Apply a verified event; unknown types and unknown accounts are acknowledged"""
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise InvalidInputError("Webhook body is not valid JSON.", code="parameter_invalid") from e
        if not isinstance(event, dict):
            raise InvalidInputError("Webhook body is not an event object.", code="parameter_invalid")

        event_type = event.get("type")
        if event_type != "account.updated":
            logger.info("Ignoring webhook event", extra={"event_type": event_type, "event_id": event.get("id")})
            return {"received": True}

        with translating("webhook.account.updated"):
            try:
                snapshot = parse_account((event.get("data") or {})["object"])
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamError(f"Malformed account.updated event: {e}", type="invalid_request_error", param="data") from e

        record = self.repository.get_by_processor_id(snapshot.processor_account_id)
        if record is None:
            logger.warning(
                "Webhook for unknown account",
                extra={"processor_account_id": snapshot.processor_account_id, "event_id": event.get("id")},
            )
            return {"received": True}

        if not snapshot.owner_id:
            await self._backfill_owner(snapshot.processor_account_id, record.owner_id)

        state = self.status.remember(record.owner_id, snapshot)
        self.repository.commit()
        logger.info("Account status reconciled", extra={"owner_id": record.owner_id, "state": state.value})
        return {"received": True}

    async def _backfill_owner(self, account_id: str, owner_id: str) -> None:
        """Tag accounts created without owner metadata so later events map back directly"""
        try:
            with translating("accounts.update"):
                await self.processor.update_account(account_id, {"metadata": {"owner_id": owner_id}})
        except DomainError as e:
            logger.warning("Owner metadata backfill failed", extra={"owner_id": owner_id, "code": e.code})
