"""Data access layer for connected-account records"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from piggybank_connect.domain.models import AccountRecord, ConnectedAccount, IdempotencyRecord
from piggybank_connect.infrastructure.database.models import ConnectedAccountRow, IdempotencyMarker


def _to_record(row: ConnectedAccountRow) -> AccountRecord:
    return AccountRecord(
        owner_id=row.owner_id,
        processor_account_id=row.processor_account_id,
        cardholder_id=row.cardholder_id,
        virtual_card_id=row.virtual_card_id,
        terms_accepted_at=row.terms_accepted_at,
    )


class SqlAccountRepository:
    """Repository for per-user processor identifiers, status cache and idempotency markers"""

    def __init__(self, db: Session):
        self.db = db

    def _row(self, owner_id: str) -> Optional[ConnectedAccountRow]:
        return self.db.get(ConnectedAccountRow, owner_id, populate_existing=True)

    def _require_row(self, owner_id: str) -> ConnectedAccountRow:
        row = self._row(owner_id)
        if row is None:
            raise LookupError(f"No connected account recorded for owner {owner_id}")
        return row

    def get(self, owner_id: str) -> Optional[AccountRecord]:
        row = self._row(owner_id)
        return _to_record(row) if row else None

    def get_by_processor_id(self, processor_account_id: str) -> Optional[AccountRecord]:
        row = (
            self.db.query(ConnectedAccountRow)
            .filter(ConnectedAccountRow.processor_account_id == processor_account_id)
            .first()
        )
        return _to_record(row) if row else None

    def create(self, owner_id: str, processor_account_id: str) -> AccountRecord:
        """Record a newly created processor account for this owner"""
        row = ConnectedAccountRow(owner_id=owner_id, processor_account_id=processor_account_id)
        self.db.add(row)
        self.db.flush()
        return _to_record(row)

    def cache_status(self, owner_id: str, snapshot: ConnectedAccount, state: str) -> None:
        """Overwrite the status projection with a freshly read snapshot"""
        row = self._require_row(owner_id)
        row.verification_state = state
        row.charges_enabled = snapshot.charges_enabled
        row.payouts_enabled = snapshot.payouts_enabled
        row.details_submitted = snapshot.details_submitted
        row.capabilities = {name: value.value for name, value in snapshot.capabilities.items()}
        row.requirements = {
            "past_due": list(snapshot.requirements.past_due),
            "currently_due": list(snapshot.requirements.currently_due),
            "eventually_due": list(snapshot.requirements.eventually_due),
            "pending_verification": list(snapshot.requirements.pending_verification),
            "disabled_reason": snapshot.requirements.disabled_reason,
        }
        self.db.flush()

    def set_cardholder(self, owner_id: str, cardholder_id: str) -> None:
        self._require_row(owner_id).cardholder_id = cardholder_id
        self.db.flush()

    def set_virtual_card(self, owner_id: str, card_id: str) -> None:
        self._require_row(owner_id).virtual_card_id = card_id
        self.db.flush()

    def set_terms_accepted(self, owner_id: str, accepted_at: datetime) -> None:
        self._require_row(owner_id).terms_accepted_at = accepted_at
        self.db.flush()

    def _marker(self, owner_id: str, operation: str, key: str) -> Optional[IdempotencyMarker]:
        return (
            self.db.query(IdempotencyMarker)
            .populate_existing()
            .filter(
                IdempotencyMarker.owner_id == owner_id,
                IdempotencyMarker.operation == operation,
                IdempotencyMarker.key == key,
            )
            .first()
        )

    def get_idempotency_record(self, owner_id: str, operation: str, key: str) -> Optional[IdempotencyRecord]:
        marker = self._marker(owner_id, operation, key)
        return IdempotencyRecord(request=marker.request, response=marker.response) if marker else None

    def claim_idempotency_key(
        self, owner_id: str, operation: str, key: str, request: Dict[str, Any]
    ) -> Optional[IdempotencyRecord]:
        """
        Persist a pending marker before the processor is asked to act.

        Work flushed so far is committed first, then the marker, so the
        marker survives a failed attempt.
        Returns None once claimed, or the record already holding the key.
        """
        self.db.commit()
        self.db.add(
            IdempotencyMarker(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                operation=operation,
                key=key,
                request=request,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.get_idempotency_record(owner_id, operation, key)
        return None

    def complete_idempotency_key(self, owner_id: str, operation: str, key: str, response: Dict[str, Any]) -> None:
        marker = self._marker(owner_id, operation, key)
        if marker is None:
            raise LookupError(f"No idempotency marker for {operation} key {key}")
        marker.response = response
        self.db.flush()

    def commit(self) -> None:
        """Make this operation's writes visible before the owner lease is released"""
        self.db.commit()
