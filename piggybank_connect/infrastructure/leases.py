"""Per-owner leases serializing read-modify-write operations on one account"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from piggybank_connect.config import settings
from piggybank_connect.domain.exceptions import ResourceConflictError
from piggybank_connect.infrastructure.database.models import OwnerLeaseRow

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Another operation on this account is in progress. Please retry."


class DatabaseOwnerLease:
    """
    Lease backed by a row in `owner_lease`.

    Acquisition is an insert keyed on owner id; an expired row is taken over
    in place so a crashed holder cannot block an owner past the TTL. A live
    holder renews its row in the background, so the TTL only bounds how long
    a crashed holder blocks the owner. Each statement commits on its own
    short-lived session, independent of the request's unit of work.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl_seconds: float | None = None,
        wait_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds or settings.lease_ttl_seconds)
        self.wait_seconds = wait_seconds if wait_seconds is not None else settings.lease_wait_seconds
        self.poll_interval = poll_interval_seconds or settings.lease_poll_interval_seconds

    def _try_acquire(self, owner_id: str, token: str) -> bool:
        now = datetime.now(timezone.utc)
        db = self.session_factory()
        try:
            try:
                db.add(OwnerLeaseRow(owner_id=owner_id, token=token, expires_at=now + self.ttl))
                db.commit()
                return True
            except IntegrityError:
                db.rollback()

            result = db.execute(
                update(OwnerLeaseRow)
                .where(OwnerLeaseRow.owner_id == owner_id, OwnerLeaseRow.expires_at < now)
                .values(token=token, expires_at=now + self.ttl)
            )
            db.commit()
            if result.rowcount == 1:
                logger.warning("Took over expired owner lease", extra={"owner_id": owner_id})
                return True
            return False
        finally:
            db.close()

    def _renew(self, owner_id: str, token: str) -> bool:
        db = self.session_factory()
        try:
            result = db.execute(
                update(OwnerLeaseRow)
                .where(OwnerLeaseRow.owner_id == owner_id, OwnerLeaseRow.token == token)
                .values(expires_at=datetime.now(timezone.utc) + self.ttl)
            )
            db.commit()
            return result.rowcount == 1
        finally:
            db.close()

    def _release(self, owner_id: str, token: str) -> None:
        db = self.session_factory()
        try:
            result = db.execute(
                delete(OwnerLeaseRow).where(OwnerLeaseRow.owner_id == owner_id, OwnerLeaseRow.token == token)
            )
            db.commit()
        finally:
            db.close()
        if result.rowcount == 0:
            logger.error("Owner lease was no longer held at release", extra={"owner_id": owner_id})

    async def _keep_alive(self, owner_id: str, token: str) -> None:
        """Extend the lease every third of its TTL for as long as the holder runs"""
        interval = self.ttl.total_seconds() / 3
        while True:
            await asyncio.sleep(interval)
            if not self._renew(owner_id, token):
                logger.error("Owner lease lost while held", extra={"owner_id": owner_id})
                return

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait_seconds
        while not self._try_acquire(owner_id, token):
            if time.monotonic() >= deadline:
                raise ResourceConflictError(BUSY_MESSAGE, code="operation_in_progress")
            await asyncio.sleep(self.poll_interval)
        renewal = asyncio.create_task(self._keep_alive(owner_id, token))
        try:
            yield
        finally:
            renewal.cancel()
            self._release(owner_id, token)
            with suppress(asyncio.CancelledError):
                await renewal


class InMemoryOwnerLease:
    """Single-process lease: one asyncio.Lock per owner, dropped once nobody holds or awaits it"""

    def __init__(self, wait_seconds: float | None = None):
        self.wait_seconds = wait_seconds if wait_seconds is not None else settings.lease_wait_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def _checkin(self, owner_id: str) -> None:
        self._users[owner_id] -= 1
        if self._users[owner_id] == 0:
            del self._users[owner_id]
            del self._locks[owner_id]

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        self._users[owner_id] = self._users.get(owner_id, 0) + 1
        acquired = False
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except asyncio.TimeoutError as e:
                raise ResourceConflictError(BUSY_MESSAGE, code="operation_in_progress") from e
            acquired = True
            yield
        finally:
            if acquired:
                lock.release()
            self._checkin(owner_id)
