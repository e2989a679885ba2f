"""SQLAlchemy ORM models for the connected-account document store"""

from sqlalchemy import Boolean, Column, DateTime, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


class ConnectedAccountRow(Base):
    """Per-user processor identifiers plus the last status projection read"""

    __tablename__ = "connected_account"

    owner_id = Column(String(128), primary_key=True)
    processor_account_id = Column(String(64), nullable=False, unique=True, index=True)
    cardholder_id = Column(String(64), nullable=True)
    virtual_card_id = Column(String(64), nullable=True)
    terms_accepted_at = Column(DateTime(timezone=True), nullable=True)

    # Status cache, refreshed on every authoritative read
    verification_state = Column(String(16), nullable=False, default="CREATED")
    charges_enabled = Column(Boolean, nullable=False, default=False)
    payouts_enabled = Column(Boolean, nullable=False, default=False)
    details_submitted = Column(Boolean, nullable=False, default=False)
    capabilities = Column(JSON, nullable=True)
    requirements = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class OwnerLeaseRow(Base):
    """One row per owner while a mutating operation is in flight"""

    __tablename__ = "owner_lease"

    owner_id = Column(String(128), primary_key=True)
    token = Column(String(64), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class IdempotencyMarker(Base):
    """Keyed mutating request: resolved parameters, then the response once it completes"""

    __tablename__ = "idempotency_marker"
    __table_args__ = (UniqueConstraint("owner_id", "operation", "key", name="uq_idempotency_owner_op_key"),)

    id = Column(String(64), primary_key=True)
    owner_id = Column(String(128), nullable=False, index=True)
    operation = Column(String(64), nullable=False)
    key = Column(Text, nullable=False)
    request = Column(JSON, nullable=False)
    response = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
