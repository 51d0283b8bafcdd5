"""SQLAlchemy 2.0 ORM models for Spaza Escrow.

Three tables:
    1. escrows         - One row per escrow record, dispute sub-record as JSON.
    2. trust_profiles  - One row per user, penalty/bonus ledgers as JSON.
    3. parties         - One row per user, contact details for notifications.

Design decisions:
    - UUIDs as primary keys.
    - Amounts and scores stored as exact decimal strings (SQLite has no
      lossless NUMERIC, and a float round-trip would drift).
    - Datetimes stored as naive UTC and re-tagged as UTC on load.
    - CHECK constraint on state to prevent invalid enum values at DB level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# Column types
# ---------------------------------------------------------------------------
class ExactDecimal(TypeDecorator):
    """Decimal persisted as its canonical string."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return str(Decimal(value))

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime persisted as naive UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"naive datetime not allowed: {value!r}")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# 1. escrows
# ---------------------------------------------------------------------------
class EscrowRow(Base):
    """Persisted escrow record."""

    __tablename__ = "escrows"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)

    # --- Parties ---
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # --- Financials ---
    amount: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # --- State (guarded by EscrowStateMachine) ---
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="CREATED")
    release_pin: Mapped[str | None] = mapped_column(String(6), nullable=True)

    # --- Arbitration ---
    arbitrators: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        comment="Arbitrator UUIDs as strings, in panel order",
    )
    dispute: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
        default=None,
        comment="DisputeSchema JSON: raised_by, votes, decision",
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    funded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "state IN ('CREATED', 'FUNDED', 'COMPLETED', 'CANCELLED', "
            "'IN_DISPUTE', 'REFUNDED')",
            name="ck_escrow_valid_state",
        ),
        Index("idx_escrow_state", "state"),
        Index("idx_escrow_buyer", "buyer_id"),
        Index("idx_escrow_seller", "seller_id"),
        Index("idx_escrow_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EscrowRow id={self.id} state={self.state} amount={self.amount} {self.currency}>"


# ---------------------------------------------------------------------------
# 2. trust_profiles
# ---------------------------------------------------------------------------
class TrustProfileRow(Base):
    """Persisted trust profile."""

    __tablename__ = "trust_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    score: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)

    # --- Counters ---
    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    disputed_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount_transacted: Mapped[Decimal] = mapped_column(ExactDecimal, nullable=False)
    avg_settlement_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Ledgers ---
    penalties: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    bonuses: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # --- Timestamps ---
    last_active: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "successful_transactions <= total_transactions "
            "AND disputed_transactions <= total_transactions",
            name="ck_profile_counter_bounds",
        ),
    )

    def __repr__(self) -> str:
        return f"<TrustProfileRow user={self.user_id} score={self.score}>"


# ---------------------------------------------------------------------------
# 3. parties
# ---------------------------------------------------------------------------
class PartyRow(Base):
    """Persisted party directory entry."""

    __tablename__ = "parties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    role: Mapped[str] = mapped_column(String(12), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN ('BUYER', 'SELLER', 'ARBITRATOR')",
            name="ck_party_valid_role",
        ),
    )

    def __repr__(self) -> str:
        return f"<PartyRow id={self.id} role={self.role}>"
