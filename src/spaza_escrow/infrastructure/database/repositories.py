"""SQL-backed implementation of the EscrowStorage protocol.

Each call runs in its own session and transaction. Domain dataclasses are
mapped to and from rows here; the JSON columns go through the pydantic
schemas so decimals and datetimes keep their exact values.

Driver failures surface as StorageError. SQLite "database is locked"
contention is retried with exponential backoff before giving up.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from spaza_escrow.domain.exceptions import StorageError
from spaza_escrow.infrastructure.database.orm_models import EscrowRow, PartyRow, TrustProfileRow
from spaza_escrow.logging_config import get_logger
from spaza_escrow.schemas.escrow import (
    BonusSchema,
    DisputeSchema,
    EscrowSchema,
    PartySchema,
    PenaltySchema,
    TrustProfileSchema,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.orm import Session, sessionmaker

    from spaza_escrow.domain.models import Escrow, Party
    from spaza_escrow.trust.scoring import TrustProfile

logger = get_logger(__name__)

_retry_on_lock = retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, max=1),
    reraise=True,
)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------
def escrow_to_row(escrow: Escrow) -> EscrowRow:
    dispute = None
    if escrow.dispute is not None:
        dispute = DisputeSchema.model_validate(escrow.dispute).model_dump(mode="json")
    return EscrowRow(
        id=escrow.id,
        buyer_id=escrow.buyer_id,
        seller_id=escrow.seller_id,
        amount=escrow.amount,
        currency=escrow.currency,
        description=escrow.description,
        state=str(escrow.state),
        release_pin=escrow.release_pin,
        arbitrators=[str(a) for a in escrow.arbitrators],
        dispute=dispute,
        created_at=escrow.created_at,
        expires_at=escrow.expires_at,
        funded_at=escrow.funded_at,
        completed_at=escrow.completed_at,
    )


def row_to_escrow(row: EscrowRow) -> Escrow:
    return EscrowSchema(
        id=row.id,
        amount=row.amount,
        currency=row.currency,
        buyer_id=row.buyer_id,
        seller_id=row.seller_id,
        description=row.description,
        state=row.state,
        created_at=row.created_at,
        expires_at=row.expires_at,
        funded_at=row.funded_at,
        completed_at=row.completed_at,
        release_pin=row.release_pin,
        arbitrators=[uuid.UUID(a) for a in row.arbitrators],
        dispute=row.dispute,
    ).to_domain()


def profile_to_row(profile: TrustProfile) -> TrustProfileRow:
    return TrustProfileRow(
        user_id=profile.user_id,
        score=profile.score,
        total_transactions=profile.total_transactions,
        successful_transactions=profile.successful_transactions,
        disputed_transactions=profile.disputed_transactions,
        total_amount_transacted=profile.total_amount_transacted,
        avg_settlement_seconds=profile.avg_settlement_seconds,
        penalties=[PenaltySchema.model_validate(p).model_dump(mode="json") for p in profile.penalties],
        bonuses=[BonusSchema.model_validate(b).model_dump(mode="json") for b in profile.bonuses],
        last_active=profile.last_active,
        created_at=profile.created_at,
    )


def row_to_profile(row: TrustProfileRow) -> TrustProfile:
    return TrustProfileSchema(
        user_id=row.user_id,
        score=row.score,
        total_transactions=row.total_transactions,
        successful_transactions=row.successful_transactions,
        disputed_transactions=row.disputed_transactions,
        total_amount_transacted=row.total_amount_transacted,
        avg_settlement_seconds=row.avg_settlement_seconds,
        last_active=row.last_active,
        created_at=row.created_at,
        penalties=row.penalties,
        bonuses=row.bonuses,
    ).to_domain()


def party_to_row(party: Party) -> PartyRow:
    return PartyRow(
        id=party.id,
        role=str(party.role),
        phone_number=party.phone_number,
        name=party.name,
        created_at=party.created_at,
    )


def row_to_party(row: PartyRow) -> Party:
    return PartySchema.model_validate(row).to_domain()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
class SqlStorage:
    """Record store on top of a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""
        with self._session_factory() as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    # --- Escrows ---

    def get(self, escrow_id: uuid.UUID) -> Escrow | None:
        try:
            with self._session() as session:
                row = session.get(EscrowRow, escrow_id)
                return row_to_escrow(row) if row is not None else None
        except SQLAlchemyError as err:
            raise StorageError(str(err)) from err

    def put(self, escrow: Escrow) -> None:
        try:
            self._merge(escrow_to_row(escrow))
        except SQLAlchemyError as err:
            logger.error("storage.put_failed", escrow_id=str(escrow.id), error=str(err))
            raise StorageError(str(err)) from err
        logger.debug("storage.put", escrow_id=str(escrow.id), state=str(escrow.state))

    def list(self) -> list[Escrow]:
        """Return every escrow, oldest first."""
        try:
            with self._session() as session:
                rows = session.scalars(select(EscrowRow).order_by(EscrowRow.created_at.asc()))
                return [row_to_escrow(row) for row in rows]
        except SQLAlchemyError as err:
            raise StorageError(str(err)) from err

    # --- Trust profiles ---

    def get_profile(self, user_id: uuid.UUID) -> TrustProfile | None:
        try:
            with self._session() as session:
                row = session.get(TrustProfileRow, user_id)
                return row_to_profile(row) if row is not None else None
        except SQLAlchemyError as err:
            raise StorageError(str(err)) from err

    def put_profile(self, profile: TrustProfile) -> None:
        try:
            self._merge(profile_to_row(profile))
        except SQLAlchemyError as err:
            logger.error("storage.put_profile_failed", user_id=str(profile.user_id), error=str(err))
            raise StorageError(str(err)) from err
        logger.debug("storage.put_profile", user_id=str(profile.user_id))

    # --- Parties ---

    def get_party(self, user_id: uuid.UUID) -> Party | None:
        try:
            with self._session() as session:
                row = session.get(PartyRow, user_id)
                return row_to_party(row) if row is not None else None
        except SQLAlchemyError as err:
            raise StorageError(str(err)) from err

    def put_party(self, party: Party) -> None:
        try:
            self._merge(party_to_row(party))
        except SQLAlchemyError as err:
            logger.error("storage.put_party_failed", user_id=str(party.id), error=str(err))
            raise StorageError(str(err)) from err
        logger.debug("storage.put_party", user_id=str(party.id), role=str(party.role))

    # --- Private helpers ---

    @_retry_on_lock
    def _merge(self, row: EscrowRow | TrustProfileRow | PartyRow) -> None:
        with self._session() as session:
            session.merge(row)
