"""Escrow record, its dispute sub-record, and party directory entries.

The Escrow is the entity mutated by the state machine in domain/contract.py
and domain/dispute.py. It owns its dispute sub-record; trust profiles live
in spaza_escrow.trust and are never referenced from here.

A Party holds the contact details of a buyer, seller or arbitrator so
notifications can reach them on commands that don't carry a phone number.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from spaza_escrow.domain.enums import DisputeDecision, EscrowState, PartyRole
from spaza_escrow.domain.exceptions import EscrowValidationError
from spaza_escrow.domain.ports import SYSTEM_CLOCK, generate_pin

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from spaza_escrow.domain.ports import Clock

DEFAULT_PANEL_SIZE = 3


@dataclass
class Vote:
    """A single arbitrator's ballot. ``vote=True`` means release to seller."""

    arbitrator_id: uuid.UUID
    vote: bool
    voted_at: datetime


@dataclass
class DisputeResolution:
    """Dispute sub-record attached to an escrow when a party raises a dispute.

    Attributes:
        raised_by: The buyer or seller who opened the dispute.
        raised_at: When the dispute was opened.
        votes: Ballots in the order they were cast, at most one per arbitrator.
        resolved_at: Set when the majority threshold is reached.
        decision: The outcome, set together with ``resolved_at``.
    """

    raised_by: uuid.UUID
    raised_at: datetime
    votes: list[Vote] = field(default_factory=list)
    resolved_at: datetime | None = None
    decision: DisputeDecision | None = None

    @property
    def is_resolved(self) -> bool:
        return self.decision is not None

    def has_voted(self, arbitrator_id: uuid.UUID) -> bool:
        return any(v.arbitrator_id == arbitrator_id for v in self.votes)


@dataclass
class Escrow:
    """Funds held between a buyer and a seller pending delivery."""

    id: uuid.UUID
    amount: Decimal
    currency: str
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    description: str
    state: EscrowState
    created_at: datetime
    expires_at: datetime
    funded_at: datetime | None = None
    completed_at: datetime | None = None
    release_pin: str | None = None
    arbitrators: tuple[uuid.UUID, ...] = ()
    dispute: DisputeResolution | None = None

    @classmethod
    def create(
        cls,
        amount: Decimal,
        currency: str,
        buyer_id: uuid.UUID,
        seller_id: uuid.UUID,
        description: str,
        days_to_expire: int,
        arbitrators: Sequence[uuid.UUID] | None = None,
        clock: Clock = SYSTEM_CLOCK,
        pin_generator: Callable[[], str] = generate_pin,
    ) -> Escrow:
        """Build a new escrow in CREATED state with a fresh release PIN.

        Args:
            amount: Amount to hold. Must be a positive Decimal.
            currency: ISO-style currency code, stored as given.
            buyer_id: The paying party.
            seller_id: The receiving party. Must differ from ``buyer_id``.
            description: Free-text description of the goods.
            days_to_expire: Days until an unreleased escrow may be auto-refunded.
            arbitrators: Explicit panel; a panel of three fresh identifiers
                         is assigned when omitted.
            clock: Source of the creation timestamp.
            pin_generator: Produces the 6-digit release PIN.

        Raises:
            EscrowValidationError: If any argument breaks a creation rule.
        """
        if not isinstance(amount, Decimal):
            raise EscrowValidationError("amount must be a Decimal")
        if not amount.is_finite() or amount <= 0:
            raise EscrowValidationError(f"amount must be positive, got {amount}")
        if buyer_id == seller_id:
            raise EscrowValidationError("buyer and seller must be different users")
        if days_to_expire < 1:
            raise EscrowValidationError(f"days_to_expire must be at least 1, got {days_to_expire}")
        if not currency:
            raise EscrowValidationError("currency is required")

        if arbitrators is None:
            panel = tuple(uuid.uuid4() for _ in range(DEFAULT_PANEL_SIZE))
        else:
            panel = tuple(arbitrators)
        if not panel:
            raise EscrowValidationError("at least one arbitrator is required")
        if len(set(panel)) != len(panel):
            raise EscrowValidationError("arbitrators must be unique")
        if buyer_id in panel or seller_id in panel:
            raise EscrowValidationError("buyer and seller cannot arbitrate their own escrow")

        now = clock.now()
        return cls(
            id=uuid.uuid4(),
            amount=amount,
            currency=currency,
            buyer_id=buyer_id,
            seller_id=seller_id,
            description=description,
            state=EscrowState.CREATED,
            created_at=now,
            expires_at=now + timedelta(days=days_to_expire),
            release_pin=pin_generator(),
            arbitrators=panel,
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_party(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.buyer_id, self.seller_id)

    def __repr__(self) -> str:
        return f"<Escrow id={self.id} state={self.state} amount={self.amount} {self.currency}>"


@dataclass
class Party:
    """A directory entry: who a user is and how to reach them."""

    id: uuid.UUID
    role: PartyRole
    phone_number: str
    created_at: datetime
    name: str | None = None
