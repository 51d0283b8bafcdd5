"""Pydantic schemas for Spaza Escrow.

Two jobs:
    - Boundary validation: CLI input (amounts arrive as strings and become
      Decimal here, never through float).
    - Serialization: the JSON shape of escrows, disputes, trust profiles and
      parties, used for CLI ``--json`` output and for the SQL store's JSON
      columns.

They are separate from the domain dataclasses to keep pydantic out of the
domain layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from spaza_escrow.domain.enums import DisputeDecision, EscrowState, PartyRole, TrustLevel
from spaza_escrow.domain.models import DisputeResolution, Escrow, Party, Vote
from spaza_escrow.trust.scoring import Bonus, Penalty, TrustProfile, trust_level

PHONE_PATTERN = r"^\+?\d{7,15}$"

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEscrowRequest(BaseModel):
    """Input for creating a new escrow."""

    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=4,
        description="Amount to hold",
        examples=["1500.00"],
    )
    currency: str = Field(default="ZAR", min_length=3, max_length=8)
    buyer_id: uuid.UUID
    seller_id: uuid.UUID
    description: str = Field(default="Monthly stock purchase", max_length=500)
    days: int | None = Field(
        default=None,
        ge=1,
        le=365,
        description="Days until expiry; recommended from trust scores when omitted",
    )
    arbitrators: list[uuid.UUID] | None = Field(
        default=None,
        description="Explicit arbitrator panel; generated when omitted",
    )
    buyer_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    seller_phone: str | None = Field(default=None, pattern=PHONE_PATTERN)

    @model_validator(mode="after")
    def _distinct_parties(self) -> CreateEscrowRequest:
        if self.buyer_id == self.seller_id:
            raise ValueError("buyer_id and seller_id must differ")
        return self


class FundEscrowRequest(BaseModel):
    """Input for funding an escrow."""

    escrow_id: uuid.UUID
    amount: Decimal = Field(..., gt=0, decimal_places=4)


class RegisterPartyRequest(BaseModel):
    """Input for adding or updating a party directory entry."""

    user_id: uuid.UUID
    role: PartyRole
    phone_number: str = Field(..., pattern=PHONE_PATTERN, examples=["+27821234567"])
    name: str | None = Field(default=None, max_length=100)


# ---------------------------------------------------------------------------
# Record Schemas
# ---------------------------------------------------------------------------


class VoteSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    arbitrator_id: uuid.UUID
    vote: bool
    voted_at: datetime

    def to_domain(self) -> Vote:
        return Vote(arbitrator_id=self.arbitrator_id, vote=self.vote, voted_at=self.voted_at)


class DisputeSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    raised_by: uuid.UUID
    raised_at: datetime
    votes: list[VoteSchema] = Field(default_factory=list)
    resolved_at: datetime | None = None
    decision: DisputeDecision | None = None

    def to_domain(self) -> DisputeResolution:
        return DisputeResolution(
            raised_by=self.raised_by,
            raised_at=self.raised_at,
            votes=[v.to_domain() for v in self.votes],
            resolved_at=self.resolved_at,
            decision=self.decision,
        )


class EscrowSchema(BaseModel):
    """Full escrow record.

    ``release_pin`` is included so the record round-trips; use
    ``public_dict`` for anything shown to a user.
    """

    model_config = ConfigDict(from_attributes=True)

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
    arbitrators: list[uuid.UUID]
    dispute: DisputeSchema | None = None

    def to_domain(self) -> Escrow:
        return Escrow(
            id=self.id,
            amount=self.amount,
            currency=self.currency,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            description=self.description,
            state=self.state,
            created_at=self.created_at,
            expires_at=self.expires_at,
            funded_at=self.funded_at,
            completed_at=self.completed_at,
            release_pin=self.release_pin,
            arbitrators=tuple(self.arbitrators),
            dispute=self.dispute.to_domain() if self.dispute else None,
        )

    def public_dict(self) -> dict:
        """JSON-safe dict with the release PIN removed."""
        return self.model_dump(mode="json", exclude={"release_pin"})


class PenaltySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reason: str
    points: Decimal
    timestamp: datetime
    expires_at: datetime

    def to_domain(self) -> Penalty:
        return Penalty(
            reason=self.reason,
            points=self.points,
            timestamp=self.timestamp,
            expires_at=self.expires_at,
        )


class BonusSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reason: str
    points: Decimal
    timestamp: datetime

    def to_domain(self) -> Bonus:
        return Bonus(reason=self.reason, points=self.points, timestamp=self.timestamp)


class TrustProfileSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    score: Decimal
    total_transactions: int
    successful_transactions: int
    disputed_transactions: int
    total_amount_transacted: Decimal
    avg_settlement_seconds: int
    last_active: datetime
    created_at: datetime
    penalties: list[PenaltySchema] = Field(default_factory=list)
    bonuses: list[BonusSchema] = Field(default_factory=list)

    @property
    def level(self) -> TrustLevel:
        return trust_level(self.score)

    def to_domain(self) -> TrustProfile:
        return TrustProfile(
            user_id=self.user_id,
            score=self.score,
            total_transactions=self.total_transactions,
            successful_transactions=self.successful_transactions,
            disputed_transactions=self.disputed_transactions,
            total_amount_transacted=self.total_amount_transacted,
            avg_settlement_seconds=self.avg_settlement_seconds,
            last_active=self.last_active,
            created_at=self.created_at,
            penalties=[p.to_domain() for p in self.penalties],
            bonuses=[b.to_domain() for b in self.bonuses],
        )


class PartySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    role: PartyRole
    phone_number: str
    created_at: datetime
    name: str | None = None

    def to_domain(self) -> Party:
        return Party(
            id=self.id,
            role=self.role,
            phone_number=self.phone_number,
            created_at=self.created_at,
            name=self.name,
        )
