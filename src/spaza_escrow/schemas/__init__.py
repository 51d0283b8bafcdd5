"""Pydantic boundary and serialization schemas."""

from spaza_escrow.schemas.escrow import (
    BonusSchema,
    CreateEscrowRequest,
    DisputeSchema,
    EscrowSchema,
    FundEscrowRequest,
    PartySchema,
    PenaltySchema,
    RegisterPartyRequest,
    TrustProfileSchema,
    VoteSchema,
)

__all__ = [
    "BonusSchema",
    "CreateEscrowRequest",
    "DisputeSchema",
    "EscrowSchema",
    "FundEscrowRequest",
    "PartySchema",
    "PenaltySchema",
    "RegisterPartyRequest",
    "TrustProfileSchema",
    "VoteSchema",
]
