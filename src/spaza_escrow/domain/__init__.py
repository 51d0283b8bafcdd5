"""Domain layer: pure business logic with zero framework dependencies."""

from spaza_escrow.domain.contract import (
    auto_refund_if_expired,
    cancel_escrow,
    fund_escrow,
    raise_dispute,
    release_to_seller,
)
from spaza_escrow.domain.dispute import majority_threshold, tally, vote_on_dispute
from spaza_escrow.domain.enums import DisputeDecision, EscrowState, PartyRole, TrustLevel
from spaza_escrow.domain.exceptions import (
    EscrowError,
    EscrowNotFoundError,
    InvalidStateTransitionError,
)
from spaza_escrow.domain.models import DisputeResolution, Escrow, Party, Vote
from spaza_escrow.domain.ports import Clock, EscrowStorage, Notifier, SystemClock
from spaza_escrow.domain.state_machine import EscrowStateMachine, validate_transition

__all__ = [
    "DisputeDecision",
    "EscrowState",
    "PartyRole",
    "TrustLevel",
    "EscrowError",
    "EscrowNotFoundError",
    "InvalidStateTransitionError",
    "DisputeResolution",
    "Escrow",
    "Party",
    "Vote",
    "Clock",
    "EscrowStorage",
    "Notifier",
    "SystemClock",
    "EscrowStateMachine",
    "validate_transition",
    "auto_refund_if_expired",
    "cancel_escrow",
    "fund_escrow",
    "raise_dispute",
    "release_to_seller",
    "majority_threshold",
    "tally",
    "vote_on_dispute",
]
