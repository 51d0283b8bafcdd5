"""Dispute Resolution Engine.

Arbitrators attached to an escrow vote on an open dispute. After every
accepted vote the tally is checked against the majority threshold,
ceil(2n/3) for a panel of n:

    n = 3 -> 2 votes
    n = 4 -> 3 votes
    n = 5 -> 4 votes

The first side to reach the threshold wins. Since the threshold is always
more than half the panel, both sides can never reach it together.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spaza_escrow.domain.enums import DisputeDecision
from spaza_escrow.domain.exceptions import (
    AlreadyVotedError,
    DisputeAlreadyResolvedError,
    EscrowValidationError,
    NotArbitratorError,
)
from spaza_escrow.domain.models import Vote
from spaza_escrow.domain.ports import SYSTEM_CLOCK
from spaza_escrow.domain.state_machine import validate_transition

if TYPE_CHECKING:
    import uuid

    from spaza_escrow.domain.models import DisputeResolution, Escrow
    from spaza_escrow.domain.ports import Clock


def majority_threshold(panel_size: int) -> int:
    """Return ceil(2 * panel_size / 3) using integer arithmetic."""
    if panel_size < 1:
        raise ValueError(f"panel_size must be positive, got {panel_size}")
    return -(-2 * panel_size // 3)


def tally(dispute: DisputeResolution) -> tuple[int, int]:
    """Return (votes for release, votes for refund)."""
    release = sum(1 for v in dispute.votes if v.vote)
    return release, len(dispute.votes) - release


def vote_on_dispute(
    escrow: Escrow,
    arbitrator_id: uuid.UUID,
    vote: bool,
    clock: Clock = SYSTEM_CLOCK,
) -> DisputeDecision | None:
    """Record an arbitrator's vote and resolve the dispute if a side has a majority.

    Args:
        escrow: An escrow in IN_DISPUTE state.
        arbitrator_id: Must be on the escrow's panel and not have voted yet.
        vote: True to release funds to the seller, False to refund the buyer.
        clock: Source of the vote and resolution timestamps.

    Returns:
        The decision if this vote resolved the dispute, otherwise None.

    Raises:
        DisputeAlreadyResolvedError: If the dispute already has a decision.
        InvalidStateTransitionError: If the escrow is not IN_DISPUTE.
        NotArbitratorError: If ``arbitrator_id`` is not on the panel.
        AlreadyVotedError: If the arbitrator has already voted.
    """
    dispute = escrow.dispute
    if dispute is not None and dispute.is_resolved:
        raise DisputeAlreadyResolvedError()

    # Both outcomes leave IN_DISPUTE; checking one guards the state.
    validate_transition(escrow.state, "panel_releases")

    if arbitrator_id not in escrow.arbitrators:
        raise NotArbitratorError(arbitrator_id)
    if dispute is None:
        raise EscrowValidationError("escrow is in dispute but has no dispute record")
    if dispute.has_voted(arbitrator_id):
        raise AlreadyVotedError(arbitrator_id)

    now = clock.now()
    dispute.votes.append(Vote(arbitrator_id=arbitrator_id, vote=vote, voted_at=now))

    needed = majority_threshold(len(escrow.arbitrators))
    for_release, for_refund = tally(dispute)

    if for_release >= needed:
        escrow.state = validate_transition(escrow.state, "panel_releases")
        escrow.completed_at = now
        dispute.decision = DisputeDecision.RELEASE_TO_SELLER
    elif for_refund >= needed:
        escrow.state = validate_transition(escrow.state, "panel_refunds")
        dispute.decision = DisputeDecision.REFUND_TO_BUYER
    else:
        return None

    dispute.resolved_at = now
    return dispute.decision
