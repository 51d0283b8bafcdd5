"""Escrow lifecycle operations.

Each operation takes an Escrow, checks the transition guard first, then the
business rules, and mutates the record only once every check has passed. A
failed call leaves the record exactly as it was.

Time comes from an injected Clock so expiry is testable. Nothing here
performs I/O; persistence and notifications belong to the service layer.
"""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from spaza_escrow.domain.enums import EscrowState
from spaza_escrow.domain.exceptions import (
    EscrowExpiredError,
    InsufficientFundsError,
    InvalidPinError,
    UnauthorizedError,
)
from spaza_escrow.domain.models import DisputeResolution
from spaza_escrow.domain.ports import SYSTEM_CLOCK
from spaza_escrow.domain.state_machine import validate_transition

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal

    from spaza_escrow.domain.models import Escrow
    from spaza_escrow.domain.ports import Clock


def fund_escrow(escrow: Escrow, amount: Decimal, clock: Clock = SYSTEM_CLOCK) -> None:
    """Record the buyer's deposit and move CREATED -> FUNDED.

    Partial deposits are rejected rather than accumulated.

    Raises:
        InvalidStateTransitionError: If the escrow is not CREATED.
        InsufficientFundsError: If ``amount`` is below the escrowed amount.
    """
    new_state = validate_transition(escrow.state, "buyer_funds")
    if amount < escrow.amount:
        raise InsufficientFundsError(required=escrow.amount, provided=amount)

    escrow.state = new_state
    escrow.funded_at = clock.now()


def release_to_seller(
    escrow: Escrow,
    user_id: uuid.UUID,
    pin: str,
    clock: Clock = SYSTEM_CLOCK,
) -> None:
    """Release held funds to the seller using the buyer's PIN (FUNDED -> COMPLETED).

    The PIN is consumed on success and can never be presented again.

    Raises:
        InvalidStateTransitionError: If the escrow is not FUNDED.
        EscrowExpiredError: If the deadline has passed.
        UnauthorizedError: If ``user_id`` is not the buyer.
        InvalidPinError: If ``pin`` does not match.
    """
    new_state = validate_transition(escrow.state, "buyer_releases")
    now = clock.now()
    if escrow.is_expired(now):
        raise EscrowExpiredError()
    if user_id != escrow.buyer_id:
        raise UnauthorizedError(user_id)
    if escrow.release_pin is None or not hmac.compare_digest(
        escrow.release_pin.encode(), str(pin).encode()
    ):
        raise InvalidPinError()

    escrow.state = new_state
    escrow.completed_at = now
    escrow.release_pin = None


def cancel_escrow(escrow: Escrow, user_id: uuid.UUID) -> None:
    """Cancel an unfunded escrow (CREATED -> CANCELLED). Buyer only.

    Raises:
        InvalidStateTransitionError: If the escrow is not CREATED.
        UnauthorizedError: If ``user_id`` is not the buyer.
    """
    new_state = validate_transition(escrow.state, "buyer_cancels")
    if user_id != escrow.buyer_id:
        raise UnauthorizedError(user_id)

    escrow.state = new_state


def raise_dispute(escrow: Escrow, user_id: uuid.UUID, clock: Clock = SYSTEM_CLOCK) -> None:
    """Open a dispute on a funded escrow (FUNDED -> IN_DISPUTE).

    Raises:
        InvalidStateTransitionError: If the escrow is not FUNDED.
        UnauthorizedError: If ``user_id`` is neither buyer nor seller.
    """
    new_state = validate_transition(escrow.state, "party_disputes")
    if not escrow.is_party(user_id):
        raise UnauthorizedError(user_id)

    escrow.state = new_state
    escrow.dispute = DisputeResolution(raised_by=user_id, raised_at=clock.now())


def auto_refund_if_expired(escrow: Escrow, clock: Clock = SYSTEM_CLOCK) -> bool:
    """Refund a funded escrow whose deadline has passed.

    A conditional no-op: returns False for any escrow that is not FUNDED or
    not yet expired, True when the escrow moved to REFUNDED.
    """
    if escrow.state != EscrowState.FUNDED or not escrow.is_expired(clock.now()):
        return False
    escrow.state = validate_transition(escrow.state, "expiry_refund")
    return True
