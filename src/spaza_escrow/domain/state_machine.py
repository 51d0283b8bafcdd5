"""Escrow State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the CLI or the service layer does, an illegal transition
(e.g., CREATED -> COMPLETED) raises InvalidStateTransitionError before the
escrow record is touched.

The state machine is instantiated per-call at the escrow's current state and
validates transitions before the record's ``state`` field is updated.

Transition table:
    CREATED     -> FUNDED       (buyer_funds)
    CREATED     -> CANCELLED    (buyer_cancels)
    FUNDED      -> COMPLETED    (buyer_releases)
    FUNDED      -> IN_DISPUTE   (party_disputes)
    FUNDED      -> REFUNDED     (expiry_refund)
    IN_DISPUTE  -> COMPLETED    (panel_releases)
    IN_DISPUTE  -> REFUNDED     (panel_refunds)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from spaza_escrow.domain.enums import EscrowState
from spaza_escrow.domain.exceptions import InvalidStateTransitionError

# Target state of each event, used to report the attempted state when the
# event is not allowed from the current one.
EVENT_TARGETS: dict[str, EscrowState] = {
    "buyer_funds": EscrowState.FUNDED,
    "buyer_cancels": EscrowState.CANCELLED,
    "buyer_releases": EscrowState.COMPLETED,
    "party_disputes": EscrowState.IN_DISPUTE,
    "expiry_refund": EscrowState.REFUNDED,
    "panel_releases": EscrowState.COMPLETED,
    "panel_refunds": EscrowState.REFUNDED,
}


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_state="FUNDED")
        sm.buyer_releases()  # transitions to COMPLETED
        sm.escrow_state      # EscrowState.COMPLETED
    """

    # --- States ---
    CREATED = State("CREATED", initial=True)
    FUNDED = State("FUNDED")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)
    IN_DISPUTE = State("IN_DISPUTE")
    REFUNDED = State("REFUNDED", final=True)

    # --- Events / Transitions ---

    # Funding
    buyer_funds = CREATED.to(FUNDED)
    buyer_cancels = CREATED.to(CANCELLED)

    # Release by PIN
    buyer_releases = FUNDED.to(COMPLETED)

    # Expiry
    expiry_refund = FUNDED.to(REFUNDED)

    # Disputes
    party_disputes = FUNDED.to(IN_DISPUTE)
    panel_releases = IN_DISPUTE.to(COMPLETED)
    panel_refunds = IN_DISPUTE.to(REFUNDED)

    def __init__(self, current_state: str = "CREATED") -> None:
        """Initialize the state machine at a given state.

        Args:
            current_state: The current EscrowState value (e.g., "FUNDED").
                           Must match one of the State value strings exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_state not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(f"Unknown state '{current_state}'. Valid states: {valid}")
        super().__init__(start_value=str(current_state))

    @property
    def escrow_state(self) -> EscrowState:
        """Return the current state as an EscrowState."""
        return EscrowState(self.current_state_value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_state: str, event_name: str) -> EscrowState:
    """Validate a state transition and return the new state.

    Creates a temporary state machine, fires the named event, and returns the
    resulting state. The caller applies it to the record only after every
    other guard has passed.

    Args:
        current_state: Current EscrowState value.
        event_name: The event to fire (e.g., "buyer_releases").

    Returns:
        The state the escrow moves to.

    Raises:
        InvalidStateTransitionError: If the transition is illegal.
        ValueError: If the state or event name is unknown.
    """
    if event_name not in EVENT_TARGETS:
        raise ValueError(f"Unknown event '{event_name}'. Known events: {sorted(EVENT_TARGETS)}")

    sm = EscrowStateMachine(current_state=current_state)
    try:
        getattr(sm, event_name)()
    except TransitionNotAllowed as err:
        raise InvalidStateTransitionError(
            str(current_state), EVENT_TARGETS[event_name].value
        ) from err
    return sm.escrow_state
