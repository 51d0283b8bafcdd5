"""Domain enumerations for Spaza Escrow.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no pydantic imports).
"""

import enum


class EscrowState(enum.StrEnum):
    """Lifecycle states of an escrow.

    State transitions are enforced by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    CREATED = "CREATED"
    FUNDED = "FUNDED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    IN_DISPUTE = "IN_DISPUTE"
    REFUNDED = "REFUNDED"

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowState.COMPLETED, EscrowState.CANCELLED, EscrowState.REFUNDED)


class DisputeDecision(enum.StrEnum):
    """Outcome of an arbitrator vote once the majority threshold is reached."""

    RELEASE_TO_SELLER = "RELEASE_TO_SELLER"
    REFUND_TO_BUYER = "REFUND_TO_BUYER"


class TrustLevel(enum.StrEnum):
    """Trust tiers derived from a 0-100 trust score.

    Bands (upper bound exclusive):
        NEWBIE    < 30
        BRONZE    30 - 59.9
        SILVER    60 - 79.9
        GOLD      80 - 89.9
        PLATINUM  90 - 95.9
        TRUSTED   96 - 100
    """

    NEWBIE = "NEWBIE"
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"
    TRUSTED = "TRUSTED"


class MobileCarrier(enum.StrEnum):
    """Carriers the SMS gateway can route through."""

    MTN = "MTN"
    VODACOM = "Vodacom"
    AIRTEL = "Airtel"
    SAFARICOM = "Safaricom"
    ORANGE = "Orange"

    @property
    def display_name(self) -> str:
        if self is MobileCarrier.SAFARICOM:
            return "Safaricom (M-Pesa)"
        if self is MobileCarrier.ORANGE:
            return "Orange Money"
        return self.value


class PartyRole(enum.StrEnum):
    """The role a user was first registered under in the party directory."""

    BUYER = "BUYER"
    SELLER = "SELLER"
    ARBITRATOR = "ARBITRATOR"
