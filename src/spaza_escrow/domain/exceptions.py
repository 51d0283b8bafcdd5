"""Domain exceptions for Spaza Escrow.

These exceptions are framework-agnostic and represent business rule violations
or infrastructure failures. Every one carries a stable ``code`` so callers
(the CLI, a future API layer) can tell a user-correctable failure such as a
wrong PIN apart from a terminal one such as a missing escrow.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import uuid
    from decimal import Decimal


class EscrowError(Exception):
    """Base exception for all escrow errors."""

    def __init__(self, message: str, code: str = "ESCROW_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Lookup Errors ---


class NotFoundError(EscrowError):
    """Raised when a record does not exist in storage."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="NOT_FOUND")


class EscrowNotFoundError(NotFoundError):
    """Raised when an escrow ID does not exist."""

    def __init__(self, escrow_id: uuid.UUID | str) -> None:
        super().__init__(f"Escrow not found: {escrow_id}")
        self.escrow_id = escrow_id


class ProfileNotFoundError(NotFoundError):
    """Raised when a user has no trust profile."""

    def __init__(self, user_id: uuid.UUID | str) -> None:
        super().__init__(f"Trust profile not found for user: {user_id}")
        self.user_id = user_id


class PartyNotFoundError(NotFoundError):
    """Raised when a user has no entry in the party directory."""

    def __init__(self, user_id: uuid.UUID | str) -> None:
        super().__init__(f"Party not found: {user_id}")
        self.user_id = user_id


# --- State Machine Errors ---


class InvalidStateTransitionError(EscrowError):
    """Raised when an attempted state transition is not allowed.

    Example: CREATED -> COMPLETED (must be funded first).
    """

    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {from_state} -> {to_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.from_state = from_state
        self.to_state = to_state


# --- Business Rule Errors ---


class InsufficientFundsError(EscrowError):
    """Raised when a funding amount is below the escrowed amount."""

    def __init__(self, required: Decimal, provided: Decimal) -> None:
        super().__init__(
            message=f"Insufficient funds. Required: {required}, Provided: {provided}",
            code="INSUFFICIENT_FUNDS",
        )
        self.required = required
        self.provided = provided


class UnauthorizedError(EscrowError):
    """Raised when a user acts on an escrow they are not entitled to."""

    def __init__(self, user_id: uuid.UUID | str) -> None:
        super().__init__(
            message=f"Unauthorized access by user: {user_id}",
            code="UNAUTHORIZED",
        )
        self.user_id = user_id


class InvalidPinError(EscrowError):
    """Raised when the presented release PIN does not match."""

    def __init__(self) -> None:
        super().__init__(message="Invalid release PIN", code="INVALID_PIN")


class EscrowExpiredError(EscrowError):
    """Raised when a release is attempted after the escrow deadline."""

    def __init__(self) -> None:
        super().__init__(message="Escrow has expired", code="EXPIRED")


# --- Dispute Errors ---


class NotArbitratorError(EscrowError):
    """Raised when a vote comes from outside the escrow's arbitrator panel."""

    def __init__(self, arbitrator_id: uuid.UUID | str) -> None:
        super().__init__(
            message=f"User is not an arbitrator for this escrow: {arbitrator_id}",
            code="NOT_ARBITRATOR",
        )
        self.arbitrator_id = arbitrator_id


class AlreadyVotedError(EscrowError):
    """Raised when an arbitrator votes twice on the same dispute."""

    def __init__(self, arbitrator_id: uuid.UUID | str) -> None:
        super().__init__(
            message=f"Arbitrator already voted: {arbitrator_id}",
            code="ALREADY_VOTED",
        )
        self.arbitrator_id = arbitrator_id


class DisputeAlreadyResolvedError(EscrowError):
    """Raised when a vote arrives after the dispute has a decision."""

    def __init__(self) -> None:
        super().__init__(message="Dispute already resolved", code="DISPUTE_ALREADY_RESOLVED")


# --- Validation Errors ---


class EscrowValidationError(EscrowError):
    """Raised when input fails a business validation rule."""

    def __init__(self, detail: str) -> None:
        super().__init__(message=f"Validation error: {detail}", code="VALIDATION_ERROR")
        self.detail = detail


# --- Infrastructure Errors ---


class InfrastructureError(EscrowError):
    """Base exception for collaborator failures (storage, notifications)."""


class StorageError(InfrastructureError):
    """Raised when the record store fails to read or write."""

    def __init__(self, detail: str) -> None:
        super().__init__(message=f"Storage error: {detail}", code="STORAGE_ERROR")
        self.detail = detail


class NotificationError(InfrastructureError):
    """Raised when an outbound notification cannot be delivered."""

    def __init__(self, detail: str) -> None:
        super().__init__(message=f"Notification error: {detail}", code="NOTIFICATION_ERROR")
        self.detail = detail
