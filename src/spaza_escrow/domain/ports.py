"""Collaborator interfaces consumed by the escrow core.

These are Protocols (structural subtyping) so concrete collaborators don't
need to inherit from a base class; they just need to match the shape.

The domain layer has ZERO imports from SQLAlchemy, SMS gateways or any other
external service.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from spaza_escrow.domain.models import Escrow, Party
    from spaza_escrow.trust.scoring import TrustProfile

PIN_LENGTH = 6


@runtime_checkable
class Clock(Protocol):
    """Single source of "now" for expiry and timestamps."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


SYSTEM_CLOCK = SystemClock()


def generate_pin() -> str:
    """Return a uniformly random 6-digit release PIN ("000000" - "999999")."""
    return f"{secrets.randbelow(10**PIN_LENGTH):0{PIN_LENGTH}d}"


@runtime_checkable
class EscrowStorage(Protocol):
    """Key-value record store for escrows, trust profiles and parties.

    Implementations must give read-your-writes consistency within a process
    and round-trip every field losslessly.

    Concrete implementations:
        - infrastructure/storage/memory.py   (in-process dicts)
        - infrastructure/database/repositories.py (SQLAlchemy)
    """

    def get(self, escrow_id: uuid.UUID) -> Escrow | None: ...

    def put(self, escrow: Escrow) -> None: ...

    def list(self) -> Sequence[Escrow]: ...

    def get_profile(self, user_id: uuid.UUID) -> TrustProfile | None: ...

    def put_profile(self, profile: TrustProfile) -> None: ...

    def get_party(self, user_id: uuid.UUID) -> Party | None: ...

    def put_party(self, party: Party) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget outbound message channel."""

    def send(self, phone: str, message: str) -> str:
        """Deliver ``message`` and return a delivery id.

        Raises:
            NotificationError: If the message could not be handed off.
        """
        ...
