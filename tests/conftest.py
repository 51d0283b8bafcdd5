"""Shared test fixtures for the Spaza Escrow test suite.

Provides:
    - A controllable clock and a fixed PIN generator
    - Deterministic party and arbitrator identifiers
    - In-memory storage, trust engine and a fully wired EscrowService
    - A recording SMS fake that can be told to fail
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from spaza_escrow.domain.exceptions import NotificationError
from spaza_escrow.domain.models import Escrow
from spaza_escrow.infrastructure.storage.memory import InMemoryStorage
from spaza_escrow.services.escrow_service import EscrowService
from spaza_escrow.trust.engine import TrustEngine

FIXED_PIN = "482913"
START = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingSms:
    """Stands in for SmsService; records calls and optionally fails them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, tuple]] = []
        self.fail = False

    def _record(self, kind: str, *args: object) -> str:
        if self.fail:
            raise NotificationError("carrier unreachable")
        self.sent.append((kind, args))
        return f"sms_{len(self.sent)}"

    def send_pin_to_buyer(self, *args: object) -> str:
        return self._record("pin", *args)

    def notify_seller_delivery(self, *args: object) -> str:
        return self._record("delivery", *args)

    def notify_payment_released(self, *args: object) -> str:
        return self._record("released", *args)

    def notify_dispute(self, *args: object) -> str:
        return self._record("dispute", *args)

    def notify_refund(self, *args: object) -> str:
        return self._record("refund", *args)

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]


# ---------------------------------------------------------------------------
# Identity Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.UUID("11111111-1111-4111-8111-111111111111")


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.UUID("22222222-2222-4222-8222-222222222222")


@pytest.fixture
def arbitrators() -> tuple[uuid.UUID, uuid.UUID, uuid.UUID]:
    return (
        uuid.UUID("aaaaaaaa-0000-4000-8000-000000000001"),
        uuid.UUID("aaaaaaaa-0000-4000-8000-000000000002"),
        uuid.UUID("aaaaaaaa-0000-4000-8000-000000000003"),
    )


@pytest.fixture
def outsider_id() -> uuid.UUID:
    return uuid.UUID("99999999-9999-4999-8999-999999999999")


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def escrow(clock, buyer_id, seller_id, arbitrators) -> Escrow:
    """A CREATED escrow for R1,500.00 expiring in 7 days."""
    return Escrow.create(
        amount=Decimal("1500.00"),
        currency="ZAR",
        buyer_id=buyer_id,
        seller_id=seller_id,
        description="Maize meal stock",
        days_to_expire=7,
        arbitrators=arbitrators,
        clock=clock,
        pin_generator=lambda: FIXED_PIN,
    )


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def trust(storage, clock) -> TrustEngine:
    return TrustEngine(storage, clock=clock)


@pytest.fixture
def sms() -> RecordingSms:
    return RecordingSms()


@pytest.fixture
def service(storage, trust, sms, clock) -> EscrowService:
    return EscrowService(
        storage=storage,
        trust=trust,
        sms=sms,
        clock=clock,
        pin_generator=lambda: FIXED_PIN,
    )
