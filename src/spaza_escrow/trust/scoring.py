"""Trust scoring model.

Pure functions over a TrustProfile. The score is a weighted blend of four
factors, each on a 0-100 scale:

    success  (weight 0.5): successful / total transactions
    volume   (weight 0.2): log10 of the total amount transacted, capped at 1
    recency  (weight 0.2): 100 minus 2 per idle day, floor 40 after 30 days
    speed    (weight 0.1): how far the average settlement is under a week

From the blend we subtract 2 points per percent of disputed transactions and
every unexpired penalty, then add every bonus. The result is clamped to
[0, 100] and rounded to one decimal place, ties to even. A profile with no
transactions scores exactly 50.0.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal

from spaza_escrow.domain.enums import TrustLevel

DEFAULT_SCORE = Decimal("50.0")
MIN_SCORE = Decimal("0.0")
MAX_SCORE = Decimal("100.0")

SUCCESS_WEIGHT = Decimal("0.5")
VOLUME_WEIGHT = Decimal("0.2")
RECENCY_WEIGHT = Decimal("0.2")
SPEED_WEIGHT = Decimal("0.1")
DISPUTE_PENALTY = Decimal("2.0")

RECENCY_WINDOW_DAYS = 30
RECENCY_DECAY_PER_DAY = Decimal("2.0")
STALE_RECENCY = Decimal("40.0")
SETTLEMENT_HORIZON_SECONDS = 7 * 24 * 60 * 60
NEUTRAL_SPEED = Decimal("50.0")

# (exclusive upper bound, level), checked in order.
TRUST_BANDS: tuple[tuple[Decimal, TrustLevel], ...] = (
    (Decimal("30"), TrustLevel.NEWBIE),
    (Decimal("60"), TrustLevel.BRONZE),
    (Decimal("80"), TrustLevel.SILVER),
    (Decimal("90"), TrustLevel.GOLD),
    (Decimal("96"), TrustLevel.PLATINUM),
)

# (inclusive lower bound on the average score, days), checked in order.
DURATION_LADDER: tuple[tuple[Decimal, int], ...] = (
    (Decimal("90"), 1),
    (Decimal("70"), 3),
    (Decimal("50"), 7),
)
FALLBACK_DURATION_DAYS = 14


@dataclass
class Penalty:
    reason: str
    points: Decimal
    timestamp: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass
class Bonus:
    reason: str
    points: Decimal
    timestamp: datetime


@dataclass
class TrustProfile:
    """Running transaction statistics for one user.

    Attributes:
        user_id: The profile owner.
        score: Current trust score, 0.0 - 100.0.
        total_transactions: Settled escrows the user took part in.
        successful_transactions: Of those, the ones that ended in the user's favour.
        disputed_transactions: Of those, the ones that went to arbitration.
        total_amount_transacted: Sum of settled amounts.
        avg_settlement_seconds: Moving average of funding-to-settlement time.
        last_active: Time of the most recent recorded transaction.
        created_at: Registration time.
        penalties: Time-bound deductions.
        bonuses: Permanent additions.
    """

    user_id: uuid.UUID
    created_at: datetime
    last_active: datetime
    score: Decimal = DEFAULT_SCORE
    total_transactions: int = 0
    successful_transactions: int = 0
    disputed_transactions: int = 0
    total_amount_transacted: Decimal = Decimal("0")
    avg_settlement_seconds: int = 0
    penalties: list[Penalty] = field(default_factory=list)
    bonuses: list[Bonus] = field(default_factory=list)

    @classmethod
    def new(cls, user_id: uuid.UUID, now: datetime) -> TrustProfile:
        return cls(user_id=user_id, created_at=now, last_active=now)

    @property
    def level(self) -> TrustLevel:
        return trust_level(self.score)


def clamp_score(value: Decimal) -> Decimal:
    """Clamp to [0, 100] and round to one decimal place, ties to even."""
    bounded = max(MIN_SCORE, min(MAX_SCORE, value))
    return bounded.quantize(Decimal("0.1"), rounding=ROUND_HALF_EVEN)


def _volume_factor(total_amount: Decimal) -> Decimal:
    if total_amount <= 1:
        return Decimal("0")
    return min(total_amount.log10(), Decimal("1")) * 100


def _recency_factor(last_active: datetime, now: datetime) -> Decimal:
    idle_days = max((now - last_active).days, 0)
    if idle_days > RECENCY_WINDOW_DAYS:
        return STALE_RECENCY
    return max(Decimal("100") - idle_days * RECENCY_DECAY_PER_DAY, Decimal("0"))


def _speed_factor(avg_settlement_seconds: int) -> Decimal:
    if avg_settlement_seconds <= 0:
        return NEUTRAL_SPEED
    ratio = Decimal(avg_settlement_seconds) / SETTLEMENT_HORIZON_SECONDS
    return max(Decimal("1") - ratio, Decimal("0")) * 100


def calculate_trust_score(profile: TrustProfile, now: datetime) -> Decimal:
    """Compute the score for ``profile`` as of ``now``.

    Deterministic: depends only on the profile's fields and ``now``.
    """
    total = profile.total_transactions
    if total == 0:
        return DEFAULT_SCORE

    success_rate = Decimal(profile.successful_transactions) / total * 100
    dispute_rate = Decimal(profile.disputed_transactions) / total * 100

    base = (
        success_rate * SUCCESS_WEIGHT
        + _volume_factor(profile.total_amount_transacted) * VOLUME_WEIGHT
        + _recency_factor(profile.last_active, now) * RECENCY_WEIGHT
        + _speed_factor(profile.avg_settlement_seconds) * SPEED_WEIGHT
    )

    active_penalties = sum((p.points for p in profile.penalties if p.is_active(now)), Decimal("0"))
    bonuses = sum((b.points for b in profile.bonuses), Decimal("0"))

    return clamp_score(base - dispute_rate * DISPUTE_PENALTY - active_penalties + bonuses)


def trust_level(score: Decimal) -> TrustLevel:
    """Map a score to its tier. Each band includes its lower bound (30 is BRONZE)."""
    for upper, level in TRUST_BANDS:
        if score < upper:
            return level
    return TrustLevel.TRUSTED


def recommended_duration(buyer_score: Decimal, seller_score: Decimal) -> int:
    """Recommend escrow days from the two parties' average score.

    Higher combined trust means a shorter holdback.
    """
    average = (Decimal(buyer_score) + Decimal(seller_score)) / 2
    for floor, days in DURATION_LADDER:
        if average >= floor:
            return days
    return FALLBACK_DURATION_DAYS
