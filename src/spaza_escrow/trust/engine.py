"""Trust Engine: storage-backed trust profiles.

Owns every TrustProfile. Escrow orchestration reads scores from here when
picking an escrow duration and reports settled outcomes back.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from spaza_escrow.domain.exceptions import EscrowValidationError, ProfileNotFoundError
from spaza_escrow.domain.ports import SYSTEM_CLOCK
from spaza_escrow.infrastructure.locks import KeyedLocks
from spaza_escrow.logging_config import get_logger
from spaza_escrow.trust.scoring import (
    Bonus,
    Penalty,
    TrustProfile,
    calculate_trust_score,
    clamp_score,
    recommended_duration,
    trust_level,
)

if TYPE_CHECKING:
    import uuid

    from spaza_escrow.domain.enums import TrustLevel
    from spaza_escrow.domain.ports import Clock, EscrowStorage

logger = get_logger(__name__)


class TrustEngine:
    """Registers users and keeps their trust scores current."""

    def __init__(
        self,
        storage: EscrowStorage,
        clock: Clock = SYSTEM_CLOCK,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._locks = locks if locks is not None else KeyedLocks()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, user_id: uuid.UUID) -> TrustProfile:
        """Create a profile at score 50.0, or return the existing one untouched."""
        with self._locks.hold(user_id):
            existing = self._storage.get_profile(user_id)
            if existing is not None:
                return existing

            profile = TrustProfile.new(user_id, self._clock.now())
            self._storage.put_profile(profile)

        logger.info("trust.registered", user_id=str(user_id), score=str(profile.score))
        return profile

    def is_registered(self, user_id: uuid.UUID) -> bool:
        return self._storage.get_profile(user_id) is not None

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def record_transaction(
        self,
        user_id: uuid.UUID,
        amount: Decimal,
        was_successful: bool,
        had_dispute: bool,
        settlement_seconds: int = 0,
    ) -> Decimal:
        """Fold one settled escrow into the user's profile and rescore it.

        Returns:
            The new score.

        Raises:
            ProfileNotFoundError: If the user was never registered.
        """
        if amount < 0:
            raise EscrowValidationError(f"amount must not be negative, got {amount}")

        with self._locks.hold(user_id):
            profile = self._get_or_raise(user_id)
            old_score = profile.score

            profile.total_transactions += 1
            profile.total_amount_transacted += amount
            profile.last_active = self._clock.now()
            if was_successful:
                profile.successful_transactions += 1
            if had_dispute:
                profile.disputed_transactions += 1

            settlement_seconds = max(settlement_seconds, 0)
            if profile.total_transactions == 1:
                profile.avg_settlement_seconds = settlement_seconds
            else:
                previous = profile.total_transactions - 1
                profile.avg_settlement_seconds = (
                    profile.avg_settlement_seconds * previous + settlement_seconds
                ) // profile.total_transactions

            profile.score = calculate_trust_score(profile, profile.last_active)
            self._storage.put_profile(profile)

        logger.info(
            "trust.score_updated",
            user_id=str(user_id),
            old_score=str(old_score),
            new_score=str(profile.score),
            successful=was_successful,
            disputed=had_dispute,
        )
        return profile.score

    def add_penalty(
        self,
        user_id: uuid.UUID,
        reason: str,
        points: Decimal,
        days_valid: int,
    ) -> Decimal:
        """Deduct ``points`` now; the penalty keeps counting until it expires."""
        if points <= 0 or days_valid < 1:
            raise EscrowValidationError("penalty points and days_valid must be positive")

        with self._locks.hold(user_id):
            profile = self._get_or_raise(user_id)
            now = self._clock.now()
            profile.penalties.append(
                Penalty(
                    reason=reason,
                    points=points,
                    timestamp=now,
                    expires_at=now + timedelta(days=days_valid),
                )
            )
            profile.score = clamp_score(profile.score - points)
            self._storage.put_profile(profile)

        logger.info("trust.penalty_added", user_id=str(user_id), points=str(points), reason=reason)
        return profile.score

    def add_bonus(self, user_id: uuid.UUID, reason: str, points: Decimal) -> Decimal:
        """Add ``points`` now and in every later rescoring."""
        if points <= 0:
            raise EscrowValidationError("bonus points must be positive")

        with self._locks.hold(user_id):
            profile = self._get_or_raise(user_id)
            profile.bonuses.append(Bonus(reason=reason, points=points, timestamp=self._clock.now()))
            profile.score = clamp_score(profile.score + points)
            self._storage.put_profile(profile)

        logger.info("trust.bonus_added", user_id=str(user_id), points=str(points), reason=reason)
        return profile.score

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get_profile(self, user_id: uuid.UUID) -> TrustProfile:
        return self._get_or_raise(user_id)

    def get_score(self, user_id: uuid.UUID) -> Decimal:
        return self._get_or_raise(user_id).score

    def get_level(self, user_id: uuid.UUID) -> TrustLevel:
        return trust_level(self.get_score(user_id))

    def recommended_duration(self, buyer_id: uuid.UUID, seller_id: uuid.UUID) -> int:
        """Escrow days for a buyer/seller pair, from their current scores."""
        return recommended_duration(self.get_score(buyer_id), self.get_score(seller_id))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_or_raise(self, user_id: uuid.UUID) -> TrustProfile:
        profile = self._storage.get_profile(user_id)
        if profile is None:
            raise ProfileNotFoundError(user_id)
        return profile
