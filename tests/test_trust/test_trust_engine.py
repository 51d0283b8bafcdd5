"""Tests for the storage-backed TrustEngine."""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from spaza_escrow.domain.enums import TrustLevel
from spaza_escrow.domain.exceptions import EscrowValidationError, ProfileNotFoundError


class TestRegister:
    def test_new_user_starts_at_fifty(self, trust, buyer_id, clock) -> None:
        profile = trust.register(buyer_id)
        assert profile.score == Decimal("50.0")
        assert profile.created_at == clock.now()
        assert trust.is_registered(buyer_id)
        assert trust.get_level(buyer_id) is TrustLevel.BRONZE

    def test_register_is_idempotent(self, trust, buyer_id) -> None:
        trust.register(buyer_id)
        trust.add_bonus(buyer_id, "Referral", Decimal("5"))
        again = trust.register(buyer_id)
        assert again.score == Decimal("55.0")

    def test_unknown_user(self, trust) -> None:
        user_id = uuid.uuid4()
        assert not trust.is_registered(user_id)
        with pytest.raises(ProfileNotFoundError) as exc_info:
            trust.get_score(user_id)
        assert exc_info.value.code == "NOT_FOUND"


class TestRecordTransaction:
    def test_successful_transaction(self, trust, seller_id, clock) -> None:
        trust.register(seller_id)
        clock.advance(hours=1)
        score = trust.record_transaction(
            seller_id, Decimal("1500.00"), was_successful=True, had_dispute=False, settlement_seconds=3600
        )
        assert score == Decimal("99.9")

        profile = trust.get_profile(seller_id)
        assert profile.total_transactions == 1
        assert profile.successful_transactions == 1
        assert profile.disputed_transactions == 0
        assert profile.total_amount_transacted == Decimal("1500.00")
        assert profile.avg_settlement_seconds == 3600
        assert profile.last_active == clock.now()

    def test_disputed_failure_drags_score_down(self, trust, seller_id) -> None:
        trust.register(seller_id)
        score = trust.record_transaction(
            seller_id, Decimal("800"), was_successful=False, had_dispute=True
        )
        assert score == Decimal("0.0")
        assert trust.get_level(seller_id) is TrustLevel.NEWBIE

    def test_settlement_time_is_moving_average(self, trust, buyer_id) -> None:
        trust.register(buyer_id)
        trust.record_transaction(buyer_id, Decimal("100"), True, False, settlement_seconds=3600)
        trust.record_transaction(buyer_id, Decimal("100"), True, False, settlement_seconds=7200)
        trust.record_transaction(buyer_id, Decimal("100"), True, False, settlement_seconds=1)
        # (3600 + 7200) // 2 = 5400, then (5400 * 2 + 1) // 3
        assert trust.get_profile(buyer_id).avg_settlement_seconds == 3600

    def test_amounts_accumulate_exactly(self, trust, buyer_id) -> None:
        trust.register(buyer_id)
        for _ in range(3):
            trust.record_transaction(buyer_id, Decimal("0.10"), True, False)
        assert trust.get_profile(buyer_id).total_amount_transacted == Decimal("0.30")

    def test_unregistered_user_rejected(self, trust) -> None:
        with pytest.raises(ProfileNotFoundError):
            trust.record_transaction(uuid.uuid4(), Decimal("10"), True, False)

    def test_negative_amount_rejected(self, trust, buyer_id) -> None:
        trust.register(buyer_id)
        with pytest.raises(EscrowValidationError):
            trust.record_transaction(buyer_id, Decimal("-1"), True, False)


class TestPenaltiesAndBonuses:
    def test_penalty_applies_immediately(self, trust, buyer_id, clock) -> None:
        trust.register(buyer_id)
        assert trust.add_penalty(buyer_id, "No-show", Decimal("10"), days_valid=30) == Decimal("40.0")
        penalty = trust.get_profile(buyer_id).penalties[0]
        assert penalty.expires_at == clock.now() + timedelta(days=30)

    def test_penalty_drops_out_after_expiry(self, trust, buyer_id, clock) -> None:
        trust.register(buyer_id)
        trust.add_penalty(buyer_id, "No-show", Decimal("10"), days_valid=1)
        clock.advance(days=2)
        # 100% success, volume 20, fresh activity, neutral speed: 50 + 20 + 20 + 5
        score = trust.record_transaction(buyer_id, Decimal("100"), True, False)
        assert score == Decimal("95.0")

    def test_active_penalty_survives_rescoring(self, trust, buyer_id) -> None:
        trust.register(buyer_id)
        trust.add_penalty(buyer_id, "No-show", Decimal("10"), days_valid=30)
        score = trust.record_transaction(buyer_id, Decimal("100"), True, False)
        assert score == Decimal("85.0")

    def test_bonus_capped_at_hundred(self, trust, seller_id) -> None:
        trust.register(seller_id)
        assert trust.add_bonus(seller_id, "Verified wholesaler", Decimal("80")) == Decimal("100.0")

    def test_penalty_floors_at_zero(self, trust, seller_id) -> None:
        trust.register(seller_id)
        assert trust.add_penalty(seller_id, "Fraud", Decimal("75"), days_valid=365) == Decimal("0.0")

    @pytest.mark.parametrize(("points", "days"), [(Decimal("0"), 5), (Decimal("5"), 0)])
    def test_invalid_penalty(self, trust, buyer_id, points, days) -> None:
        trust.register(buyer_id)
        with pytest.raises(EscrowValidationError):
            trust.add_penalty(buyer_id, "x", points, days_valid=days)

    def test_invalid_bonus(self, trust, buyer_id) -> None:
        trust.register(buyer_id)
        with pytest.raises(EscrowValidationError):
            trust.add_bonus(buyer_id, "x", Decimal("-1"))


class TestRecommendedDuration:
    def test_new_pair_gets_a_week(self, trust, buyer_id, seller_id) -> None:
        trust.register(buyer_id)
        trust.register(seller_id)
        assert trust.recommended_duration(buyer_id, seller_id) == 7

    def test_trusted_pair_gets_three_days(self, trust, buyer_id, seller_id) -> None:
        trust.register(buyer_id)
        trust.register(seller_id)
        trust.add_bonus(buyer_id, "Established spaza owner", Decimal("25"))
        trust.add_bonus(seller_id, "Verified wholesaler", Decimal("42"))
        assert trust.get_score(buyer_id) == Decimal("75.0")
        assert trust.get_score(seller_id) == Decimal("92.0")
        assert trust.recommended_duration(buyer_id, seller_id) == 3
