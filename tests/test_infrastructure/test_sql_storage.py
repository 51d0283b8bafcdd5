"""Tests for the SQLAlchemy record store on in-memory SQLite."""

from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from spaza_escrow.domain.contract import fund_escrow, raise_dispute
from spaza_escrow.domain.dispute import vote_on_dispute
from spaza_escrow.domain.enums import DisputeDecision, EscrowState, PartyRole
from spaza_escrow.domain.exceptions import StorageError
from spaza_escrow.domain.models import Escrow, Party
from spaza_escrow.domain.ports import EscrowStorage
from spaza_escrow.infrastructure.database import (
    SqlStorage,
    create_db_engine,
    init_db,
    make_session_factory,
)
from spaza_escrow.trust.engine import TrustEngine


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_storage(engine) -> SqlStorage:
    return SqlStorage(make_session_factory(engine))


class TestEscrowPersistence:
    def test_satisfies_protocol(self, sql_storage) -> None:
        assert isinstance(sql_storage, EscrowStorage)

    def test_missing_returns_none(self, sql_storage) -> None:
        assert sql_storage.get(uuid.uuid4()) is None

    def test_created_escrow_round_trips(self, sql_storage, escrow) -> None:
        sql_storage.put(escrow)
        loaded = sql_storage.get(escrow.id)
        assert loaded == escrow
        assert loaded.amount == Decimal("1500.00")
        assert str(loaded.amount) == "1500.00"
        assert loaded.created_at.tzinfo is not None
        assert loaded.created_at.utcoffset() == timedelta(0)
        assert loaded.release_pin == "482913"

    def test_sub_cent_amount_is_exact(self, sql_storage, clock, buyer_id, seller_id) -> None:
        escrow = Escrow.create(
            Decimal("1234567.8912"), "KES", buyer_id, seller_id, "Bulk sugar", 5, clock=clock
        )
        sql_storage.put(escrow)
        assert sql_storage.get(escrow.id).amount == Decimal("1234567.8912")

    def test_dispute_round_trips(self, sql_storage, escrow, buyer_id, arbitrators, clock) -> None:
        fund_escrow(escrow, Decimal("1500.00"), clock=clock)
        raise_dispute(escrow, buyer_id, clock=clock)
        vote_on_dispute(escrow, arbitrators[0], False, clock=clock)
        vote_on_dispute(escrow, arbitrators[1], False, clock=clock)
        sql_storage.put(escrow)

        loaded = sql_storage.get(escrow.id)
        assert loaded == escrow
        assert loaded.state == EscrowState.REFUNDED
        assert loaded.dispute.decision is DisputeDecision.REFUND_TO_BUYER
        assert [v.arbitrator_id for v in loaded.dispute.votes] == list(arbitrators[:2])

    def test_put_overwrites(self, sql_storage, escrow, clock) -> None:
        sql_storage.put(escrow)
        fund_escrow(escrow, Decimal("1500.00"), clock=clock)
        sql_storage.put(escrow)
        loaded = sql_storage.get(escrow.id)
        assert loaded.state == EscrowState.FUNDED
        assert loaded.funded_at == clock.now()

    def test_list_oldest_first(self, sql_storage, clock, buyer_id, seller_id) -> None:
        created = []
        for _ in range(3):
            clock.advance(minutes=5)
            created.append(Escrow.create(Decimal("20"), "ZAR", buyer_id, seller_id, "Milk", 2, clock=clock))
        for escrow in reversed(created):
            sql_storage.put(escrow)
        assert [e.id for e in sql_storage.list()] == [e.id for e in created]


class TestProfilePersistence:
    def test_profile_round_trips_with_ledgers(self, sql_storage, clock, buyer_id) -> None:
        trust = TrustEngine(sql_storage, clock=clock)
        trust.register(buyer_id)
        trust.add_bonus(buyer_id, "Referral", Decimal("2.5"))
        trust.add_penalty(buyer_id, "Late payment", Decimal("1.5"), days_valid=14)
        trust.record_transaction(buyer_id, Decimal("99.99"), True, False, settlement_seconds=600)

        profile = sql_storage.get_profile(buyer_id)
        assert profile.total_transactions == 1
        assert profile.total_amount_transacted == Decimal("99.99")
        assert profile.bonuses[0].points == Decimal("2.5")
        assert profile.penalties[0].reason == "Late payment"
        assert profile.penalties[0].expires_at.tzinfo is not None
        assert profile == trust.get_profile(buyer_id)


class TestPartyPersistence:
    def test_missing_party_returns_none(self, sql_storage) -> None:
        assert sql_storage.get_party(uuid.uuid4()) is None

    def test_party_round_trips(self, sql_storage, clock, seller_id) -> None:
        party = Party(seller_id, PartyRole.SELLER, "+27831234567", clock.now(), name="Makro Soweto")
        sql_storage.put_party(party)
        loaded = sql_storage.get_party(seller_id)
        assert loaded == party
        assert loaded.role is PartyRole.SELLER
        assert loaded.created_at.utcoffset() == timedelta(0)

    def test_put_party_overwrites(self, sql_storage, clock, seller_id) -> None:
        sql_storage.put_party(Party(seller_id, PartyRole.SELLER, "+27831234567", clock.now()))
        sql_storage.put_party(Party(seller_id, PartyRole.SELLER, "+27830000000", clock.now()))
        assert sql_storage.get_party(seller_id).phone_number == "+27830000000"
        assert sql_storage.get_party(seller_id).name is None

class TestStorageErrors:
    def test_driver_failure_becomes_storage_error(self, engine, sql_storage, escrow) -> None:
        with engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE escrows")
        with pytest.raises(StorageError) as exc_info:
            sql_storage.get(escrow.id)
        assert exc_info.value.code == "STORAGE_ERROR"

    def test_locked_database_is_retried(self, sql_storage, escrow, monkeypatch) -> None:
        calls = {"n": 0}
        real_factory = sql_storage._session_factory

        def flaky_factory():
            calls["n"] += 1
            if calls["n"] == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return real_factory()

        monkeypatch.setattr(sql_storage, "_session_factory", flaky_factory)
        sql_storage.put(escrow)
        assert calls["n"] == 2
        monkeypatch.setattr(sql_storage, "_session_factory", real_factory)
        assert sql_storage.get(escrow.id) == escrow

    def test_persistent_lock_gives_up(self, sql_storage, escrow, monkeypatch) -> None:
        def locked_factory():
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(sql_storage, "_session_factory", locked_factory)
        with pytest.raises(StorageError):
            sql_storage.put(escrow)
