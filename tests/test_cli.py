"""Tests for the spaza-escrow command-line interface."""

from __future__ import annotations

import json
import logging
import re
import uuid

import pytest
import structlog

from spaza_escrow.cli import build_parser, main

BUYER = "11111111-1111-4111-8111-111111111111"
SELLER = "22222222-2222-4222-8222-222222222222"


@pytest.fixture(autouse=True)
def isolated_run(tmp_path, monkeypatch):
    """Run each command in a scratch directory and reset logging afterwards."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SMS_AUDIT_LOG", str(tmp_path / "sms_audit.log"))
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def run(tmp_path, capsys):
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"

    def _run(*args: str) -> tuple[int, str, str]:
        code = main(["--database-url", db_url, *args])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


def _field(output: str, name: str) -> str:
    match = re.search(rf"^{name}:\s+(\S+)", output, re.MULTILINE)
    assert match, f"{name} not found in output:\n{output}"
    return match.group(1)


def _create(run, amount: str = "1500.00", *extra: str) -> tuple[str, str, str]:
    code, out, _ = run("create", "--amount", amount, "--buyer-id", BUYER, "--seller-id", SELLER, *extra)
    assert code == 0
    return _field(out, "ID"), _field(out, "PIN"), out


class TestParser:
    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_rejects_malformed_uuid(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["get", "--escrow-id", "not-a-uuid"])

    def test_trust_points_parsed_as_decimal(self) -> None:
        args = build_parser().parse_args(
            ["trust", "reward", "--user-id", BUYER, "--points", "2.5", "--reason", "x"]
        )
        assert str(args.points) == "2.5"


class TestLifecycle:
    def test_create_fund_release(self, run) -> None:
        escrow_id, pin, out = _create(run, "1500.00", "--description", "Maize meal stock")
        assert "ESCROW CREATED SUCCESSFULLY!" in out
        assert "1500.00 ZAR" in out
        assert re.fullmatch(r"\d{6}", pin)

        code, out, _ = run("fund", "--escrow-id", escrow_id, "--amount", "1500.00")
        assert code == 0
        assert "funded" in out

        code, _, err = run("release", "--escrow-id", escrow_id, "--user-id", BUYER, "--pin", "x")
        assert code == 1
        assert "error [INVALID_PIN]" in err

        code, out, _ = run("release", "--escrow-id", escrow_id, "--user-id", BUYER, "--pin", pin)
        assert code == 0
        assert "released" in out

        code, out, _ = run("get", "--escrow-id", escrow_id)
        assert "State:       COMPLETED" in out

    def test_get_json_hides_pin(self, run) -> None:
        escrow_id, pin, _ = _create(run)
        code, out, _ = run("get", "--escrow-id", escrow_id, "--json")
        assert code == 0
        record = json.loads(out)
        assert record["id"] == escrow_id
        assert record["amount"] == "1500.00"
        assert "release_pin" not in record

    def test_short_funding(self, run) -> None:
        escrow_id, _, _ = _create(run)
        code, _, err = run("fund", "--escrow-id", escrow_id, "--amount", "100")
        assert code == 1
        assert "error [INSUFFICIENT_FUNDS]" in err

    def test_invalid_amount(self, run) -> None:
        code, _, err = run("create", "--amount", "-5", "--buyer-id", BUYER, "--seller-id", SELLER)
        assert code == 1
        assert "error [VALIDATION_ERROR]" in err

    def test_same_party(self, run) -> None:
        code, _, err = run("create", "--amount", "5", "--buyer-id", BUYER, "--seller-id", BUYER)
        assert code == 1
        assert "error [VALIDATION_ERROR]" in err

    def test_cancel(self, run) -> None:
        escrow_id, _, _ = _create(run)
        code, out, _ = run("cancel", "--escrow-id", escrow_id, "--user-id", BUYER)
        assert code == 0
        assert "cancelled" in out

    def test_unknown_escrow(self, run) -> None:
        code, _, err = run("get", "--escrow-id", str(uuid.uuid4()))
        assert code == 1
        assert "error [NOT_FOUND]" in err


class TestDisputeCommands:
    def test_dispute_and_votes(self, run) -> None:
        panel = [str(uuid.uuid4()) for _ in range(3)]
        extra = [arg for a in panel for arg in ("--arbitrator", a)]
        escrow_id, _, _ = _create(run, "300", *extra)
        run("fund", "--escrow-id", escrow_id, "--amount", "300")

        code, out, _ = run("dispute", "--escrow-id", escrow_id, "--user-id", SELLER)
        assert code == 0
        assert all(a in out for a in panel)

        code, out, _ = run("vote", "--escrow-id", escrow_id, "--arbitrator-id", panel[0], "--vote", "refund")
        assert code == 0
        assert "Refund: 1" in out
        assert "Needed: 2" in out

        code, _, err = run("vote", "--escrow-id", escrow_id, "--arbitrator-id", panel[0], "--vote", "refund")
        assert code == 1
        assert "error [ALREADY_VOTED]" in err

        code, out, _ = run("vote", "--escrow-id", escrow_id, "--arbitrator-id", panel[1], "--vote", "refund")
        assert "REFUND_TO_BUYER" in out

        code, out, _ = run("list", "--state", "REFUNDED")
        assert escrow_id in out


class TestTrustCommands:
    def test_register_reward_penalize(self, run) -> None:
        code, out, _ = run("trust", "register", "--user-id", BUYER)
        assert code == 0
        assert "50.0 (BRONZE)" in out

        code, out, _ = run("trust", "reward", "--user-id", BUYER, "--points", "25", "--reason", "Referral")
        assert "75.0 (SILVER)" in out

        code, out, _ = run(
            "trust", "penalize", "--user-id", BUYER, "--points", "50", "--days", "7", "--reason", "No-show"
        )
        assert "25.0 (NEWBIE)" in out

    def test_show_unknown_user(self, run) -> None:
        code, _, err = run("trust", "show", "--user-id", str(uuid.uuid4()))
        assert code == 1
        assert "error [NOT_FOUND]" in err


class TestPartyCommands:
    def test_register_and_show(self, run) -> None:
        code, out, _ = run(
            "party", "register", "--user-id", BUYER, "--role", "BUYER",
            "--phone", "+27821234567", "--name", "Thabo",
        )
        assert code == 0
        assert "Phone: +27821234567" in out

        code, out, _ = run("party", "show", "--user-id", BUYER)
        assert code == 0
        assert "Role:  BUYER" in out
        assert "Name:  Thabo" in out

    def test_invalid_phone(self, run) -> None:
        code, _, err = run("party", "register", "--user-id", BUYER, "--role", "BUYER", "--phone", "call me")
        assert code == 1
        assert "error [VALIDATION_ERROR]" in err

    def test_show_unknown_party(self, run) -> None:
        code, _, err = run("party", "show", "--user-id", SELLER)
        assert code == 1
        assert "error [NOT_FOUND]" in err

    def test_create_keeps_seller_phone(self, run) -> None:
        _create(run, "100", "--seller-phone", "+27831234567")
        code, out, _ = run("party", "show", "--user-id", SELLER)
        assert code == 0
        assert "Role:  SELLER" in out
        assert "Phone: +27831234567" in out

    def test_create_rejects_malformed_seller_phone(self, run) -> None:
        code, _, err = run(
            "create", "--amount", "5", "--buyer-id", BUYER, "--seller-id", SELLER, "--seller-phone", "12"
        )
        assert code == 1
        assert "error [VALIDATION_ERROR]" in err

class TestReports:
    def test_dashboard_and_sweep(self, run) -> None:
        escrow_id, _, _ = _create(run, "80.25")
        run("fund", "--escrow-id", escrow_id, "--amount", "80.25")

        code, out, _ = run("dashboard")
        assert code == 0
        assert "Total escrows: 1" in out
        assert "80.25 ZAR" in out

        code, out, _ = run("sweep")
        assert "Refunded 0 expired escrow(s)." in out

    def test_empty_list(self, run) -> None:
        code, out, _ = run("list")
        assert code == 0
        assert "No escrows found." in out


class TestDemo:
    def test_successful_delivery(self, run) -> None:
        code, out, _ = run("demo", "--scenario", "1")
        assert code == 0
        assert "trust 75.0" in out
        assert "trust 92.0" in out
        assert "3 day(s)" in out
        assert "wrong PIN" in out
        assert "payment released" in out

    def test_disputed_delivery(self, run) -> None:
        code, out, _ = run("demo", "--scenario", "2")
        assert code == 0
        assert "REFUND_TO_BUYER" in out
        assert "REFUNDED" in out
        assert "notified of the refund" in out

    def test_demo_leaves_database_untouched(self, run, tmp_path) -> None:
        run("demo")
        code, out, _ = run("list")
        assert "No escrows found." in out
