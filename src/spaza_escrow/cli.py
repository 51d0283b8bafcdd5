"""Spaza Escrow command-line interface.

Usage:
    spaza-escrow create --amount 1500.00 --buyer-id <uuid> --seller-id <uuid>
    spaza-escrow fund --escrow-id <uuid> --amount 1500.00
    spaza-escrow release --escrow-id <uuid> --user-id <buyer uuid> --pin 123456
    spaza-escrow dispute --escrow-id <uuid> --user-id <uuid>
    spaza-escrow vote --escrow-id <uuid> --arbitrator-id <uuid> --vote release
    spaza-escrow list --state FUNDED
    spaza-escrow trust show --user-id <uuid>
    spaza-escrow party register --user-id <uuid> --role BUYER --phone +27821234567
    spaza-escrow dashboard
    spaza-escrow demo --scenario 1

Amounts are parsed as Decimal straight from the argument text. Any
EscrowError is printed as ``error [CODE]: message`` on stderr with exit
status 1.
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from pydantic import ValidationError

from spaza_escrow.config import Settings, get_settings
from spaza_escrow.domain.enums import EscrowState, PartyRole
from spaza_escrow.domain.exceptions import EscrowError, EscrowValidationError
from spaza_escrow.infrastructure.storage.memory import InMemoryStorage
from spaza_escrow.logging_config import bind_command_context, get_logger, setup_logging
from spaza_escrow.schemas.escrow import (
    CreateEscrowRequest,
    EscrowSchema,
    FundEscrowRequest,
    RegisterPartyRequest,
)
from spaza_escrow.services.bootstrap import build_service
from spaza_escrow.trust.scoring import trust_level

if TYPE_CHECKING:
    from collections.abc import Sequence

    from spaza_escrow.domain.models import Escrow
    from spaza_escrow.services.escrow_service import EscrowService

logger = get_logger("spaza_escrow.cli")

_VOTE_CHOICES = {"release": True, "true": True, "refund": False, "false": False}
_RULE = "=" * 40


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def _print_escrow(escrow: Escrow, show_pin: bool = False) -> None:
    print(_RULE)
    print(f"ID:          {escrow.id}")
    print(f"State:       {escrow.state}")
    print(f"Amount:      {escrow.amount} {escrow.currency}")
    print(f"Description: {escrow.description}")
    print(f"Buyer:       {escrow.buyer_id}")
    print(f"Seller:      {escrow.seller_id}")
    print(f"Expires:     {escrow.expires_at.isoformat()}")
    print("Arbitrators: " + ", ".join(str(a) for a in escrow.arbitrators))
    if escrow.dispute is not None:
        verdict = escrow.dispute.decision or "pending"
        print(f"Dispute:     raised by {escrow.dispute.raised_by}, {len(escrow.dispute.votes)} vote(s), {verdict}")
    if show_pin and escrow.release_pin is not None:
        print(f"PIN:         {escrow.release_pin}")
    print(_RULE)


def _decimal(text: str) -> Decimal:
    """argparse type for point values; keeps the exact decimal text."""
    try:
        return Decimal(text)
    except InvalidOperation as err:
        raise argparse.ArgumentTypeError(f"not a decimal number: {text!r}") from err


def _validated(model: type, **fields: object):  # noqa: ANN202
    """Build a pydantic request model, mapping failures to EscrowValidationError."""
    try:
        return model(**fields)
    except ValidationError as err:
        details = "; ".join(
            f"{'.'.join(str(p) for p in e['loc']) or 'request'}: {e['msg']}" for e in err.errors()
        )
        raise EscrowValidationError(details) from err


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------
def handle_create(service: EscrowService, args: argparse.Namespace) -> None:
    fields = {
        "amount": args.amount,
        "currency": args.currency,
        "buyer_id": args.buyer_id,
        "seller_id": args.seller_id,
        "description": args.description,
        "days": args.days,
        "arbitrators": args.arbitrator,
        "buyer_phone": args.buyer_phone,
        "seller_phone": args.seller_phone,
    }
    # Unset options fall through to the service defaults.
    request = _validated(CreateEscrowRequest, **{k: v for k, v in fields.items() if v is not None})
    escrow = service.create_escrow(
        buyer_id=request.buyer_id,
        seller_id=request.seller_id,
        amount=request.amount,
        currency=request.currency if args.currency else None,
        description=request.description if args.description else None,
        days=request.days,
        arbitrators=request.arbitrators,
        buyer_phone=request.buyer_phone,
        seller_phone=request.seller_phone,
    )
    print("ESCROW CREATED SUCCESSFULLY!")
    _print_escrow(escrow, show_pin=True)


def handle_fund(service: EscrowService, args: argparse.Namespace) -> None:
    request = _validated(FundEscrowRequest, escrow_id=args.escrow_id, amount=args.amount)
    escrow = service.fund_escrow(request.escrow_id, request.amount, seller_phone=args.seller_phone)
    print(f"Escrow {escrow.id} funded with {request.amount} {escrow.currency}.")


def handle_release(service: EscrowService, args: argparse.Namespace) -> None:
    escrow = service.release(args.escrow_id, args.user_id, args.pin, seller_phone=args.seller_phone)
    print(f"Escrow {escrow.id} released: {escrow.amount} {escrow.currency} paid to seller.")


def handle_cancel(service: EscrowService, args: argparse.Namespace) -> None:
    escrow = service.cancel(args.escrow_id, args.user_id)
    print(f"Escrow {escrow.id} cancelled.")


def handle_dispute(service: EscrowService, args: argparse.Namespace) -> None:
    escrow = service.raise_dispute(args.escrow_id, args.user_id, arbitrator_phones=args.notify)
    print(f"Dispute raised on escrow {escrow.id}. Arbitrators:")
    for arbitrator_id in escrow.arbitrators:
        print(f"  {arbitrator_id}")


def handle_vote(service: EscrowService, args: argparse.Namespace) -> None:
    escrow, decision = service.vote(args.escrow_id, args.arbitrator_id, _VOTE_CHOICES[args.vote])
    status = service.get_status(escrow.id)
    print(
        f"Vote recorded. Release: {status['votes_for_release']}, "
        f"Refund: {status['votes_for_refund']}, Needed: {status['votes_needed']}"
    )
    if decision is not None:
        print(f"Dispute resolved: {decision}. Escrow is now {escrow.state}.")


def handle_list(service: EscrowService, args: argparse.Namespace) -> None:
    state = EscrowState(args.state) if args.state else None
    escrows = service.list_escrows(state)
    if not escrows:
        print("No escrows found.")
        return
    for escrow in escrows:
        print(f"{escrow.id}  {escrow.state:<10}  {escrow.amount:>12} {escrow.currency}  {escrow.description}")


def handle_get(service: EscrowService, args: argparse.Namespace) -> None:
    escrow = service.get_escrow(args.escrow_id)
    if args.json:
        print(json.dumps(EscrowSchema.model_validate(escrow).public_dict(), indent=2))
    else:
        _print_escrow(escrow)


def handle_sweep(service: EscrowService, args: argparse.Namespace) -> None:
    refunded = service.sweep_expired()
    print(f"Refunded {len(refunded)} expired escrow(s).")
    for escrow_id in refunded:
        print(f"  {escrow_id}")


def handle_trust(service: EscrowService, args: argparse.Namespace) -> None:
    trust = service.trust
    if args.trust_command == "register":
        trust.register(args.user_id)
    elif args.trust_command == "penalize":
        trust.add_penalty(args.user_id, args.reason, args.points, args.days)
    elif args.trust_command == "reward":
        trust.add_bonus(args.user_id, args.reason, args.points)

    profile = trust.get_profile(args.user_id)
    print(_RULE)
    print(f"User:         {profile.user_id}")
    print(f"Score:        {profile.score} ({trust_level(profile.score)})")
    print(
        f"Transactions: {profile.total_transactions} total, "
        f"{profile.successful_transactions} successful, "
        f"{profile.disputed_transactions} disputed"
    )
    print(f"Volume:       {profile.total_amount_transacted}")
    print(_RULE)


def handle_party(service: EscrowService, args: argparse.Namespace) -> None:
    if args.party_command == "register":
        request = _validated(
            RegisterPartyRequest,
            user_id=args.user_id,
            role=args.role,
            phone_number=args.phone,
            name=args.name,
        )
        party = service.register_party(request.user_id, request.role, request.phone_number, request.name)
    else:
        party = service.get_party(args.user_id)
    print(_RULE)
    print(f"User:  {party.id}")
    print(f"Role:  {party.role}")
    print(f"Name:  {party.name or '-'}")
    print(f"Phone: {party.phone_number}")
    print(_RULE)


def handle_dashboard(service: EscrowService, args: argparse.Namespace) -> None:
    summary = service.dashboard()
    print("SPAZA ESCROW DASHBOARD")
    print(_RULE)
    print(f"Total escrows: {summary['total']}")
    for state, count in summary["by_state"].items():
        print(f"  {state:<11} {count}")
    if summary["held"]:
        print("Funds held:")
        for currency, amount in summary["held"].items():
            print(f"  {amount} {currency}")
    print(_RULE)


def handle_demo(service: EscrowService, args: argparse.Namespace) -> None:
    scenarios = {1: _demo_successful_delivery, 2: _demo_disputed_delivery}
    print("SPAZA SAFETY ESCROW DEMO")
    print("=" * 50)
    scenarios[args.scenario](service)


def _demo_parties(service: EscrowService) -> tuple[uuid.UUID, uuid.UUID]:
    """Register a spaza owner at 75 and a wholesaler at 92."""
    buyer, seller = uuid.uuid4(), uuid.uuid4()
    service.trust.register(buyer)
    service.trust.register(seller)
    service.trust.add_bonus(buyer, "Established spaza owner", Decimal("25"))
    service.trust.add_bonus(seller, "Verified wholesaler", Decimal("42"))
    print(f"Spaza owner Thabo: trust {service.trust.get_score(buyer)}")
    print(f"Wholesaler Makro:  trust {service.trust.get_score(seller)}")
    return buyer, seller


def _demo_successful_delivery(service: EscrowService) -> None:
    print("Scenario 1: Successful spaza transaction")
    print("-" * 40)
    buyer, seller = _demo_parties(service)

    escrow = service.create_escrow(
        buyer, seller, Decimal("1500.00"), description="Maize meal stock", buyer_phone="+27821234567"
    )
    days = (escrow.expires_at - escrow.created_at).days
    print(f"1. Escrow created for {escrow.amount} {escrow.currency}, {days} day(s) to deliver.")

    service.fund_escrow(escrow.id, Decimal("1500.00"), seller_phone="+27831234567")
    print("2. Buyer funded the escrow; wholesaler notified to deliver.")

    try:
        service.release(escrow.id, buyer, "000000" if escrow.release_pin != "000000" else "111111")
    except EscrowError as exc:
        print(f"3. Driver entered a wrong PIN: {exc.message}")

    service.release(escrow.id, buyer, escrow.release_pin, seller_phone="+27831234567")
    print("4. Driver entered the buyer's PIN; payment released.")
    print(f"   Thabo trust now {service.trust.get_score(buyer)}, Makro trust now {service.trust.get_score(seller)}")


def _demo_disputed_delivery(service: EscrowService) -> None:
    print("Scenario 2: Short delivery goes to arbitration")
    print("-" * 40)
    buyer, seller = _demo_parties(service)

    escrow = service.create_escrow(
        buyer,
        seller,
        Decimal("2300.00"),
        description="Cooking oil, 40 units",
        buyer_phone="+27821234567",
        seller_phone="+27831234567",
    )
    service.fund_escrow(escrow.id, Decimal("2300.00"))
    print(f"1. Escrow {str(escrow.id)[:8]} funded for {escrow.amount} {escrow.currency}.")

    service.raise_dispute(escrow.id, buyer)
    print("2. Thabo received 25 units and raised a dispute.")

    for number, arbitrator_id in enumerate(escrow.arbitrators[:2], start=3):
        escrow, decision = service.vote(escrow.id, arbitrator_id, vote=False)
        print(f"{number}. Arbitrator {str(arbitrator_id)[:8]} voted to refund.")
        if decision is not None:
            print(f"   Decision: {decision}; escrow is {escrow.state}.")
            print("   Thabo is notified of the refund by SMS.")
            break
    print(f"   Thabo trust now {service.trust.get_score(buyer)}, Makro trust now {service.trust.get_score(seller)}")


HANDLERS = {
    "create": handle_create,
    "fund": handle_fund,
    "release": handle_release,
    "cancel": handle_cancel,
    "dispute": handle_dispute,
    "vote": handle_vote,
    "list": handle_list,
    "get": handle_get,
    "sweep": handle_sweep,
    "trust": handle_trust,
    "party": handle_party,
    "dashboard": handle_dashboard,
    "demo": handle_demo,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spaza-escrow", description="Spaza Safety Escrow")
    parser.add_argument("--database-url", help="Override DATABASE_URL for this run.")
    parser.add_argument("--log-level", help="Override APP_LOG_LEVEL for this run.")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines on stderr.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="Create a new escrow")
    p.add_argument("-a", "--amount", required=True)
    p.add_argument("-c", "--currency", default=None)
    p.add_argument("-b", "--buyer-id", type=uuid.UUID, required=True)
    p.add_argument("-s", "--seller-id", type=uuid.UUID, required=True)
    p.add_argument("-d", "--description", default=None)
    p.add_argument("--days", type=int, default=None, help="Defaults to the trust-based recommendation.")
    p.add_argument("--arbitrator", type=uuid.UUID, action="append", help="Repeat once per panel member.")
    p.add_argument("--buyer-phone", default=None, help="Send the release PIN by SMS.")
    p.add_argument("--seller-phone", default=None, help="Kept on file for delivery and payment alerts.")

    p = sub.add_parser("fund", help="Fund an existing escrow")
    p.add_argument("-e", "--escrow-id", type=uuid.UUID, required=True)
    p.add_argument("-a", "--amount", required=True)
    p.add_argument("--seller-phone", default=None)

    p = sub.add_parser("release", help="Release funds to the seller")
    p.add_argument("-e", "--escrow-id", type=uuid.UUID, required=True)
    p.add_argument("-u", "--user-id", type=uuid.UUID, required=True)
    p.add_argument("-p", "--pin", required=True)
    p.add_argument("--seller-phone", default=None)

    p = sub.add_parser("cancel", help="Cancel an unfunded escrow")
    p.add_argument("-e", "--escrow-id", type=uuid.UUID, required=True)
    p.add_argument("-u", "--user-id", type=uuid.UUID, required=True)

    p = sub.add_parser("dispute", help="Raise a dispute")
    p.add_argument("-e", "--escrow-id", type=uuid.UUID, required=True)
    p.add_argument("-u", "--user-id", type=uuid.UUID, required=True)
    p.add_argument("--notify", action="append", default=[], help="Arbitrator phone to alert.")

    p = sub.add_parser("vote", help="Vote on a dispute")
    p.add_argument("-e", "--escrow-id", type=uuid.UUID, required=True)
    p.add_argument("-a", "--arbitrator-id", type=uuid.UUID, required=True)
    p.add_argument("-v", "--vote", choices=sorted(_VOTE_CHOICES), required=True)

    p = sub.add_parser("list", help="List escrows")
    p.add_argument("--state", choices=[s.value for s in EscrowState], default=None)

    p = sub.add_parser("get", help="Show escrow details")
    p.add_argument("-e", "--escrow-id", type=uuid.UUID, required=True)
    p.add_argument("--json", action="store_true")

    sub.add_parser("sweep", help="Refund every expired funded escrow")

    p = sub.add_parser("trust", help="Inspect or adjust trust profiles")
    trust_sub = p.add_subparsers(dest="trust_command", required=True)
    for name in ("register", "show"):
        tp = trust_sub.add_parser(name)
        tp.add_argument("-u", "--user-id", type=uuid.UUID, required=True)
    tp = trust_sub.add_parser("penalize")
    tp.add_argument("-u", "--user-id", type=uuid.UUID, required=True)
    tp.add_argument("--points", type=_decimal, required=True)
    tp.add_argument("--days", type=int, default=30)
    tp.add_argument("--reason", required=True)
    tp = trust_sub.add_parser("reward")
    tp.add_argument("-u", "--user-id", type=uuid.UUID, required=True)
    tp.add_argument("--points", type=_decimal, required=True)
    tp.add_argument("--reason", required=True)

    p = sub.add_parser("party", help="Manage the party contact directory")
    party_sub = p.add_subparsers(dest="party_command", required=True)
    pp = party_sub.add_parser("register")
    pp.add_argument("-u", "--user-id", type=uuid.UUID, required=True)
    pp.add_argument("--role", choices=[r.value for r in PartyRole], required=True)
    pp.add_argument("--phone", required=True)
    pp.add_argument("--name", default=None)
    pp = party_sub.add_parser("show")
    pp.add_argument("-u", "--user-id", type=uuid.UUID, required=True)

    sub.add_parser("dashboard", help="Summarize all escrows")

    p = sub.add_parser("demo", help="Run a scripted scenario in memory")
    p.add_argument("--scenario", type=int, choices=(1, 2), default=1)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["app_log_level"] = args.log_level
    settings = Settings(**overrides) if overrides else get_settings()

    setup_logging(log_level=settings.app_log_level, json_logs=args.json_logs or not settings.is_development)
    bind_command_context(args.command)

    try:
        if args.command == "demo":
            service = build_service(settings, storage=InMemoryStorage())
        else:
            service = build_service(settings)
        HANDLERS[args.command](service, args)
    except EscrowError as exc:
        logger.info("cli.command_failed", code=exc.code)
        print(f"error [{exc.code}]: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
