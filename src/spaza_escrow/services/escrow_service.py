"""Escrow Service: orchestration of the escrow lifecycle.

This is the application layer that coordinates between:
    - Domain operations (state machine, dispute engine)
    - Storage (record store)
    - Trust engine (duration advice in, settlement outcomes out)
    - Party directory (who to text)
    - SMS notifications (best effort)

Every mutating command runs as a read-modify-write under the escrow's lock,
so two commands on the same escrow never interleave. Trust outcomes and
notifications follow the committed write; if either fails it is logged and
never undoes the transition or fails the command.
"""

from __future__ import annotations

import uuid
from collections import Counter
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from spaza_escrow.domain.contract import (
    auto_refund_if_expired,
    cancel_escrow,
    fund_escrow,
    raise_dispute,
    release_to_seller,
)
from spaza_escrow.domain.dispute import majority_threshold, tally, vote_on_dispute
from spaza_escrow.domain.enums import DisputeDecision, EscrowState, PartyRole
from spaza_escrow.domain.exceptions import (
    EscrowError,
    EscrowNotFoundError,
    EscrowValidationError,
    InfrastructureError,
    NotificationError,
    PartyNotFoundError,
)
from spaza_escrow.domain.models import DEFAULT_PANEL_SIZE, Escrow, Party
from spaza_escrow.domain.ports import SYSTEM_CLOCK, generate_pin
from spaza_escrow.domain.state_machine import EscrowStateMachine
from spaza_escrow.infrastructure.locks import KeyedLocks
from spaza_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from datetime import datetime

    from spaza_escrow.domain.ports import Clock, EscrowStorage
    from spaza_escrow.infrastructure.sms import SmsService
    from spaza_escrow.trust.engine import TrustEngine

logger = get_logger(__name__)

HELD_STATES = (EscrowState.FUNDED, EscrowState.IN_DISPUTE)


class EscrowService:
    """Manages the escrow lifecycle on top of a record store."""

    def __init__(
        self,
        storage: EscrowStorage,
        trust: TrustEngine,
        sms: SmsService | None = None,
        clock: Clock = SYSTEM_CLOCK,
        pin_generator: Callable[[], str] = generate_pin,
        locks: KeyedLocks | None = None,
        default_currency: str = "ZAR",
        default_description: str = "Monthly stock purchase",
        panel_size: int = DEFAULT_PANEL_SIZE,
    ) -> None:
        self._storage = storage
        self._trust = trust
        self._sms = sms
        self._clock = clock
        self._pin_generator = pin_generator
        self._locks = locks if locks is not None else KeyedLocks()
        self._default_currency = default_currency
        self._default_description = default_description
        self._panel_size = panel_size

    @property
    def trust(self) -> TrustEngine:
        return self._trust

    # ------------------------------------------------------------------
    # Party directory
    # ------------------------------------------------------------------

    def register_party(
        self,
        user_id: uuid.UUID,
        role: PartyRole,
        phone_number: str,
        name: str | None = None,
    ) -> Party:
        """Add a directory entry, or replace the contact details of an existing one.

        An existing entry keeps its ``created_at``; role, phone and name are
        overwritten.
        """
        with self._locks.hold(("party", user_id)):
            existing = self._storage.get_party(user_id)
            party = Party(
                id=user_id,
                role=role,
                phone_number=phone_number,
                created_at=existing.created_at if existing else self._clock.now(),
                name=name,
            )
            self._storage.put_party(party)

        logger.info("party.registered", user_id=str(user_id), role=str(role), updated=existing is not None)
        return party

    def get_party(self, user_id: uuid.UUID) -> Party:
        party = self._storage.get_party(user_id)
        if party is None:
            raise PartyNotFoundError(user_id)
        return party

    def _remember_phone(self, user_id: uuid.UUID, role: PartyRole, phone: str | None) -> None:
        """Record a phone seen on a command so later notifications can use it."""
        if not phone:
            return
        try:
            with self._locks.hold(("party", user_id)):
                existing = self._storage.get_party(user_id)
                if existing is None:
                    self._storage.put_party(
                        Party(id=user_id, role=role, phone_number=phone, created_at=self._clock.now())
                    )
                elif existing.phone_number != phone:
                    existing.phone_number = phone
                    self._storage.put_party(existing)
                else:
                    return
        except InfrastructureError as exc:
            logger.error("party.phone_not_recorded", user_id=str(user_id), error=exc.message)
            return
        logger.info("party.phone_recorded", user_id=str(user_id), role=str(role))

    def _phone_for(self, user_id: uuid.UUID, explicit: str | None = None) -> str | None:
        """The number to text ``user_id`` on: ``explicit`` if given, else the directory's."""
        if explicit:
            return explicit
        try:
            party = self._storage.get_party(user_id)
        except InfrastructureError as exc:
            logger.error("party.lookup_failed", user_id=str(user_id), error=exc.message)
            return None
        return party.phone_number if party is not None else None

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_escrow(
        self,
        buyer_id: uuid.UUID,
        seller_id: uuid.UUID,
        amount: Decimal,
        currency: str | None = None,
        description: str | None = None,
        days: int | None = None,
        arbitrators: Sequence[uuid.UUID] | None = None,
        buyer_phone: str | None = None,
        seller_phone: str | None = None,
    ) -> Escrow:
        """Create a new escrow in CREATED state.

        Both parties are registered with the trust engine if needed. When
        ``days`` is omitted the duration is recommended from their scores.
        Phones given here are kept in the party directory; the release PIN
        goes to the buyer's phone if one is known.
        """
        if buyer_id == seller_id:
            raise EscrowValidationError("buyer and seller must be different users")

        self._trust.register(buyer_id)
        self._trust.register(seller_id)
        if days is None:
            days = self._trust.recommended_duration(buyer_id, seller_id)

        if arbitrators is None:
            arbitrators = [uuid.uuid4() for _ in range(self._panel_size)]

        escrow = Escrow.create(
            amount=amount,
            currency=currency or self._default_currency,
            buyer_id=buyer_id,
            seller_id=seller_id,
            description=description or self._default_description,
            days_to_expire=days,
            arbitrators=arbitrators,
            clock=self._clock,
            pin_generator=self._pin_generator,
        )
        self._storage.put(escrow)

        logger.info(
            "escrow.created",
            escrow_id=str(escrow.id),
            amount=str(escrow.amount),
            currency=escrow.currency,
            days=days,
            panel_size=len(escrow.arbitrators),
        )

        self._remember_phone(buyer_id, PartyRole.BUYER, buyer_phone)
        self._remember_phone(seller_id, PartyRole.SELLER, seller_phone)
        self._notify(
            self._phone_for(buyer_id, buyer_phone),
            "send_pin_to_buyer",
            escrow.release_pin,
            escrow.id,
            escrow.amount,
            escrow.currency,
        )
        return escrow

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------

    def fund_escrow(
        self,
        escrow_id: uuid.UUID,
        amount: Decimal,
        seller_phone: str | None = None,
    ) -> Escrow:
        """Record the buyer's deposit (CREATED -> FUNDED) and tell the seller to deliver."""
        if not isinstance(amount, Decimal):
            raise EscrowValidationError("amount must be a Decimal")

        with self._locks.hold(escrow_id):
            escrow = self._get_or_raise(escrow_id)
            fund_escrow(escrow, amount, clock=self._clock)
            self._storage.put(escrow)

        logger.info("escrow.funded", escrow_id=str(escrow_id), amount=str(amount))

        self._remember_phone(escrow.seller_id, PartyRole.SELLER, seller_phone)
        self._notify(
            self._phone_for(escrow.seller_id, seller_phone),
            "notify_seller_delivery",
            escrow.id,
            escrow.amount,
            escrow.currency,
        )
        return escrow

    def release(
        self,
        escrow_id: uuid.UUID,
        user_id: uuid.UUID,
        pin: str,
        seller_phone: str | None = None,
    ) -> Escrow:
        """Release funds to the seller with the buyer's PIN (FUNDED -> COMPLETED)."""
        with self._locks.hold(escrow_id):
            escrow = self._get_or_raise(escrow_id)
            try:
                release_to_seller(escrow, user_id, pin, clock=self._clock)
            except EscrowError as exc:
                logger.warning("escrow.release_rejected", escrow_id=str(escrow_id), reason=exc.code)
                raise
            self._storage.put(escrow)

        logger.info("escrow.released", escrow_id=str(escrow_id))
        self._remember_phone(escrow.seller_id, PartyRole.SELLER, seller_phone)
        self._record_outcome(
            escrow,
            {escrow.buyer_id: True, escrow.seller_id: True},
            settlement_seconds=_elapsed_seconds(escrow.funded_at, self._clock.now()),
        )
        self._notify_released(escrow, seller_phone)
        return escrow

    def cancel(self, escrow_id: uuid.UUID, user_id: uuid.UUID) -> Escrow:
        """Cancel an unfunded escrow (CREATED -> CANCELLED)."""
        with self._locks.hold(escrow_id):
            escrow = self._get_or_raise(escrow_id)
            cancel_escrow(escrow, user_id)
            self._storage.put(escrow)

        logger.info("escrow.cancelled", escrow_id=str(escrow_id), by=str(user_id))
        return escrow

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    def raise_dispute(
        self,
        escrow_id: uuid.UUID,
        user_id: uuid.UUID,
        arbitrator_phones: Iterable[str] = (),
    ) -> Escrow:
        """Open a dispute (FUNDED -> IN_DISPUTE) and alert the arbitrators.

        Every phone in ``arbitrator_phones`` is alerted, then every panel
        member with a directory entry whose number was not already listed.
        """
        with self._locks.hold(escrow_id):
            escrow = self._get_or_raise(escrow_id)
            raise_dispute(escrow, user_id, clock=self._clock)
            self._storage.put(escrow)

        logger.info("escrow.dispute_raised", escrow_id=str(escrow_id), by=str(user_id))

        phones = list(dict.fromkeys(arbitrator_phones))
        for arbitrator_id in escrow.arbitrators:
            phone = self._phone_for(arbitrator_id)
            if phone and phone not in phones:
                phones.append(phone)
        for phone in phones:
            self._notify(phone, "notify_dispute", escrow.id, escrow.amount, escrow.currency)
        return escrow

    def vote(
        self,
        escrow_id: uuid.UUID,
        arbitrator_id: uuid.UUID,
        vote: bool,
    ) -> tuple[Escrow, DisputeDecision | None]:
        """Record an arbitrator vote; returns the escrow and the decision, if reached."""
        with self._locks.hold(escrow_id):
            escrow = self._get_or_raise(escrow_id)
            decision = vote_on_dispute(escrow, arbitrator_id, vote, clock=self._clock)
            self._storage.put(escrow)

        for_release, for_refund = tally(escrow.dispute)
        logger.info(
            "dispute.vote_recorded",
            escrow_id=str(escrow_id),
            arbitrator_id=str(arbitrator_id),
            for_release=for_release,
            for_refund=for_refund,
            needed=majority_threshold(len(escrow.arbitrators)),
        )
        if decision is None:
            return escrow, None

        logger.info("dispute.resolved", escrow_id=str(escrow_id), decision=str(decision))
        settlement_seconds = _elapsed_seconds(escrow.funded_at, self._clock.now())
        if decision is DisputeDecision.RELEASE_TO_SELLER:
            self._record_outcome(
                escrow,
                {escrow.buyer_id: False, escrow.seller_id: True},
                had_dispute=True,
                settlement_seconds=settlement_seconds,
            )
            self._notify_released(escrow)
        else:
            self._record_outcome(
                escrow,
                {escrow.buyer_id: True, escrow.seller_id: False},
                had_dispute=True,
                settlement_seconds=settlement_seconds,
            )
            self._notify_refunded(escrow)
        return escrow, decision

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def sweep_expired(self) -> list[uuid.UUID]:
        """Refund every funded escrow past its deadline. Returns the refunded ids."""
        refunded = [e.id for e in self._storage.list() if self._refresh_expiry(e.id)]
        if refunded:
            logger.info("escrow.sweep_completed", refunded=len(refunded))
        return refunded

    def _refresh_expiry(self, escrow_id: uuid.UUID) -> bool:
        with self._locks.hold(escrow_id):
            escrow = self._get_or_raise(escrow_id)
            if not auto_refund_if_expired(escrow, clock=self._clock):
                return False
            self._storage.put(escrow)

        logger.info("escrow.expired_refunded", escrow_id=str(escrow_id))
        # Expiry means the seller never got a PIN release in time.
        self._record_outcome(escrow, {escrow.seller_id: False})
        self._notify_refunded(escrow)
        return True

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get_escrow(self, escrow_id: uuid.UUID) -> Escrow:
        """Get an escrow, applying any pending expiry refund first."""
        self._refresh_expiry(escrow_id)
        return self._get_or_raise(escrow_id)

    def list_escrows(self, state: EscrowState | None = None) -> list[Escrow]:
        """List escrows, oldest first, after applying pending expiry refunds."""
        self.sweep_expired()
        escrows = self._storage.list()
        if state is not None:
            escrows = [e for e in escrows if e.state == state]
        return escrows

    def get_status(self, escrow_id: uuid.UUID) -> dict[str, Any]:
        """Get escrow state with the events that may fire next."""
        escrow = self.get_escrow(escrow_id)
        sm = EscrowStateMachine(current_state=escrow.state)
        status: dict[str, Any] = {
            "escrow_id": str(escrow.id),
            "state": str(escrow.state),
            "expires_at": escrow.expires_at.isoformat(),
            "allowed_events": sm.get_allowed_events(),
        }
        if escrow.dispute is not None:
            for_release, for_refund = tally(escrow.dispute)
            status["votes_for_release"] = for_release
            status["votes_for_refund"] = for_refund
            status["votes_needed"] = majority_threshold(len(escrow.arbitrators))
            status["decision"] = str(escrow.dispute.decision) if escrow.dispute.decision else None
        return status

    def dashboard(self) -> dict[str, Any]:
        """Summarize all escrows: counts per state and amounts still held."""
        escrows = self.list_escrows()
        counts = Counter(str(e.state) for e in escrows)
        held: dict[str, Decimal] = {}
        for escrow in escrows:
            if escrow.state in HELD_STATES:
                held[escrow.currency] = held.get(escrow.currency, Decimal("0")) + escrow.amount
        return {
            "total": len(escrows),
            "by_state": {str(s): counts.get(str(s), 0) for s in EscrowState},
            "held": {currency: str(amount) for currency, amount in sorted(held.items())},
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _get_or_raise(self, escrow_id: uuid.UUID) -> Escrow:
        escrow = self._storage.get(escrow_id)
        if escrow is None:
            raise EscrowNotFoundError(escrow_id)
        return escrow

    def _record_outcome(
        self,
        escrow: Escrow,
        outcomes: dict[uuid.UUID, bool],
        had_dispute: bool = False,
        settlement_seconds: int = 0,
    ) -> None:
        """Report a settled escrow to each party's trust profile.

        ``outcomes`` maps user id to whether the settlement went their way.
        The escrow is already committed, so a storage failure is logged
        against that user and the remaining parties are still recorded.
        """
        for user_id, successful in outcomes.items():
            try:
                self._trust.register(user_id)
                self._trust.record_transaction(
                    user_id,
                    escrow.amount,
                    was_successful=successful,
                    had_dispute=had_dispute,
                    settlement_seconds=settlement_seconds,
                )
            except InfrastructureError as exc:
                logger.error(
                    "trust.outcome_not_recorded",
                    escrow_id=str(escrow.id),
                    user_id=str(user_id),
                    successful=successful,
                    error=exc.message,
                )

    def _notify_released(self, escrow: Escrow, seller_phone: str | None = None) -> None:
        self._notify(
            self._phone_for(escrow.seller_id, seller_phone),
            "notify_payment_released",
            escrow.amount,
            escrow.currency,
            escrow.id,
        )

    def _notify_refunded(self, escrow: Escrow) -> None:
        self._notify(
            self._phone_for(escrow.buyer_id),
            "notify_refund",
            escrow.id,
            escrow.amount,
            escrow.currency,
        )

    def _notify(self, phone: str | None, notification: str, *args: Any) -> str | None:
        """Send if a gateway and a number are available; failures are logged, never raised."""
        if self._sms is None or not phone:
            return None
        try:
            return getattr(self._sms, notification)(phone, *args)
        except NotificationError as exc:
            logger.warning("sms.delivery_failed", notification=notification, error=exc.message)
            return None


def _elapsed_seconds(start: datetime | None, end: datetime) -> int:
    if start is None:
        return 0
    return max(int((end - start).total_seconds()), 0)
