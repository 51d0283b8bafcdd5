"""SMS Service: outbound notifications to buyers, sellers and arbitrators.

For the demo: simulated mode renders the message through structlog and
appends it to an audit log file with the phone number masked. Real carrier
delivery is not wired; in non-simulated mode every send fails with
NotificationError so callers exercise their failure path.

Message builders format the escrow id as its first 8 hex characters, which
is what fits comfortably on a feature-phone screen.
"""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from spaza_escrow.domain.enums import MobileCarrier
from spaza_escrow.domain.exceptions import NotificationError
from spaza_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from decimal import Decimal

logger = get_logger(__name__)

_PHONE_PATTERN = re.compile(r"^\+?\d{7,15}$")


def mask_phone(phone: str) -> str:
    """Hide all but the last four digits."""
    if len(phone) > 4:
        return "******" + phone[-4:]
    return "****"


def short_id(escrow_id: uuid.UUID) -> str:
    return str(escrow_id)[:8]


class SmsService:
    """Sends escrow notifications by SMS."""

    def __init__(
        self,
        carrier: MobileCarrier = MobileCarrier.SAFARICOM,
        sender_id: str = "SPAZAESCROW",
        simulate: bool = True,
        audit_log_path: str | Path | None = "sms_audit.log",
    ) -> None:
        """Initialize the SMS service.

        Args:
            carrier: Carrier the messages are routed through.
            sender_id: Alphanumeric sender shown on the handset.
            simulate: If True, log and audit instead of contacting a carrier.
            audit_log_path: File the simulated messages are appended to;
                            None disables the file audit.
        """
        self._carrier = carrier
        self._sender_id = sender_id
        self._simulate = simulate
        self._audit_log_path = Path(audit_log_path) if audit_log_path else None

    # ------------------------------------------------------------------
    # Message builders
    # ------------------------------------------------------------------

    def send_pin_to_buyer(
        self, phone: str, pin: str, escrow_id: uuid.UUID, amount: Decimal, currency: str
    ) -> str:
        """Send the one-time release PIN to the buyer."""
        message = (
            f"Spaza Escrow PIN: {pin}\n"
            f"For Escrow: {short_id(escrow_id)}\n"
            f"Amount: {amount} {currency}\n\n"
            "Give this PIN to the delivery driver to release payment.\n\n"
            "Reply HELP for support."
        )
        return self.send(phone, message)

    def notify_seller_delivery(
        self, phone: str, escrow_id: uuid.UUID, amount: Decimal, currency: str
    ) -> str:
        """Tell the seller the funds are guaranteed and goods can ship."""
        message = (
            "FUNDS GUARANTEED!\n"
            f"Escrow: {short_id(escrow_id)}\n"
            f"Amount: {amount} {currency}\n\n"
            "Buyer has escrowed funds. You can safely deliver goods.\n\n"
            "Reply DELIVERED when done."
        )
        return self.send(phone, message)

    def notify_payment_released(
        self, phone: str, amount: Decimal, currency: str, escrow_id: uuid.UUID
    ) -> str:
        message = (
            "PAYMENT RECEIVED!\n"
            f"Amount: {amount} {currency}\n"
            f"Escrow: {short_id(escrow_id)}\n\n"
            "Funds have been released to your account.\n\n"
            "Thank you for using Spaza Safety!"
        )
        return self.send(phone, message)

    def notify_dispute(
        self, phone: str, escrow_id: uuid.UUID, amount: Decimal, currency: str
    ) -> str:
        """Ask an arbitrator to review and vote."""
        message = (
            "DISPUTE ALERT\n"
            f"Escrow: {short_id(escrow_id)}\n"
            f"Amount: {amount} {currency}\n\n"
            "Please review and vote on this dispute.\n\n"
            "Reply VOTE to participate."
        )
        return self.send(phone, message)

    def notify_refund(
        self, phone: str, escrow_id: uuid.UUID, amount: Decimal, currency: str
    ) -> str:
        """Tell the buyer an expiry or dispute refund has gone through."""
        message = (
            "REFUND ISSUED\n"
            f"Escrow: {short_id(escrow_id)}\n"
            f"Amount: {amount} {currency}\n\n"
            "Your escrowed funds have been returned to you."
        )
        return self.send(phone, message)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send(self, phone: str, message: str) -> str:
        """Send ``message`` to ``phone`` and return a delivery id.

        Raises:
            NotificationError: If the number is malformed or delivery fails.
        """
        if not _PHONE_PATTERN.match(phone or ""):
            raise NotificationError(f"invalid phone number: {mask_phone(phone or '')}")
        if not self._simulate:
            return self._real_send(phone, message)
        return self._simulate_send(phone, message)

    def _simulate_send(self, phone: str, message: str) -> str:
        delivery_id = f"sms_{uuid.uuid4().hex[:12]}"
        logger.info(
            "sms.sent",
            delivery_id=delivery_id,
            carrier=self._carrier.display_name,
            sender=self._sender_id,
            to=mask_phone(phone),
            message=message,
            simulated=True,
        )
        self._audit(phone, message)
        return delivery_id

    def _real_send(self, phone: str, message: str) -> str:
        logger.warning("sms.real_send_unavailable", to=mask_phone(phone))
        raise NotificationError("real SMS delivery is not configured")

    def _audit(self, phone: str, message: str) -> None:
        if self._audit_log_path is None:
            return
        entry = (
            f"[{datetime.now(UTC).isoformat()}] {self._carrier.display_name} | "
            f"To: {mask_phone(phone)} | Message: {message.replace(chr(10), ' ')}\n"
        )
        try:
            with self._audit_log_path.open("a", encoding="utf-8") as fh:
                fh.write(entry)
        except OSError as err:
            raise NotificationError(f"could not write SMS audit log: {err}") from err
