"""Wire the service graph from settings.

Both the CLI and the demo build their EscrowService here so storage,
trust engine and SMS gateway are configured in one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from spaza_escrow.config import Settings, get_settings
from spaza_escrow.domain.ports import SYSTEM_CLOCK
from spaza_escrow.infrastructure.database import (
    SqlStorage,
    create_db_engine,
    init_db,
    make_session_factory,
)
from spaza_escrow.infrastructure.sms import SmsService
from spaza_escrow.services.escrow_service import EscrowService
from spaza_escrow.trust.engine import TrustEngine

if TYPE_CHECKING:
    from spaza_escrow.domain.ports import Clock, EscrowStorage


def build_sql_storage(settings: Settings) -> SqlStorage:
    """Create the SQL record store for ``settings.database_url``, tables included."""
    engine = create_db_engine(settings.database_url, echo=settings.db_echo_sql)
    init_db(engine)
    return SqlStorage(make_session_factory(engine))


def build_service(
    settings: Settings | None = None,
    storage: EscrowStorage | None = None,
    clock: Clock = SYSTEM_CLOCK,
) -> EscrowService:
    """Build an EscrowService.

    Args:
        settings: Configuration; the cached environment settings when omitted.
        storage: Record store; a SQL store on ``settings.database_url`` when omitted.
        clock: Time source shared by the service and the trust engine.
    """
    settings = settings or get_settings()
    storage = storage if storage is not None else build_sql_storage(settings)
    sms = SmsService(
        carrier=settings.sms_carrier,
        sender_id=settings.sms_sender_id,
        simulate=settings.sms_simulate,
        audit_log_path=settings.sms_audit_log or None,
    )
    return EscrowService(
        storage=storage,
        trust=TrustEngine(storage, clock=clock),
        sms=sms,
        clock=clock,
        default_currency=settings.default_currency,
        default_description=settings.default_description,
        panel_size=settings.arbitrator_panel_size,
    )
