"""Database infrastructure: engine, ORM models, and the SQL record store."""

from spaza_escrow.infrastructure.database.engine import (
    create_db_engine,
    init_db,
    make_session_factory,
)
from spaza_escrow.infrastructure.database.orm_models import (
    Base,
    EscrowRow,
    PartyRow,
    TrustProfileRow,
)
from spaza_escrow.infrastructure.database.repositories import SqlStorage

__all__ = [
    "Base",
    "EscrowRow",
    "PartyRow",
    "TrustProfileRow",
    "SqlStorage",
    "create_db_engine",
    "init_db",
    "make_session_factory",
]
