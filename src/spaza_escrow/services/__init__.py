"""Application services: use case orchestration."""

from spaza_escrow.services.bootstrap import build_service
from spaza_escrow.services.escrow_service import EscrowService

__all__ = ["EscrowService", "build_service"]
