"""In-process record store.

Keeps escrows, trust profiles and parties in dicts. Records are deep-copied
on the way in and out so a caller mutating an escrow it fetched cannot change
the stored copy without calling ``put``, the same contract a real database gives.
"""

from __future__ import annotations

import copy
import threading
from typing import TYPE_CHECKING

from spaza_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from spaza_escrow.domain.models import Escrow, Party
    from spaza_escrow.trust.scoring import TrustProfile

logger = get_logger(__name__)


class InMemoryStorage:
    """Dict-backed implementation of the EscrowStorage protocol."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._escrows: dict[uuid.UUID, Escrow] = {}
        self._profiles: dict[uuid.UUID, TrustProfile] = {}
        self._parties: dict[uuid.UUID, Party] = {}

    def get(self, escrow_id: uuid.UUID) -> Escrow | None:
        with self._lock:
            escrow = self._escrows.get(escrow_id)
            return copy.deepcopy(escrow) if escrow is not None else None

    def put(self, escrow: Escrow) -> None:
        with self._lock:
            self._escrows[escrow.id] = copy.deepcopy(escrow)
        logger.debug("storage.put", escrow_id=str(escrow.id), state=str(escrow.state))

    def list(self) -> list[Escrow]:
        """Return every escrow, oldest first."""
        with self._lock:
            escrows = [copy.deepcopy(e) for e in self._escrows.values()]
        return sorted(escrows, key=lambda e: e.created_at)

    def get_profile(self, user_id: uuid.UUID) -> TrustProfile | None:
        with self._lock:
            profile = self._profiles.get(user_id)
            return copy.deepcopy(profile) if profile is not None else None

    def put_profile(self, profile: TrustProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = copy.deepcopy(profile)
        logger.debug("storage.put_profile", user_id=str(profile.user_id))

    def get_party(self, user_id: uuid.UUID) -> Party | None:
        with self._lock:
            party = self._parties.get(user_id)
            return copy.deepcopy(party) if party is not None else None

    def put_party(self, party: Party) -> None:
        with self._lock:
            self._parties[party.id] = copy.deepcopy(party)
        logger.debug("storage.put_party", user_id=str(party.id), role=str(party.role))
