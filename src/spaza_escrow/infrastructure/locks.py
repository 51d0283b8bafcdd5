"""Per-key exclusive locks.

The state machine has no version counter, so two read-modify-write cycles on
the same escrow (or the same trust profile) must never interleave. Callers
hold the key's lock from the storage read until the write.

A key's lock lives only while some thread holds or waits on it, so the map
stays as small as the number of keys in flight.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """A map of re-entrant locks, one per key currently in use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[Hashable, _Slot] = {}

    def _checkout(self, key: Hashable) -> _Slot:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = _Slot()
                self._slots[key] = slot
            slot.users += 1
            return slot

    def _checkin(self, key: Hashable, slot: _Slot) -> None:
        with self._guard:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the ``with`` block."""
        slot = self._checkout(key)
        try:
            with slot.lock:
                yield
        finally:
            self._checkin(key, slot)

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._slots)
