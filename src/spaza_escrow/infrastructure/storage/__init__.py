"""Record stores that need no external services."""

from spaza_escrow.infrastructure.storage.memory import InMemoryStorage

__all__ = ["InMemoryStorage"]
