"""Trust scoring: per-user profiles, scores, tiers and duration advice."""

from spaza_escrow.trust.engine import TrustEngine
from spaza_escrow.trust.scoring import (
    Bonus,
    Penalty,
    TrustProfile,
    calculate_trust_score,
    recommended_duration,
    trust_level,
)

__all__ = [
    "TrustEngine",
    "Bonus",
    "Penalty",
    "TrustProfile",
    "calculate_trust_score",
    "recommended_duration",
    "trust_level",
]
