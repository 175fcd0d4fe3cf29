"""Map a continuous fraud score to one of the four discrete fraud levels."""
from __future__ import annotations

from liquidapp.models.base import FraudLevelEnum

# Upper bounds (exclusive) for each bucket; anything at or above 0.75 is critical.
_LEVEL_BOUNDS: tuple[tuple[float, FraudLevelEnum], ...] = (
    (0.25, FraudLevelEnum.LOW),
    (0.50, FraudLevelEnum.MEDIUM),
    (0.75, FraudLevelEnum.HIGH),
)


def classify_fraud_level(score: float) -> FraudLevelEnum:
    """Return the fraud level bucket for *score* (expected in [0.0, 1.0])."""
    for bound, level in _LEVEL_BOUNDS:
        if score < bound:
            return level
    return FraudLevelEnum.CRITICAL


def resolve_fraud_level(explicit: FraudLevelEnum | None, score: float) -> FraudLevelEnum:
    """A level supplied by the model always wins over the computed one."""
    if explicit is not None:
        return explicit
    return classify_fraud_level(score)
